"""Counterexample search -- discovers gaps in implementation or tests.

This module runs independently of the test suite.  It drives every
postcondition and algebraic property declared by ``build_contract``
over a fixed corpus of awkward inputs and reports:

1. Postcondition violations: outputs that break a declared postcondition.
2. Property violations: algebraic relationships that fail for some
   input combination.
3. Unexpected errors: operations that raise where they must not.

Run from the project root::

    python -m validation.counterexample_search
"""
from __future__ import annotations

import itertools
import sys
from dataclasses import dataclass, field

import auth
from auth import generate_session_token, hash_password, verify_password
from contract import (
    HASH_ALGORITHM,
    MIN_PASSWORD_LENGTH,
    AuthContract,
    build_contract,
)

# Passwords the hasher must accept unchanged: no policy lives there.
PASSWORD_CORPUS = [
    "",
    "a" * (MIN_PASSWORD_LENGTH - 1),
    "a" * MIN_PASSWORD_LENGTH,
    "correcthorse",
    "P@ssw0rd!123",
    "pass\x00word",
    "пароль-ünïcødé",
    "\ud800lone",
    "x" * 4096,
]

# Stored-hash strings that are not valid hashes.
FOREIGN_HASHES = [
    "",
    "no-dollar-sign",
    "$$$",
    "$2b$10$abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ012",
    f"{HASH_ALGORITHM}$abc$00$00",
    f"{HASH_ALGORITHM}$0$00$00",
    f"{HASH_ALGORITHM}$99999999999$00$00",
    f"{HASH_ALGORITHM}$" + "1" * 5000 + "$00$00",
    f"{HASH_ALGORITHM}$10$zz$00",
    f"{HASH_ALGORITHM}$10$0$00",
    f"{HASH_ALGORITHM}$10$00$00$extra",
    f"{HASH_ALGORITHM}$١٠$00$00",
    f"{HASH_ALGORITHM}$10$00$00\n",
]


# ---------------------------------------------------------------------------
# Data structures
# ---------------------------------------------------------------------------

@dataclass
class Counterexample:
    category: str
    operation: str
    inputs: tuple
    expected: str
    actual: str
    description: str


@dataclass
class SearchReport:
    counterexamples: list[Counterexample] = field(default_factory=list)
    checks_run: int = 0

    @property
    def passed(self) -> bool:
        return len(self.counterexamples) == 0

    def summary(self) -> str:
        lines = [
            "Counterexample Search Report",
            "=" * 40,
            f"Total checks: {self.checks_run}",
            f"Counterexamples found: {len(self.counterexamples)}",
        ]
        if self.counterexamples:
            lines.append("")
            for i, cx in enumerate(self.counterexamples, 1):
                lines.append(f"  [{i}] {cx.category} / {cx.operation}")
                lines.append(f"      Inputs:   {_short(cx.inputs)}")
                lines.append(f"      Expected: {cx.expected}")
                lines.append(f"      Actual:   {cx.actual}")
                lines.append(f"      {cx.description}")
        else:
            lines.append("\nNo counterexamples found -- all checks passed.")
        return "\n".join(lines)


def _short(value: object, limit: int = 80) -> str:
    text = repr(value)
    return text if len(text) <= limit else text[:limit] + "..."


# ---------------------------------------------------------------------------
# Search: hash_password postconditions
# ---------------------------------------------------------------------------

def search_hash_password_postconditions(
    contract: AuthContract,
) -> tuple[list[Counterexample], int]:
    """Hash every corpus password and check each postcondition."""
    cxs: list[Counterexample] = []
    checks = 0

    for pw in PASSWORD_CORPUS:
        checks += 1
        try:
            result = hash_password(pw)
        except Exception as e:
            cxs.append(Counterexample(
                category="unexpected_error",
                operation="hash_password",
                inputs=(pw,),
                expected="hash string",
                actual=f"{type(e).__name__}: {e}",
                description="hash_password raised unexpected exception",
            ))
            continue

        for post in contract.operations["hash_password"].postconditions:
            if not post.check(pw, result):
                cxs.append(Counterexample(
                    category="postcondition_violation",
                    operation="hash_password",
                    inputs=(pw,),
                    expected=post.description,
                    actual=f"result={result!r}",
                    description=f"Postcondition '{post.name}' violated",
                ))

    return cxs, checks


# ---------------------------------------------------------------------------
# Search: verify_password postconditions
# ---------------------------------------------------------------------------

def search_verify_password_postconditions(
    contract: AuthContract,
) -> tuple[list[Counterexample], int]:
    """verify_password returns a bool for real and foreign hashes alike."""
    cxs: list[Counterexample] = []
    checks = 0

    real = hash_password("correcthorse")
    for pw, hashed in itertools.product(PASSWORD_CORPUS, [real, *FOREIGN_HASHES]):
        checks += 1
        try:
            result = verify_password(pw, hashed)
        except Exception as e:
            cxs.append(Counterexample(
                category="unexpected_error",
                operation="verify_password",
                inputs=(pw, hashed),
                expected="bool",
                actual=f"{type(e).__name__}: {e}",
                description="verify_password raised instead of returning False",
            ))
            continue

        for post in contract.operations["verify_password"].postconditions:
            if not post.check(pw, hashed, result):
                cxs.append(Counterexample(
                    category="postcondition_violation",
                    operation="verify_password",
                    inputs=(pw, hashed),
                    expected=post.description,
                    actual=f"result={result!r}",
                    description=f"Postcondition '{post.name}' violated",
                ))

    return cxs, checks


# ---------------------------------------------------------------------------
# Search: algebraic properties
# ---------------------------------------------------------------------------

def _property_inputs(operation: str, arity: int, prop_name: str) -> list[tuple]:
    if operation == "generate_session_token":
        return [(1,), (100,)]
    if prop_name == "foreign_hash_never_raises":
        return [(pw, garbage) for pw in PASSWORD_CORPUS[:4] for garbage in FOREIGN_HASHES]
    if arity == 1:
        return [(pw,) for pw in PASSWORD_CORPUS]
    return list(itertools.permutations(PASSWORD_CORPUS[:5], 2))


def search_properties(
    contract: AuthContract,
) -> tuple[list[Counterexample], int]:
    """Evaluate every declared algebraic property."""
    cxs: list[Counterexample] = []
    checks = 0

    for operation, prop in contract.all_properties:
        for args in _property_inputs(operation, prop.arity, prop.name):
            checks += 1
            try:
                held = prop.check(auth, *args)
            except Exception as e:
                held = False
                actual = f"{type(e).__name__}: {e}"
            else:
                actual = "False"
            if not held:
                cxs.append(Counterexample(
                    category="property_violation",
                    operation=operation,
                    inputs=args,
                    expected=prop.description,
                    actual=actual,
                    description=f"Property '{prop.name}' violated",
                ))

    return cxs, checks


# ---------------------------------------------------------------------------
# Search: session token postconditions
# ---------------------------------------------------------------------------

def search_token_postconditions(
    contract: AuthContract,
) -> tuple[list[Counterexample], int]:
    cxs: list[Counterexample] = []
    checks = 0

    for _ in range(50):
        checks += 1
        token = generate_session_token()
        for post in contract.operations["generate_session_token"].postconditions:
            if not post.check(token):
                cxs.append(Counterexample(
                    category="postcondition_violation",
                    operation="generate_session_token",
                    inputs=(),
                    expected=post.description,
                    actual=f"token={token!r}",
                    description=f"Postcondition '{post.name}' violated",
                ))

    return cxs, checks


# ---------------------------------------------------------------------------
# Top-level runner
# ---------------------------------------------------------------------------

def run_search() -> SearchReport:
    """Run complete counterexample search."""
    contract = build_contract()
    report = SearchReport()

    for search_fn in (
        search_hash_password_postconditions,
        search_verify_password_postconditions,
        search_properties,
        search_token_postconditions,
    ):
        cxs, checks = search_fn(contract)
        report.counterexamples.extend(cxs)
        report.checks_run += checks

    return report


def main() -> None:
    """Run counterexample search and report results."""
    print("Running auth counterexample search...\n")
    report = run_search()
    print(report.summary())

    if not report.passed:
        sys.exit(1)


if __name__ == "__main__":
    main()
