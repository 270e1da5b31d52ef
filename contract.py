"""Executable contract for the authentication core.

Defines the constants, record rules and operation contracts that the
implementation is held to:
- Rules: named predicates over stored User and Session records
- Postconditions: what an operation's output must satisfy
- Algebraic properties: relationships that must always hold
- Branch map: every decision point in the implementation

The contract is machine-readable.  The store runs the record rules on
every write, and validation tools iterate over the operation contracts
to search for counterexamples.

Layers
------
Rule              named validation predicate over a record
OperationContract per-operation contract (post/properties)
BranchSpec        every decision point white-box tests must cover
AuthContract      the full contract for a configured auth core
build_contract()  constructs an AuthContract for a given configuration
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Callable

# ---------------------------------------------------------------------------
# Configuration constants
# ---------------------------------------------------------------------------

MIN_PASSWORD_LENGTH = 6
DEFAULT_SESSION_TTL_DAYS = 7
SECONDS_PER_DAY = 24 * 60 * 60

SESSION_COOKIE_NAME = "sessionToken"
SESSION_TOKEN_BYTES = 32
MIN_SESSION_TOKEN_LENGTH = 32
SESSION_TOKEN_PATTERN = re.compile(r"[0-9a-f]+")
_DIGITS = re.compile(r"[0-9]+")

HASH_ALGORITHM = "pbkdf2_sha256"
# Kept low so the test suite stays fast; raise it for production deployments.
DEFAULT_HASH_ITERATIONS = 10_000
MAX_HASH_ITERATIONS = 10_000_000
SALT_BYTES = 16

# Largest value an SQLite INTEGER column can hold
MAX_STORED_ID = 2**63 - 1


# ---------------------------------------------------------------------------
# User-facing messages
# ---------------------------------------------------------------------------

MSG_FIELDS_REQUIRED = "Username, email, and password are required"
MSG_PASSWORD_TOO_SHORT = (
    f"Password must be at least {MIN_PASSWORD_LENGTH} characters long"
)
MSG_EMAIL_TAKEN = "Email already registered"
MSG_USERNAME_TAKEN = "Username already taken"
MSG_INVALID_TEXT = "Username and email must be valid text"
MSG_REGISTERED = "User registered successfully"
MSG_INVALID_CREDENTIALS = "Invalid email or password"
MSG_AUTHENTICATED = "Authentication successful"
MSG_LOGGED_OUT = "Logged out successfully"
MSG_UNAUTHORIZED = "Unauthorized"
MSG_SESSION_EXPIRED = "Session expired"
MSG_USER_NOT_FOUND = "User not found"
MSG_INTERNAL_ERROR = "Internal server error"


# ---------------------------------------------------------------------------
# Rule: a named, executable predicate over a record
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Rule:
    """A named validation rule for stored records."""

    id: str
    name: str
    description: str
    check: Callable[[Any], bool]


def is_well_formed_hash(value: Any) -> bool:
    """True if *value* looks like ``pbkdf2_sha256$iterations$salt$digest``."""
    if not isinstance(value, str):
        return False
    parts = value.split("$")
    if len(parts) != 4 or parts[0] != HASH_ALGORITHM:
        return False
    _, iterations, salt_hex, digest_hex = parts
    if not _DIGITS.fullmatch(iterations):
        return False
    if len(iterations) > len(str(MAX_HASH_ITERATIONS)):
        return False
    if not 1 <= int(iterations) <= MAX_HASH_ITERATIONS:
        return False
    return _is_hex(salt_hex) and _is_hex(digest_hex)


def is_well_formed_token(value: Any) -> bool:
    """True if *value* is a lowercase hex string of sufficient length."""
    return (
        isinstance(value, str)
        and len(value) >= MIN_SESSION_TOKEN_LENGTH
        and bool(SESSION_TOKEN_PATTERN.fullmatch(value))
    )


def is_storable_text(value: Any) -> bool:
    """True if *value* is a str that encodes as strict UTF-8 (no lone surrogates)."""
    if not isinstance(value, str):
        return False
    try:
        value.encode("utf-8")
    except UnicodeEncodeError:
        return False
    return True


# ---------------------------------------------------------------------------
# User rules
# ---------------------------------------------------------------------------

def _user_id_unset_or_positive(u: Any) -> bool:
    user_id = getattr(u, "id", None)
    if user_id is None:
        return True
    return isinstance(user_id, int) and not isinstance(user_id, bool) and user_id > 0


def _user_has_username(u: Any) -> bool:
    name = getattr(u, "username", "")
    return is_storable_text(name) and bool(name)


def _user_has_email(u: Any) -> bool:
    email = getattr(u, "email", "")
    return is_storable_text(email) and bool(email)


def _user_has_password_hash(u: Any) -> bool:
    return is_well_formed_hash(getattr(u, "password_hash", ""))


def _user_created_at_aware(u: Any) -> bool:
    created = getattr(u, "created_at", None)
    return created is not None and created.tzinfo is not None


USER_RULES: list[Rule] = [
    Rule(
        id="AUTH-USER-ID",
        name="user_id_unset_or_positive",
        description="User id is either unassigned or a positive integer",
        check=_user_id_unset_or_positive,
    ),
    Rule(
        id="AUTH-USER-NAME",
        name="user_has_username",
        description="User must have a non-empty UTF-8 username",
        check=_user_has_username,
    ),
    Rule(
        id="AUTH-USER-EMAIL",
        name="user_has_email",
        description="User must have a non-empty UTF-8 email",
        check=_user_has_email,
    ),
    Rule(
        id="AUTH-USER-HASH",
        name="user_has_password_hash",
        description=(
            f"User must have a password hash in "
            f"{HASH_ALGORITHM}$iterations$salt$digest format"
        ),
        check=_user_has_password_hash,
    ),
    Rule(
        id="AUTH-USER-CREATED",
        name="user_created_at_aware",
        description="created_at must be a timezone-aware timestamp",
        check=_user_created_at_aware,
    ),
]


# ---------------------------------------------------------------------------
# Session rules
# ---------------------------------------------------------------------------

def _session_token_format(s: Any) -> bool:
    return is_well_formed_token(getattr(s, "session_token", None))


def _session_has_owner(s: Any) -> bool:
    user_id = getattr(s, "user_id", None)
    return isinstance(user_id, int) and not isinstance(user_id, bool) and user_id > 0


def _session_window_order(s: Any) -> bool:
    created = getattr(s, "created_at", None)
    expires = getattr(s, "expires_at", None)
    if created is None or expires is None:
        return False
    return expires > created


SESSION_RULES: list[Rule] = [
    Rule(
        id="AUTH-SESSION-TOKEN",
        name="session_token_format",
        description=(
            f"Session token must be lowercase hex of at least "
            f"{MIN_SESSION_TOKEN_LENGTH} characters"
        ),
        check=_session_token_format,
    ),
    Rule(
        id="AUTH-SESSION-OWNER",
        name="session_has_owner",
        description="Session must reference a positive user id",
        check=_session_has_owner,
    ),
    Rule(
        id="AUTH-SESSION-WINDOW",
        name="session_window_order",
        description="expires_at must be later than created_at",
        check=_session_window_order,
    ),
]


# ---------------------------------------------------------------------------
# Validation report
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ValidationResult:
    rule_id: str
    rule_name: str
    passed: bool
    description: str


@dataclass(frozen=True)
class ValidationReport:
    results: list[ValidationResult]

    @property
    def passed(self) -> bool:
        return all(r.passed for r in self.results)

    @property
    def failures(self) -> list[ValidationResult]:
        return [r for r in self.results if not r.passed]

    def summary(self) -> str:
        total = len(self.results)
        failed = len(self.failures)
        if failed == 0:
            return f"All {total} rules passed"
        lines = [f"{failed}/{total} rules failed:"]
        for f in self.failures:
            lines.append(f"  [{f.rule_id}] {f.rule_name}: {f.description}")
        return "\n".join(lines)


def _run_rules(rules: list[Rule], record: Any) -> ValidationReport:
    results = []
    for rule in rules:
        try:
            passed = rule.check(record)
        except Exception:
            passed = False
        results.append(
            ValidationResult(
                rule_id=rule.id,
                rule_name=rule.name,
                passed=passed,
                description=rule.description,
            )
        )
    return ValidationReport(results=results)


def validate_user(user: Any) -> ValidationReport:
    """Run all user rules against a user and return a report."""
    return _run_rules(USER_RULES, user)


def validate_session(session: Any) -> ValidationReport:
    """Run all session rules against a session and return a report."""
    return _run_rules(SESSION_RULES, session)


# ---------------------------------------------------------------------------
# Contract building blocks (operation-level)
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Postcondition:
    name: str
    description: str
    check: Callable[..., bool]


@dataclass(frozen=True)
class AlgebraicProperty:
    name: str
    description: str
    arity: int
    check: Callable[..., bool]


@dataclass(frozen=True)
class OperationContract:
    name: str
    postconditions: list[Postcondition]
    properties: list[AlgebraicProperty]


@dataclass(frozen=True)
class BranchSpec:
    """A decision point in the implementation that must be exercised."""

    id: str
    description: str
    condition: str
    operation: str


@dataclass(frozen=True)
class AuthContract:
    """Complete contract for the auth core."""

    min_password_length: int
    session_ttl_days: int
    operations: dict[str, OperationContract]
    branches: list[BranchSpec]
    user_rules: list[Rule]
    session_rules: list[Rule]

    @property
    def all_properties(self) -> list[tuple[str, AlgebraicProperty]]:
        out: list[tuple[str, AlgebraicProperty]] = []
        for name, op in self.operations.items():
            for prop in op.properties:
                out.append((name, prop))
        return out

    @property
    def branch_ids(self) -> list[str]:
        return [b.id for b in self.branches]


# ---------------------------------------------------------------------------
# Contract builder
# ---------------------------------------------------------------------------

def _never_raises(fn: Callable[..., Any], *args: Any) -> bool:
    try:
        fn(*args)
    except Exception:
        return False
    return True


def build_contract(
    min_password_length: int = MIN_PASSWORD_LENGTH,
    session_ttl_days: int = DEFAULT_SESSION_TTL_DAYS,
) -> AuthContract:
    """Construct the full auth contract."""

    # -- hash_password -------------------------------------------------------
    hash_password_contract = OperationContract(
        name="hash_password",
        postconditions=[
            Postcondition(
                "hash_well_formed",
                "Hash is in algorithm$iterations$salt$digest format",
                lambda pw, result: is_well_formed_hash(result),
            ),
            Postcondition(
                "hash_differs_from_input",
                "Hash never equals the plaintext",
                lambda pw, result: result != pw,
            ),
        ],
        properties=[
            AlgebraicProperty(
                "unique_salt",
                "hash(pw) != hash(pw) and both verify",
                1,
                lambda auth_mod, pw: _salted_twice(auth_mod, pw),
            ),
        ],
    )

    # -- verify_password -----------------------------------------------------
    verify_password_contract = OperationContract(
        name="verify_password",
        postconditions=[
            Postcondition(
                "result_is_bool",
                "verify always returns a bool",
                lambda pw, hashed, result: isinstance(result, bool),
            ),
        ],
        properties=[
            AlgebraicProperty(
                "roundtrip",
                "verify(pw, hash(pw)) == True",
                1,
                lambda auth_mod, pw: auth_mod.verify_password(
                    pw, auth_mod.hash_password(pw)
                ),
            ),
            AlgebraicProperty(
                "wrong_password_fails",
                "verify(other, hash(pw)) == False when other != pw",
                2,
                lambda auth_mod, pw, other: (
                    pw == other
                    or not auth_mod.verify_password(
                        other, auth_mod.hash_password(pw)
                    )
                ),
            ),
            AlgebraicProperty(
                "foreign_hash_never_raises",
                "verify(pw, garbage) returns False instead of raising",
                2,
                lambda auth_mod, pw, garbage: (
                    _never_raises(auth_mod.verify_password, pw, garbage)
                    and (
                        is_well_formed_hash(garbage)
                        or auth_mod.verify_password(pw, garbage) is False
                    )
                ),
            ),
        ],
    )

    # -- generate_session_token ----------------------------------------------
    generate_token_contract = OperationContract(
        name="generate_session_token",
        postconditions=[
            Postcondition(
                "token_well_formed",
                f"Token is hex of length >= {MIN_SESSION_TOKEN_LENGTH}",
                lambda result: is_well_formed_token(result),
            ),
        ],
        properties=[
            AlgebraicProperty(
                "distinct",
                "n successive tokens are pairwise distinct",
                1,
                lambda auth_mod, n: len(
                    {auth_mod.generate_session_token() for _ in range(n)}
                ) == n,
            ),
        ],
    )

    # -- branches ------------------------------------------------------------
    branches = [
        # Password hashing
        BranchSpec(
            "HASH-OK",
            "Password hashed with a fresh salt",
            "always",
            "hash_password",
        ),
        BranchSpec(
            "VERIFY-MATCH",
            "Password matches stored hash",
            "computed_digest == stored_digest",
            "verify_password",
        ),
        BranchSpec(
            "VERIFY-MISMATCH",
            "Password does not match stored hash",
            "computed_digest != stored_digest",
            "verify_password",
        ),
        BranchSpec(
            "VERIFY-BAD-FMT",
            "Stored hash is malformed or foreign",
            "hash does not parse",
            "verify_password",
        ),
        # Token generation
        BranchSpec(
            "TOKEN-GEN",
            "Random hex session token produced",
            "always",
            "generate_session_token",
        ),
        # Registration
        BranchSpec(
            "REG-EMPTY",
            "Registration rejected: a field is empty",
            "not username or not email or not password",
            "register",
        ),
        BranchSpec(
            "REG-BAD-TEXT",
            "Registration rejected: username or email is not valid UTF-8 text",
            "not is_storable_text(username) or not is_storable_text(email)",
            "register",
        ),
        BranchSpec(
            "REG-SHORT-PW",
            "Registration rejected: password too short",
            "len(password) < min_password_length",
            "register",
        ),
        BranchSpec(
            "REG-DUP-EMAIL",
            "Registration rejected: email taken",
            "email already stored",
            "register",
        ),
        BranchSpec(
            "REG-DUP-USERNAME",
            "Registration rejected: username taken",
            "username already stored",
            "register",
        ),
        BranchSpec(
            "REG-STORAGE",
            "Registration failed: storage error",
            "store raises StorageError",
            "register",
        ),
        BranchSpec(
            "REG-SUCCESS",
            "New user registered successfully",
            "input valid and credentials unique",
            "register",
        ),
        # Authentication
        BranchSpec(
            "AUTH-NO-USER",
            "Login fails: email not registered",
            "find_user_by_email is None",
            "authenticate",
        ),
        BranchSpec(
            "AUTH-BAD-PASS",
            "Login fails: wrong password",
            "verify_password is False",
            "authenticate",
        ),
        BranchSpec(
            "AUTH-STORAGE",
            "Login fails: storage error",
            "store raises StorageError",
            "authenticate",
        ),
        BranchSpec(
            "AUTH-SUCCESS",
            "Login succeeds and a session is persisted",
            "user exists and password matches",
            "authenticate",
        ),
        # Session verification
        BranchSpec(
            "SESSION-EMPTY",
            "Empty token is invalid",
            "not token",
            "verify_session",
        ),
        BranchSpec(
            "SESSION-INVALID",
            "Unknown or expired token is invalid",
            "find_valid_session is None",
            "verify_session",
        ),
        BranchSpec(
            "SESSION-STORAGE",
            "Storage error reads as invalid",
            "store raises StorageError",
            "verify_session",
        ),
        BranchSpec(
            "SESSION-VALID",
            "Token refers to an unexpired session",
            "expires_at > now",
            "verify_session",
        ),
        # User lookup
        BranchSpec(
            "USER-BAD-ID",
            "Non-positive, non-integer or out-of-range id yields None",
            "not isinstance(id, int) or not 0 < id <= MAX_STORED_ID",
            "get_user_by_id",
        ),
        BranchSpec(
            "USER-FOUND",
            "Public user record returned",
            "user exists",
            "get_user_by_id",
        ),
        # Logout
        BranchSpec(
            "LOGOUT-EMPTY",
            "Empty token is a no-op",
            "not token",
            "logout",
        ),
        BranchSpec(
            "LOGOUT-OK",
            "Session deleted (or already absent)",
            "token given",
            "logout",
        ),
        # Cookie transport
        BranchSpec(
            "COOKIE-NO-HEADER",
            "Request carries no Cookie header",
            "'cookie' not in headers",
            "extract_token",
        ),
        BranchSpec(
            "COOKIE-ABSENT",
            "Cookie header lacks a session token",
            "sessionToken missing or empty",
            "extract_token",
        ),
        BranchSpec(
            "COOKIE-FOUND",
            "Session token extracted",
            "sessionToken present",
            "extract_token",
        ),
        BranchSpec(
            "CALLER-ANON",
            "Caller resolved as anonymous",
            "no token, invalid session or missing user",
            "resolve_caller",
        ),
        BranchSpec(
            "CALLER-KNOWN",
            "Caller resolved to a user",
            "valid session and user exists",
            "resolve_caller",
        ),
    ]

    return AuthContract(
        min_password_length=min_password_length,
        session_ttl_days=session_ttl_days,
        operations={
            "hash_password": hash_password_contract,
            "verify_password": verify_password_contract,
            "generate_session_token": generate_token_contract,
        },
        branches=branches,
        user_rules=USER_RULES,
        session_rules=SESSION_RULES,
    )


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

_HEX_BYTES = re.compile(r"(?:[0-9a-f]{2})+")


def _is_hex(s: str) -> bool:
    """Check if a string is non-empty lowercase hex encoding whole bytes."""
    return isinstance(s, str) and bool(_HEX_BYTES.fullmatch(s))


def _salted_twice(auth_mod: Any, pw: str) -> bool:
    first = auth_mod.hash_password(pw)
    second = auth_mod.hash_password(pw)
    return (
        first != second
        and auth_mod.verify_password(pw, first)
        and auth_mod.verify_password(pw, second)
    )
