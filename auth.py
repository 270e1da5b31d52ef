"""Password hashing and session token generation.

Provides the one-way password hasher and the opaque session token
generator.  Every decision branch is annotated with its branch-ID (see
contract.py BranchSpec) so white-box tests can trace coverage back to
the contract.
"""
from __future__ import annotations

import hashlib
import hmac
import os
import secrets

from contract import (
    DEFAULT_HASH_ITERATIONS,
    HASH_ALGORITHM,
    MAX_HASH_ITERATIONS,
    SALT_BYTES,
    SESSION_TOKEN_BYTES,
    is_well_formed_hash,
)


# ---------------------------------------------------------------------------
# Password hashing (PBKDF2-HMAC-SHA256)
# ---------------------------------------------------------------------------

def _encode(password: str) -> bytes:
    # surrogatepass keeps lone surrogates hashable instead of raising
    return password.encode("utf-8", "surrogatepass")


def _derive(password: str, salt: bytes, iterations: int) -> bytes:
    return hashlib.pbkdf2_hmac("sha256", _encode(password), salt, iterations)


def hash_password(password: str, iterations: int | None = None) -> str:
    """Hash a plaintext password using PBKDF2-HMAC-SHA256.

    Returns a string in the format
    ``pbkdf2_sha256$iterations$salt_hex$digest_hex``.  A fresh salt is
    drawn on every call, so hashing the same password twice yields two
    different strings that both verify.  No password policy is applied
    here: empty, unicode and arbitrarily long inputs are all hashed.

    Branches: HASH-OK
    """
    rounds = DEFAULT_HASH_ITERATIONS if iterations is None else iterations
    if not 1 <= rounds <= MAX_HASH_ITERATIONS:
        raise ValueError(
            f"Hash iterations must be between 1 and {MAX_HASH_ITERATIONS}"
        )

    # HASH-OK
    salt = os.urandom(SALT_BYTES)
    digest = _derive(password, salt, rounds)
    return f"{HASH_ALGORITHM}${rounds}${salt.hex()}${digest.hex()}"


def verify_password(password: str, stored_hash: str) -> bool:
    """Check a plaintext password against a stored hash.

    Never raises: a malformed or foreign hash string is reported as a
    mismatch.

    Branches: VERIFY-MATCH, VERIFY-MISMATCH, VERIFY-BAD-FMT
    """
    if not isinstance(password, str) or not is_well_formed_hash(stored_hash):
        return False                                              # VERIFY-BAD-FMT

    _, rounds, salt_hex, digest_hex = stored_hash.split("$")
    salt = bytes.fromhex(salt_hex)
    expected = bytes.fromhex(digest_hex)

    computed = _derive(password, salt, int(rounds))

    if hmac.compare_digest(computed, expected):                   # VERIFY-MATCH
        return True
    return False                                                  # VERIFY-MISMATCH


# ---------------------------------------------------------------------------
# Session tokens
# ---------------------------------------------------------------------------

def generate_session_token() -> str:
    """Return an unguessable session token.

    64 lowercase hex characters drawn from the OS CSPRNG; uniqueness
    rests on the 256 random bits alone.

    Branches: TOKEN-GEN
    """
    return secrets.token_hex(SESSION_TOKEN_BYTES)                 # TOKEN-GEN
