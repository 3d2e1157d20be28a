"""
Password hashing with bcrypt.

Hashes are self-describing (`$2b$<cost>$<salt><digest>`), so verification
needs nothing but the stored string.
"""
import os
from functools import lru_cache

import bcrypt

BCRYPT_ROUNDS = int(os.getenv("BCRYPT_ROUNDS", 12))

# bcrypt ignores everything past this many bytes
MAX_PASSWORD_BYTES = 72


def password_too_long(password: str) -> bool:
    return len(password.encode("utf-8")) > MAX_PASSWORD_BYTES


def hash_password(password: str, rounds: int = None) -> str:
    """
    Generate a salted bcrypt hash.

    Args:
        password: Plaintext password
        rounds: Cost factor, defaults to BCRYPT_ROUNDS

    Returns:
        Hash string safe to store

    Raises:
        ValueError: If the password is longer than bcrypt can use
    """
    if password_too_long(password):
        raise ValueError(f"Password must be at most {MAX_PASSWORD_BYTES} bytes")
    return bcrypt.hashpw(
        password.encode("utf-8"),
        bcrypt.gensalt(rounds=rounds or BCRYPT_ROUNDS)
    ).decode("utf-8")


def verify_password(password: str, hashed_password: str) -> bool:
    """Check a password against a stored hash. Malformed hashes never match."""
    if not password or not hashed_password:
        return False
    try:
        return bcrypt.checkpw(
            password.encode("utf-8"),
            hashed_password.encode("utf-8")
        )
    except (ValueError, TypeError, UnicodeEncodeError):
        return False


@lru_cache(maxsize=1)
def dummy_hash() -> str:
    """Hash of a throwaway password at the configured cost, for checks against unknown users."""
    return hash_password("not-a-real-password")
