"""Password hashing (bcrypt).

bcrypt only looks at the first 72 bytes of a password, and recent
releases reject longer input outright, so both sides truncate first.
"""
import secrets

import bcrypt

DEFAULT_ROUNDS = 10
BCRYPT_MAX_BYTES = 72


def _encode(plain: str) -> bytes:
    return (plain or "").encode("utf-8")[:BCRYPT_MAX_BYTES]


def hash_password(plain: str, rounds: int = DEFAULT_ROUNDS) -> str:
    if not plain:
        raise ValueError("Password must not be empty")
    salt = bcrypt.gensalt(rounds=rounds)
    return bcrypt.hashpw(_encode(plain), salt).decode("ascii")


def verify_password(plain: str, hashed: str) -> bool:
    if not plain or not hashed:
        return False
    try:
        return bcrypt.checkpw(_encode(plain), hashed.encode("ascii"))
    except ValueError:
        # Malformed or non-bcrypt hash.
        return False


def dummy_hash(rounds: int = DEFAULT_ROUNDS) -> str:
    return hash_password(secrets.token_urlsafe(16), rounds=rounds)
