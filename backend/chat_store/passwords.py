from __future__ import annotations

import bcrypt

# Matches the cost factor the accounts were originally hashed with.
BCRYPT_ROUNDS = 10
# bcrypt only looks at the first 72 bytes of a secret.
_MAX_SECRET_BYTES = 72


def _secret_bytes(password: str) -> bytes:
    return password.encode("utf-8")[:_MAX_SECRET_BYTES]


def hash_password(password: str) -> str:
    return bcrypt.hashpw(_secret_bytes(password), bcrypt.gensalt(rounds=BCRYPT_ROUNDS)).decode("utf-8")


def verify_password(password: str, hashed_password: str) -> bool:
    if not hashed_password:
        return False
    try:
        return bcrypt.checkpw(_secret_bytes(password), hashed_password.encode("utf-8"))
    except ValueError:
        # Stored value is not a bcrypt hash.
        return False
