from functools import lru_cache

import bcrypt

# bcrypt only reads the first 72 bytes; bcrypt>=5 raises past that
BCRYPT_MAX_BYTES = 72


def password_too_long(plain_password: str) -> bool:
    return len(plain_password.encode("utf-8")) > BCRYPT_MAX_BYTES


def hash_password(plain_password: str, rounds: int = 12) -> str:
    if not isinstance(plain_password, str) or len(plain_password) == 0:
        raise ValueError("Password must be a non-empty string")
    if password_too_long(plain_password):
        raise ValueError(f"Password must be at most {BCRYPT_MAX_BYTES} bytes")

    # bcrypt expects bytes
    salt = bcrypt.gensalt(rounds=rounds)
    hashed = bcrypt.hashpw(plain_password.encode("utf-8"), salt)
    return hashed.decode("utf-8")


def verify_password(plain_password: str, password_hash: str) -> bool:
    """
    Constant-time bcrypt check. A missing password, a missing hash or a
    malformed hash is a plain ``False``; there is no plaintext fallback.
    """
    if not plain_password or not password_hash:
        return False
    try:
        return bcrypt.checkpw(
            plain_password.encode("utf-8"),
            password_hash.encode("utf-8")
        )
    except ValueError:
        return False


@lru_cache(maxsize=1)
def _dummy_hash() -> str:
    return hash_password("not-a-real-password")


def burn_password_check(plain_password: str) -> bool:
    """Pay the same bcrypt cost as a real check when there is no principal to check against."""
    verify_password(plain_password or "-", _dummy_hash())
    return False
