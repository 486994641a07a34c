from functools import lru_cache
from typing import Optional

import bcrypt

from config import get_settings

# bcrypt only considers the first 72 bytes of a password
MAX_PASSWORD_BYTES = 72


def password_too_long(password: str) -> bool:
    return len(password.encode("utf-8")) > MAX_PASSWORD_BYTES


def hash_password(password: str, rounds: Optional[int] = None) -> str:
    rounds = rounds or get_settings().bcrypt_rounds
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=rounds)).decode(
        "utf-8"
    )


def verify_password(password: str, hashed_password: Optional[str]) -> bool:
    if password_too_long(password):
        return False
    if not isinstance(hashed_password, str) or not hashed_password:
        burn_password_check(password)
        return False
    try:
        return bcrypt.checkpw(password.encode("utf-8"), hashed_password.encode("utf-8"))
    except ValueError:
        # not a bcrypt hash, e.g. a legacy plaintext credential
        return False


@lru_cache(maxsize=1)
def _dummy_hash() -> bytes:
    return bcrypt.hashpw(b"unused-placeholder", bcrypt.gensalt(get_settings().bcrypt_rounds))


def burn_password_check(password: str) -> None:
    """Spend one bcrypt verification so an unknown email is not faster to reject."""
    if password_too_long(password):
        return
    bcrypt.checkpw(password.encode("utf-8"), _dummy_hash())
