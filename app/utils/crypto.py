"""
Password hashing for the identity store.

New hashes are bcrypt.  Hashes in werkzeug's format (scrypt / pbkdf2) are
still accepted at login and flagged by ``needs_rehash`` so authenticate()
can upgrade them, along with bcrypt hashes below the configured cost.
"""

import bcrypt
from werkzeug.security import check_password_hash

_BCRYPT_PREFIXES = ("$2b$", "$2a$", "$2y$")


def hash_password(plain_password: str, rounds: int = 12) -> str:
    return bcrypt.hashpw(plain_password.encode("utf-8"), bcrypt.gensalt(rounds=rounds)).decode("utf-8")


def _bcrypt_cost(password_hash: str) -> int | None:
    # $2b$12$<salt+hash>
    try:
        return int(password_hash.split("$")[2])
    except (IndexError, ValueError):
        return None


def verify_password(plain_password: str, password_hash: str | None) -> bool:
    if not password_hash:
        return False
    if password_hash.startswith(_BCRYPT_PREFIXES):
        try:
            return bcrypt.checkpw(plain_password.encode("utf-8"), password_hash.encode("utf-8"))
        except ValueError:
            # malformed salt
            return False
    return check_password_hash(password_hash, plain_password)


def needs_rehash(password_hash: str | None, rounds: int) -> bool:
    """True for non-bcrypt hashes and bcrypt hashes cheaper than ``rounds``."""
    if not password_hash or not password_hash.startswith(_BCRYPT_PREFIXES):
        return True
    cost = _bcrypt_cost(password_hash)
    return cost is None or cost < rounds
