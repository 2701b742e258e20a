"""
JWT Service — access token generation, verification and revocation.

Access token:  1 hour (configurable via JWT_ACCESS_EXPIRES)
Algorithm:     HS256

Token payload:
{
    "sub": "<user_id>",
    "role": "admin" | "trainer" | "user",
    "type": "access",
    "iat": <issued_at>,
    "exp": <expires_at>,
    "jti": <unique_id>
}

Every issued token is bound to an AuthSession row (keyed by the token's
SHA-256) so logout can revoke it before it expires.
"""

import hashlib
import logging
import uuid
from datetime import datetime, timedelta, timezone

import jwt
from flask import current_app

from app.core.exceptions import AuthenticationError
from app.models import db
from app.models.auth import AuthSession

logger = logging.getLogger(__name__)

# ─── Defaults ────────────────────────────────────────────────
DEFAULT_ACCESS_EXPIRES = 3600      # 1 hour
ALGORITHM = "HS256"


def _get_secret():
    """Get the JWT secret key from app config."""
    return current_app.config.get("JWT_SECRET_KEY") or current_app.config["SECRET_KEY"]


def _get_access_expires():
    return current_app.config.get("JWT_ACCESS_EXPIRES", DEFAULT_ACCESS_EXPIRES)


# ═══════════════════════════════════════════════════════════════
# Token Generation
# ═══════════════════════════════════════════════════════════════
def generate_access_token(user_id: int, role: str) -> tuple[str, datetime]:
    """Generate an access token. Returns (token, expires_at)."""
    now = datetime.now(timezone.utc)
    expires_at = now + timedelta(seconds=_get_access_expires())
    payload = {
        # PyJWT requires "sub" to be a string
        "sub": str(user_id),
        "role": role,
        "type": "access",
        "iat": now,
        "exp": expires_at,
        "jti": str(uuid.uuid4()),
    }
    return jwt.encode(payload, _get_secret(), algorithm=ALGORITHM), expires_at


def issue_token(user, ip_address: str | None = None, user_agent: str | None = None) -> dict:
    """Mint an access token for ``user`` and persist its session row."""
    token, expires_at = generate_access_token(user.id, user.role)
    session = AuthSession(
        user_id=user.id,
        token_hash=hash_token(token),
        ip_address=ip_address,
        user_agent=(user_agent or "")[:500],
        expires_at=expires_at,
    )
    db.session.add(session)
    db.session.commit()
    return {
        "access_token": token,
        "token_type": "Bearer",
        "expires_in": _get_access_expires(),
        "expires_at": expires_at.isoformat(),
    }


# ═══════════════════════════════════════════════════════════════
# Token Verification
# ═══════════════════════════════════════════════════════════════
def decode_access_token(token: str) -> dict:
    """
    Decode and verify an access token's signature, expiry and type.

    Raises jwt.exceptions on failure (ExpiredSignatureError, InvalidTokenError, etc.)
    """
    payload = jwt.decode(token, _get_secret(), algorithms=[ALGORITHM])
    if payload.get("type") != "access":
        raise jwt.InvalidTokenError(f"Expected access token, got {payload.get('type')}")
    return payload


def verify_token(token: str) -> dict:
    """Decode ``token`` and check it is bound to an active session.

    Returns the payload with ``sub`` converted back to int.
    Raises AuthenticationError for every failure mode.
    """
    try:
        payload = decode_access_token(token)
    except jwt.ExpiredSignatureError:
        raise AuthenticationError("Token has expired") from None
    except jwt.InvalidTokenError:
        raise AuthenticationError("Invalid token") from None

    session = AuthSession.query.filter_by(token_hash=hash_token(token)).first()
    if session is None or not session.is_active:
        raise AuthenticationError("Token has been revoked")

    payload["sub"] = int(payload["sub"])
    return payload


# ═══════════════════════════════════════════════════════════════
# Revocation
# ═══════════════════════════════════════════════════════════════
def revoke_token(token: str) -> bool:
    """Revoke the session bound to ``token``. Returns False if none was active."""
    session = AuthSession.query.filter_by(token_hash=hash_token(token), is_revoked=False).first()
    if not session:
        return False
    session.is_revoked = True
    db.session.commit()
    return True


def revoke_all_user_sessions(user_id: int) -> int:
    """Revoke every active session of a user (logout-everywhere, deactivation)."""
    count = AuthSession.query.filter_by(user_id=user_id, is_revoked=False).update(
        {"is_revoked": True}
    )
    db.session.commit()
    return count


def purge_expired_sessions() -> int:
    """Delete expired and revoked session rows. Returns the number removed."""
    now = datetime.now(timezone.utc)
    count = AuthSession.query.filter(
        db.or_(AuthSession.expires_at < now, AuthSession.is_revoked.is_(True))
    ).delete(synchronize_session=False)
    db.session.commit()
    logger.info("Purged %d expired/revoked auth sessions", count)
    return count


# ═══════════════════════════════════════════════════════════════
# Helpers
# ═══════════════════════════════════════════════════════════════
def hash_token(token: str) -> str:
    """SHA-256 hash of a token (for DB storage — never store raw tokens)."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()
