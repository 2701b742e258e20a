"""
User Service — identity store lookups, user CRUD and password login.

The workflow engine only consumes ``get_user`` / ``ensure_users_exist``;
everything else backs the users and auth blueprints.
"""

import logging
from datetime import datetime, timezone

from email_validator import EmailNotValidError, validate_email
from flask import current_app

from app.core.exceptions import (
    AuthenticationError,
    AuthorizationError,
    ConflictError,
    NotFoundError,
    PreconditionError,
    ValidationError,
)
from app.models import db
from app.models.auth import USER_ROLES, USER_STATUSES, User
from app.services.approval_ledger import user_has_votes
from app.services.jwt_service import revoke_all_user_sessions
from app.utils.crypto import hash_password, needs_rehash, verify_password
from app.utils.helpers import db_commit_or_raise, get_or_404

logger = logging.getLogger(__name__)

_REQUIRED_FIELDS = ("first_name", "last_name", "username", "email", "password")

_UPDATABLE_FIELDS = ("first_name", "last_name", "email", "phone", "department", "role", "status")

MIN_PASSWORD_LENGTH = 8


def _rounds() -> int:
    return current_app.config.get("BCRYPT_ROUNDS", 12)


def _hash(password: str) -> str:
    return hash_password(password, rounds=_rounds())


def _normalise_email(email: str) -> str:
    try:
        return validate_email(email.strip(), check_deliverability=False).normalized.lower()
    except EmailNotValidError as exc:
        raise ValidationError(f"Invalid email: {exc}", details={"email": "invalid"}) from None


def _validate_enum(field: str, value: str, allowed: set[str]) -> None:
    if value not in allowed:
        raise ValidationError(
            f"{field} must be one of {sorted(allowed)}", details={field: "invalid"},
        )


# ═══════════════════════════════════════════════════════════════
# Lookups
# ═══════════════════════════════════════════════════════════════
def get_user(user_id: int) -> User:
    return get_or_404(User, user_id, "User")


def ensure_users_exist(user_ids) -> list[int]:
    """Return ``user_ids`` de-duplicated as ints; raise if any id is unknown."""
    ids = []
    for raw in user_ids or []:
        if isinstance(raw, bool):
            raise ValidationError("user_ids must be integers", details={"user_ids": "invalid"})
        try:
            uid = int(raw)
        except (TypeError, ValueError):
            raise ValidationError("user_ids must be integers", details={"user_ids": "invalid"}) from None
        if uid not in ids:
            ids.append(uid)
    if not ids:
        return ids
    found = {u.id for u in User.query.filter(User.id.in_(ids)).all()}
    missing = [uid for uid in ids if uid not in found]
    if missing:
        raise NotFoundError(resource="User", resource_id=missing[0])
    return ids


def list_users(role: str | None = None, status: str | None = None):
    """Return a query over users, optionally filtered by role / status."""
    q = User.query
    if role:
        q = q.filter_by(role=role)
    if status:
        q = q.filter_by(status=status)
    return q.order_by(User.first_name, User.id)


def count_users(role: str | None = None, status: str | None = None) -> int:
    return list_users(role=role, status=status).order_by(None).count()


# ═══════════════════════════════════════════════════════════════
# CRUD
# ═══════════════════════════════════════════════════════════════
def create_user(data: dict) -> User:
    """Create a user. Raises ValidationError / ConflictError."""
    missing = [f for f in _REQUIRED_FIELDS if not (str(data.get(f) or "")).strip()]
    if missing:
        raise ValidationError(
            f"{', '.join(missing)} {'is' if len(missing) == 1 else 'are'} required",
            details={f: "required" for f in missing},
        )
    if len(data["password"]) < MIN_PASSWORD_LENGTH:
        raise ValidationError(
            f"password must be at least {MIN_PASSWORD_LENGTH} characters",
            details={"password": "too_short"},
        )

    role = data.get("role") or "user"
    _validate_enum("role", role, USER_ROLES)
    status = data.get("status") or "active"
    _validate_enum("status", status, USER_STATUSES)

    username = data["username"].strip()
    email = _normalise_email(data["email"])
    if User.query.filter_by(username=username).first():
        raise ConflictError("User", "username", username)
    if User.query.filter_by(email=email).first():
        raise ConflictError("User", "email", email)

    user = User(
        first_name=data["first_name"].strip(),
        last_name=data["last_name"].strip(),
        username=username,
        email=email,
        password_hash=_hash(data["password"]),
        phone=data.get("phone"),
        role=role,
        status=status,
        department=data.get("department"),
    )
    db.session.add(user)
    db_commit_or_raise("User", "username", username)
    logger.info("User created", extra={"user_id": user.id})
    return user


def update_user(user_id: int, data: dict) -> User:
    """Partial update; ``password`` is re-hashed when present."""
    user = get_user(user_id)
    for field in _UPDATABLE_FIELDS:
        if field not in data or data[field] is None:
            continue
        value = data[field]
        if field == "role":
            _validate_enum("role", value, USER_ROLES)
        elif field == "status":
            _validate_enum("status", value, USER_STATUSES)
        elif field == "email":
            value = _normalise_email(value)
            clash = User.query.filter(User.email == value, User.id != user.id).first()
            if clash:
                raise ConflictError("User", "email", value)
        setattr(user, field, value)

    if data.get("password"):
        if len(data["password"]) < MIN_PASSWORD_LENGTH:
            raise ValidationError(
                f"password must be at least {MIN_PASSWORD_LENGTH} characters",
                details={"password": "too_short"},
            )
        user.password_hash = _hash(data["password"])

    db_commit_or_raise("User", "id", user_id)
    if user.status != "active" or data.get("password"):
        # deactivation and password changes end every open session
        revoked = revoke_all_user_sessions(user.id)
        if revoked:
            logger.info("Revoked %d session(s)", revoked, extra={"user_id": user.id})
    return user


def delete_user(user_id: int) -> None:
    """Delete a user with their sessions and node assignments.

    Refused once the user appears in the approval ledger: votes reference
    users and are never deleted, so such accounts are deactivated instead.
    """
    user = get_user(user_id)
    if user_has_votes(user.id):
        raise PreconditionError(
            "User has approval history and cannot be deleted; set status to inactive instead",
        )
    db.session.delete(user)
    db_commit_or_raise("User", "id", user_id)
    logger.info("User deleted", extra={"user_id": user_id})


# ═══════════════════════════════════════════════════════════════
# Login helpers
# ═══════════════════════════════════════════════════════════════
def authenticate(login: str, password: str) -> User:
    """Authenticate with username or email + password. Returns User on success."""
    login = (login or "").strip()
    if not login or not password:
        raise ValidationError("username and password are required")

    user = User.query.filter(
        db.or_(User.username == login, User.email == login.lower())
    ).first()
    if not user or not verify_password(password, user.password_hash):
        raise AuthenticationError("Invalid username or password")

    if user.status != "active":
        raise AuthorizationError(f"Account is {user.status}")

    if needs_rehash(user.password_hash, _rounds()):
        user.password_hash = _hash(password)
        logger.info("Password hash upgraded", extra={"user_id": user.id})
    user.last_login_at = datetime.now(timezone.utc)
    db.session.commit()
    return user
