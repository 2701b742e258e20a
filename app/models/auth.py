"""
Auth Models — users, roles / permissions and token sessions.

The identity store is a thin lookup for the workflow engine: approvers are
referenced by user id and the role string gates admin-only routes.

Role is the catalog behind that string (a role named like a user's role
describes it) and carries grants to Permission rows.  Permissions form a
two-level tree: category rows (parent_id NULL) with their actions below.

AuthSession rows make issued access tokens revocable.
"""

import uuid
from datetime import datetime, timezone

from app.models import db

USER_ROLES = {"user", "trainer", "admin"}

USER_STATUSES = {"active", "inactive", "suspended"}


# ═══════════════════════════════════════════════════════════════
# 1. USERS
# ═══════════════════════════════════════════════════════════════
class User(db.Model):
    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)
    first_name = db.Column(db.String(255), nullable=False)
    last_name = db.Column(db.String(255), nullable=False)
    username = db.Column(db.String(100), unique=True, nullable=False)
    email = db.Column(db.String(255), unique=True, nullable=False)
    password_hash = db.Column(db.String(256))
    phone = db.Column(db.String(20))
    role = db.Column(db.String(50), nullable=False, default="user")
    status = db.Column(db.String(50), nullable=False, default="active")
    department = db.Column(db.String(255))
    last_login_at = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(
        db.DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        db.CheckConstraint(
            "role IN ('user', 'trainer', 'admin')", name="ck_users_role",
        ),
        db.CheckConstraint(
            "status IN ('active', 'inactive', 'suspended')", name="ck_users_status",
        ),
    )

    sessions = db.relationship(
        "AuthSession", back_populates="user", lazy="dynamic", cascade="all, delete-orphan",
    )

    @property
    def full_name(self):
        return f"{self.first_name} {self.last_name}".strip()

    def to_dict(self):
        return {
            "id": self.id,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "username": self.username,
            "email": self.email,
            "phone": self.phone,
            "role": self.role,
            "status": self.status,
            "department": self.department,
            "last_login_at": self.last_login_at.isoformat() if self.last_login_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def to_brief(self):
        """Compact shape used inside approver lists and vote rows."""
        return {
            "user_id": self.id,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "username": self.username,
            "email": self.email,
        }

    def __repr__(self):
        return f"<User #{self.id} {self.username}>"


# ═══════════════════════════════════════════════════════════════
# 2. ROLES
# ═══════════════════════════════════════════════════════════════
class Role(db.Model):
    __tablename__ = "roles"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), unique=True, nullable=False)
    description = db.Column(db.Text)
    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(
        db.DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    role_permissions = db.relationship(
        "RolePermission", back_populates="role", lazy="dynamic", cascade="all, delete-orphan",
    )

    def permission_ids(self):
        return sorted(rp.permission_id for rp in self.role_permissions.all())

    def to_dict(self, include_permissions=True):
        d = {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "is_active": self.is_active,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
        if include_permissions:
            d["permissions"] = sorted(
                ({"id": rp.permission.id, "name": rp.permission.name} for rp in self.role_permissions.all()),
                key=lambda p: p["id"],
            )
        return d

    def __repr__(self):
        return f"<Role #{self.id} {self.name}>"


# ═══════════════════════════════════════════════════════════════
# 3. PERMISSIONS
# ═══════════════════════════════════════════════════════════════
class Permission(db.Model):
    __tablename__ = "permissions"

    id = db.Column(db.Integer, primary_key=True)
    parent_id = db.Column(
        db.Integer, db.ForeignKey("permissions.id", ondelete="SET NULL"), nullable=True, index=True,
    )  # NULL = category
    name = db.Column(db.String(100), unique=True, nullable=False)  # e.g. "edit workflow"
    description = db.Column(db.Text)
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))

    children = db.relationship("Permission", order_by="Permission.name")
    role_permissions = db.relationship("RolePermission", back_populates="permission", lazy="dynamic")

    def to_dict(self, include_children=True):
        d = {"id": self.id, "name": self.name, "description": self.description, "parent_id": self.parent_id}
        if include_children and self.parent_id is None:
            d["children"] = [{"id": c.id, "name": c.name} for c in self.children]
        return d


# ═══════════════════════════════════════════════════════════════
# 4. ROLE_PERMISSIONS (Junction table)
# ═══════════════════════════════════════════════════════════════
class RolePermission(db.Model):
    __tablename__ = "role_permissions"

    id = db.Column(db.Integer, primary_key=True)
    role_id = db.Column(
        db.Integer, db.ForeignKey("roles.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    permission_id = db.Column(
        db.Integer, db.ForeignKey("permissions.id", ondelete="CASCADE"), nullable=False, index=True,
    )

    __table_args__ = (
        db.UniqueConstraint("role_id", "permission_id", name="uq_role_permission"),
    )

    role = db.relationship("Role", back_populates="role_permissions")
    permission = db.relationship("Permission", back_populates="role_permissions")


# ═══════════════════════════════════════════════════════════════
# 5. AUTH SESSIONS (issued access tokens)
# ═══════════════════════════════════════════════════════════════
class AuthSession(db.Model):
    __tablename__ = "auth_sessions"

    id = db.Column(db.String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    token_hash = db.Column(db.String(64), nullable=False, unique=True)  # SHA-256 of the token
    ip_address = db.Column(db.String(45))
    user_agent = db.Column(db.String(500))
    is_revoked = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))
    expires_at = db.Column(db.DateTime, nullable=False)
    last_used_at = db.Column(db.DateTime)

    user = db.relationship("User", back_populates="sessions")

    @property
    def is_expired(self):
        return datetime.now(timezone.utc) > self.expires_at.replace(tzinfo=timezone.utc)

    @property
    def is_active(self):
        return not self.is_revoked and not self.is_expired

    def to_dict(self):
        return {
            "id": self.id,
            "ip_address": self.ip_address,
            "user_agent": self.user_agent,
            "is_revoked": self.is_revoked,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "expires_at": self.expires_at.isoformat() if self.expires_at else None,
            "last_used_at": self.last_used_at.isoformat() if self.last_used_at else None,
        }
