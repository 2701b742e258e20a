"""
Role & Permission Service — role catalog, permission tree, grants.

Roles are named like the ``User.role`` strings they describe.  A role that
users currently hold cannot be renamed or deleted.  Permissions are
read-only through the API; ``seed_defaults`` (CLI ``flask seed-permissions``)
installs the default tree and the admin / trainer / user roles.
"""

import logging

from sqlalchemy import or_

from app.core.exceptions import ConflictError, NotFoundError, PreconditionError, ValidationError
from app.models import db
from app.models.auth import Permission, Role, RolePermission, User
from app.utils.helpers import db_commit_or_raise, get_or_404, parse_int

logger = logging.getLogger(__name__)

# category -> actions
DEFAULT_PERMISSIONS = {
    "workflow": (
        "view workflow", "create workflow", "edit workflow", "delete workflow",
        "assign user to workflow",
    ),
    "user": ("view users", "add user", "edit user", "delete user", "change user status"),
    "role": ("view roles", "create role", "edit role", "delete role"),
}

DEFAULT_ROLES = {
    "admin": ("Administrator with full access", None),
    "trainer": (
        "Maintains workflows and approvers",
        ("view workflow", "create workflow", "edit workflow", "assign user to workflow", "view users"),
    ),
    "user": ("Regular user with basic access", ("view workflow", "view users")),
}


def _clean_role_name(value) -> str:
    name = value.strip().lower() if isinstance(value, str) else ""
    if not name:
        raise ValidationError("name is required", details={"name": "required"})
    return name


def _holders(role_name: str) -> int:
    return User.query.filter_by(role=role_name).count()


def _guard_held(role: Role, operation: str) -> None:
    held = _holders(role.name)
    if held:
        raise PreconditionError(
            f"Cannot {operation}: it is assigned to {held} user(s)",
            details={"users": held},
        )


# ═══════════════════════════════════════════════════════════════
# Roles
# ═══════════════════════════════════════════════════════════════
def get_role(role_id: int) -> Role:
    return get_or_404(Role, role_id, "Role")


def get_role_by_name(name: str) -> Role:
    role = Role.query.filter_by(name=(name or "").strip().lower()).first()
    if role is None:
        raise NotFoundError(resource="Role", resource_id=name)
    return role


def list_roles(active_only: bool = False):
    q = Role.query
    if active_only:
        q = q.filter_by(is_active=True)
    return q.order_by(Role.created_at.desc(), Role.id.desc())


def count_roles() -> int:
    return Role.query.count()


def _permissions_by_id(permission_ids) -> list[Permission]:
    if not isinstance(permission_ids, list):
        raise ValidationError("permission_ids must be an array", details={"permission_ids": "invalid"})
    perms = []
    for raw in permission_ids:
        pid = parse_int(raw, "permission_ids")
        perms.append(get_or_404(Permission, pid, "Permission"))
    return perms


def create_role(data: dict) -> Role:
    """Body: { name, description?, is_active?, permission_ids? }"""
    name = _clean_role_name(data.get("name"))
    perms = _permissions_by_id(data.get("permission_ids") or [])
    if Role.query.filter_by(name=name).first():
        raise ConflictError("Role", "name", name)

    role = Role(
        name=name,
        description=data.get("description"),
        is_active=data.get("is_active") is not False,
    )
    db.session.add(role)
    db.session.flush()
    for perm in {p.id: p for p in perms}.values():
        db.session.add(RolePermission(role_id=role.id, permission_id=perm.id))
    db_commit_or_raise("Role", "name", name)
    logger.info("Role '%s' created", name)
    return role


def update_role(role_id: int, data: dict) -> Role:
    """Partial update; ``permission_ids`` replaces the grant set."""
    role = get_role(role_id)
    name = None
    if data.get("name") is not None:
        name = _clean_role_name(data["name"])
        if name != role.name:
            _guard_held(role, "rename role")
            if Role.query.filter(Role.name == name, Role.id != role.id).first():
                raise ConflictError("Role", "name", name)
    perms = None
    if data.get("permission_ids") is not None:
        perms = _permissions_by_id(data["permission_ids"])

    if name is not None:
        role.name = name
    if data.get("description") is not None:
        role.description = data["description"]
    if data.get("is_active") is not None:
        role.is_active = bool(data["is_active"])
    if perms is not None:
        RolePermission.query.filter_by(role_id=role.id).delete()
        db.session.flush()
        for perm in {p.id: p for p in perms}.values():
            db.session.add(RolePermission(role_id=role.id, permission_id=perm.id))
    db_commit_or_raise("Role", "name", role.name)
    return role


def delete_role(role_id: int) -> None:
    role = get_role(role_id)
    _guard_held(role, "delete role")
    db.session.delete(role)
    db_commit_or_raise("Role", "id", role_id)
    logger.info("Role %d deleted", role_id)


def add_permission(role_id: int, permission_id) -> Role:
    role = get_role(role_id)
    perm = get_or_404(Permission, parse_int(permission_id, "permission_id"), "Permission")
    if not RolePermission.query.filter_by(role_id=role.id, permission_id=perm.id).first():
        db.session.add(RolePermission(role_id=role.id, permission_id=perm.id))
        db_commit_or_raise("RolePermission", "permission_id", perm.id)
    return role


def remove_permission(role_id: int, permission_id: int) -> Role:
    role = get_role(role_id)
    grant = RolePermission.query.filter_by(role_id=role.id, permission_id=permission_id).first()
    if grant is None:
        raise NotFoundError(resource="Role permission", resource_id=permission_id)
    db.session.delete(grant)
    db_commit_or_raise("RolePermission", "permission_id", permission_id)
    return role


def has_permission(role_id: int, permission_id) -> bool:
    role = get_role(role_id)
    pid = parse_int(permission_id, "permission_id")
    return RolePermission.query.filter_by(role_id=role.id, permission_id=pid).first() is not None


# ═══════════════════════════════════════════════════════════════
# Permissions (read-only)
# ═══════════════════════════════════════════════════════════════
def get_permission(permission_id: int) -> Permission:
    return get_or_404(Permission, permission_id, "Permission")


def get_permission_by_name(name: str) -> Permission:
    perm = Permission.query.filter_by(name=name).first()
    if perm is None:
        raise NotFoundError(resource="Permission", resource_id=name)
    return perm


def list_permission_categories():
    """Query over top-level permissions; each serialises with its children."""
    return Permission.query.filter(Permission.parent_id.is_(None)).order_by(Permission.name)


def count_permissions() -> int:
    return Permission.query.count()


def search_permissions(term: str):
    term = (term or "").strip()
    if not term:
        raise ValidationError("Search query is required", details={"q": "required"})
    pattern = f"%{term}%"
    return Permission.query.filter(
        or_(Permission.name.ilike(pattern), Permission.description.ilike(pattern))
    ).order_by(Permission.name)


# ═══════════════════════════════════════════════════════════════
# Seeding
# ═══════════════════════════════════════════════════════════════
def seed_defaults() -> tuple[int, int]:
    """Install the default permission tree and roles; safe to re-run.

    Existing rows are left as they are.  Returns (permissions_created,
    roles_created).
    """
    created_perms = 0
    by_name = {p.name: p for p in Permission.query.all()}
    for category, actions in DEFAULT_PERMISSIONS.items():
        parent = by_name.get(category)
        if parent is None:
            parent = Permission(name=category, description=f"{category.capitalize()} management")
            db.session.add(parent)
            db.session.flush()
            by_name[category] = parent
            created_perms += 1
        for action in actions:
            if action not in by_name:
                perm = Permission(name=action, description=action.capitalize(), parent_id=parent.id)
                db.session.add(perm)
                by_name[action] = perm
                created_perms += 1
    db.session.flush()

    created_roles = 0
    for name, (description, grants) in DEFAULT_ROLES.items():
        if Role.query.filter_by(name=name).first():
            continue
        role = Role(name=name, description=description)
        db.session.add(role)
        db.session.flush()
        names = grants if grants is not None else list(by_name)
        for perm_name in names:
            db.session.add(RolePermission(role_id=role.id, permission_id=by_name[perm_name].id))
        created_roles += 1

    db_commit_or_raise("Permission", "name")
    logger.info("Seeded %d permission(s), %d role(s)", created_perms, created_roles)
    return created_perms, created_roles
