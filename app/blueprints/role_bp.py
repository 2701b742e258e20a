"""
Roles & Permissions Blueprint.

  GET    /api/v1/roles                          — list (?active=true, limit, offset)
  POST   /api/v1/roles                          — create (admin)
  GET    /api/v1/roles/count
  GET    /api/v1/roles/name/<name>
  GET    /api/v1/roles/<id>
  PUT    /api/v1/roles/<id>                     — update (admin)
  DELETE /api/v1/roles/<id>                     — delete (admin)
  POST   /api/v1/roles/<id>/permissions         — grant { permission_id } (admin)
  DELETE /api/v1/roles/<id>/permissions/<pid>   — revoke (admin)
  POST   /api/v1/roles/<id>/check-permission    — { permission_id } → { has_permission }

  GET    /api/v1/permissions                    — categories with children
  GET    /api/v1/permissions/count
  GET    /api/v1/permissions/search?q=
  GET    /api/v1/permissions/name/<name>
  GET    /api/v1/permissions/<id>
"""

from flask import Blueprint, jsonify, request

from app.middleware.jwt_auth import require_role
from app.services import role_service
from app.utils.helpers import paginate_query

role_bp = Blueprint("roles", __name__, url_prefix="/api/v1")


# ── Roles ────────────────────────────────────────────────────────────────

@role_bp.route("/roles", methods=["GET"])
def list_roles():
    active_only = request.args.get("active", "").lower() in ("1", "true", "yes")
    roles, page = paginate_query(role_service.list_roles(active_only=active_only))
    return jsonify({"items": [r.to_dict() for r in roles], **page})


@role_bp.route("/roles", methods=["POST"])
@require_role("admin")
def create_role():
    """Body: { name, description?, is_active?, permission_ids? }"""
    data = request.get_json(silent=True) or {}
    return jsonify(role_service.create_role(data).to_dict()), 201


@role_bp.route("/roles/count", methods=["GET"])
def count_roles():
    return jsonify({"count": role_service.count_roles()})


@role_bp.route("/roles/name/<name>", methods=["GET"])
def get_role_by_name(name):
    return jsonify(role_service.get_role_by_name(name).to_dict())


@role_bp.route("/roles/<int:rid>", methods=["GET"])
def get_role(rid):
    return jsonify(role_service.get_role(rid).to_dict())


@role_bp.route("/roles/<int:rid>", methods=["PUT"])
@require_role("admin")
def update_role(rid):
    data = request.get_json(silent=True) or {}
    return jsonify(role_service.update_role(rid, data).to_dict())


@role_bp.route("/roles/<int:rid>", methods=["DELETE"])
@require_role("admin")
def delete_role(rid):
    role_service.delete_role(rid)
    return jsonify({"deleted": True, "message": "Role deleted successfully"})


@role_bp.route("/roles/<int:rid>/permissions", methods=["POST"])
@require_role("admin")
def add_permission(rid):
    data = request.get_json(silent=True) or {}
    role = role_service.add_permission(rid, data.get("permission_id"))
    return jsonify(role.to_dict())


@role_bp.route("/roles/<int:rid>/permissions/<int:pid>", methods=["DELETE"])
@require_role("admin")
def remove_permission(rid, pid):
    return jsonify(role_service.remove_permission(rid, pid).to_dict())


@role_bp.route("/roles/<int:rid>/check-permission", methods=["POST"])
def check_permission(rid):
    data = request.get_json(silent=True) or {}
    granted = role_service.has_permission(rid, data.get("permission_id"))
    return jsonify({"role_id": rid, "permission_id": data.get("permission_id"), "has_permission": granted})


# ── Permissions ──────────────────────────────────────────────────────────

@role_bp.route("/permissions", methods=["GET"])
def list_permissions():
    perms, page = paginate_query(role_service.list_permission_categories(), default_limit=100)
    return jsonify({"items": [p.to_dict() for p in perms], **page})


@role_bp.route("/permissions/count", methods=["GET"])
def count_permissions():
    return jsonify({"count": role_service.count_permissions()})


@role_bp.route("/permissions/search", methods=["GET"])
def search_permissions():
    perms, page = paginate_query(role_service.search_permissions(request.args.get("q")))
    return jsonify({"items": [p.to_dict(include_children=False) for p in perms], **page})


@role_bp.route("/permissions/name/<name>", methods=["GET"])
def get_permission_by_name(name):
    return jsonify(role_service.get_permission_by_name(name).to_dict())


@role_bp.route("/permissions/<int:pid>", methods=["GET"])
def get_permission(pid):
    return jsonify(role_service.get_permission(pid).to_dict())
