"""
Users Blueprint — identity store endpoints.

  GET    /api/v1/users                 — list (?role, status, limit, offset)
  POST   /api/v1/users                 — create (admin)
  GET    /api/v1/users/count           — count (?role, status)
  GET    /api/v1/users/role/<role>     — list users holding a role
  GET    /api/v1/users/status/<status> — list users in a status
  GET    /api/v1/users/<id>            — detail
  PUT    /api/v1/users/<id>            — update (admin)
  DELETE /api/v1/users/<id>            — delete (admin; refused once the user has voted)
"""

from flask import Blueprint, jsonify, request

from app.core.exceptions import ValidationError
from app.middleware.jwt_auth import require_role
from app.models.auth import USER_ROLES, USER_STATUSES
from app.services import user_service
from app.utils.helpers import paginate_query

user_bp = Blueprint("users", __name__, url_prefix="/api/v1")


def _listing(role=None, status=None):
    users, page = paginate_query(user_service.list_users(role=role, status=status))
    return jsonify({"items": [u.to_dict() for u in users], **page})


@user_bp.route("/users", methods=["GET"])
def list_users():
    return _listing(role=request.args.get("role"), status=request.args.get("status"))


@user_bp.route("/users", methods=["POST"])
@require_role("admin")
def create_user():
    """Body: { first_name, last_name, username, email, password, role?, phone?, department? }"""
    data = request.get_json(silent=True) or {}
    return jsonify(user_service.create_user(data).to_dict()), 201


@user_bp.route("/users/count", methods=["GET"])
def count_users():
    count = user_service.count_users(role=request.args.get("role"), status=request.args.get("status"))
    return jsonify({"count": count})


@user_bp.route("/users/role/<role>", methods=["GET"])
def users_by_role(role):
    if role not in USER_ROLES:
        raise ValidationError(f"role must be one of {sorted(USER_ROLES)}", details={"role": "invalid"})
    return _listing(role=role)


@user_bp.route("/users/status/<status>", methods=["GET"])
def users_by_status(status):
    if status not in USER_STATUSES:
        raise ValidationError(
            f"status must be one of {sorted(USER_STATUSES)}", details={"status": "invalid"},
        )
    return _listing(status=status)


@user_bp.route("/users/<int:uid>", methods=["GET"])
def get_user(uid):
    return jsonify(user_service.get_user(uid).to_dict())


@user_bp.route("/users/<int:uid>", methods=["PUT"])
@require_role("admin")
def update_user(uid):
    data = request.get_json(silent=True) or {}
    return jsonify(user_service.update_user(uid, data).to_dict())


@user_bp.route("/users/<int:uid>", methods=["DELETE"])
@require_role("admin")
def delete_user(uid):
    user_service.delete_user(uid)
    return jsonify({"deleted": True, "message": "User deleted successfully"})
