"""
Auth Blueprint — JWT authentication endpoints.

  POST /api/v1/auth/login       — username/email + password → access token
  POST /api/v1/auth/logout      — revoke the presented token (or all sessions)
  GET  /api/v1/auth/me          — current user profile
"""

from flask import Blueprint, g, jsonify, request

from app import limiter
from app.core.exceptions import AuthenticationError
from app.middleware.rate_limiter import login_limit
from app.services.jwt_service import issue_token, revoke_all_user_sessions, revoke_token
from app.services.user_service import authenticate, get_user

auth_bp = Blueprint("auth", __name__, url_prefix="/api/v1/auth")


# ═══════════════════════════════════════════════════════════════
# POST /api/v1/auth/login
# ═══════════════════════════════════════════════════════════════
@auth_bp.route("/login", methods=["POST"])
@limiter.limit(login_limit)
def login():
    """
    Authenticate with username (or email) + password.

    Body: { "username": "...", "password": "..." }
    """
    data = request.get_json(silent=True) or {}
    login_name = data.get("username") or data.get("email") or ""
    user = authenticate(login_name, data.get("password") or "")

    token = issue_token(user, request.remote_addr, request.headers.get("User-Agent", ""))
    return jsonify({**token, "user": user.to_dict()}), 200


# ═══════════════════════════════════════════════════════════════
# POST /api/v1/auth/logout
# ═══════════════════════════════════════════════════════════════
@auth_bp.route("/logout", methods=["POST"])
def logout():
    """
    Revoke the current session.

    Body: { "all": true } revokes every session of the user (logout everywhere).
    """
    data = request.get_json(silent=True) or {}
    if not g.get("access_token"):
        raise AuthenticationError("Authentication required")

    if data.get("all"):
        count = revoke_all_user_sessions(g.current_user_id)
        return jsonify({"message": "Logged out successfully", "revoked": count}), 200

    revoke_token(g.access_token)
    return jsonify({"message": "Logged out successfully"}), 200


# ═══════════════════════════════════════════════════════════════
# GET /api/v1/auth/me
# ═══════════════════════════════════════════════════════════════
@auth_bp.route("/me", methods=["GET"])
def me():
    """Get current user profile from JWT."""
    if not g.get("current_user_id"):
        raise AuthenticationError("Authentication required")
    return jsonify({"user": get_user(g.current_user_id).to_dict()}), 200
