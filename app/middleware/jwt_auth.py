"""
JWT Auth Middleware — parses the bearer token, sets g.current_user_*.

When API_AUTH_ENABLED is "true" every /api/v1/ request outside
JWT_SKIP_PREFIXES must carry a valid, unrevoked token or gets a 401.
When disabled, a token is still honoured if present so handlers that
default the acting user from the token keep working in development.
"""

from functools import wraps

from flask import current_app, g, request

from app.core.exceptions import AuthenticationError, AuthorizationError
from app.services.jwt_service import verify_token

# Paths that skip JWT auth entirely
JWT_SKIP_PREFIXES = (
    "/api/v1/auth/login",
    "/api/v1/health",
)


def auth_enabled() -> bool:
    return str(current_app.config.get("API_AUTH_ENABLED", "true")).lower() == "true"


def _bearer_token() -> str | None:
    auth_header = request.headers.get("Authorization", "")
    if not auth_header.startswith("Bearer "):
        return None
    return auth_header[7:].strip() or None


def init_jwt_middleware(app):
    """Register JWT middleware as a before_request hook."""

    @app.before_request
    def _jwt_auth():
        g.current_user_id = None
        g.current_user_role = None
        g.access_token = None

        path = request.path
        if not path.startswith("/api/v1/"):
            return
        for prefix in JWT_SKIP_PREFIXES:
            if path.startswith(prefix):
                return

        token = _bearer_token()
        if token is None:
            if auth_enabled():
                raise AuthenticationError("No token provided. Authorization denied")
            return

        try:
            payload = verify_token(token)
        except AuthenticationError:
            if auth_enabled():
                raise
            return

        g.current_user_id = payload["sub"]
        g.current_user_role = payload.get("role")
        g.access_token = token


def require_role(*roles):
    """Restrict a view to users whose role is in ``roles`` (only when auth is on)."""

    def decorator(view):
        @wraps(view)
        def wrapper(*args, **kwargs):
            if auth_enabled() and g.get("current_user_role") not in roles:
                raise AuthorizationError(
                    f"User role '{g.get('current_user_role')}' is not authorized to access this resource"
                )
            return view(*args, **kwargs)
        return wrapper

    return decorator
