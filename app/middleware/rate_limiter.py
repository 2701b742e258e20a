"""
Rate limiting for the API blueprints (Flask-Limiter).

The Limiter in app/__init__.py has no default limits and takes its storage
from RATELIMIT_STORAGE_URI.  init_rate_limits() attaches per-blueprint
limits read from config:

    RATELIMIT_WRITE   workflow / approval / subject blueprints
    RATELIMIT_READ    users / roles / auth blueprints
    RATELIMIT_LOGIN   POST /api/v1/auth/login (applied in auth_bp)

Health checks are exempt.  Nothing is limited under TESTING.
"""

from flask import current_app, g, request

LIMITED_WRITE_BLUEPRINTS = ("workflow", "approval", "subject")
LIMITED_READ_BLUEPRINTS = ("users", "roles", "auth")


def rate_limit_key():
    """Bucket by authenticated user when the token named one, else by IP."""
    user_id = g.get("current_user_id")
    if user_id:
        return f"user:{user_id}"
    return request.remote_addr or "unknown"


def login_limit():
    return current_app.config.get("RATELIMIT_LOGIN", "10/minute")


def init_rate_limits(app, limiter):
    if app.config.get("TESTING"):
        app.logger.info("Rate limiter disabled (TESTING=True)")
        return

    write_limit = app.config.get("RATELIMIT_WRITE", "60/minute")
    read_limit = app.config.get("RATELIMIT_READ", "200/minute")

    for name, limit in (
        *((bp, write_limit) for bp in LIMITED_WRITE_BLUEPRINTS),
        *((bp, read_limit) for bp in LIMITED_READ_BLUEPRINTS),
    ):
        bp = app.blueprints.get(name)
        if bp is not None:
            limiter.limit(limit, key_func=rate_limit_key)(bp)

    health = app.blueprints.get("health")
    if health is not None:
        limiter.exempt(health)

    app.logger.info(
        "Rate limits: write=%s read=%s login=%s",
        write_limit, read_limit, app.config.get("RATELIMIT_LOGIN"),
    )
