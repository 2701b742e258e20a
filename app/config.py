"""
Approval Workflow Service
Configuration classes for the Flask app factory.

Selected by APP_ENV (development | testing | production):

    app.config.from_object(config[os.getenv("APP_ENV", "development")]())
"""

import os
import secrets

basedir = os.path.abspath(os.path.dirname(os.path.dirname(__file__)))

_SQLITE_DEV = f"sqlite:///{os.path.join(basedir, 'instance', 'approval_dev.db')}"
_SQLITE_TEST = "sqlite:///:memory:"

# Random per-process key; tokens do not survive a restart in development
_DEV_SECRET = secrets.token_hex(32)


def _env_flag(name, default):
    return os.getenv(name, default).lower() == "true"


def database_url(raw_url):
    """Point bare postgres URLs at the psycopg 3 driver.

    ``postgres://`` (Heroku / Railway style) and ``postgresql://`` both
    become ``postgresql+psycopg://``; URLs naming a driver are left alone.
    """
    if not raw_url:
        return raw_url
    for prefix in ("postgres://", "postgresql://"):
        if raw_url.startswith(prefix):
            return "postgresql+psycopg://" + raw_url[len(prefix):]
    return raw_url


class Config:
    SECRET_KEY = os.getenv("SECRET_KEY", _DEV_SECRET)
    DEBUG = False
    TESTING = False

    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {
        "pool_pre_ping": True,
        "pool_recycle": 300,
    }
    # db.create_all() on startup; turn off once `flask db upgrade` owns the schema
    AUTO_CREATE_TABLES = _env_flag("AUTO_CREATE_TABLES", "true")

    # Tokens
    JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY")
    JWT_ACCESS_EXPIRES = int(os.getenv("JWT_ACCESS_EXPIRES", "3600"))
    BCRYPT_ROUNDS = int(os.getenv("BCRYPT_ROUNDS", "12"))

    # Bearer-token gate on /api/v1/* ("true" / "false"; login and health stay open)
    API_AUTH_ENABLED = os.getenv("API_AUTH_ENABLED", "true")

    # Flask-Limiter
    RATELIMIT_STORAGE_URI = os.getenv("REDIS_URL", "memory://")
    RATELIMIT_HEADERS_ENABLED = True
    RATELIMIT_WRITE = os.getenv("RATELIMIT_WRITE", "60/minute")
    RATELIMIT_READ = os.getenv("RATELIMIT_READ", "200/minute")
    RATELIMIT_LOGIN = os.getenv("RATELIMIT_LOGIN", "10/minute")

    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*")


class DevelopmentConfig(Config):
    DEBUG = True
    SQLALCHEMY_DATABASE_URI = database_url(os.getenv("DATABASE_URL", "")) or _SQLITE_DEV
    API_AUTH_ENABLED = os.getenv("API_AUTH_ENABLED", "false")


class TestingConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = database_url(os.getenv("TEST_DATABASE_URL", "")) or _SQLITE_TEST
    SQLALCHEMY_ENGINE_OPTIONS = {}
    # conftest resets this before every test; auth tests switch it on
    API_AUTH_ENABLED = "false"
    RATELIMIT_ENABLED = False
    BCRYPT_ROUNDS = 4


class ProductionConfig(Config):
    SQLALCHEMY_DATABASE_URI = database_url(os.getenv("DATABASE_URL", "")) or None
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "")
    SQLALCHEMY_ENGINE_OPTIONS = {
        "pool_pre_ping": True,
        "pool_size": 5,
        "max_overflow": 10,
        "pool_recycle": 300,
        "pool_timeout": 20,
        # cast_vote holds a row lock; cap how long any statement may wait
        "connect_args": {"options": "-c statement_timeout=30000 -c lock_timeout=10000"},
    }

    def __init__(self):
        if not self.SQLALCHEMY_DATABASE_URI:
            raise RuntimeError("DATABASE_URL environment variable is required in production")
        if not os.getenv("SECRET_KEY"):
            raise RuntimeError("SECRET_KEY environment variable must be set in production")
        if str(self.API_AUTH_ENABLED).lower() != "true":
            raise RuntimeError("API_AUTH_ENABLED cannot be disabled in production")


config = {
    "development": DevelopmentConfig,
    "testing": TestingConfig,
    "production": ProductionConfig,
    "default": DevelopmentConfig,
}
