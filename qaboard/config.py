"""
QA Board
Configuration classes for Flask App Factory.

Usage:
    config_name = os.getenv("APP_ENV", "development")
    app.config.from_object(config[config_name])

Report builder settings (all overridable through the environment):
    REPORT_MAX_WORKERS       threads per report run (<= 1 runs inline)
    REPORT_ERROR_MAX_LENGTH  aggregation error text returned to clients
    REPORT_RATE_LIMIT        Flask-Limiter string for the report builder API
"""

import os
import secrets

basedir = os.path.abspath(os.path.dirname(os.path.dirname(__file__)))

_SQLITE_DEV = f"sqlite:///{os.path.join(basedir, 'instance', 'qaboard_dev.db')}"
_SQLITE_TEST = "sqlite:///:memory:"

# Production MUST set SECRET_KEY; this one changes on every start
_DEV_SECRET = secrets.token_hex(32)

_POOL_OPTIONS = {
    "pool_pre_ping": True,
    "pool_recycle": 300,
    "pool_timeout": 20,
}


def _database_url(default: str | None) -> str | None:
    """DATABASE_URL with the Heroku-style ``postgres://`` scheme normalised."""
    raw = os.getenv("DATABASE_URL", "")
    if not raw:
        return default
    return raw.replace("postgres://", "postgresql://", 1)


def _int_env(name: str, default: int) -> int:
    return int(os.getenv(name, str(default)))


class Config:
    """Base configuration shared across all environments."""

    SECRET_KEY = os.getenv("SECRET_KEY", _DEV_SECRET)
    DEBUG = False
    TESTING = False

    # SQLAlchemy
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {**_POOL_OPTIONS, "pool_size": 5, "max_overflow": 10}

    # Flask-Limiter reads its storage from here; Redis in production
    RATELIMIT_STORAGE_URI = os.getenv("REDIS_URL", "memory://")

    # CORS
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*")

    # Logging (LOG_FORMAT: "json" | "readable"; empty picks by environment)
    LOG_LEVEL = os.getenv("LOG_LEVEL", "")
    LOG_FORMAT = os.getenv("LOG_FORMAT", "")

    # Report builder
    REPORT_MAX_WORKERS = _int_env("REPORT_MAX_WORKERS", 8)
    REPORT_ERROR_MAX_LENGTH = _int_env("REPORT_ERROR_MAX_LENGTH", 300)
    REPORT_RATE_LIMIT = os.getenv("REPORT_RATE_LIMIT", "60/minute")


class DevelopmentConfig(Config):
    """Development environment configuration."""

    DEBUG = True
    SQLALCHEMY_DATABASE_URI = _database_url(_SQLITE_DEV)
    # SQLite does not accept pool sizing arguments
    SQLALCHEMY_ENGINE_OPTIONS = (
        {} if SQLALCHEMY_DATABASE_URI.startswith("sqlite") else Config.SQLALCHEMY_ENGINE_OPTIONS
    )


class TestingConfig(Config):
    """Testing environment configuration."""

    TESTING = True
    SQLALCHEMY_DATABASE_URI = os.getenv("TEST_DATABASE_URL", _SQLITE_TEST)
    SQLALCHEMY_ENGINE_OPTIONS = {}
    RATELIMIT_ENABLED = False
    RATELIMIT_STORAGE_URI = "memory://"
    # In-memory SQLite shares a single connection across threads
    REPORT_MAX_WORKERS = 1


class ProductionConfig(Config):
    """Production environment configuration."""

    SQLALCHEMY_DATABASE_URI = _database_url(None)
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "")  # Must be set explicitly in production

    # Report fan-out holds up to REPORT_MAX_WORKERS connections per request
    SQLALCHEMY_ENGINE_OPTIONS = {
        **_POOL_OPTIONS,
        "pool_size": 10,
        "max_overflow": 20,
        "connect_args": {
            "options": "-c statement_timeout=30000",  # 30s query timeout
        },
    }

    def __init__(self):
        if not self.SQLALCHEMY_DATABASE_URI:
            raise RuntimeError("DATABASE_URL environment variable is required in production")
        if not os.getenv("SECRET_KEY"):
            raise RuntimeError("SECRET_KEY environment variable must be set in production")


# Configuration mapping: environment name -> config class
config = {
    "development": DevelopmentConfig,
    "testing": TestingConfig,
    "production": ProductionConfig,
    "default": DevelopmentConfig,
}
