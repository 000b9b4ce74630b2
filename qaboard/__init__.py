"""
QA Board — test management platform
Flask Application Factory.

Usage:
    from qaboard import create_app
    app = create_app()           # defaults to "development"
    app = create_app("testing")  # explicit config
"""

import logging
import os

from flask import Flask, request
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_migrate import Migrate

from qaboard.config import config
from qaboard.models import db
from qaboard.middleware.logging_config import configure_logging
from qaboard.middleware.timing import init_request_timing
from qaboard.middleware.rate_limiter import init_rate_limits

logger = logging.getLogger(__name__)

migrate = Migrate()
# Storage comes from RATELIMIT_STORAGE_URI; no global limit, applied per-blueprint
limiter = Limiter(key_func=get_remote_address, default_limits=[])


def create_app(config_name=None):
    """
    Create and configure the Flask application.

    Args:
        config_name: Configuration environment name.
                     One of: "development", "testing", "production".
                     Defaults to APP_ENV env var, or "development" if unset.

    Returns:
        Configured Flask application instance.
    """
    if config_name is None:
        config_name = os.getenv("APP_ENV", "development")

    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(config[config_name])

    # ── Structured logging (must be first) ───────────────────────────────
    configure_logging(app)

    # ── Extensions ───────────────────────────────────────────────────────
    db.init_app(app)
    migrate.init_app(app, db)
    limiter.init_app(app)
    cors_origins = app.config.get("CORS_ORIGINS", "*")
    if cors_origins and cors_origins != "*":
        CORS(app, origins=[o.strip() for o in cors_origins.split(",") if o.strip()])
    else:
        CORS(app)

    # ── Request timing middleware ────────────────────────────────────────
    init_request_timing(app)

    # ── Import all models so Alembic can detect them ─────────────────────
    from qaboard.models import project as _project_models        # noqa: F401
    from qaboard.models import testing as _testing_models        # noqa: F401
    from qaboard.models import repository as _repository_models  # noqa: F401
    from qaboard.models import reporting as _reporting_models    # noqa: F401

    # ── Auto-create tables (CREATE IF NOT EXISTS) ────────────────────────
    with app.app_context():
        try:
            db.create_all()
            app.logger.info("db.create_all() completed successfully")
        except Exception as e:
            app.logger.warning("db.create_all() failed: %s", e)

    # ── Report catalogs (built once, read-only afterwards) ───────────────
    from qaboard.reporting.catalogs import build_report_types
    app.extensions["report_types"] = build_report_types()

    # ── Blueprints ───────────────────────────────────────────────────────
    from qaboard.blueprints.health_bp import health_bp
    from qaboard.blueprints.report_builder_bp import report_builder_bp

    app.register_blueprint(health_bp)
    app.register_blueprint(report_builder_bp)

    # ── Error handlers ───────────────────────────────────────────────────
    @app.errorhandler(404)
    def not_found(e):
        return {"error": "Not found", "path": request.path}, 404

    @app.errorhandler(500)
    def server_error(e):
        logger.error("500 error: %s", e, exc_info=True)
        return {"error": "Internal server error"}, 500

    @app.errorhandler(405)
    def method_not_allowed(e):
        return {"error": "Method not allowed"}, 405

    @app.errorhandler(429)
    def rate_limited(e):
        return {"error": "Too many requests", "retry_after": e.description}, 429

    # ── Rate limiting (after blueprints registered) ──────────────────────
    init_rate_limits(app, limiter)

    return app
