"""
Rate limiting configuration.

Applies per-blueprint rate limits using Flask-Limiter.
The Limiter instance is created in qaboard/__init__.py with no default limits;
this module applies granular limits per route category.

Usage:
    from qaboard.middleware.rate_limiter import init_rate_limits
    init_rate_limits(app, limiter)
"""

import logging

logger = logging.getLogger(__name__)


def init_rate_limits(app, limiter):
    """
    Apply rate limits to API blueprints.

    Limits (per remote IP):
        - Report builder:  REPORT_RATE_LIMIT (default 60/minute); each run
                           fans out to one query per metric and dimension
        - Health check:    exempt

    Rate limiting is disabled in testing mode.
    """

    if app.config.get("TESTING"):
        app.logger.info("Rate limiter disabled (TESTING=True)")
        return

    report_limit = app.config.get("REPORT_RATE_LIMIT", "60/minute")
    bp = app.blueprints.get("report_builder")
    if bp:
        limiter.limit(report_limit)(bp)

    bp = app.blueprints.get("health")
    if bp:
        limiter.exempt(bp)

    app.logger.info("Rate limiter configured — report builder: %s", report_limit)
