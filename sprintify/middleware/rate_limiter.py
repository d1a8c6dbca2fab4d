"""
Rate limiting configuration.

Applies per-blueprint rate limits using Flask-Limiter.
The Limiter instance is created in sprintify/__init__.py with no default limits;
this module applies granular limits per route category.

Usage:
    from sprintify.middleware.rate_limiter import init_rate_limits
    init_rate_limits(app, limiter)
"""

import logging

logger = logging.getLogger(__name__)

# Blueprint name -> limit string (per remote IP)
BLUEPRINT_LIMITS = {
    "board": "120/minute",
    "sprint": "60/minute",
    # Schedule recalculation walks the whole project graph
    "timeline": "30/minute",
}


def init_rate_limits(app, limiter):
    """
    Apply rate limits to API blueprints.

    Limits (per remote IP):
        - Board endpoints:     120/minute (drag-and-drop moves are chatty)
        - Sprint endpoints:    60/minute
        - Timeline endpoints:  30/minute
        - Health check:        exempt

    Rate limiting is disabled in testing mode.
    """
    if app.config.get("TESTING"):
        app.logger.info("Rate limiter disabled (TESTING=True)")
        return

    for bp_name, limit in BLUEPRINT_LIMITS.items():
        bp = app.blueprints.get(bp_name)
        if bp:
            limiter.limit(limit)(bp)

    app.logger.info(
        "Rate limiter configured — %s",
        ", ".join(f"{name}: {limit}" for name, limit in BLUEPRINT_LIMITS.items()),
    )
