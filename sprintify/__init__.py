"""
Sprintify
Flask Application Factory.

Usage:
    from sprintify import create_app
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
from sqlalchemy import engine as _sa_engine
from sqlalchemy import event as _sa_event

from sprintify.config import config
from sprintify.middleware.logging_config import configure_logging
from sprintify.middleware.rate_limiter import init_rate_limits
from sprintify.middleware.timing import init_request_timing
from sprintify.models import db

logger = logging.getLogger(__name__)


# ── SQLite FK enforcement (global engine event) ─────────────────────────
@_sa_event.listens_for(_sa_engine.Engine, "connect")
def _enable_sqlite_fk(dbapi_conn, connection_record):
    """Enable foreign key enforcement for SQLite connections."""
    if "sqlite" in type(dbapi_conn).__module__:
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


migrate = Migrate()
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[],                     # no global limit; applied per blueprint
    storage_uri=os.getenv("REDIS_URL", "memory://"),
)


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
    from sprintify.models import phase as _phase_models          # noqa: F401
    from sprintify.models import project as _project_models      # noqa: F401
    from sprintify.models import sprint as _sprint_models        # noqa: F401
    from sprintify.models import work_item as _work_item_models  # noqa: F401

    # ── Auto-create tables for local development (CREATE IF NOT EXISTS) ──
    # Tests own their schema lifecycle; production runs `flask db upgrade`.
    if config_name == "development":
        os.makedirs(app.instance_path, exist_ok=True)
        with app.app_context():
            db.create_all()
            app.logger.info("db.create_all() completed successfully")

    # ── Blueprints ───────────────────────────────────────────────────────
    from sprintify.blueprints.board_bp import board_bp
    from sprintify.blueprints.sprint_bp import sprint_bp
    from sprintify.blueprints.timeline_bp import timeline_bp

    app.register_blueprint(board_bp)
    app.register_blueprint(sprint_bp)
    app.register_blueprint(timeline_bp)

    # ── CLI commands ─────────────────────────────────────────────────────
    @app.cli.command("record-snapshots")
    def record_snapshots_cmd():
        """Record today's burndown snapshot for every ACTIVE sprint."""
        from sprintify.services.sprint_service import record_all_active_snapshots
        count = record_all_active_snapshots()
        db.session.commit()
        logger.info("Recorded %s sprint snapshot(s).", count)

    # ── Health check ─────────────────────────────────────────────────────
    @app.route("/api/v1/health")
    @limiter.exempt
    def health():
        return {"status": "ok", "app": "Sprintify"}

    # ── Error handlers ───────────────────────────────────────────────────
    @app.errorhandler(404)
    def not_found(e):
        return {"error": "Not found", "path": request.path}, 404

    @app.errorhandler(405)
    def method_not_allowed(e):
        return {"error": "Method not allowed"}, 405

    @app.errorhandler(429)
    def rate_limited(e):
        return {"error": "Too many requests", "retry_after": e.description}, 429

    @app.errorhandler(500)
    def server_error(e):
        logger.error("500 error: %s", e, exc_info=True)
        return {"error": "Internal server error"}, 500

    # ── Rate limiting (after blueprints registered) ──────────────────────
    init_rate_limits(app, limiter)

    return app
