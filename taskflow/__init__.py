"""
Taskflow — task/project lifecycle service.
Flask Application Factory.

Usage:
    from taskflow import create_app
    app = create_app()           # defaults to "development"
    app = create_app("testing")  # explicit config
"""

import logging
import os

import click
from flask import Flask, request
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_migrate import Migrate
from sqlalchemy import engine as _sa_engine
from sqlalchemy import event as _sa_event
from sqlalchemy.exc import SQLAlchemyError

from taskflow.config import config
from taskflow.middleware.logging_config import configure_logging
from taskflow.middleware.rate_limiter import init_rate_limits
from taskflow.middleware.timing import init_request_timing
from taskflow.models import db
from taskflow.utils.errors import E, api_error

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
        config_name: One of "development", "testing", "production".
                     Defaults to APP_ENV env var, or "development" if unset.

    Returns:
        Configured Flask application instance.
    """
    if config_name is None:
        config_name = os.getenv("APP_ENV", "development")

    app = Flask(__name__, instance_relative_config=True)
    config_cls = config[config_name]
    config_cls.validate()
    app.config.from_object(config_cls)

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

    init_request_timing(app)

    # ── Import all models so Alembic can detect them ─────────────────────
    from taskflow.models import notification as _notification_models  # noqa: F401
    from taskflow.models import project as _project_models            # noqa: F401
    from taskflow.models import task as _task_models                  # noqa: F401
    from taskflow.models import user as _user_models                  # noqa: F401

    if config_name != "production":
        os.makedirs(app.instance_path, exist_ok=True)
        with app.app_context():
            try:
                db.create_all()
            except SQLAlchemyError as exc:
                app.logger.warning("db.create_all() failed: %s", exc)

    # ── Blueprints ───────────────────────────────────────────────────────
    from taskflow.blueprints.health_bp import health_bp
    from taskflow.blueprints.notification_bp import notification_bp
    from taskflow.blueprints.project_bp import project_bp
    from taskflow.blueprints.task_bp import task_bp

    app.register_blueprint(health_bp)
    app.register_blueprint(notification_bp)
    app.register_blueprint(project_bp)
    app.register_blueprint(task_bp)

    # ── CLI commands ─────────────────────────────────────────────────────
    @app.cli.command("run-notification-checks")
    @click.option("--tasks-only", is_flag=True, help="Skip the project scan.")
    def run_notification_checks_cmd(tasks_only):
        """Run the due-soon / overdue scans once and print the counts."""
        from taskflow.services.scheduler_service import build_trigger
        trigger = build_trigger()
        report = trigger.run_task_checks() if tasks_only else trigger.run_notification_checks()
        click.echo(f"Created {report['totalCreated']} notifications")
        for err in report["errors"]:
            click.echo(f"  error: {err['error']}", err=True)

    # ── Error handlers ───────────────────────────────────────────────────
    @app.errorhandler(404)
    def not_found(e):
        return api_error(E.NOT_FOUND, f"Not found: {request.path}")

    @app.errorhandler(405)
    def method_not_allowed(e):
        return api_error(E.METHOD_NOT_ALLOWED, "Method not allowed")

    @app.errorhandler(429)
    def rate_limited(e):
        return api_error(E.RATE_LIMITED, "Too many requests", details={"retry_after": e.description})

    @app.errorhandler(500)
    def server_error(e):
        logger.error("500 error on %s", request.path, exc_info=True)
        return api_error(E.INTERNAL, "Internal server error")

    # ── Rate limiting (after blueprints registered) ──────────────────────
    init_rate_limits(app, limiter)

    # ── Background scheduler ─────────────────────────────────────────────
    from taskflow.services.scheduler_service import SchedulerService
    SchedulerService.init_app(app)

    return app
