from __future__ import annotations

import logging
import sqlite3

from flask import Flask
from sqlalchemy import event
from sqlalchemy.engine import Engine

from .extensions import db, login_manager, migrate

API_PREFIX = "/api/v1"


@event.listens_for(Engine, "connect")
def _set_sqlite_pragmas(dbapi_connection, connection_record) -> None:
    if isinstance(dbapi_connection, sqlite3.Connection):
        cur = dbapi_connection.cursor()
        cur.execute("PRAGMA foreign_keys=ON")
        cur.execute("PRAGMA busy_timeout=30000")
        cur.close()


def _configure_logging(app: Flask) -> None:
    logging.basicConfig(
        level=app.config.get("LOG_LEVEL", "INFO"),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


def _engine_options(app: Flask) -> None:
    uri = app.config.get("SQLALCHEMY_DATABASE_URI", "")
    opts = dict(app.config.get("SQLALCHEMY_ENGINE_OPTIONS", {}))
    ca = dict(opts.get("connect_args", {}))
    if uri.startswith("sqlite:"):
        ca.setdefault("check_same_thread", False)
        ca.setdefault("timeout", 30)
    elif uri.startswith("postgres"):
        # bookings check availability and bind staff under repeatable read;
        # statement_timeout enforces the per-request deadline in the database
        timeout_ms = int(app.config.get("REQUEST_TIMEOUT_SECONDS", 30)) * 1000
        ca.setdefault("options", f"-c statement_timeout={timeout_ms}")
        opts.setdefault("isolation_level", "REPEATABLE READ")
        opts.setdefault("pool_pre_ping", True)
    opts["connect_args"] = ca
    app.config["SQLALCHEMY_ENGINE_OPTIONS"] = opts


def create_app(config_object="config.Config", **overrides) -> Flask:
    app = Flask(__name__)
    app.config.from_object(config_object)
    app.config.update(overrides)
    if app.config["SQLALCHEMY_DATABASE_URI"].startswith("postgres://"):
        app.config["SQLALCHEMY_DATABASE_URI"] = app.config["SQLALCHEMY_DATABASE_URI"].replace(
            "postgres://", "postgresql://", 1
        )

    _configure_logging(app)
    _engine_options(app)

    db.init_app(app)
    migrate.init_app(app, db)
    login_manager.init_app(app)

    from .models import leaveday, payment, pet, service, user  # noqa: F401
    from .auth import decorators  # noqa: F401  registers the request loader

    from .auth.routes import auth_bp
    app.register_blueprint(auth_bp, url_prefix=f"{API_PREFIX}/auth")

    from .users.routes import users_bp
    app.register_blueprint(users_bp, url_prefix=API_PREFIX)

    from .pets.routes import pets_bp
    app.register_blueprint(pets_bp, url_prefix=API_PREFIX)

    from .bookings.routes import services_bp
    app.register_blueprint(services_bp, url_prefix=API_PREFIX)

    from .leavedays.routes import leavedays_bp
    app.register_blueprint(leavedays_bp, url_prefix=API_PREFIX)

    from .payments.routes import payments_bp
    app.register_blueprint(payments_bp, url_prefix=API_PREFIX)

    from .webhooks.routes import webhooks_bp
    app.register_blueprint(webhooks_bp, url_prefix=API_PREFIX)

    from .errors import register_error_handlers
    register_error_handlers(app)

    from .cli import (
        advance_services_cmd,
        init_db_cmd,
        purge_webhook_events_cmd,
        reset_db_cmd,
        seed_demo_cmd,
    )

    app.cli.add_command(init_db_cmd)
    app.cli.add_command(reset_db_cmd)
    app.cli.add_command(seed_demo_cmd)
    app.cli.add_command(advance_services_cmd)
    app.cli.add_command(purge_webhook_events_cmd)

    @app.get("/healthz")
    def healthz():
        return {"status": "ok"}

    @app.teardown_request
    def _teardown_request(_exc):
        try:
            if _exc is not None:
                db.session.rollback()
        finally:
            db.session.remove()

    return app
