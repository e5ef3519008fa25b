# backend/salonledger/__init__.py
import logging

from flask import Flask, g, jsonify, request
from werkzeug.exceptions import HTTPException

from .config import Config
from .errors import LedgerError
from .extensions import db, migrate


def _register_error_handlers(app: Flask) -> None:
    @app.errorhandler(LedgerError)
    def handle_ledger_error(exc: LedgerError):
        db.session.rollback()

        if exc.audit_event:
            from .services.security_service import log_security_event

            scope = getattr(g, "scope", None)
            user = getattr(g, "current_user", None)
            log_security_event(
                user_id=user.id if user else None,
                event_type=exc.audit_event,
                success=False,
                action=request.method,
                reason=exc.message,
                tenant_id=scope.tenant_id if scope else None,
                branch_id=scope.branch_id if scope else None,
            )

        if exc.status_code >= 500:
            app.logger.error("%s on %s: %s", exc.error_type, request.path, exc.message)
        return jsonify(exc.to_dict()), exc.status_code

    @app.errorhandler(Exception)
    def handle_unexpected(exc: Exception):
        if isinstance(exc, HTTPException):
            return exc
        db.session.rollback()
        app.logger.exception("Unhandled error on %s %s", request.method, request.path)
        return jsonify({"error": "Internal server error"}), 500


def create_app(config_overrides: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if config_overrides:
        app.config.update(config_overrides)

    app.logger.setLevel(getattr(logging, str(app.config.get("LOG_LEVEL", "INFO")).upper(), logging.INFO))

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Register blueprints
    from .routes.system import system_bp
    from .routes.auth import auth_bp
    from .routes.appointments import appointments_bp
    from .routes.inventory import inventory_bp
    from .routes.catalog import catalog_bp
    from .routes.gate import gate_bp
    from .routes.suppliers import suppliers_bp
    from .routes.expenses import expenses_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(appointments_bp)
    app.register_blueprint(inventory_bp)
    app.register_blueprint(catalog_bp)
    app.register_blueprint(gate_bp)
    app.register_blueprint(suppliers_bp)
    app.register_blueprint(expenses_bp)

    _register_error_handlers(app)

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        allowed_origins = {
            "http://localhost:5173",
            "http://127.0.0.1:5173",
            "http://localhost:4173",
            "http://127.0.0.1:4173",
        }
        if origin in allowed_origins:
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Headers"] = "Authorization, Content-Type"
            response.headers["Access-Control-Allow-Methods"] = "GET,POST,PUT,DELETE,PATCH,OPTIONS"
        return response

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
