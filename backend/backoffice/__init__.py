# backend/backoffice/__init__.py
import logging

from flask import Flask, current_app, jsonify
from werkzeug.exceptions import HTTPException

from .config import Config
from .extensions import db, migrate


def create_app(config_overrides: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    # Applied before the extensions bind so tests can point at their own database
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
    from .routes.sales_reports import sales_reports_bp
    from .routes.inventory_reports import inventory_reports_bp
    from .routes.procurement_reports import procurement_reports_bp
    from .routes.purchases import purchases_bp
    from .routes.adjustments import adjustments_bp
    from .routes.physical_inventories import physical_inventories_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(sales_reports_bp)
    app.register_blueprint(inventory_reports_bp)
    app.register_blueprint(procurement_reports_bp)
    app.register_blueprint(purchases_bp)
    app.register_blueprint(adjustments_bp)
    app.register_blueprint(physical_inventories_bp)

    register_error_handlers(app)

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app


def register_error_handlers(app: Flask) -> None:
    @app.errorhandler(HTTPException)
    def handle_http_exception(exc: HTTPException):
        return jsonify({"error": exc.description or exc.name}), exc.code

    @app.errorhandler(Exception)
    def handle_unexpected_exception(exc: Exception):
        current_app.logger.exception("Unhandled error while serving request")
        db.session.rollback()
        return jsonify({"error": "Internal server error"}), 500
