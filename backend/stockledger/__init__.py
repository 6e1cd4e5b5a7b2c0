# backend/stockledger/__init__.py
import logging

from flask import Flask, jsonify, request

from .config import Config
from .errors import PersistenceError
from .extensions import db, migrate
from .storage import STORE_EXTENSION_KEY, build_store


def create_app(test_config=None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if test_config:
        app.config.update(test_config)

    app.logger.setLevel(getattr(logging, str(app.config["LOG_LEVEL"]).upper(), logging.INFO))

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    app.extensions[STORE_EXTENSION_KEY] = build_store(
        app.config["INVENTORY_STORE"],
        attempts=app.config["STORE_RETRY_ATTEMPTS"],
        backoff_base=app.config["STORE_RETRY_BACKOFF"],
    )

    # Register blueprints
    from .routes.system import system_bp
    from .routes.auth import auth_bp
    from .routes.users import users_bp
    from .routes.products import products_bp
    from .routes.inventory import inventory_bp
    from .routes.reports import reports_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(users_bp)
    app.register_blueprint(products_bp)
    app.register_blueprint(inventory_bp)
    app.register_blueprint(reports_bp)

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        if origin in app.config["CORS_ALLOWED_ORIGINS"]:
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Headers"] = "Authorization, Content-Type"
            response.headers["Access-Control-Allow-Methods"] = "GET,POST,PUT,DELETE,OPTIONS"
            response.headers["Access-Control-Expose-Headers"] = "Content-Disposition"
        return response

    @app.errorhandler(PersistenceError)
    def handle_persistence_error(exc):
        app.logger.exception("Unhandled storage failure on %s %s", request.method, request.path)
        return jsonify({"error": "Internal server error"}), 500

    if app.config["AUTO_INIT_SCHEMA"]:
        with app.app_context():
            init_schema(app)

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app


def init_schema(app: Flask):
    """Create tables (relational store) and the bootstrap administrator."""
    from .services.auth_service import ensure_bootstrap_admin

    store = app.extensions[STORE_EXTENSION_KEY]
    if store.name == "sql":
        db.create_all()
    return ensure_bootstrap_admin(
        store,
        app.config["BOOTSTRAP_ADMIN_USERNAME"],
        app.config["BOOTSTRAP_ADMIN_PASSWORD"],
    )
