# backend/stockpos/__init__.py
from flask import Flask, request

from .config import Config
from .extensions import db, migrate


def create_app(test_config: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if test_config:
        app.config.update(test_config)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    from .services.document_store import store
    store.init_app(app)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Register blueprints
    from .routes.system import system_bp
    from .routes.auth import auth_bp
    from .routes.stock import stock_bp
    from .routes.sales import sales_bp
    from .routes.zreports import zreports_bp
    from .routes.admin import admin_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(stock_bp)
    app.register_blueprint(sales_bp)
    app.register_blueprint(zreports_bp)
    app.register_blueprint(admin_bp)

    from .errors import register_error_handlers
    register_error_handlers(app)

    # Log items as they drop below their notify threshold
    from .services.inventory_service import LowStockWatcher
    with app.app_context():
        app.extensions["low_stock_watcher"] = LowStockWatcher().start()

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        if origin and origin in app.config.get("CORS_ALLOWED_ORIGINS", ()):
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Headers"] = "Authorization, Content-Type"
            response.headers["Access-Control-Allow-Methods"] = "GET,POST,DELETE,OPTIONS"
        return response

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
