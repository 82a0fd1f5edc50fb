# backend/stockrecon/__init__.py
import logging

from flask import Flask, g

from .config import Config
from .extensions import db, migrate


def create_app(overrides: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if overrides:
        app.config.update(overrides)

    app.logger.setLevel(getattr(logging, str(app.config["LOG_LEVEL"]).upper(), logging.INFO))

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Sale recording mode is fixed for the life of the app
    from .services.sale_recorder import build_sale_recorder
    app.extensions["sale_recorder"] = build_sale_recorder(app.config["RECONCILIATION_MODE"])

    # Register blueprints
    from .routes.system import system_bp
    from .routes.sales import sales_bp
    from .routes.reconciliation import reconciliation_bp
    from .routes.devices import devices_bp
    from .routes.products import products_bp
    from .routes.inventory import inventory_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(sales_bp)
    app.register_blueprint(reconciliation_bp)
    app.register_blueprint(devices_bp)
    app.register_blueprint(products_bp)
    app.register_blueprint(inventory_bp)

    @app.teardown_request
    def drop_request_caches(exc):
        # Summary reads are cached per request only
        g.pop("summary_reader", None)

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    from .scheduler import init_scheduler
    init_scheduler(app)

    return app
