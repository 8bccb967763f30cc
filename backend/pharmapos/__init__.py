# backend/pharmapos/__init__.py
import logging

from flask import Flask

from .config import Config
from .extensions import db, migrate
from .permissions import PermissionEvaluator, build_default_permission_table


def create_app(config_overrides: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if config_overrides:
        # Applied before extensions bind: Flask-SQLAlchemy creates engines in init_app
        app.config.update(config_overrides)

    logging.basicConfig(format="%(asctime)s %(levelname)s [%(name)s] %(message)s")
    app.logger.setLevel(app.config["LOG_LEVEL"])
    logging.getLogger("pharmapos").setLevel(app.config["LOG_LEVEL"])

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Role table is built once and shared read-only by every request
    app.extensions["permission_evaluator"] = PermissionEvaluator(build_default_permission_table())

    # Register blueprints
    from .routes.system import system_bp
    from .routes.sales import sales_bp
    from .routes.inventory import inventory_bp
    from .routes.products import products_bp
    from .routes.permissions import permissions_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(sales_bp)
    app.register_blueprint(inventory_bp)
    app.register_blueprint(products_bp)
    app.register_blueprint(permissions_bp)

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
