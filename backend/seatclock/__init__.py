# backend/seatclock/__init__.py
from flask import Flask

from .config import Config
from .extensions import db, migrate


def create_app(overrides: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if overrides:
        app.config.update(overrides)

    app.logger.setLevel(app.config.get("LOG_LEVEL", "INFO"))

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Register blueprints
    from .routes.system import system_bp
    from .routes.sessions import sessions_bp
    from .routes.orders import orders_bp
    from .routes.checkout import checkout_bp
    from .routes.reports import reports_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(sessions_bp)
    app.register_blueprint(orders_bp)
    app.register_blueprint(checkout_bp)
    app.register_blueprint(reports_bp)

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
