# backend/backoffice/__init__.py
import logging

from flask import Flask

from .config import Config
from .extensions import db, migrate


def create_app(overrides: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if overrides:
        app.config.update(overrides)

    level = app.config.get("LOG_LEVEL", "INFO")
    app.logger.setLevel(level)
    logging.getLogger(__name__).setLevel(level)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Register blueprints
    from .routes.system import system_bp
    from .routes.ledger import ledger_bp
    from .routes.cash_sessions import cash_sessions_bp
    from .routes.receivables import receivables_bp
    from .routes.receptions import receptions_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(ledger_bp)
    app.register_blueprint(cash_sessions_bp)
    app.register_blueprint(receivables_bp)
    app.register_blueprint(receptions_bp)

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
