# backend/guildhall/__init__.py
from __future__ import annotations

import logging

from flask import Flask

from .config import Config
from .extensions import db, migrate


def create_app(config_overrides: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    # Overrides must land before extensions read SQLALCHEMY_DATABASE_URI
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
    from .routes.members import members_bp
    from .routes.points import points_bp
    from .routes.compensation import compensation_bp
    from .routes.rotation import rotation_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(members_bp)
    app.register_blueprint(points_bp)
    app.register_blueprint(compensation_bp)
    app.register_blueprint(rotation_bp)

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
