# backend/pms/__init__.py
import logging

from flask import Flask

from .config import Config
from .extensions import db, migrate


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
    from .routes.health import health_bp
    from .routes.baselines import baselines_bp
    from .routes.mappings import mappings_bp
    from .routes.product_mappings import product_mappings_bp
    from .routes.plan_share_configs import plan_share_configs_bp
    from .routes.plans import plans_bp
    from .routes.staff_plans import staff_plans_bp
    from .routes.tasks import tasks_bp
    from .routes.cbs import cbs_bp
    from .routes.performance import performance_bp
    from .routes.behavioral import behavioral_bp
    from .routes.audit import audit_bp

    app.register_blueprint(health_bp)
    app.register_blueprint(baselines_bp)
    app.register_blueprint(mappings_bp)
    app.register_blueprint(product_mappings_bp)
    app.register_blueprint(plan_share_configs_bp)
    app.register_blueprint(plans_bp)
    app.register_blueprint(staff_plans_bp)
    app.register_blueprint(tasks_bp)
    app.register_blueprint(cbs_bp)
    app.register_blueprint(performance_bp)
    app.register_blueprint(behavioral_bp)
    app.register_blueprint(audit_bp)

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
