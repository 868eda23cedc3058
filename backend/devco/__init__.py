# backend/devco/__init__.py
from concurrent.futures import ThreadPoolExecutor

from flask import Flask

from .config import Config
from .extensions import db, migrate


def create_app(config_overrides: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if config_overrides:
        app.config.update(config_overrides)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    from .errors import register_error_handlers
    register_error_handlers(app)

    # Per-app permission snapshot cache and webhook worker pool
    from .services.permission_service import CACHE_EXTENSION_KEY, PermissionCache
    from .services.webhook_service import EXECUTOR_EXTENSION_KEY
    app.extensions[CACHE_EXTENSION_KEY] = PermissionCache()
    app.extensions[EXECUTOR_EXTENSION_KEY] = ThreadPoolExecutor(
        max_workers=app.config["QBO_WEBHOOK_WORKERS"],
        thread_name_prefix="qbo-webhook",
    )

    # Every non-public request needs an identity
    from .decorators import authenticate_request, renew_auth_cookie
    app.before_request(authenticate_request)
    app.after_request(renew_auth_cookie)

    # Register blueprints
    from .routes.system import system_bp
    from .routes.auth import auth_bp
    from .routes.roles import roles_bp
    from .routes.employees import employees_bp
    from .routes.quickbooks import quickbooks_bp, qbo_auth_bp
    from .routes.webhooks import webhooks_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(roles_bp)
    app.register_blueprint(employees_bp)
    app.register_blueprint(quickbooks_bp)
    app.register_blueprint(qbo_auth_bp)
    app.register_blueprint(webhooks_bp)

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
