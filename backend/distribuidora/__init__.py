# backend/distribuidora/__init__.py
from flask import Flask, request

from .config import Config
from .extensions import db, migrate


def create_app(config_object=Config, **overrides) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(config_object)
    app.config.update(overrides)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Register blueprints
    from .routes.system import system_bp
    from .routes.auth import auth_bp
    from .routes.inventory import inventory_bp
    from .routes.sales import sales_bp
    from .routes.orders import orders_bp
    from .routes.cash import cash_bp
    from .routes.expenses import expenses_bp
    from .routes.purchases import purchases_bp
    from .routes.notifications import notifications_bp
    from .routes.returns import returns_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(inventory_bp)
    app.register_blueprint(sales_bp)
    app.register_blueprint(orders_bp)
    app.register_blueprint(cash_bp)
    app.register_blueprint(expenses_bp)
    app.register_blueprint(purchases_bp)
    app.register_blueprint(notifications_bp)
    app.register_blueprint(returns_bp)

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        if origin in app.config.get("CORS_ALLOWED_ORIGINS", ()):
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Headers"] = "Authorization, Content-Type"
            response.headers["Access-Control-Allow-Methods"] = "GET,POST,PUT,DELETE,PATCH,OPTIONS"
        return response

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    if app.config.get("CASH_AUTO_OPEN_ON_START"):
        _auto_open_cash_session(app)

    return app


def _auto_open_cash_session(app: Flask) -> None:
    from sqlalchemy.exc import SQLAlchemyError

    from .errors import LedgerError
    from .services.cash_service import ensure_primary_session

    with app.app_context():
        try:
            session = ensure_primary_session()
        except (LedgerError, SQLAlchemyError):
            # Tables may not exist yet (before `flask system init` / migrations)
            app.logger.warning("Could not auto-open cash session", exc_info=True)
            return
        if session is not None:
            app.logger.info("Cash session %s is open for the primary warehouse", session.id)
