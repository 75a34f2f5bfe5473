"""Application factory for the pesticide_shop package."""

from __future__ import annotations

import os
from typing import Any, Mapping, Optional

from alembic import command
from alembic.config import Config
from flask import Flask

from .admin import bp as admin_bp
from .app import bp as main_bp, ensure_db_initialized
from .blueprints import daily_inventory_bp, exchanges_bp, reports_bp, returns_bp
from .cashier import bp as cashier_bp
from .config import settings
from .csrf_extension import csrf
from .customers import bp as customers_bp
from .db import configure_engine, create_default_user_if_needed, init_db
from .diagnostics import bp as diagnostics_bp
from .domain import catalog
from .invoices import bp as invoices_bp
from .logging_setup import configure_logging
from .products import bp as products_bp


def run_migrations(app: Flask) -> None:
    alembic_ini_path = os.path.join(app.root_path, "..", "alembic.ini")
    alembic_cfg = Config(alembic_ini_path)
    alembic_cfg.set_main_option("sqlalchemy.url", f"sqlite:///{settings.DB_PATH}")
    command.upgrade(alembic_cfg, "head")


def create_app(config: Optional[Mapping[str, Any]] = None) -> Flask:
    """Create and configure a :class:`Flask` application instance."""

    configure_logging()

    app = Flask(__name__)
    app.secret_key = settings.SECRET_KEY

    if config:
        app.config.update(config)

    configure_engine(settings.DB_PATH)

    csrf.init_app(app)

    app.register_blueprint(main_bp)
    app.register_blueprint(products_bp)
    app.register_blueprint(customers_bp)
    app.register_blueprint(cashier_bp)
    app.register_blueprint(invoices_bp)
    app.register_blueprint(admin_bp)
    app.register_blueprint(returns_bp)
    app.register_blueprint(exchanges_bp)
    app.register_blueprint(daily_inventory_bp)
    app.register_blueprint(reports_bp)
    app.register_blueprint(diagnostics_bp)

    for rule in list(app.url_map.iter_rules()):
        if rule.endpoint.startswith("main."):
            simple_endpoint = rule.endpoint.split(".", 1)[1]
            app.view_functions[simple_endpoint] = app.view_functions[rule.endpoint]
            app.url_map._rules_by_endpoint.setdefault(simple_endpoint, []).append(
                rule
            )

    with app.app_context():
        ensure_db_initialized(app)
        run_migrations(app)
        create_default_user_if_needed(app)
        catalog.refresh_low_stock_gauge()

    @app.after_request
    def apply_security_headers(response):
        """Attach security headers to every response."""

        csp = (
            "default-src 'self'; "
            "img-src 'self' data:; "
            "script-src 'self' 'unsafe-inline' https://cdn.jsdelivr.net; "
            "style-src 'self' 'unsafe-inline' https://cdn.jsdelivr.net; "
            "font-src 'self' https://cdn.jsdelivr.net data:; "
            "connect-src 'self'; "
            "object-src 'none'; "
            "base-uri 'self'; "
            "frame-ancestors 'self'"
        )
        response.headers.setdefault("Content-Security-Policy", csp)
        response.headers.setdefault(
            "Strict-Transport-Security", "max-age=31536000; includeSubDomains"
        )
        response.headers.setdefault("X-Content-Type-Options", "nosniff")
        return response

    @app.cli.command("init-db")
    def init_db_command() -> None:
        """Initialize the application database."""
        with app.app_context():
            ensure_db_initialized(app)
            init_db()
            create_default_user_if_needed(app)

    app.logger.info("Shop application created with database %s", settings.DB_PATH)
    return app
