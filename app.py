import logging
import time

from flask import Flask, request
from config import Config
from routes import health_bp, auth_bp

from models import db
from flask_migrate import Migrate
from services.engine import init_engine, get_engine
from security.csrf import require_csrf, refresh_csrf_cookie
from utils.audit import log_event


def create_app(config_object=Config, clock=None, account_exists=None):
    app = Flask(__name__)
    app.config.from_object(config_object)

    logging.basicConfig(
        level=app.config.get("LOG_LEVEL", "INFO"),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    # Register routes
    app.register_blueprint(health_bp)
    app.register_blueprint(auth_bp)

    # Database init
    db.init_app(app)

    # Migrations
    Migrate(app, db)

    engine_kwargs = {"account_exists": account_exists}
    if clock is not None:
        engine_kwargs["clock"] = clock
    init_engine(app, db, **engine_kwargs)

    CSRF_EXEMPT_PATHS = {
    "/health",
    }

    @app.before_request
    def _csrf_protect():
        # Only protect state-changing requests
        if request.method in ("POST", "PUT", "PATCH", "DELETE"):
            if request.path in CSRF_EXEMPT_PATHS:
                return None

            failure = require_csrf(get_engine().csrf)
            if failure:
                log_event("CSRF_FAIL", metadata={"path": request.path})
                return failure

    @app.after_request
    def _refresh_csrf(resp):
        if request.blueprint == "auth":
            refresh_csrf_cookie(resp, get_engine().csrf)
        return resp

    @app.after_request
    def add_security_headers(resp):
        resp.headers["X-Content-Type-Options"] = "nosniff"
        resp.headers["X-Frame-Options"] = "DENY"
        resp.headers["Referrer-Policy"] = "no-referrer"
        resp.headers["Permissions-Policy"] = "geolocation=(), microphone=(), camera=()"
        resp.headers["Content-Security-Policy"] = "default-src 'none'; frame-ancestors 'none';"
        resp.headers["Cache-Control"] = "no-store"
        return resp


    register_cli(app)


    return app

#-------------------------
import click
from utils.branding import register_client

logger = logging.getLogger(__name__)

def register_cli(app):
    @app.cli.command("sweep")
    @click.option("--interval", type=int, default=None,
                  help="Repeat every N seconds instead of running once.")
    @click.option("--loop", is_flag=True,
                  help="Repeat every SWEEP_INTERVAL_SECONDS.")
    def sweep(interval, loop):
        """Delete expired tokens, OTP codes and stale rate-limit hits."""
        if loop and not interval:
            interval = app.config.get("SWEEP_INTERVAL_SECONDS", 300)
        engine = get_engine()
        while True:
            counts = engine.sweep()
            logger.info("Sweep removed %s", counts)
            click.echo(" ".join(f"{name}={count}" for name, count in counts.items()))
            if not interval:
                return
            time.sleep(interval)

    @app.cli.command("register-client")
    @click.argument("client_id")
    @click.argument("brand_name")
    @click.option("--color", default=None, help="Brand color, e.g. #0F2544")
    @click.option("--logo-url", default=None)
    @click.option("--support-email", default=None)
    def register_client_cmd(client_id, brand_name, color, logo_url, support_email):
        """Add or update a trusted client's email branding."""
        register_client(
            client_id,
            brand_name,
            brand_color=color,
            logo_url=logo_url,
            support_email=support_email,
        )
        click.echo(f"{client_id} registered as {brand_name}")

#-------------------------




if __name__ == "__main__":
    app = create_app()
    # Run locally
    app.run(host="127.0.0.1", port=5002)
