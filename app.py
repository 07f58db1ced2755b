from flask import Flask, request, g
from config import Config
from routes import health_bp, auth_bp, admin_bp

from models import db
from flask_migrate import Migrate
from security.csrf import check_csrf
from security.orchestrator import AuthOrchestrator
from utils.auth_context import load_current_principal, error_response
from utils.emailer import SmtpMailer
from utils.logging import configure_logging


def create_app(config_object=Config, mailer=None, clock=None):
    app = Flask(__name__)
    app.config.from_object(config_object)

    # Fail closed: no signing secret, no app
    if not app.config.get("AUTH_SIGNING_SECRET"):
        raise RuntimeError("AUTH_SIGNING_SECRET must be set")

    configure_logging(app.config.get("LOG_LEVEL", "INFO"), app.config.get("LOG_JSON", True))

    # Register routes
    app.register_blueprint(health_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(admin_bp)

    # Database init
    db.init_app(app)

    # Migrations
    Migrate(app, db)

    # Auth core; the mailer is injected so tests can swap it out
    app.extensions["auth_orchestrator"] = AuthOrchestrator.from_config(
        app.config,
        mailer=mailer or SmtpMailer.from_config(app.config),
        clock=clock,
    )

    @app.before_request
    def _load_principal():
        load_current_principal()

    CSRF_EXEMPT_PATHS = {
        "/auth/login",
        "/auth/verify",
        "/auth/resend",
        "/health",
    }

    @app.before_request
    def _csrf_protect():
        # Only protect state-changing requests
        if request.method in ("POST", "PUT", "PATCH", "DELETE"):
            # Exempt auth bootstrap endpoints
            if request.path in CSRF_EXEMPT_PATHS:
                return None

            # Only enforce CSRF when the browser sent the auth cookie
            if getattr(g, "principal", None) is not None and g.auth_via_cookie:
                failure = check_csrf()
                if failure:
                    return error_response(failure)

    @app.after_request
    def add_security_headers(resp):
        resp.headers["X-Content-Type-Options"] = "nosniff"
        resp.headers["X-Frame-Options"] = "DENY"
        resp.headers["Referrer-Policy"] = "no-referrer"
        resp.headers["Cache-Control"] = "no-store"
        resp.headers["Content-Security-Policy"] = "default-src 'none'; frame-ancestors 'none';"
        return resp

    register_cli(app)

    return app

#-------------------------
import click
from models.principal import Principal, Role
from security.password import BCRYPT_MAX_BYTES, hash_password, password_too_long
from utils.emails import normalize_email, is_valid_email


def register_cli(app):
    @app.cli.command("create-principal")
    @click.argument("email")
    @click.option("--role", type=click.Choice([r.value for r in Role]), default=Role.ADMIN.value)
    @click.option("--full-name", default=None)
    @click.password_option()
    def create_principal(email, role, full_name, password):
        """Provision an admin principal (bootstrap)."""
        email = normalize_email(email)
        if not is_valid_email(email):
            raise click.BadParameter("invalid email", param_hint="EMAIL")
        if password_too_long(password):
            raise click.BadParameter(f"at most {BCRYPT_MAX_BYTES} bytes", param_hint="password")
        if Principal.query.filter_by(email=email).first():
            raise click.ClickException(f"{email} already exists")

        principal = Principal(
            email=email,
            full_name=full_name,
            role=Role(role),
            password_hash=hash_password(password),
        )
        db.session.add(principal)
        db.session.commit()
        click.echo(f"{email} created as {role}")

    @app.cli.command("release-lockout")
    @click.argument("email")
    def release_lockout(email):
        """Clear an active lockout for a principal."""
        principal = Principal.query.filter_by(email=normalize_email(email)).first()
        if not principal:
            raise click.ClickException("Principal not found")

        outcome = app.extensions["auth_orchestrator"].release_lockout(principal.id)
        click.echo(f"released {outcome.data['released']} lockout(s) for {principal.email}")

    @app.cli.command("purge-expired")
    @click.option("--retention-days", default=30, show_default=True, type=int)
    def purge_expired(retention_days):
        """Deactivate expired sessions and delete stale attempts and codes."""
        counts = app.extensions["auth_orchestrator"].purge_expired(retention_days)
        for key, value in counts.items():
            click.echo(f"{key}: {value}")

#-------------------------


if __name__ == "__main__":
    app = create_app()
    # Run locally
    app.run(host="127.0.0.1", port=5002)
