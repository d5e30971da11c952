import os
import logging

import click
import stripe
from flask import Flask, jsonify
from werkzeug.exceptions import HTTPException
from werkzeug.security import generate_password_hash

from paycore.config import config_by_name
from paycore.extensions import db, migrate, login_manager, csrf, limiter


def create_app(config_name=None):
    """Application factory."""

    if config_name is None:
        config_name = os.environ.get("FLASK_ENV", "development")

    app = Flask(__name__)
    app.config.from_object(config_by_name[config_name])

    # --- Validate required env vars (skip in testing) ---
    if config_name != "testing":
        try:
            config_by_name[config_name].validate()
        except RuntimeError as e:
            app.logger.warning(f"Config validation: {e}")

    # --- Init extensions ---
    db.init_app(app)
    migrate.init_app(app, db)
    login_manager.init_app(app)
    csrf.init_app(app)
    limiter.init_app(app)

    # Outbound Stripe calls must not hang a request indefinitely
    stripe.default_http_client = stripe.RequestsClient(
        timeout=app.config["PAYMENT_HTTP_TIMEOUT"]
    )

    # --- Import models so Alembic can discover them ---
    with app.app_context():
        from paycore import models  # noqa: F401

    # --- Register blueprints ---
    from paycore.blueprints.auth import auth_bp
    from paycore.blueprints.payments import payments_bp
    from paycore.blueprints.webhooks import webhooks_bp

    app.register_blueprint(auth_bp)
    app.register_blueprint(payments_bp)
    app.register_blueprint(webhooks_bp)

    # Exempt webhooks from CSRF - providers post raw bodies without a token
    csrf.exempt(webhooks_bp)

    # --- Error handlers ---
    @app.errorhandler(HTTPException)
    def http_error(e):
        return jsonify({"success": False, "error": e.name}), e.code

    @app.errorhandler(500)
    def server_error(e):
        return jsonify({"success": False, "error": "Internal server error"}), 500

    # --- CLI commands ---
    register_cli(app)

    # --- Security headers ---
    @app.after_request
    def add_security_headers(response):
        """Add security headers to every response."""
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        response.headers["Cache-Control"] = "no-store"
        # Strict Transport Security (only in production)
        if not app.debug:
            response.headers["Strict-Transport-Security"] = (
                "max-age=31536000; includeSubDomains"
            )
        return response

    # --- Logging ---
    if not app.debug:
        logging.basicConfig(level=logging.INFO)

    return app


def register_cli(app):
    """Register custom CLI commands with the Flask app."""

    @app.cli.command("seed-user")
    @click.option("--email", default="user@numerology.local", help="User email")
    @click.option("--password", default="user12345", help="User password")
    @click.option("--name", default="Demo User", help="Full name")
    def seed_user(email, password, name):
        """Create a login for trying the payment endpoints by hand.

        Usage:
            flask seed-user
            flask seed-user --email me@example.com --password s3cret
        """
        from paycore.models.user import User

        existing = User.query.filter_by(email=email).first()
        if existing:
            click.echo(f"User already exists: {email} (id: {existing.id})")
            return

        user = User(
            email=email,
            password_hash=generate_password_hash(password),
            full_name=name,
        )
        db.session.add(user)
        db.session.commit()
        click.echo(f"Created user: {email} / {password} (id: {user.id})")

    @app.cli.command("sync-pending-orders")
    @click.option("--older-than", default=15, show_default=True,
                  help="Only orders pending for at least this many minutes.")
    def sync_pending_orders(older_than):
        """Poll providers for PENDING orders whose webhook never arrived.

        Usage:
            flask sync-pending-orders
            flask sync-pending-orders --older-than 60
        """
        from paycore.services.order_service import sync_pending_orders as _sync

        checked, updated = _sync(older_than_minutes=older_than, app_config=app.config)
        click.echo(f"Checked {checked} pending orders, updated {updated}.")
