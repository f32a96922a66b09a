import logging
import os

import click
from flask import Flask, jsonify, current_app

from config import Config
from routes import health_bp, courts_bp, booking_bp, slots_bp, payments_bp, webhook_bp, admin_bp

from models import db
from models.user import User, Role
from models.refund import RefundStatus
from flask_migrate import Migrate
from services.errors import BookingError
from services.cancellation import retry_pending_refunds
from services.lifecycle import complete_elapsed_bookings
from services.payment_gateway import GATEWAY_EXTENSION, StripeGateway, get_payment_gateway
from utils.clock import CLOCK_EXTENSION, SystemClock, now
from utils.seed import seed_roles
from utils.auth_context import load_current_user
from utils.audit import log_event
from security.session import create_session


def create_app(config_class=Config):
    app = Flask(__name__)
    app.config.from_object(config_class)

    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", app.config.get("LOG_LEVEL", "INFO")),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    app.logger.setLevel(app.config.get("LOG_LEVEL", "INFO"))

    # Register routes
    app.register_blueprint(health_bp)
    app.register_blueprint(courts_bp)
    app.register_blueprint(booking_bp)
    app.register_blueprint(slots_bp)
    app.register_blueprint(payments_bp)
    app.register_blueprint(webhook_bp)
    app.register_blueprint(admin_bp)

    # Database init
    db.init_app(app)

    # Migrations
    Migrate(app, db)

    # Collaborators; tests swap these for fakes
    app.extensions.setdefault(CLOCK_EXTENSION, SystemClock())
    app.extensions.setdefault(GATEWAY_EXTENSION, StripeGateway.from_config(app.config))

    # Seed default roles at startup (safe & idempotent)
    with app.app_context():
        if app.config.get("TESTING"):
            db.create_all()
        seed_roles()

    @app.before_request
    def _load_user():
        load_current_user()

    @app.errorhandler(BookingError)
    def _booking_error(exc):
        if exc.http_status >= 500:
            current_app.logger.error("%s: %s", exc.code, exc.message)
        else:
            current_app.logger.info("Rejected %s: %s", exc.code, exc.message)
        return jsonify(exc.to_dict()), exc.http_status

    @app.after_request
    def add_security_headers(resp):
        resp.headers["X-Content-Type-Options"] = "nosniff"
        resp.headers["X-Frame-Options"] = "DENY"
        resp.headers["Referrer-Policy"] = "no-referrer"
        # JSON API only
        resp.headers["Content-Security-Policy"] = "default-src 'none'; frame-ancestors 'none';"
        return resp

    register_cli(app)

    app.logger.info("Court booking API ready (db=%s)", app.config["SQLALCHEMY_DATABASE_URI"].split("://")[0])
    return app

#-------------------------

def _get_or_create_user(email):
    email = email.strip().lower()
    user = User.query.filter_by(email=email).first()
    if not user:
        user = User(email=email)
        player = Role.query.filter_by(name="PLAYER").first()
        if player:
            user.roles.append(player)
        db.session.add(user)
        db.session.commit()
    return user

def register_cli(app):
    @app.cli.command("make-admin")
    @click.argument("email")
    def make_admin(email):
        """Promote a user to ADMIN by email (bootstrap)."""
        user = User.query.filter_by(email=email.strip().lower()).first()
        if not user:
            click.echo("User not found")
            return

        admin_role = Role.query.filter_by(name="ADMIN").first()
        if not admin_role:
            admin_role = Role(name="ADMIN")
            db.session.add(admin_role)
            db.session.commit()

        if admin_role not in user.roles:
            user.roles.append(admin_role)
            db.session.commit()

        log_event("ROLE_GRANT", user_id=user.id, entity="user", entity_id=user.id, metadata={"role": "ADMIN"})
        click.echo(f"{user.email} promoted to ADMIN")

    @app.cli.command("issue-session")
    @click.argument("email")
    def issue_session(email):
        """Create the user if needed and print a bearer token (dev bootstrap)."""
        user = _get_or_create_user(email)
        token = create_session(user.id, user_agent="flask-cli")
        log_event("SESSION_ISSUE", user_id=user.id, entity="user", entity_id=user.id)
        click.echo(token)

    @app.cli.command("complete-bookings")
    def complete_bookings():
        """Mark confirmed bookings whose end time has passed as COMPLETED."""
        count = complete_elapsed_bookings(now())
        click.echo(f"{count} bookings completed")

    @app.cli.command("retry-refunds")
    @click.option("--limit", default=100, show_default=True, help="Maximum refunds to retry.")
    def retry_refunds(limit):
        """Send PENDING refunds to the payment gateway again."""
        rows = retry_pending_refunds(now(), get_payment_gateway(), limit=limit)
        completed = sum(1 for r in rows if r.status == RefundStatus.COMPLETED)
        click.echo(f"{len(rows)} refunds retried, {completed} completed")

#-------------------------


if __name__ == "__main__":
    app = create_app()
    # Run locally
    app.run(host="127.0.0.1", port=5002)
