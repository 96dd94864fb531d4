import logging

from flask import Flask
from config import Config

from models import db
from flask_migrate import Migrate
from security.usage_limit import UsageLimiter
from security.lockout import LockoutTracker
from security.two_factor import TwoFactorManager


def create_app(config_object=Config, clock=None):
    app = Flask(__name__)
    app.config.from_object(config_object)

    logging.basicConfig(
        level=app.config.get("LOG_LEVEL", "INFO"),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

    # Database init
    db.init_app(app)

    # Migrations
    Migrate(app, db)

    # Guard services; each holds the scoped session, a clock and its settings
    app.extensions["usage_limiter"] = UsageLimiter.from_config(db.session, app.config, clock=clock)
    app.extensions["lockout_tracker"] = LockoutTracker.from_config(db.session, app.config, clock=clock)
    app.extensions["two_factor"] = TwoFactorManager.from_config(db.session, app.config, clock=clock)

    register_cli(app)

    return app

#-------------------------
import click
from models.user import User
from utils.roles import UserRole

def register_cli(app):
    @app.cli.command("unlock-account")
    @click.argument("user_id", type=int)
    def unlock_account(user_id):
        """Clear a login lockout (admin override)."""
        if db.session.get(User, user_id) is None:
            click.echo("User not found")
            return
        if app.extensions["lockout_tracker"].unlock_account(user_id):
            click.echo(f"User {user_id} unlocked")
        else:
            click.echo("Unlock failed, see logs")

    @app.cli.command("usage")
    @click.argument("user_id", type=int)
    def show_usage(user_id):
        """Print today's usage per service for a user."""
        user = db.session.get(User, user_id)
        if user is None:
            click.echo("User not found")
            return
        summary = app.extensions["usage_limiter"].usage_summary(user)
        if summary.exempt:
            click.echo(f"{user.email} is exempt from usage limits")
            return
        for item in summary.services:
            click.echo(f"{item.service}: {item.current_usage}/{item.limit} (remaining {item.remaining})")

    @app.cli.command("set-role")
    @click.argument("email")
    @click.argument("role", type=click.Choice([r.value for r in UserRole]))
    def set_role(email, role):
        """Change a user's role by email (bootstrap)."""
        user = User.query.filter_by(email=email.strip().lower()).first()
        if not user:
            click.echo("User not found")
            return
        user.role = UserRole(role)
        db.session.commit()
        click.echo(f"{user.email} is now {role}")

#-------------------------




if __name__ == "__main__":
    app = create_app()
    # Run locally
    app.run(host="127.0.0.1", port=5002)
