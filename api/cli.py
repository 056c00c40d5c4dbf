# api/cli.py
from datetime import timedelta

import click
from flask import current_app
from flask.cli import with_appcontext

from utils.errors import Conflict
from utils.security import ROLE_ADMIN, hash_password


@click.command("create-admin")
@click.option("--email", required=True)
@click.option("--name", required=True)
@click.option("--password", required=True, prompt=True, hide_input=True, confirmation_prompt=True)
@with_appcontext
def create_admin(email, name, password):
    """Create an admin account; the only way to get one without an existing admin."""
    store = current_app.extensions["credential_store"]
    try:
        user = store.create_user(name=name, email=email, password_hash=hash_password(password), role=ROLE_ADMIN)
    except Conflict:
        raise click.ClickException("Email already exists")
    click.echo(f"Admin created: {user.id} {user.email}")


@click.command("sweep-tokens")
@click.option("--max-age-days", type=int, default=None, help="Override the age threshold (days).")
@with_appcontext
def sweep_tokens(max_age_days):
    """Run the global expired-token sweep and the age-based sweep once."""
    sweeper = current_app.extensions["token_sweeper"]
    report = sweeper.sweep_all()
    max_age = timedelta(days=max_age_days) if max_age_days else None
    age_report = sweeper.sweep_older_than(max_age)
    click.echo(
        f"Expired tokens removed: {report.total_cleaned} from {report.users_processed} users; "
        f"old tokens removed: {age_report.tokens_removed} from {age_report.users_affected} users"
    )


def register_cli(app):
    app.cli.add_command(create_admin)
    app.cli.add_command(sweep_tokens)
