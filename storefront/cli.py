# storefront/cli.py
import click
from flask.cli import with_appcontext

from .extensions import db
from .model import User
from .services import checkout_service

@click.command("create-admin")
@click.option("--email", required=True)
@click.option("--name", required=True)
@with_appcontext
def create_admin(email, name):
    email = email.strip().lower()
    if User.query.filter_by(email=email).first():
        click.echo("Email already exists"); return
    u = User(email=email, name=name, role="admin", email_verified=True)
    db.session.add(u); db.session.commit()
    click.echo(f"Admin created: {u.id} {u.email}")

@click.command("purge-checkout")
@with_appcontext
def purge_checkout():
    """Drop expired checkout sessions and stale checkout items for every user."""
    sessions, items = checkout_service.purge_all()
    click.echo(f"Purged {sessions} sessions, {items} items")

def register_cli(app):
    app.cli.add_command(create_admin)
    app.cli.add_command(purge_checkout)
