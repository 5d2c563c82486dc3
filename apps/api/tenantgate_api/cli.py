"""CLI commands for TenantGate API."""

from datetime import timedelta

import click

from tenantgate_api.db.seed import create_tenant_with_owner, seed_all
from tenantgate_api.db.session import get_session_factory
from tenantgate_api.services.mobile_registry import MobileRegistry


@click.group()
def cli():
    """TenantGate API CLI."""
    pass


@cli.command()
def seed():
    """Seed initial data."""
    click.echo("Seeding initial data...")
    db = get_session_factory()()
    try:
        seed_all(db)
        click.echo("✓ Seed data created.")
    except Exception as e:
        click.echo(f"✗ Error seeding data: {e}", err=True)
        db.rollback()
        raise SystemExit(1)
    finally:
        db.close()


@cli.command("create-tenant")
@click.option("--slug", required=True, help="URL-safe tenant identifier.")
@click.option("--name", required=True, help="Display name.")
@click.option("--email", required=True, help="Owner email.")
@click.option("--password", prompt=True, hide_input=True, confirmation_prompt=True)
@click.option("--country", default=None, help="ISO country code.")
def create_tenant(slug, name, email, password, country):
    """Create a tenant and its owner."""
    db = get_session_factory()()
    try:
        tenant, user = create_tenant_with_owner(db, slug, name, email, password, country=country)
        click.echo(f"✓ Created tenant {tenant.slug} (ID: {tenant.id}) with owner {user.email}")
    except Exception as e:
        click.echo(f"✗ Error creating tenant: {e}", err=True)
        db.rollback()
        raise SystemExit(1)
    finally:
        db.close()


@cli.command("cleanup-provision-tokens")
@click.option("--older-than-days", default=7, show_default=True, type=int)
def cleanup_provision_tokens(older_than_days):
    """Delete provisioning codes that expired long ago."""
    db = get_session_factory()()
    try:
        deleted = MobileRegistry(db).cleanup_expired_provision_tokens(timedelta(days=older_than_days))
        click.echo(f"✓ Deleted {deleted} expired provision token(s).")
    finally:
        db.close()


if __name__ == "__main__":
    cli()
