"""CLI commands for COURIER API."""

import json

import click

from courier_api.cleanup.sweeper import run_cleanup
from courier_api.cleanup.tracker import OrphanTracker
from courier_api.db.session import SessionLocal, init_db


@click.group()
def cli():
    """COURIER API CLI."""
    pass


@cli.command("init-db")
def init_db_command():
    """Upgrade the tracking schema to the latest migration."""
    init_db()
    click.echo("✓ Database upgraded to head.")


@cli.command()
@click.option("--dry-run/--no-dry-run", default=None, help="Check the ledger but do not delete anything.")
@click.option("--grace-minutes", type=click.IntRange(min=1), default=None, help="Override the grace window.")
def sweep(dry_run, grace_minutes):
    """Run one cleanup sweep now."""
    db = SessionLocal()
    try:
        result = run_cleanup(db, dry_run=dry_run, grace_window_minutes=grace_minutes)
        click.echo(json.dumps(result.as_dict(), indent=2))
    except Exception as e:
        click.echo(f"✗ Sweep failed: {e}", err=True)
        raise SystemExit(1)
    finally:
        db.close()


@cli.command()
def stats():
    """Show tracked write counts per status."""
    db = SessionLocal()
    try:
        click.echo(json.dumps(OrphanTracker(db).stats(), indent=2))
    finally:
        db.close()


if __name__ == "__main__":
    cli()
