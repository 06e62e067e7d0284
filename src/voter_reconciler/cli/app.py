"""Typer CLI root application."""

import typer

from voter_reconciler.core.config import get_settings
from voter_reconciler.core.logging import setup_logging

app = typer.Typer(name="voter-reconciler", help="Voter extract reconciliation CLI")


@app.callback()
def _main_callback() -> None:
    """Initialize logging for all CLI commands."""
    settings = get_settings()
    setup_logging(settings.log_level, log_dir=settings.log_dir)


def _register_subcommands() -> None:
    """Register all CLI subcommand groups."""
    from voter_reconciler.cli.db_cmd import db_app
    from voter_reconciler.cli.import_cmd import import_app

    app.add_typer(db_app, name="db", help="Database migration commands")
    app.add_typer(import_app, name="import", help="Voter extract import and rollback commands")


_register_subcommands()
