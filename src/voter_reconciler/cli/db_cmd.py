"""Database migration CLI commands for the contact and import tables."""

import typer
from loguru import logger

db_app = typer.Typer()


def _alembic_config(sql: bool = False):  # noqa: ANN202
    from alembic.config import Config

    config = Config("alembic.ini")
    if sql:
        # Offline mode renders SQL to stdout; keep log lines off it
        config.attributes["configure_logger"] = False
    return config


@db_app.command()
def upgrade(
    revision: str = typer.Argument("head", help="Target revision"),
    sql: bool = typer.Option(False, "--sql", help="Print the migration SQL instead of running it"),
) -> None:
    """Create or migrate the contacts, rollback log, and import run tables."""
    from alembic import command

    if not sql:
        logger.info(f"Upgrading database to {revision}")
    command.upgrade(_alembic_config(sql), revision, sql=sql)
    if not sql:
        logger.info("Database upgrade complete")


@db_app.command()
def downgrade(
    revision: str = typer.Argument("-1", help="Target revision"),
) -> None:
    """Roll back database migrations to the target revision."""
    from alembic import command

    logger.info(f"Downgrading database to {revision}")
    command.downgrade(_alembic_config(), revision)
    logger.info("Database downgrade complete")


@db_app.command()
def current() -> None:
    """Show the current database migration revision."""
    from alembic import command

    command.current(_alembic_config(), verbose=True)
