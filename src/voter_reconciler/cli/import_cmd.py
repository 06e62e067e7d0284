"""Import CLI commands for voter extracts and rollbacks."""

import asyncio
import uuid
from pathlib import Path

import typer
from tqdm import tqdm

from voter_reconciler.core.progress import ProgressSubscription

import_app = typer.Typer()


async def _render_progress(subscription: ProgressSubscription) -> None:
    """Drive a tqdm bar from a run's progress events until the terminal event."""
    with tqdm(total=0, unit="rows", desc="Importing", leave=True) as pbar:
        async for event in subscription:
            if event.progress is None:
                continue
            snapshot = event.progress
            if pbar.total != snapshot.total_rows:
                pbar.total = snapshot.total_rows
                pbar.refresh()
            pbar.update(snapshot.processed - pbar.n)
            pbar.set_postfix(
                chunk=f"{snapshot.current_chunk}/{snapshot.total_chunks}",
                created=snapshot.created,
                updated=snapshot.updated,
                errors=snapshot.errors,
            )


@import_app.command("contacts")
def import_contacts(
    file: Path = typer.Argument(  # noqa: B008
        ..., help="Voter extract workbook (.xlsx only; legacy .xls is not supported)", exists=True
    ),
    dry_run: bool = typer.Option(False, "--dry-run", help="Classify and count without writing"),  # noqa: B008
    batch_size: int | None = typer.Option(None, "--batch-size", min=1, help="Rows per chunk"),  # noqa: B008
    overwrite_user_data: bool = typer.Option(  # noqa: B008
        False, "--overwrite-user-data", help="Also overwrite fields campaign staff edited by hand"
    ),
    user: str | None = typer.Option(None, "--user", help="Name recorded as the run's initiator"),  # noqa: B008
) -> None:
    """Import a voter registration extract into the contacts table."""
    from voter_reconciler.schemas.imports import ImportOptions

    options = ImportOptions(dry_run=dry_run, batch_size=batch_size, overwrite_user_data=overwrite_user_data)
    asyncio.run(_import_contacts(file, options, user))


async def _import_contacts(file_path: Path, options, user: str | None) -> None:  # type: ignore[no-untyped-def]
    """Async implementation of contact import."""
    from voter_reconciler.core.config import get_settings
    from voter_reconciler.core.database import session_scope
    from voter_reconciler.core.progress import ProgressBroker
    from voter_reconciler.services.import_service import ImportFailedError, process_contact_import

    settings = get_settings()

    broker = ProgressBroker(queue_size=settings.progress_queue_size)
    run_id = uuid.uuid4()
    subscription = broker.subscribe(str(run_id))
    renderer = asyncio.create_task(_render_progress(subscription))

    try:
        async with session_scope(settings.database_url, schema=settings.database_schema) as session:
            try:
                summary = await process_contact_import(
                    session,
                    file_path.read_bytes(),
                    file_name=file_path.name,
                    options=options,
                    broker=broker,
                    run_id=run_id,
                    triggered_by=user,
                    settings=settings,
                )
            except ImportFailedError as e:
                await renderer
                typer.echo(f"\nImport failed: {e}", err=True)
                if e.rolled_back:
                    typer.echo("Committed chunks were rolled back.", err=True)
                elif e.summary.rollback_id:
                    typer.echo(f"Roll back manually with: import rollback {e.summary.rollback_id}", err=True)
                raise typer.Exit(code=1) from e

        await renderer
        label = "Dry run" if summary.dry_run else "Import"
        typer.echo(f"\n{label} completed: {summary.run_id}")
        typer.echo(f"  Total rows:   {summary.total_rows}")
        typer.echo(f"  Processed:    {summary.processed}")
        typer.echo(f"  Created:      {summary.created}")
        typer.echo(f"  Updated:      {summary.updated}")
        typer.echo(f"  Skipped:      {summary.skipped}")
        typer.echo(f"  Duplicates:   {summary.duplicates}")
        typer.echo(f"  Errors:       {summary.errors}")
        typer.echo(f"  Rows/second:  {summary.rows_per_second}")
        if summary.rollback_id:
            typer.echo(f"  Rollback ID:  {summary.rollback_id}")
        for message in summary.error_messages[:20]:
            typer.echo(f"    {message}")
        if len(summary.error_messages) > 20:
            typer.echo(f"    ... and {len(summary.error_messages) - 20} more")
    finally:
        if not renderer.done():
            renderer.cancel()
        broker.unsubscribe(subscription)


@import_app.command("rollback")
def rollback(
    rollback_id: str = typer.Argument(..., help="Rollback ID printed by a completed import"),
) -> None:
    """Reverse the writes of a completed import."""
    asyncio.run(_rollback(rollback_id))


async def _rollback(rollback_id: str) -> None:
    """Async implementation of import rollback."""
    from voter_reconciler.core.config import get_settings
    from voter_reconciler.core.database import session_scope
    from voter_reconciler.services.rollback_service import RollbackNotFoundError, rollback_import

    settings = get_settings()

    async with session_scope(settings.database_url, schema=settings.database_schema) as session:
        try:
            result = await rollback_import(session, rollback_id, batch_size=settings.rollback_batch_size)
        except RollbackNotFoundError as e:
            typer.echo(f"Error: {e}", err=True)
            raise typer.Exit(code=1) from e

    typer.echo(f"Rollback {'completed' if result.success else 'finished with unresolved entries'}:")
    typer.echo(f"  Reversed:     {result.reversed}")
    typer.echo(f"  Unresolved:   {len(result.unresolved)}")
    for entry in result.unresolved:
        typer.echo(f"    #{entry.sequence} {entry.operation} {entry.system_id or ''}: {entry.reason}")
    if not result.success:
        raise typer.Exit(code=1)


@import_app.command("purge-rollback")
def purge_rollback(
    days: int | None = typer.Option(None, "--days", min=1, help="Retention in days (default from settings)"),
) -> None:
    """Delete rollback log entries past the retention window."""
    asyncio.run(_purge_rollback(days))


async def _purge_rollback(days: int | None) -> None:
    """Async implementation of rollback log purge."""
    from voter_reconciler.core.config import get_settings
    from voter_reconciler.core.database import session_scope
    from voter_reconciler.services.rollback_service import purge_expired_rollback_entries

    settings = get_settings()

    async with session_scope(settings.database_url, schema=settings.database_schema) as session:
        deleted = await purge_expired_rollback_entries(
            session, retention_days=days or settings.rollback_retention_days
        )
    typer.echo(f"Purged {deleted} rollback entries")


@import_app.command("runs")
def list_runs(
    status: str | None = typer.Option(None, "--status", help="Filter by run status"),
    limit: int = typer.Option(20, "--limit", min=1, help="Number of runs to show"),
) -> None:
    """List recent import runs."""
    asyncio.run(_list_runs(status, limit))


async def _list_runs(status: str | None, limit: int) -> None:
    """Async implementation of import run listing."""
    from voter_reconciler.core.config import get_settings
    from voter_reconciler.core.database import session_scope
    from voter_reconciler.schemas.imports import ImportRunResponse
    from voter_reconciler.services.import_service import list_import_runs

    settings = get_settings()

    async with session_scope(settings.database_url, schema=settings.database_schema) as session:
        runs, total = await list_import_runs(session, status=status, page_size=limit)
        infos = [ImportRunResponse.model_validate(run) for run in runs]

    typer.echo(f"{total} import run(s)")
    for info in infos:
        typer.echo(
            f"  {info.id}  {info.status:<12} {info.file_name}  "
            f"created={info.records_created or 0} updated={info.records_updated or 0} "
            f"errors={info.records_failed or 0} rollback={info.rollback_id or '-'}"
        )
