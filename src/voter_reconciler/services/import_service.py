"""Import service — orchestrates chunked voter extract reconciliation with progress and auto-rollback."""

import math
import time
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime

from loguru import logger
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from voter_reconciler.core.config import Settings, get_settings
from voter_reconciler.core.progress import ProgressBroker
from voter_reconciler.core.reclaim import GarbageCollectCheckpoint, ReclamationCheckpoint, peak_memory_mb
from voter_reconciler.lib.importer import (
    InvalidRowError,
    ProcessedRecord,
    RawRow,
    WorkbookReader,
    classify_changes,
    iter_chunk_ranges,
    normalize_row,
    redact_identifiers,
    redact_voter_id,
)
from voter_reconciler.lib.importer.identifiers import clean_voter_id
from voter_reconciler.lib.importer.reader import VOTER_ID_COLUMN
from voter_reconciler.models.import_run import ImportRun
from voter_reconciler.schemas.imports import ImportOptions, ImportSummary
from voter_reconciler.schemas.progress import ImportPhase, ProgressEvent, ProgressSnapshot
from voter_reconciler.services.contact_store import lookup_existing_contacts
from voter_reconciler.services.provenance_service import build_user_modified_predicate
from voter_reconciler.services.rollback_service import rollback_import
from voter_reconciler.services.upsert_service import UPDATE_BOOKKEEPING_FIELDS, apply_chunk

# Error messages kept on the run record
_MAX_ERROR_LOG = 1000


class ImportFailedError(Exception):
    """Raised when an import run aborts as a whole.

    Attributes:
        summary: Counters at the moment of failure.
        rolled_back: Whether committed chunks were reversed automatically.
    """

    def __init__(self, message: str, summary: ImportSummary, *, rolled_back: bool = False) -> None:
        super().__init__(message)
        self.summary = summary
        self.rolled_back = rolled_back


@dataclass
class ImportProgress:
    """Mutable run counters; published as read-only snapshots."""

    total_rows: int = 0
    processed: int = 0
    created: int = 0
    updated: int = 0
    skipped: int = 0
    duplicates: int = 0
    errors: int = 0
    current_chunk: int = 0
    total_chunks: int = 0
    phase: ImportPhase = "parsing"
    started_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    started_monotonic: float = field(default_factory=time.monotonic)
    eta_seconds: float | None = None
    error_messages: list[str] = field(default_factory=list)

    @property
    def elapsed_seconds(self) -> float:
        return time.monotonic() - self.started_monotonic

    @property
    def rows_per_second(self) -> float:
        elapsed = self.elapsed_seconds
        return round(self.processed / elapsed, 1) if elapsed > 0 else 0.0

    def add_error(self, message: str) -> None:
        self.errors += 1
        self.add_message(message)

    def add_message(self, message: str) -> None:
        """Record a row-level message without counting it as an error."""
        if len(self.error_messages) < _MAX_ERROR_LOG:
            self.error_messages.append(message)

    def snapshot(self) -> ProgressSnapshot:
        return ProgressSnapshot(
            total_rows=self.total_rows,
            processed=self.processed,
            created=self.created,
            updated=self.updated,
            skipped=self.skipped,
            duplicates=self.duplicates,
            errors=self.errors,
            current_chunk=self.current_chunk,
            total_chunks=self.total_chunks,
            phase=self.phase,
            started_at=self.started_at,
            elapsed_seconds=round(self.elapsed_seconds, 3),
            eta_seconds=self.eta_seconds,
            rows_per_second=self.rows_per_second,
            memory_usage_mb=peak_memory_mb(),
        )

    def summary(self, run_id: str, *, rollback_id: str | None, dry_run: bool) -> ImportSummary:
        return ImportSummary(
            run_id=run_id,
            total_rows=self.total_rows,
            processed=self.processed,
            created=self.created,
            updated=self.updated,
            skipped=self.skipped,
            duplicates=self.duplicates,
            errors=self.errors,
            chunks=self.current_chunk,
            elapsed_seconds=round(self.elapsed_seconds, 3),
            rows_per_second=self.rows_per_second,
            rollback_id=rollback_id,
            dry_run=dry_run,
            error_messages=list(self.error_messages),
        )


@dataclass
class _ChunkPlan:
    """Classified rows of one chunk, ready to write."""

    creates: list[ProcessedRecord] = field(default_factory=list)
    updates: list[ProcessedRecord] = field(default_factory=list)


async def create_import_run(
    session: AsyncSession,
    *,
    run_id: uuid.UUID,
    file_name: str,
    options: ImportOptions,
    batch_size: int,
    rollback_id: str,
    triggered_by: str | None = None,
) -> ImportRun:
    """Create a new import run record.

    Args:
        session: Database session.
        run_id: ID for the run (also the progress stream key).
        file_name: Original filename.
        options: Run parameters.
        batch_size: Effective rows per chunk.
        rollback_id: Rollback handle for the run's writes.
        triggered_by: Who started the import.

    Returns:
        The created ImportRun.
    """
    run = ImportRun(
        id=run_id,
        file_name=file_name,
        status="pending",
        dry_run=options.dry_run,
        overwrite_user_data=options.overwrite_user_data,
        batch_size=batch_size,
        rollback_id=rollback_id,
        triggered_by=triggered_by,
    )
    session.add(run)
    await session.commit()
    await session.refresh(run)
    return run


def _publish(broker: ProgressBroker | None, event: ProgressEvent) -> None:
    if broker is not None:
        broker.publish(event)


def _first_line(exc: BaseException) -> str:
    lines = str(exc).splitlines()
    return lines[0] if lines else type(exc).__name__


def _row_label(raw: RawRow) -> str:
    voter_id = clean_voter_id(raw.get(VOTER_ID_COLUMN))
    return f"Row {raw.row_number} ({redact_voter_id(voter_id)})" if voter_id else f"Row {raw.row_number}"


async def _plan_chunk(
    session: AsyncSession,
    rows: list[RawRow],
    *,
    progress: ImportProgress,
    settings: Settings,
    options: ImportOptions,
    seen_hashes: set[str],
    seen_system_ids: dict[str, str],
    now: datetime,
) -> _ChunkPlan:
    """Normalize, deduplicate, look up, and classify one chunk of rows."""
    plan = _ChunkPlan()
    normalized: list[ProcessedRecord] = []

    for raw in rows:
        progress.processed += 1
        try:
            record = normalize_row(
                raw, actor=settings.import_actor, now=now, id_length=settings.system_id_hash_length
            )
        except InvalidRowError as e:
            progress.add_error(f"{_row_label(raw)}: {e}")
            continue

        if record.voter_id_hash in seen_hashes:
            progress.duplicates += 1
            progress.add_message(f"Row {record.row_number} ({record.voter_id_redacted}): duplicate voter ID")
            logger.debug(f"Row {record.row_number}: duplicate of an earlier row ({record.voter_id_redacted})")
            continue

        earlier_hash = seen_system_ids.get(record.system_id)
        if earlier_hash is not None and earlier_hash != record.voter_id_hash:
            logger.warning(f"Identifier collision on {record.system_id} within the file")
            progress.add_error(
                f"Row {record.row_number} ({record.voter_id_redacted}): "
                f"system ID {record.system_id} collides with another voter"
            )
            continue

        seen_hashes.add(record.voter_id_hash)
        seen_system_ids[record.system_id] = record.voter_id_hash
        normalized.append(record)

    if not normalized:
        return plan

    lookup = await lookup_existing_contacts(
        session, [r.voter_id_hash for r in normalized], settings.system_id_hash_length
    )
    is_user_modified = await build_user_modified_predicate(
        session,
        settings.user_modified_strategy,
        [existing["id"] for existing in lookup.matches.values()],
        import_actor=settings.import_actor,
    )

    for record in normalized:
        if record.voter_id_hash in lookup.collisions:
            progress.add_error(
                f"Row {record.row_number} ({record.voter_id_redacted}): "
                f"system ID {record.system_id} belongs to a different voter"
            )
            continue

        existing = lookup.matches.get(record.voter_id_hash)
        if existing is None:
            plan.creates.append(record)
            continue

        changes = classify_changes(
            record.contact,
            existing,
            is_user_modified=is_user_modified,
            overwrite_user_data=options.overwrite_user_data,
        )
        if changes.suppressed:
            logger.debug(
                f"Row {record.row_number}: kept hand-edited fields {', '.join(changes.suppressed)}"
            )
        if changes.is_empty:
            progress.skipped += 1
            continue

        record.is_update = True
        record.existing_id = existing["id"]
        record.changed_fields = changes.approved
        record.pre_image = {name: existing.get(name) for name in (*changes.approved, *UPDATE_BOOKKEEPING_FIELDS)}
        plan.updates.append(record)

    return plan


async def process_contact_import(
    session: AsyncSession,
    data: bytes,
    *,
    file_name: str,
    options: ImportOptions | None = None,
    broker: ProgressBroker | None = None,
    run_id: uuid.UUID | None = None,
    reclaim: ReclamationCheckpoint | None = None,
    triggered_by: str | None = None,
    settings: Settings | None = None,
) -> ImportSummary:
    """Reconcile a voter extract workbook into the contacts table.

    Reads the first sheet in fixed-size chunks.  Each chunk is normalized,
    deduplicated against every earlier row of the file, matched against
    stored contacts, classified, and written in its own transaction.  A
    failed chunk is counted as errored and the run continues.  A run-level
    failure reverses every committed chunk before raising.

    Args:
        session: Database session.
        data: Workbook bytes.
        file_name: Original filename.
        options: Run parameters (dry run, batch size, overwrite flag).
        broker: Progress broker to publish events to.
        run_id: Progress stream key and run record ID (generated if omitted).
        reclaim: Checkpoint called after every chunk.
        triggered_by: Who started the import.
        settings: Application settings (loaded from the environment if omitted).

    Returns:
        ImportSummary with final counts.

    Raises:
        ImportFailedError: If the workbook is unreadable, lacks required
            columns, or processing fails outside a chunk transaction.
    """
    settings = settings or get_settings()
    options = options or ImportOptions()
    batch_size = options.batch_size or settings.import_batch_size
    run_id = run_id or uuid.uuid4()
    stream_key = str(run_id)
    with logger.contextualize(run=stream_key[:8]):
        reclaim = reclaim or GarbageCollectCheckpoint(settings.reclaim_every_chunks)
        dry_run = options.dry_run

        progress = ImportProgress()
        rollback_id = None if dry_run else uuid.uuid4().hex
        run: ImportRun | None = None
        if not dry_run:
            run = await create_import_run(
                session,
                run_id=run_id,
                file_name=file_name,
                options=options,
                batch_size=batch_size,
                rollback_id=rollback_id,
                triggered_by=triggered_by,
            )

        mode = "dry run" if dry_run else "import"
        logger.info(f"Starting {mode} of {file_name} (run {stream_key}, batch size {batch_size})")

        seen_hashes: set[str] = set()
        seen_system_ids: dict[str, str] = {}
        chunk_raw_ids: list[str] = []
        committed_chunks = 0
        sequence = 0
        now = datetime.now(UTC)

        try:
            if run is not None:
                run.status = "running"
                run.started_at = progress.started_at
                await session.commit()

            with WorkbookReader(data) as reader:
                progress.total_rows = reader.total_rows
                progress.total_chunks = math.ceil(progress.total_rows / batch_size)
                if run is not None:
                    run.total_rows = progress.total_rows
                _publish(broker, ProgressEvent(type="progress", run_id=stream_key, progress=progress.snapshot()))
                logger.info(f"{file_name}: {progress.total_rows} data rows in {progress.total_chunks} chunks")

                progress.phase = "processing"
                for chunk_idx, (start, end) in enumerate(iter_chunk_ranges(progress.total_rows, batch_size)):
                    chunk_start = time.monotonic()
                    progress.current_chunk = chunk_idx + 1

                    rows = list(reader.read_range(start, end))
                    chunk_raw_ids = [v for v in (clean_voter_id(r.get(VOTER_ID_COLUMN)) for r in rows) if v]
                    counts_before = (progress.processed, progress.errors)
                    plan = await _plan_chunk(
                        session,
                        rows,
                        progress=progress,
                        settings=settings,
                        options=options,
                        seen_hashes=seen_hashes,
                        seen_system_ids=seen_system_ids,
                        now=now,
                    )
                    if dry_run:
                        progress.created += len(plan.creates)
                        progress.updated += len(plan.updates)
                    elif plan.creates or plan.updates:
                        try:
                            written = await apply_chunk(
                                session,
                                plan.creates,
                                plan.updates,
                                rollback_id=rollback_id,
                                actor=settings.import_actor,
                                sequence_start=sequence,
                                run_id=run_id,
                                now=now,
                            )
                            progress.created += written.created
                            progress.updated += written.updated
                            _record_counts(run, progress)
                            await session.commit()
                            committed_chunks += 1
                            sequence += written.entries
                        except SQLAlchemyError as e:
                            await session.rollback()
                            failed_rows = len(plan.creates) + len(plan.updates)
                            reason = redact_identifiers(_first_line(e), chunk_raw_ids)
                            logger.error(f"Chunk {chunk_idx + 1} (rows {start}-{end}) failed: {reason}")
                            progress.errors += failed_rows
                            progress.add_message(
                                f"Chunk {chunk_idx + 1} (rows {start}-{end}) failed, "
                                f"{failed_rows} rows not written: {reason}"
                            )
                            if run is not None:
                                await session.refresh(run)

                    chunk_elapsed = time.monotonic() - chunk_start
                    remaining = progress.total_chunks - progress.current_chunk
                    progress.eta_seconds = round(progress.elapsed_seconds / progress.current_chunk * remaining, 1)
                    logger.info(
                        f"Chunk {chunk_idx + 1}/{progress.total_chunks}: "
                        f"{progress.processed - counts_before[0]} rows, "
                        f"{progress.errors - counts_before[1]} errors ({chunk_elapsed:.1f}s) | "
                        f"running total: {progress.created} created, {progress.updated} updated, "
                        f"{progress.skipped} skipped, {progress.duplicates} duplicates"
                    )
                    _publish(broker, ProgressEvent(type="progress", run_id=stream_key, progress=progress.snapshot()))
                    reclaim(chunk_idx)

            progress.phase = "completed"
            progress.eta_seconds = 0.0
            if run is not None:
                _record_counts(run, progress)
                run.status = "completed"
                run.completed_at = datetime.now(UTC)
                await session.commit()

        except Exception as e:
            await session.rollback()
            message = redact_identifiers(f"{type(e).__name__}: {e}", chunk_raw_ids)
            logger.error(f"Import of {file_name} failed: {message}")
            progress.phase = "error"
            progress.error_messages.append(message)

            rolled_back = False
            if rollback_id is not None and committed_chunks:
                try:
                    result = await rollback_import(session, rollback_id, batch_size=settings.rollback_batch_size)
                    rolled_back = result.success
                except Exception:
                    logger.exception(f"Automatic rollback of {rollback_id} failed, manual rollback required")
                    await session.rollback()

            if run is not None:
                await session.refresh(run)
                _record_counts(run, progress)
                run.status = "failed"
                run.completed_at = datetime.now(UTC)
                await session.commit()

            summary = progress.summary(stream_key, rollback_id=rollback_id, dry_run=dry_run)
            _publish(
                broker,
                ProgressEvent(
                    type="error", run_id=stream_key, progress=progress.snapshot(), summary=summary, message=message
                ),
            )
            raise ImportFailedError(message, summary, rolled_back=rolled_back) from e

        summary = progress.summary(stream_key, rollback_id=rollback_id, dry_run=dry_run)
        logger.info(
            f"{mode.capitalize()} of {file_name} completed in {summary.elapsed_seconds:.1f}s: "
            f"{summary.processed} processed, {summary.created} created, {summary.updated} updated, "
            f"{summary.skipped} skipped, {summary.duplicates} duplicates, {summary.errors} errors"
        )
        _publish(
            broker,
            ProgressEvent(type="completed", run_id=stream_key, progress=progress.snapshot(), summary=summary),
        )
        return summary


def _record_counts(run: ImportRun | None, progress: ImportProgress) -> None:
    if run is None:
        return
    run.total_rows = progress.total_rows
    run.records_created = progress.created
    run.records_updated = progress.updated
    run.records_skipped = progress.skipped
    run.records_duplicate = progress.duplicates
    run.records_failed = progress.errors
    run.error_log = list(progress.error_messages) or None


async def get_import_run(session: AsyncSession, run_id: uuid.UUID) -> ImportRun | None:
    """Get an import run by ID.

    Args:
        session: Database session.
        run_id: The import run ID.

    Returns:
        The ImportRun or None if not found.
    """
    result = await session.execute(select(ImportRun).where(ImportRun.id == run_id))
    return result.scalar_one_or_none()


async def list_import_runs(
    session: AsyncSession,
    *,
    status: str | None = None,
    page: int = 1,
    page_size: int = 20,
) -> tuple[list[ImportRun], int]:
    """List import runs, newest first.

    Args:
        session: Database session.
        status: Filter by status.
        page: Page number.
        page_size: Items per page.

    Returns:
        Tuple of (runs, total count).
    """
    query = select(ImportRun)
    count_query = select(func.count(ImportRun.id))
    if status:
        query = query.where(ImportRun.status == status)
        count_query = count_query.where(ImportRun.status == status)

    total = (await session.execute(count_query)).scalar_one()
    offset = (page - 1) * page_size
    query = query.order_by(ImportRun.created_at.desc()).offset(offset).limit(page_size)
    result = await session.execute(query)
    return list(result.scalars().all()), total
