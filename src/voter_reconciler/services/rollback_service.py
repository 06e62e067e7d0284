"""Rollback service — reverse a completed import from its rollback log.

Entries are replayed newest first.  Each entry is reversed inside its own
SAVEPOINT and marked ``reversed_at``; work is committed every
``batch_size`` entries, so an interrupted rollback can be re-run
and resumes with the entries still pending.
"""

import uuid
from datetime import UTC, datetime, timedelta

from loguru import logger
from sqlalchemy import delete, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from voter_reconciler.models.import_run import ImportRun
from voter_reconciler.models.rollback_entry import RollbackEntry
from voter_reconciler.schemas.imports import RollbackResult, UnresolvedRollbackEntry
from voter_reconciler.services.contact_store import (
    decode_field_value,
    delete_contacts,
    encode_field_value,
    fetch_contact_values,
    update_contact_fields,
)


class RollbackNotFoundError(LookupError):
    """Raised when no import is known under a rollback ID."""


async def _reverse_update(
    session: AsyncSession,
    contact_id: uuid.UUID,
    pre_image: dict,
    post_image: dict,
    now: datetime,
) -> str | None:
    """Restore pre-images for fields still holding the value the import wrote.

    Returns:
        A reason string when the entry could not be fully reversed, else None.
    """
    current = await fetch_contact_values(session, contact_id, pre_image)
    if current is None:
        return "contact no longer exists"

    restore = {}
    edited_since = []
    for name, old_value in pre_image.items():
        if name in post_image and encode_field_value(current[name]) != post_image[name]:
            edited_since.append(name)
            continue
        restore[name] = decode_field_value(name, old_value)

    if restore:
        await update_contact_fields(session, [(contact_id, {**restore, "updated_at": now})])
    if edited_since:
        return f"fields changed since import: {', '.join(sorted(edited_since))}"
    return None


async def rollback_import(
    session: AsyncSession,
    rollback_id: str,
    *,
    batch_size: int = 500,
) -> RollbackResult:
    """Reverse every not-yet-reversed write logged under ``rollback_id``.

    Updates get their pre-images back unless the field was changed after the
    import; created contacts are deleted with their phones and aliases.
    Failures are collected, not raised.

    Args:
        session: Database session.
        rollback_id: Rollback handle returned by the import.
        batch_size: Entries per commit.

    Returns:
        RollbackResult with the reversed count and unresolved entries.

    Raises:
        RollbackNotFoundError: If nothing was ever logged or run under this ID.
    """
    result = await session.execute(
        select(
            RollbackEntry.id,
            RollbackEntry.sequence,
            RollbackEntry.operation,
            RollbackEntry.contact_id,
            RollbackEntry.system_id,
            RollbackEntry.pre_image,
            RollbackEntry.post_image,
        )
        .where(RollbackEntry.rollback_id == rollback_id, RollbackEntry.reversed_at.is_(None))
        .order_by(RollbackEntry.sequence.desc())
    )
    pending = result.all()

    run = (await session.execute(select(ImportRun).where(ImportRun.rollback_id == rollback_id))).scalar_one_or_none()
    if not pending and run is None:
        known = await session.execute(select(RollbackEntry.id).where(RollbackEntry.rollback_id == rollback_id).limit(1))
        if known.scalar_one_or_none() is None:
            msg = f"No import found for rollback ID {rollback_id}"
            raise RollbackNotFoundError(msg)

    logger.info(f"Rolling back import {rollback_id}: {len(pending)} pending entries")

    reversed_count = 0
    unresolved: list[UnresolvedRollbackEntry] = []
    since_commit = 0

    for entry in pending:
        now = datetime.now(UTC)
        reason: str | None = None
        try:
            async with session.begin_nested():
                if entry.operation == "create":
                    await delete_contacts(session, [entry.contact_id])
                else:
                    reason = await _reverse_update(
                        session, entry.contact_id, entry.pre_image or {}, entry.post_image or {}, now
                    )
                await session.execute(
                    update(RollbackEntry).where(RollbackEntry.id == entry.id).values(reversed_at=now)
                )
        except SQLAlchemyError as exc:
            logger.error(f"Rollback {rollback_id}: entry {entry.sequence} failed: {type(exc).__name__}")
            unresolved.append(
                UnresolvedRollbackEntry(
                    sequence=entry.sequence,
                    operation=entry.operation,
                    system_id=entry.system_id,
                    reason=f"database error: {type(exc).__name__}",
                )
            )
            continue

        reversed_count += 1
        if reason is not None:
            logger.warning(f"Rollback {rollback_id}: entry {entry.sequence} ({entry.system_id}) {reason}")
            unresolved.append(
                UnresolvedRollbackEntry(
                    sequence=entry.sequence,
                    operation=entry.operation,
                    system_id=entry.system_id,
                    reason=reason,
                )
            )

        since_commit += 1
        if since_commit >= batch_size:
            await session.commit()
            since_commit = 0

    success = not unresolved
    if run is not None and success:
        run.status = "rolled_back"
        run.rolled_back_at = datetime.now(UTC)
    await session.commit()

    logger.info(
        f"Rollback {rollback_id} finished: {reversed_count} reversed, {len(unresolved)} unresolved"
    )
    return RollbackResult(
        rollback_id=rollback_id,
        success=success,
        reversed=reversed_count,
        unresolved=unresolved,
    )


async def purge_expired_rollback_entries(
    session: AsyncSession,
    *,
    retention_days: int = 30,
    now: datetime | None = None,
) -> int:
    """Delete rollback entries older than the retention window.

    Args:
        session: Database session.
        retention_days: Age limit in days.
        now: Reference time.

    Returns:
        Number of entries deleted.
    """
    cutoff = (now or datetime.now(UTC)) - timedelta(days=retention_days)
    result = await session.execute(delete(RollbackEntry).where(RollbackEntry.created_at < cutoff))
    await session.commit()
    logger.info(f"Purged {result.rowcount} rollback entries older than {retention_days} days")
    return result.rowcount
