"""Upsert service — applies one classified chunk and logs how to reverse it."""

import uuid
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from loguru import logger
from sqlalchemy import insert
from sqlalchemy.ext.asyncio import AsyncSession

from voter_reconciler.lib.importer.normalizer import ProcessedRecord
from voter_reconciler.models.rollback_entry import RollbackEntry
from voter_reconciler.services.contact_store import (
    encode_field_value,
    insert_contacts,
    insert_related_rows,
    update_contact_fields,
)

# Written on every applied update in addition to the approved fields
UPDATE_BOOKKEEPING_FIELDS: tuple[str, ...] = ("last_public_update", "last_updated_by")


@dataclass
class ChunkWriteResult:
    """Counts of writes issued for one chunk."""

    created: int = 0
    updated: int = 0
    entries: int = 0


def _encode_image(values: dict[str, Any]) -> dict[str, Any]:
    return {name: encode_field_value(value) for name, value in values.items()}


async def apply_chunk(
    session: AsyncSession,
    creates: Sequence[ProcessedRecord],
    updates: Sequence[ProcessedRecord],
    *,
    rollback_id: str,
    actor: str,
    sequence_start: int,
    run_id: uuid.UUID | None = None,
    now: datetime | None = None,
) -> ChunkWriteResult:
    """Write one chunk's creates and updates plus their rollback entries.

    Runs inside the caller's transaction; the caller commits or rolls back
    the chunk as a unit.

    Args:
        session: Database session.
        creates: New contacts, each with optional phone and alias.
        updates: Existing contacts with ``existing_id``, ``changed_fields``
            and ``pre_image`` set.
        rollback_id: Rollback log handle for the run.
        actor: Writer recorded in ``last_updated_by``.
        sequence_start: First rollback sequence number to use.
        run_id: Import run the entries belong to.
        now: Write timestamp.

    Returns:
        ChunkWriteResult with created/updated counts and entries written.
    """
    now = now or datetime.now(UTC)
    entries: list[dict[str, Any]] = []
    sequence = sequence_start

    if creates:
        ids = await insert_contacts(session, [record.contact for record in creates])
        phones: list[dict[str, Any]] = []
        aliases: list[dict[str, Any]] = []
        for record in creates:
            contact_id = ids[record.system_id]
            if record.phone:
                phones.append({**record.phone, "contact_id": contact_id})
            if record.alias:
                aliases.append({**record.alias, "contact_id": contact_id})
            entries.append(
                {
                    "rollback_id": rollback_id,
                    "run_id": run_id,
                    "sequence": sequence,
                    "operation": "create",
                    "contact_id": contact_id,
                    "system_id": record.system_id,
                    "pre_image": None,
                    "post_image": None,
                    "created_at": now,
                }
            )
            sequence += 1
        await insert_related_rows(session, phones=phones, aliases=aliases)

    pending: list[tuple[uuid.UUID, dict[str, Any]]] = []
    for record in updates:
        values = {name: record.contact[name] for name in record.changed_fields}
        values["last_public_update"] = record.contact.get("last_public_update") or now
        values["last_updated_by"] = actor
        pending.append((record.existing_id, {**values, "updated_at": now}))
        entries.append(
            {
                "rollback_id": rollback_id,
                "run_id": run_id,
                "sequence": sequence,
                "operation": "update",
                "contact_id": record.existing_id,
                "system_id": record.system_id,
                "pre_image": _encode_image(record.pre_image),
                "post_image": _encode_image(values),
                "created_at": now,
            }
        )
        sequence += 1
    if pending:
        await update_contact_fields(session, pending)

    if entries:
        await session.execute(insert(RollbackEntry), entries)

    logger.debug(f"Chunk writes: {len(creates)} created, {len(updates)} updated, {len(entries)} rollback entries")
    return ChunkWriteResult(created=len(creates), updated=len(updates), entries=len(entries))
