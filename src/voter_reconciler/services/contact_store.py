"""Contact store — bulk lookup, insert, update, and delete of contact rows.

Every function runs inside the caller's transaction and never commits.
"""

import uuid
from collections.abc import Collection, Iterable, Mapping
from dataclasses import dataclass, field
from datetime import UTC, date, datetime
from typing import Any

from loguru import logger
from sqlalchemy import delete, insert, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from voter_reconciler.lib.importer.identifiers import DEFAULT_SYSTEM_ID_LENGTH, derive_system_id
from voter_reconciler.lib.importer.normalizer import SYSTEM_UPDATABLE_FIELDS
from voter_reconciler.models.contact import Contact, ContactAlias, ContactPhone
from voter_reconciler.models.contact_field_edit import ContactFieldEdit

# asyncpg has a hard limit of 32767 query parameters
_IN_CLAUSE_BATCH = 5000

# ~30 contact columns * 500 rows = 15,000 params
_INSERT_SUB_BATCH = 500

_SNAPSHOT_COLUMNS = (
    Contact.id,
    Contact.system_id,
    Contact.voter_id_hash,
    Contact.last_updated_by,
    *(getattr(Contact, name) for name in SYSTEM_UPDATABLE_FIELDS),
)


@dataclass
class ExistingLookup:
    """Result of one bulk lookup.

    Attributes:
        matches: Incoming hash → stored contact snapshot (confirmed by full hash).
        collisions: Incoming hash → system ID of a stored contact that shares
            the truncated prefix but not the full hash.
    """

    matches: dict[str, dict[str, Any]] = field(default_factory=dict)
    collisions: dict[str, str] = field(default_factory=dict)


async def lookup_existing_contacts(
    session: AsyncSession,
    hashes: Collection[str],
    id_length: int = DEFAULT_SYSTEM_ID_LENGTH,
) -> ExistingLookup:
    """Find stored contacts for a chunk of identifier hashes.

    Issues one SELECT per 5,000 hashes, matching on the derived system ID or
    the full hash.  A contact is accepted only when its stored full hash
    equals the incoming one.

    Args:
        session: Database session.
        hashes: Full SHA-256 hex digests from the chunk (distinct prefixes).
        id_length: Hash characters embedded in system identifiers.

    Returns:
        ExistingLookup with confirmed matches and prefix collisions.
    """
    lookup = ExistingLookup()
    hash_list = list(dict.fromkeys(hashes))
    for i in range(0, len(hash_list), _IN_CLAUSE_BATCH):
        batch = hash_list[i : i + _IN_CLAUSE_BATCH]
        by_system_id = {derive_system_id(h, id_length): h for h in batch}
        wanted = set(batch)

        result = await session.execute(
            select(*_SNAPSHOT_COLUMNS).where(
                or_(Contact.system_id.in_(list(by_system_id)), Contact.voter_id_hash.in_(batch))
            )
        )
        for row in result.mappings():
            stored_hash = row["voter_id_hash"]
            if stored_hash in wanted:
                lookup.matches[stored_hash] = dict(row)
            elif row["system_id"] in by_system_id:
                lookup.collisions[by_system_id[row["system_id"]]] = row["system_id"]

    for incoming, system_id in list(lookup.collisions.items()):
        if incoming in lookup.matches:
            del lookup.collisions[incoming]
            continue
        logger.warning(f"Identifier collision on {system_id}: stored hash differs from incoming row")

    return lookup


async def insert_contacts(session: AsyncSession, contacts: list[dict[str, Any]]) -> dict[str, uuid.UUID]:
    """Bulk insert contacts.

    Args:
        session: Database session.
        contacts: Contact column dicts, each with a unique ``system_id``.

    Returns:
        Mapping of system ID → generated contact ID.
    """
    ids: dict[str, uuid.UUID] = {}
    for i in range(0, len(contacts), _INSERT_SUB_BATCH):
        batch = contacts[i : i + _INSERT_SUB_BATCH]
        result = await session.execute(insert(Contact).returning(Contact.id, Contact.system_id), batch)
        ids.update({row.system_id: row.id for row in result})
    return ids


async def insert_related_rows(
    session: AsyncSession,
    *,
    phones: list[dict[str, Any]] | None = None,
    aliases: list[dict[str, Any]] | None = None,
) -> None:
    """Bulk insert phone and alias rows that already carry ``contact_id``."""
    for model, rows in ((ContactPhone, phones), (ContactAlias, aliases)):
        if not rows:
            continue
        for i in range(0, len(rows), _INSERT_SUB_BATCH):
            await session.execute(insert(model), rows[i : i + _INSERT_SUB_BATCH])


async def update_contact_fields(
    session: AsyncSession,
    updates: Iterable[tuple[uuid.UUID, Mapping[str, Any]]],
) -> int:
    """Bulk update contacts by primary key, one executemany per distinct field set.

    Args:
        session: Database session.
        updates: (contact ID, field → new value) pairs.  Only the listed
            fields are written.

    Returns:
        Number of contacts updated.
    """
    groups: dict[tuple[str, ...], list[dict[str, Any]]] = {}
    for contact_id, values in updates:
        groups.setdefault(tuple(sorted(values)), []).append({"id": contact_id, **values})

    count = 0
    for rows in groups.values():
        await session.execute(update(Contact), rows)
        count += len(rows)
    return count


async def fetch_contact_values(
    session: AsyncSession,
    contact_id: uuid.UUID,
    fields: Iterable[str],
) -> dict[str, Any] | None:
    """Return the current values of ``fields`` for one contact, or None if it is gone."""
    columns = [getattr(Contact, name) for name in fields]
    result = await session.execute(select(Contact.id, *columns).where(Contact.id == contact_id))
    row = result.mappings().one_or_none()
    return dict(row) if row is not None else None


async def delete_contacts(session: AsyncSession, contact_ids: Collection[uuid.UUID]) -> int:
    """Delete contacts together with their phones, aliases, and edit history.

    Child rows are deleted explicitly so the result does not depend on the
    backend enforcing ``ON DELETE CASCADE``.

    Returns:
        Number of contacts deleted.
    """
    ids = list(contact_ids)
    deleted = 0
    for i in range(0, len(ids), _IN_CLAUSE_BATCH):
        batch = ids[i : i + _IN_CLAUSE_BATCH]
        for model in (ContactPhone, ContactAlias, ContactFieldEdit):
            await session.execute(delete(model).where(model.contact_id.in_(batch)))
        result = await session.execute(delete(Contact).where(Contact.id.in_(batch)))
        deleted += result.rowcount
    return deleted


def encode_field_value(value: Any) -> Any:
    """Convert a contact column value to a JSON-safe value for rollback images.

    Datetimes are stored as naive UTC so values read back from backends
    that drop the offset compare equal.
    """
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(UTC).replace(tzinfo=None)
        return value.isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, uuid.UUID):
        return str(value)
    return value


def decode_field_value(field_name: str, value: Any) -> Any:
    """Inverse of :func:`encode_field_value` for a ``contacts`` column."""
    if value is None:
        return None
    python_type = Contact.__table__.c[field_name].type.python_type
    if python_type is datetime:
        return datetime.fromisoformat(value).replace(tzinfo=UTC)
    if python_type is date:
        return date.fromisoformat(value)
    return value
