"""Provenance service — which contact fields campaign staff have edited by hand."""

import uuid
from collections.abc import Collection, Mapping
from datetime import UTC, datetime
from typing import Any

from loguru import logger
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from voter_reconciler.lib.importer.differ import (
    FieldProvenancePredicate,
    LastWriterPredicate,
    UserModifiedPredicate,
)
from voter_reconciler.models.contact import Contact
from voter_reconciler.models.contact_field_edit import ContactFieldEdit

# asyncpg has a hard limit of 32767 query parameters
_IN_CLAUSE_BATCH = 5000

# Columns a human edit may not touch through record_user_edit
_NON_EDITABLE_FIELDS = frozenset(
    {"id", "system_id", "voter_id_hash", "voter_id_redacted", "created_at", "updated_at", "created_by"}
)


async def load_edited_fields(
    session: AsyncSession,
    contact_ids: Collection[uuid.UUID],
) -> dict[uuid.UUID, set[str]]:
    """Load hand-edited field names for a set of contacts.

    Args:
        session: Database session.
        contact_ids: Contacts to look up.

    Returns:
        Mapping of contact ID → names of fields a human has edited.
    """
    edited: dict[uuid.UUID, set[str]] = {}
    ids = list(contact_ids)
    for i in range(0, len(ids), _IN_CLAUSE_BATCH):
        batch = ids[i : i + _IN_CLAUSE_BATCH]
        result = await session.execute(
            select(ContactFieldEdit.contact_id, ContactFieldEdit.field_name).where(
                ContactFieldEdit.contact_id.in_(batch)
            )
        )
        for contact_id, field_name in result.all():
            edited.setdefault(contact_id, set()).add(field_name)
    return edited


async def build_user_modified_predicate(
    session: AsyncSession,
    strategy: str,
    contact_ids: Collection[uuid.UUID],
    *,
    import_actor: str,
) -> UserModifiedPredicate:
    """Build the configured user-modified predicate for one chunk.

    Args:
        session: Database session.
        strategy: ``provenance`` or ``last_writer``.
        contact_ids: Existing contacts matched in the chunk.
        import_actor: Writer name the import records.

    Returns:
        A predicate usable by ``classify_changes``.

    Raises:
        ValueError: If the strategy is unknown.
    """
    if strategy == "last_writer":
        return LastWriterPredicate(import_actor)
    if strategy == "provenance":
        edited = await load_edited_fields(session, contact_ids) if contact_ids else {}
        return FieldProvenancePredicate(edited)
    msg = f"Unknown user_modified_strategy: {strategy}"
    raise ValueError(msg)


async def record_user_edit(
    session: AsyncSession,
    contact_id: uuid.UUID,
    fields: Mapping[str, Any],
    user: str,
) -> Contact:
    """Apply a human edit to a contact and record per-field provenance.

    Args:
        session: Database session.
        contact_id: Contact being edited.
        fields: Field name → new value.
        user: Name of the person making the edit.

    Returns:
        The refreshed Contact.

    Raises:
        ValueError: If a field is unknown or not editable, or the contact does not exist.
    """
    columns = Contact.__table__.c
    invalid = sorted(name for name in fields if name not in columns or name in _NON_EDITABLE_FIELDS)
    if invalid:
        msg = f"Fields cannot be edited: {', '.join(invalid)}"
        raise ValueError(msg)

    now = datetime.now(UTC)
    result = await session.execute(
        update(Contact)
        .where(Contact.id == contact_id)
        .values(**fields, last_updated_by=user, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        msg = f"Contact {contact_id} not found"
        raise ValueError(msg)

    existing = await session.execute(
        select(ContactFieldEdit).where(
            ContactFieldEdit.contact_id == contact_id,
            ContactFieldEdit.field_name.in_(list(fields)),
        )
    )
    by_field = {edit.field_name: edit for edit in existing.scalars().all()}
    for name in fields:
        edit = by_field.get(name)
        if edit is None:
            session.add(ContactFieldEdit(contact_id=contact_id, field_name=name, edited_by=user, edited_at=now))
        else:
            edit.edited_by = user
            edit.edited_at = now

    await session.commit()
    logger.info(f"Recorded edit of {len(fields)} field(s) on contact {contact_id} by {user}")

    contact = await session.get(Contact, contact_id, populate_existing=True)
    return contact
