"""Field-level change classification for existing contacts.

Decides which system-updatable fields of an existing contact an incoming
row may overwrite.  A differing field is approved only when it has not
been hand-edited, unless the run was started with an explicit override.
"""

import uuid
from collections.abc import Collection, Iterable, Mapping
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Protocol

from voter_reconciler.lib.importer.normalizer import COMPARABLE_FIELDS, SYSTEM_UPDATABLE_FIELDS


class UserModifiedPredicate(Protocol):
    """Answers whether ``field_name`` on ``existing`` was last set by a human."""

    def __call__(self, field_name: str, existing: Mapping[str, Any]) -> bool: ...


class LastWriterPredicate:
    """Treat every field as hand-edited when the record's last writer was not the import.

    This is a whole-record heuristic: a human note edit also protects the
    address.  Prefer :class:`FieldProvenancePredicate` where edit history exists.
    """

    def __init__(self, import_actor: str) -> None:
        self.import_actor = import_actor

    def __call__(self, field_name: str, existing: Mapping[str, Any]) -> bool:
        last_writer = existing.get("last_updated_by")
        return last_writer is not None and last_writer != self.import_actor


class FieldProvenancePredicate:
    """Per-field provenance: a field is protected once a human has edited it."""

    def __init__(self, edited_fields: Mapping[uuid.UUID, Collection[str]]) -> None:
        self.edited_fields = edited_fields

    def __call__(self, field_name: str, existing: Mapping[str, Any]) -> bool:
        return field_name in self.edited_fields.get(existing.get("id"), ())


@dataclass
class ChangeClassification:
    """Outcome of comparing one incoming record with its stored counterpart."""

    approved: list[str] = field(default_factory=list)
    suppressed: list[str] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.approved


def _comparable(value: Any) -> Any:
    if isinstance(value, str):
        value = value.strip()
        return value or None
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return value.isoformat()
    return value


def detect_field_changes(
    existing: Mapping[str, Any],
    incoming: Mapping[str, Any],
    compare_fields: Iterable[str] | None = None,
) -> dict[str, tuple[Any, Any]]:
    """Detect field-level changes between existing and incoming records.

    Args:
        existing: The current database record as a mapping.
        incoming: The incoming import record as a mapping.
        compare_fields: Fields to compare (None = all shared keys).

    Returns:
        Dictionary of field_name → (old_value, new_value) for changed fields.
    """
    if compare_fields is None:
        compare_fields = [k for k in incoming if k in existing and not k.startswith("_")]

    changes = {}
    for field_name in compare_fields:
        old_val = existing.get(field_name)
        new_val = incoming.get(field_name)
        if _comparable(old_val) != _comparable(new_val):
            changes[field_name] = (old_val, new_val)

    return changes


def classify_changes(
    incoming: Mapping[str, Any],
    existing: Mapping[str, Any],
    *,
    is_user_modified: UserModifiedPredicate,
    overwrite_user_data: bool = False,
    compare_fields: Iterable[str] = COMPARABLE_FIELDS,
) -> ChangeClassification:
    """Build the ChangeSet for one existing contact.

    Only fields in ``SYSTEM_UPDATABLE_FIELDS`` are ever approved, whatever
    ``compare_fields`` or ``overwrite_user_data`` say.

    Args:
        incoming: Normalized contact values from the extract.
        existing: Stored contact values (must include ``id`` and ``last_updated_by``).
        is_user_modified: Predicate deciding whether a field was hand-edited.
        overwrite_user_data: Approve hand-edited fields too.
        compare_fields: Fields to consider.

    Returns:
        The approved and suppressed field names, in comparison order.
    """
    result = ChangeClassification()
    allowed = [f for f in compare_fields if f in SYSTEM_UPDATABLE_FIELDS]
    for field_name in detect_field_changes(existing, incoming, allowed):
        if overwrite_user_data or not is_user_modified(field_name, existing):
            result.approved.append(field_name)
        else:
            result.suppressed.append(field_name)
    return result
