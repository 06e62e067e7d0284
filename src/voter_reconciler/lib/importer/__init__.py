"""Importer library public API.

Provides voter extract reading, identifier hashing, row normalization,
and field change classification.
"""

from voter_reconciler.lib.importer.differ import (
    ChangeClassification,
    FieldProvenancePredicate,
    LastWriterPredicate,
    UserModifiedPredicate,
    classify_changes,
    detect_field_changes,
)
from voter_reconciler.lib.importer.identifiers import (
    derive_system_id,
    hash_voter_id,
    redact_identifiers,
    redact_voter_id,
)
from voter_reconciler.lib.importer.normalizer import (
    COMPARABLE_FIELDS,
    SYSTEM_UPDATABLE_FIELDS,
    USER_PROTECTED_FIELDS,
    InvalidRowError,
    ProcessedRecord,
    normalize_row,
)
from voter_reconciler.lib.importer.reader import (
    REQUIRED_COLUMNS,
    MissingColumnsError,
    RawRow,
    WorkbookError,
    WorkbookReader,
    iter_chunk_ranges,
)

__all__ = [
    "COMPARABLE_FIELDS",
    "REQUIRED_COLUMNS",
    "SYSTEM_UPDATABLE_FIELDS",
    "USER_PROTECTED_FIELDS",
    "ChangeClassification",
    "FieldProvenancePredicate",
    "InvalidRowError",
    "LastWriterPredicate",
    "MissingColumnsError",
    "ProcessedRecord",
    "RawRow",
    "UserModifiedPredicate",
    "WorkbookError",
    "WorkbookReader",
    "classify_changes",
    "derive_system_id",
    "detect_field_changes",
    "hash_voter_id",
    "iter_chunk_ranges",
    "normalize_row",
    "redact_identifiers",
    "redact_voter_id",
]
