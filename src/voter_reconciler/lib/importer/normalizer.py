"""Voter extract row normalization.

Maps one raw spreadsheet row onto the canonical contact record plus the
optional phone and alias rows created alongside a new contact.  Handles
Excel date serials, whitespace, and placeholder tokens that mean "no data".
"""

import math
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any

import pandas as pd
from dateutil.parser import parse as parse_date

from voter_reconciler.lib.importer.identifiers import (
    DEFAULT_SYSTEM_ID_LENGTH,
    clean_voter_id,
    derive_system_id,
    hash_voter_id,
    redact_voter_id,
)
from voter_reconciler.lib.importer.reader import VOTER_ID_COLUMN, RawRow

# Voter extract header → contact field for plain text columns
TEXT_COLUMN_MAP: dict[str, str] = {
    "First_Name": "first_name",
    "Middle_Name": "middle_name",
    "Last_Name": "last_name",
    "Formatted_Address": "street_address",
    "City_Name": "city",
    "Zip_Code": "zip_code",
    "Party": "party",
    "Voter_Status": "voter_status",
    "Congressional_District": "district",
    "Precinct": "precinct",
    "House_District": "house_district",
    "Senate_District": "senate_district",
    "Commission_District": "commission_district",
    "School_Board_District": "school_board_district",
}

DATE_COLUMN_MAP: dict[str, str] = {
    "Birth_Date": "date_of_birth",
    "Registration_Date": "registration_date",
}

# Closed list of fields the import may overwrite on an existing contact.
SYSTEM_UPDATABLE_FIELDS: tuple[str, ...] = (
    "street_address",
    "city",
    "state",
    "zip_code",
    "date_of_birth",
    "party",
    "voter_status",
    "registration_date",
    "district",
    "precinct",
    "house_district",
    "senate_district",
    "commission_district",
    "school_board_district",
    "last_public_update",
)

# Written on every applied update; never a reason to update on its own.
BOOKKEEPING_FIELDS: frozenset[str] = frozenset({"last_public_update"})

COMPARABLE_FIELDS: tuple[str, ...] = tuple(f for f in SYSTEM_UPDATABLE_FIELDS if f not in BOOKKEEPING_FIELDS)

# Written only when the contact is created.
USER_FIELD_DEFAULTS: dict[str, Any] = {
    "supporter_status": "unknown",
    "volunteer_likeliness": "unknown",
    "notes": None,
}
USER_PROTECTED_FIELDS: tuple[str, ...] = tuple(USER_FIELD_DEFAULTS)

SENTINEL_VALUES: frozenset[str] = frozenset({"NULL", "N/A", "#N/A", "NONE", "NIL"})

# Excel's day zero (accounts for the 1900 leap-year bug for serials after Feb 1900)
_EXCEL_EPOCH = pd.Timestamp("1899-12-30")
_MAX_EXCEL_SERIAL = 2958465  # 9999-12-31


class InvalidRowError(ValueError):
    """Raised when a row cannot be turned into a contact."""


@dataclass
class ProcessedRecord:
    """A normalized row moving through classification and upsert."""

    row_number: int
    voter_id_hash: str
    voter_id_redacted: str
    system_id: str
    contact: dict[str, Any]
    phone: dict[str, Any] | None = None
    alias: dict[str, Any] | None = None
    is_update: bool = False
    existing_id: uuid.UUID | None = None
    changed_fields: list[str] = field(default_factory=list)
    pre_image: dict[str, Any] = field(default_factory=dict)


def clean_text(value: Any) -> str | None:
    """Trim a cell value to text, mapping blanks and placeholder tokens to None."""
    if value is None:
        return None
    if isinstance(value, float):
        if math.isnan(value):
            return None
        if value.is_integer():
            value = int(value)
    text = str(value).strip()
    if not text or text.upper() in SENTINEL_VALUES:
        return None
    return text


def parse_sheet_date(value: Any) -> date | None:
    """Convert a spreadsheet cell to a calendar date.

    Accepts native datetimes, Excel date serial numbers, and date strings.
    Unparseable values become None.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, int | float):
        if pd.isna(value) or not 0 < value <= _MAX_EXCEL_SERIAL:
            return None
        return (_EXCEL_EPOCH + pd.to_timedelta(float(value), unit="D")).date()

    text = clean_text(value)
    if text is None:
        return None
    try:
        return parse_date(text).date()
    except (ValueError, OverflowError):
        return None


def _split_city_state(value: Any) -> tuple[str | None, str | None]:
    """Split ``"ATLANTA GA"`` into ``("ATLANTA", "GA")``."""
    text = clean_text(value)
    if text is None:
        return None, None
    parts = text.split()
    if len(parts) < 2:
        return None, None
    return " ".join(parts[:-1]), parts[-1]


def normalize_row(
    raw: RawRow,
    *,
    actor: str,
    now: datetime,
    id_length: int = DEFAULT_SYSTEM_ID_LENGTH,
) -> ProcessedRecord:
    """Normalize one voter extract row.

    Args:
        raw: The spreadsheet row.
        actor: Writer recorded in ``created_by`` / ``last_updated_by``.
        now: Timestamp recorded as ``last_public_update``.
        id_length: Hash characters embedded in the system identifier.

    Returns:
        A ProcessedRecord ready for classification.

    Raises:
        InvalidRowError: If the row has no voter ID or neither a first nor a last name.
    """
    voter_id = clean_voter_id(raw.get(VOTER_ID_COLUMN))
    if not voter_id:
        msg = "missing voter ID"
        raise InvalidRowError(msg)

    voter_id_hash = hash_voter_id(voter_id)
    redacted = redact_voter_id(voter_id)
    system_id = derive_system_id(voter_id_hash, id_length)

    contact: dict[str, Any] = {column: clean_text(raw.get(source)) for source, column in TEXT_COLUMN_MAP.items()}
    if not contact["first_name"] and not contact["last_name"]:
        msg = "missing first and last name"
        raise InvalidRowError(msg)

    for source, column in DATE_COLUMN_MAP.items():
        contact[column] = parse_sheet_date(raw.get(source))

    fallback_city, state = _split_city_state(raw.get("City_State"))
    contact["state"] = state
    if contact["city"] is None:
        contact["city"] = fallback_city

    contact["full_name"] = clean_text(raw.get("Voter_Name")) or " ".join(
        part for part in (contact["first_name"], contact["middle_name"], contact["last_name"]) if part
    )
    contact.update(
        system_id=system_id,
        voter_id_hash=voter_id_hash,
        voter_id_redacted=redacted,
        address_source="public",
        is_active=True,
        last_public_update=now,
        created_by=actor,
        last_updated_by=actor,
        **USER_FIELD_DEFAULTS,
    )

    phone = None
    phone_number = clean_text(raw.get("Telephone_Number"))
    if phone_number:
        phone = {
            "phone_number": phone_number,
            "phone_type": "home",
            "is_primary": True,
            "is_baseline_data": True,
            "is_manually_added": False,
            "created_by": actor,
        }

    return ProcessedRecord(
        row_number=raw.row_number,
        voter_id_hash=voter_id_hash,
        voter_id_redacted=redacted,
        system_id=system_id,
        contact=contact,
        phone=phone,
        alias={"alias": f"Voter-{redacted}"},
    )
