"""Privacy-preserving voter identifier handling.

The raw external voter ID is never stored or logged.  It is reduced to a
SHA-256 digest (the join key across imports), a redacted display form, and
a short ``VV-`` system identifier derived from the digest.
"""

import hashlib
import re
from collections.abc import Iterable

SYSTEM_ID_PREFIX = "VV-"
DEFAULT_SYSTEM_ID_LENGTH = 8

_REDACTION_MASK = "***"
_VISIBLE_CHARS = 4


def clean_voter_id(raw_id: object) -> str:
    """Coerce a cell value to an identifier string.

    Spreadsheet cells often hold IDs as floats (``12345678.0``); integral
    floats are rendered without the fractional part.
    """
    if raw_id is None:
        return ""
    if isinstance(raw_id, float) and raw_id.is_integer():
        raw_id = int(raw_id)
    return str(raw_id).strip()


def hash_voter_id(raw_id: object) -> str:
    """Return the SHA-256 hex digest of a trimmed voter ID."""
    return hashlib.sha256(clean_voter_id(raw_id).encode("utf-8")).hexdigest()


def redact_voter_id(raw_id: object) -> str:
    """Return a display-safe form keeping at most the last four characters.

    >>> redact_voter_id("12345678")
    '***5678'
    >>> redact_voter_id("123")
    '***123'
    """
    cleaned = clean_voter_id(raw_id)
    return f"{_REDACTION_MASK}{cleaned[-_VISIBLE_CHARS:]}"


def derive_system_id(digest: str, length: int = DEFAULT_SYSTEM_ID_LENGTH) -> str:
    """Build the externally visible system identifier from a full digest."""
    if not 0 < length <= len(digest):
        msg = f"length must be between 1 and {len(digest)}, got {length}"
        raise ValueError(msg)
    return f"{SYSTEM_ID_PREFIX}{digest[:length]}"


def system_id_prefix(system_id: str) -> str:
    """Return the digest prefix embedded in a system identifier."""
    return system_id.removeprefix(SYSTEM_ID_PREFIX)


def redact_identifiers(message: str, raw_ids: Iterable[object]) -> str:
    """Replace every occurrence of the given raw IDs in ``message`` with its redacted form.

    Longer IDs take precedence so one ID that contains another is not
    partially redacted.
    """
    cleaned = sorted({clean_voter_id(r) for r in raw_ids} - {""}, key=len, reverse=True)
    if not cleaned:
        return message
    pattern = re.compile("|".join(re.escape(raw) for raw in cleaned))
    return pattern.sub(lambda match: redact_voter_id(match.group(0)), message)
