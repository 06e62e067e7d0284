"""Streaming workbook reader with range-bounded row extraction.

Opens the first sheet of an ``.xlsx`` voter extract in openpyxl read-only
mode so that only the requested rows are materialized.  The header row is
read once; :meth:`WorkbookReader.read_range` keeps a forward cursor so
chunked reads parse each row once, and can be repeated for the same range.
"""

import io
import zipfile
from collections.abc import Iterator
from dataclasses import dataclass, field
from itertools import islice
from types import TracebackType
from typing import Any

from loguru import logger
from openpyxl import load_workbook
from openpyxl.utils.exceptions import InvalidFileException

VOTER_ID_COLUMN = "VoterID"
REQUIRED_COLUMNS: tuple[str, ...] = (VOTER_ID_COLUMN, "First_Name", "Last_Name")

# Sheet row 1 is the header; data starts on row 2.
FIRST_DATA_ROW = 2


class WorkbookError(ValueError):
    """Raised when the workbook cannot be opened or has no usable sheet."""


class MissingColumnsError(WorkbookError):
    """Raised when required header columns are absent."""

    def __init__(self, missing: list[str]) -> None:
        self.missing = missing
        super().__init__(f"Missing required columns: {', '.join(missing)}")


@dataclass(frozen=True)
class RawRow:
    """One spreadsheet row keyed by header name."""

    row_number: int
    values: dict[str, Any] = field(default_factory=dict)

    def get(self, column: str, default: Any = None) -> Any:
        return self.values.get(column, default)


def iter_chunk_ranges(total_rows: int, batch_size: int) -> Iterator[tuple[int, int]]:
    """Yield inclusive ``(start, end)`` sheet-row ranges covering all data rows.

    Args:
        total_rows: Number of data rows below the header.
        batch_size: Maximum rows per range.

    Yields:
        Inclusive sheet row ranges, starting at row 2.
    """
    if batch_size <= 0:
        msg = f"batch_size must be positive, got {batch_size}"
        raise ValueError(msg)
    last_row = total_rows + FIRST_DATA_ROW - 1
    for start in range(FIRST_DATA_ROW, last_row + 1, batch_size):
        yield start, min(start + batch_size - 1, last_row)


def _resolve_headers(raw_headers: tuple[Any, ...]) -> list[str | None]:
    """Map raw header cells to canonical column names.

    Required columns are matched case-insensitively as a fallback, with a
    warning, the same way voter CSV headers are tolerated.
    """
    required_lower = {c.lower(): c for c in REQUIRED_COLUMNS}
    headers: list[str | None] = []
    for cell in raw_headers:
        if cell is None or str(cell).strip() == "":
            headers.append(None)
            continue
        name = str(cell).strip()
        if name not in REQUIRED_COLUMNS and name.lower() in required_lower:
            canonical = required_lower[name.lower()]
            logger.warning(f"Header {name!r} matched via case-insensitive fallback to {canonical!r}")
            name = canonical
        headers.append(name)
    return headers


class WorkbookReader:
    """Range-addressable reader over the first sheet of a workbook.

    Args:
        data: Raw ``.xlsx`` bytes.

    Raises:
        WorkbookError: If the buffer is not a readable workbook or the
            first sheet has no header row.
        MissingColumnsError: If any of :data:`REQUIRED_COLUMNS` is absent.
    """

    def __init__(self, data: bytes) -> None:
        try:
            self._workbook = load_workbook(io.BytesIO(data), read_only=True, data_only=True)
        except (InvalidFileException, zipfile.BadZipFile, KeyError, OSError) as e:
            msg = f"Cannot open workbook (only .xlsx is supported): {e}"
            raise WorkbookError(msg) from e

        if not self._workbook.worksheets:
            self.close()
            msg = "Workbook contains no worksheets"
            raise WorkbookError(msg)

        self._sheet = self._workbook.worksheets[0]
        first_row = next(self._sheet.iter_rows(min_row=1, max_row=1, values_only=True), None)
        self.headers = _resolve_headers(first_row or ())
        if not any(self.headers):
            self.close()
            msg = "Empty or invalid Excel worksheet"
            raise WorkbookError(msg)

        missing = [c for c in REQUIRED_COLUMNS if c not in self.headers]
        if missing:
            self.close()
            raise MissingColumnsError(missing)

        # Body rows repeating the header (in any of its accepted spellings) are skipped
        raw_id_header = str(first_row[self.headers.index(VOTER_ID_COLUMN)]).strip()
        self._header_tokens = {VOTER_ID_COLUMN.casefold(), raw_id_header.casefold()}
        self._cursor: Iterator[tuple[Any, ...]] | None = None
        self._cursor_row = FIRST_DATA_ROW

        self.total_rows = self._count_data_rows()
        logger.info(f"Workbook opened: sheet={self._sheet.title!r}, {self.total_rows} rows, {len(self.headers)} columns")

    def _count_data_rows(self) -> int:
        max_row = self._sheet.max_row
        if max_row is None:
            # No dimension record in the sheet XML; stream once to count.
            max_row = sum(1 for _ in self._sheet.iter_rows(values_only=True))
        return max(max_row - 1, 0)

    def read_range(self, start: int, end: int) -> Iterator[RawRow]:
        """Yield rows with a voter ID from sheet rows ``start`` to ``end`` inclusive.

        Consecutive ranges continue from where the previous one stopped, so
        a full pass over the sheet parses each row once.  Asking for a range
        behind the current position restarts the scan at ``start``.

        Blank rows, footer rows without an ID, and repeated header rows are
        dropped without being reported.
        """
        if start < FIRST_DATA_ROW or end < start:
            msg = f"Invalid row range [{start}, {end}]"
            raise ValueError(msg)

        if self._cursor is None or start < self._cursor_row:
            self._cursor = self._sheet.iter_rows(min_row=start, max_col=len(self.headers), values_only=True)
            self._cursor_row = start
        elif start > self._cursor_row:
            skip = start - self._cursor_row
            skipped = sum(1 for _ in islice(self._cursor, skip))
            self._cursor_row += skipped
            if skipped < skip:
                return

        for cells in islice(self._cursor, end - start + 1):
            row_number = self._cursor_row
            self._cursor_row += 1
            values = {name: value for name, value in zip(self.headers, cells, strict=False) if name is not None}
            voter_id = values.get(VOTER_ID_COLUMN)
            if voter_id is None:
                continue
            token = str(voter_id).strip()
            if not token or token.casefold() in self._header_tokens:
                continue
            yield RawRow(row_number=row_number, values=values)

    def close(self) -> None:
        self._workbook.close()

    def __enter__(self) -> "WorkbookReader":
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()
