"""Shared test fixtures for the async database, settings, and voter extract workbooks."""

import io
from collections.abc import AsyncGenerator, Callable
from typing import Any

import pytest
from openpyxl import Workbook
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

import voter_reconciler.models  # noqa: F401
from voter_reconciler.core.config import Settings
from voter_reconciler.models.base import Base

EXTRACT_HEADERS = [
    "VoterID",
    "Voter_Name",
    "First_Name",
    "Middle_Name",
    "Last_Name",
    "Birth_Date",
    "Formatted_Address",
    "City_Name",
    "City_State",
    "Zip_Code",
    "Telephone_Number",
    "Party",
    "Voter_Status",
    "Registration_Date",
    "Congressional_District",
    "Precinct",
    "House_District",
    "Senate_District",
    "Commission_District",
    "School_Board_District",
]


def voter_row(voter_id: object, **overrides: Any) -> dict[str, Any]:
    """Build one extract row with realistic defaults."""
    row: dict[str, Any] = {
        "VoterID": voter_id,
        "First_Name": "JANE",
        "Middle_Name": None,
        "Last_Name": "DOE",
        "Birth_Date": "1980-04-12",
        "Formatted_Address": "100 MAIN ST",
        "City_Name": "ATLANTA",
        "City_State": "ATLANTA GA",
        "Zip_Code": "30303",
        "Telephone_Number": "404-555-0100",
        "Party": "D",
        "Voter_Status": "ACTIVE",
        "Registration_Date": "2010-09-01",
        "Congressional_District": "5",
        "Precinct": "SS01",
        "House_District": "58",
        "Senate_District": "36",
        "Commission_District": "2",
        "School_Board_District": "3",
    }
    row.update(overrides)
    return row


def build_workbook(rows: list[dict[str, Any]], headers: list[str] | None = None) -> bytes:
    """Render rows to ``.xlsx`` bytes with a header row."""
    headers = headers or EXTRACT_HEADERS
    workbook = Workbook()
    sheet = workbook.active
    sheet.title = "Voters"
    sheet.append(headers)
    for row in rows:
        sheet.append([row.get(h) for h in headers])
    buffer = io.BytesIO()
    workbook.save(buffer)
    return buffer.getvalue()


@pytest.fixture
def make_row() -> Callable[..., dict[str, Any]]:
    """Factory fixture returning one extract row dict."""
    return voter_row


@pytest.fixture
def make_workbook() -> Callable[..., bytes]:
    """Factory fixture returning workbook bytes for a list of extract rows."""
    return build_workbook


@pytest.fixture
def settings() -> Settings:
    """Test application settings."""
    return Settings(
        database_url="sqlite+aiosqlite:///:memory:",
        import_batch_size=2,
        import_actor="system",
        user_modified_strategy="provenance",
    )


@pytest.fixture
async def async_engine() -> AsyncGenerator[AsyncEngine]:
    """Create an in-memory async SQLite engine for testing.

    pysqlite's implicit transaction handling breaks SAVEPOINT; the driver is
    put in autocommit mode and SQLAlchemy emits BEGIN itself.
    """
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", echo=False)

    @event.listens_for(engine.sync_engine, "connect")
    def _do_connect(dbapi_connection, connection_record) -> None:  # type: ignore[no-untyped-def]
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _do_begin(conn) -> None:  # type: ignore[no-untyped-def]
        conn.exec_driver_sql("BEGIN")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
async def async_session(async_engine: AsyncEngine) -> AsyncGenerator[AsyncSession]:
    """Create a per-test async session."""
    session_factory = async_sessionmaker(async_engine, expire_on_commit=False)
    async with session_factory() as session:
        yield session
