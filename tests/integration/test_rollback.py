"""Integration tests for import rollback and rollback log retention."""

from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import Any

import pytest
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from voter_reconciler.core.config import Settings
from voter_reconciler.core.reclaim import noop_checkpoint
from voter_reconciler.lib.importer.identifiers import hash_voter_id
from voter_reconciler.models.contact import Contact, ContactAlias, ContactPhone
from voter_reconciler.models.import_run import ImportRun
from voter_reconciler.models.rollback_entry import RollbackEntry
from voter_reconciler.schemas.imports import ImportOptions, ImportSummary
from voter_reconciler.services.import_service import process_contact_import
from voter_reconciler.services.provenance_service import record_user_edit
from voter_reconciler.services.rollback_service import (
    RollbackNotFoundError,
    purge_expired_rollback_entries,
    rollback_import,
)

RowFactory = Callable[..., dict[str, Any]]
WorkbookFactory = Callable[..., bytes]


async def _import(session: AsyncSession, data: bytes, settings: Settings, **options: Any) -> ImportSummary:
    return await process_contact_import(
        session,
        data,
        file_name="extract.xlsx",
        options=ImportOptions(**options),
        reclaim=noop_checkpoint,
        settings=settings,
    )


async def _contact(session: AsyncSession, voter_id: str) -> Contact | None:
    result = await session.execute(
        select(Contact).where(Contact.voter_id_hash == hash_voter_id(voter_id)).execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def _count(session: AsyncSession, model: type) -> int:
    return (await session.execute(select(func.count()).select_from(model))).scalar_one()


class TestRollbackImport:
    """Tests for rollback_import."""

    async def test_rollback_deletes_created_contacts(
        self, async_session: AsyncSession, settings: Settings, make_row: RowFactory, make_workbook: WorkbookFactory
    ) -> None:
        summary = await _import(
            async_session, make_workbook([make_row("31000001"), make_row("31000002"), make_row("31000003")]), settings
        )

        result = await rollback_import(async_session, summary.rollback_id)

        assert result.success is True
        assert result.reversed == 3
        assert result.unresolved == []
        assert await _count(async_session, Contact) == 0
        assert await _count(async_session, ContactPhone) == 0
        assert await _count(async_session, ContactAlias) == 0

        run = (
            await async_session.execute(select(ImportRun).where(ImportRun.rollback_id == summary.rollback_id))
        ).scalar_one()
        assert run.status == "rolled_back"
        assert run.rolled_back_at is not None

    async def test_rollback_restores_updated_fields(
        self, async_session: AsyncSession, settings: Settings, make_row: RowFactory, make_workbook: WorkbookFactory
    ) -> None:
        await _import(async_session, make_workbook([make_row("32000001", Birth_Date="1975-01-02")]), settings)
        before = await _contact(async_session, "32000001")
        assert before is not None
        original = (before.street_address, before.precinct, before.date_of_birth, before.last_public_update)

        second = await _import(
            async_session,
            make_workbook(
                [
                    make_row("32000001", Formatted_Address="9 NEW RD", Precinct="SS44", Birth_Date="1975-01-03"),
                    make_row("32000002"),
                ]
            ),
            settings,
        )
        assert second.updated == 1
        assert second.created == 1

        result = await rollback_import(async_session, second.rollback_id)

        assert result.success is True
        assert result.reversed == 2
        after = await _contact(async_session, "32000001")
        assert after is not None
        assert (after.street_address, after.precinct, after.date_of_birth) == original[:3]
        assert after.last_public_update.replace(tzinfo=None) == original[3].replace(tzinfo=None)
        assert await _contact(async_session, "32000002") is None

    async def test_fields_edited_after_import_are_not_reverted(
        self, async_session: AsyncSession, settings: Settings, make_row: RowFactory, make_workbook: WorkbookFactory
    ) -> None:
        await _import(async_session, make_workbook([make_row("33000001")]), settings)
        second = await _import(
            async_session,
            make_workbook([make_row("33000001", Formatted_Address="9 NEW RD", Precinct="SS44")]),
            settings,
        )
        contact = await _contact(async_session, "33000001")
        assert contact is not None
        await record_user_edit(async_session, contact.id, {"street_address": "7 STAFF CT"}, "alice")

        result = await rollback_import(async_session, second.rollback_id)

        assert result.success is False
        assert result.reversed == 1
        assert len(result.unresolved) == 1
        unresolved = result.unresolved[0]
        assert unresolved.operation == "update"
        assert unresolved.system_id == contact.system_id
        assert "street_address" in unresolved.reason

        contact = await _contact(async_session, "33000001")
        assert contact is not None
        assert contact.street_address == "7 STAFF CT"
        assert contact.precinct == "SS01"

        run = (
            await async_session.execute(select(ImportRun).where(ImportRun.rollback_id == second.rollback_id))
        ).scalar_one()
        assert run.status == "completed"

    async def test_rerun_is_idempotent(
        self, async_session: AsyncSession, settings: Settings, make_row: RowFactory, make_workbook: WorkbookFactory
    ) -> None:
        summary = await _import(async_session, make_workbook([make_row("34000001")]), settings)

        first = await rollback_import(async_session, summary.rollback_id)
        second = await rollback_import(async_session, summary.rollback_id)

        assert first.reversed == 1
        assert second.success is True
        assert second.reversed == 0

    async def test_resumes_after_partial_progress(
        self, async_session: AsyncSession, settings: Settings, make_row: RowFactory, make_workbook: WorkbookFactory
    ) -> None:
        rows = [make_row(f"3500000{i}") for i in range(4)]
        summary = await _import(async_session, make_workbook(rows), settings, batch_size=4)

        newest = (
            await async_session.execute(
                select(RollbackEntry).where(RollbackEntry.rollback_id == summary.rollback_id).order_by(
                    RollbackEntry.sequence.desc()
                )
            )
        ).scalars().first()
        assert newest is not None
        newest.reversed_at = datetime.now(UTC)
        await async_session.execute(
            Contact.__table__.delete().where(Contact.id == newest.contact_id)
        )
        await async_session.commit()

        result = await rollback_import(async_session, summary.rollback_id, batch_size=1)

        assert result.success is True
        assert result.reversed == 3
        assert await _count(async_session, Contact) == 0

    async def test_unknown_rollback_id(self, async_session: AsyncSession) -> None:
        with pytest.raises(RollbackNotFoundError, match="No import found"):
            await rollback_import(async_session, "0" * 32)

    async def test_entries_are_sequenced_per_run(
        self, async_session: AsyncSession, settings: Settings, make_row: RowFactory, make_workbook: WorkbookFactory
    ) -> None:
        rows = [make_row(f"3600000{i}") for i in range(5)]
        summary = await _import(async_session, make_workbook(rows), settings, batch_size=2)

        sequences = (
            await async_session.execute(
                select(RollbackEntry.sequence)
                .where(RollbackEntry.rollback_id == summary.rollback_id)
                .order_by(RollbackEntry.sequence)
            )
        ).scalars().all()
        assert list(sequences) == [0, 1, 2, 3, 4]


class TestPurgeExpiredRollbackEntries:
    """Tests for purge_expired_rollback_entries."""

    async def test_purges_only_old_entries(
        self, async_session: AsyncSession, settings: Settings, make_row: RowFactory, make_workbook: WorkbookFactory
    ) -> None:
        summary = await _import(async_session, make_workbook([make_row("37000001"), make_row("37000002")]), settings)

        assert await purge_expired_rollback_entries(async_session, retention_days=30) == 0
        assert await _count(async_session, RollbackEntry) == 2

        later = datetime.now(UTC) + timedelta(days=31)
        assert await purge_expired_rollback_entries(async_session, retention_days=30, now=later) == 2
        assert await _count(async_session, RollbackEntry) == 0

        # The run record outlives its log; rolling back finds nothing to reverse
        result = await rollback_import(async_session, summary.rollback_id)
        assert result.reversed == 0
        assert await _count(async_session, Contact) == 2
