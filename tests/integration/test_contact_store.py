"""Integration tests for contact store bulk operations and provenance."""

import uuid
from datetime import UTC, date, datetime

import pytest
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from voter_reconciler.lib.importer.differ import FieldProvenancePredicate, LastWriterPredicate
from voter_reconciler.lib.importer.identifiers import derive_system_id, hash_voter_id
from voter_reconciler.models.contact import Contact, ContactPhone
from voter_reconciler.models.contact_field_edit import ContactFieldEdit
from voter_reconciler.services.contact_store import (
    decode_field_value,
    delete_contacts,
    encode_field_value,
    fetch_contact_values,
    insert_contacts,
    insert_related_rows,
    lookup_existing_contacts,
    update_contact_fields,
)
from voter_reconciler.services.provenance_service import (
    build_user_modified_predicate,
    load_edited_fields,
    record_user_edit,
)


def _contact_values(voter_id: str, **overrides: object) -> dict:
    digest = hash_voter_id(voter_id)
    values = {
        "system_id": derive_system_id(digest),
        "voter_id_hash": digest,
        "voter_id_redacted": f"***{voter_id[-4:]}",
        "full_name": "JANE DOE",
        "first_name": "JANE",
        "last_name": "DOE",
        "street_address": "100 MAIN ST",
        "precinct": "SS01",
        "last_updated_by": "system",
    }
    values.update(overrides)
    return values


class TestContactStore:
    """Bulk insert, lookup, update, and delete."""

    async def test_insert_and_lookup(self, async_session: AsyncSession) -> None:
        ids = await insert_contacts(async_session, [_contact_values("41000001"), _contact_values("41000002")])
        await async_session.commit()

        assert set(ids) == {derive_system_id(hash_voter_id("41000001")), derive_system_id(hash_voter_id("41000002"))}

        lookup = await lookup_existing_contacts(
            async_session, [hash_voter_id("41000001"), hash_voter_id("41000099")]
        )
        assert list(lookup.matches) == [hash_voter_id("41000001")]
        snapshot = lookup.matches[hash_voter_id("41000001")]
        assert snapshot["id"] == ids[derive_system_id(hash_voter_id("41000001"))]
        assert snapshot["street_address"] == "100 MAIN ST"
        assert snapshot["last_updated_by"] == "system"
        assert lookup.collisions == {}

    async def test_lookup_reports_prefix_collision(self, async_session: AsyncSession) -> None:
        incoming = hash_voter_id("42000001")
        await insert_contacts(
            async_session, [_contact_values("42000001", voter_id_hash="e" * 64)]
        )
        await async_session.commit()

        lookup = await lookup_existing_contacts(async_session, [incoming])

        assert lookup.matches == {}
        assert lookup.collisions == {incoming: derive_system_id(incoming)}

    async def test_lookup_with_longer_system_ids(self, async_session: AsyncSession) -> None:
        digest = hash_voter_id("43000001")
        await insert_contacts(async_session, [_contact_values("43000001", system_id=derive_system_id(digest, 12))])
        await async_session.commit()

        lookup = await lookup_existing_contacts(async_session, [digest], 12)
        assert digest in lookup.matches

    async def test_update_contact_fields_writes_only_given_fields(self, async_session: AsyncSession) -> None:
        ids = await insert_contacts(async_session, [_contact_values("44000001"), _contact_values("44000002")])
        first, second = ids.values()

        updated = await update_contact_fields(
            async_session,
            [(first, {"street_address": "1 ELM ST"}), (second, {"precinct": "SS02", "city": "DECATUR"})],
        )
        await async_session.commit()

        assert updated == 2
        assert await fetch_contact_values(async_session, first, ["street_address", "precinct"]) == {
            "id": first,
            "street_address": "1 ELM ST",
            "precinct": "SS01",
        }
        values = await fetch_contact_values(async_session, second, ["street_address", "precinct", "city"])
        assert values == {"id": second, "street_address": "100 MAIN ST", "precinct": "SS02", "city": "DECATUR"}

    async def test_fetch_missing_contact(self, async_session: AsyncSession) -> None:
        assert await fetch_contact_values(async_session, uuid.uuid4(), ["precinct"]) is None

    async def test_delete_contacts_removes_children(self, async_session: AsyncSession) -> None:
        ids = await insert_contacts(async_session, [_contact_values("45000001")])
        contact_id = next(iter(ids.values()))
        await insert_related_rows(
            async_session,
            phones=[{"contact_id": contact_id, "phone_number": "404-555-0100", "phone_type": "home"}],
            aliases=[{"contact_id": contact_id, "alias": "Voter-***0001"}],
        )
        async_session.add(ContactFieldEdit(contact_id=contact_id, field_name="notes", edited_by="alice"))
        await async_session.commit()

        assert await delete_contacts(async_session, [contact_id]) == 1
        await async_session.commit()

        for model in (Contact, ContactPhone, ContactFieldEdit):
            count = (await async_session.execute(select(func.count()).select_from(model))).scalar_one()
            assert count == 0, model.__name__


class TestFieldValueEncoding:
    """Rollback image encoding."""

    def test_aware_datetime_becomes_naive_utc(self) -> None:
        value = datetime(2026, 3, 1, 12, 30, tzinfo=UTC)
        assert encode_field_value(value) == "2026-03-01T12:30:00"
        assert decode_field_value("last_public_update", "2026-03-01T12:30:00") == value

    def test_date(self) -> None:
        assert encode_field_value(date(1980, 4, 12)) == "1980-04-12"
        assert decode_field_value("date_of_birth", "1980-04-12") == date(1980, 4, 12)

    def test_plain_values_pass_through(self) -> None:
        assert encode_field_value("SS01") == "SS01"
        assert decode_field_value("precinct", "SS01") == "SS01"
        assert decode_field_value("precinct", None) is None


class TestProvenance:
    """Per-field edit history and predicate selection."""

    async def test_record_user_edit(self, async_session: AsyncSession) -> None:
        ids = await insert_contacts(async_session, [_contact_values("46000001")])
        contact_id = next(iter(ids.values()))
        await async_session.commit()

        contact = await record_user_edit(
            async_session, contact_id, {"street_address": "5 PINE ST", "notes": "prefers text"}, "alice"
        )

        assert contact.street_address == "5 PINE ST"
        assert contact.notes == "prefers text"
        assert contact.last_updated_by == "alice"
        assert await load_edited_fields(async_session, [contact_id]) == {contact_id: {"street_address", "notes"}}

    async def test_repeat_edit_updates_existing_record(self, async_session: AsyncSession) -> None:
        ids = await insert_contacts(async_session, [_contact_values("47000001")])
        contact_id = next(iter(ids.values()))
        await async_session.commit()

        await record_user_edit(async_session, contact_id, {"precinct": "SS05"}, "alice")
        await record_user_edit(async_session, contact_id, {"precinct": "SS06"}, "bob")

        edits = (await async_session.execute(select(ContactFieldEdit))).scalars().all()
        assert len(edits) == 1
        assert edits[0].edited_by == "bob"

    async def test_record_user_edit_rejects_identity_fields(self, async_session: AsyncSession) -> None:
        with pytest.raises(ValueError, match="cannot be edited: system_id"):
            await record_user_edit(async_session, uuid.uuid4(), {"system_id": "VV-00000000"}, "alice")

    async def test_record_user_edit_unknown_contact(self, async_session: AsyncSession) -> None:
        with pytest.raises(ValueError, match="not found"):
            await record_user_edit(async_session, uuid.uuid4(), {"notes": "x"}, "alice")

    async def test_build_predicate(self, async_session: AsyncSession) -> None:
        ids = await insert_contacts(async_session, [_contact_values("48000001")])
        contact_id = next(iter(ids.values()))
        await async_session.commit()
        await record_user_edit(async_session, contact_id, {"street_address": "5 PINE ST"}, "alice")

        provenance = await build_user_modified_predicate(
            async_session, "provenance", [contact_id], import_actor="system"
        )
        assert isinstance(provenance, FieldProvenancePredicate)
        assert provenance("street_address", {"id": contact_id})
        assert not provenance("precinct", {"id": contact_id})

        last_writer = await build_user_modified_predicate(async_session, "last_writer", [], import_actor="system")
        assert isinstance(last_writer, LastWriterPredicate)

    async def test_unknown_strategy(self, async_session: AsyncSession) -> None:
        with pytest.raises(ValueError, match="Unknown user_modified_strategy"):
            await build_user_modified_predicate(async_session, "newest", [], import_actor="system")
