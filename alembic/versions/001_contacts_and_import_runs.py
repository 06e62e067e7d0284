"""Add contacts, phones, aliases, field edits, import runs, and rollback entries.

Revision ID: 001
Revises:
Create Date: 2026-10-19
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects.postgresql import JSONB, UUID

revision: str = "001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "contacts",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        # Identity
        sa.Column("system_id", sa.String(67), nullable=False),
        sa.Column("voter_id_hash", sa.String(64), nullable=True),
        sa.Column("voter_id_redacted", sa.String(20), nullable=True),
        # Names
        sa.Column("full_name", sa.Text, nullable=False),
        sa.Column("first_name", sa.String(100), nullable=True),
        sa.Column("middle_name", sa.String(100), nullable=True),
        sa.Column("last_name", sa.String(100), nullable=True),
        sa.Column("date_of_birth", sa.Date, nullable=True),
        # Address
        sa.Column("street_address", sa.Text, nullable=True),
        sa.Column("city", sa.String(100), nullable=True),
        sa.Column("state", sa.String(50), nullable=True),
        sa.Column("zip_code", sa.String(20), nullable=True),
        # Registration
        sa.Column("party", sa.String(50), nullable=True),
        sa.Column("voter_status", sa.String(50), nullable=True),
        sa.Column("registration_date", sa.Date, nullable=True),
        # Districts
        sa.Column("district", sa.String(50), nullable=True),
        sa.Column("precinct", sa.String(50), nullable=True),
        sa.Column("house_district", sa.String(50), nullable=True),
        sa.Column("senate_district", sa.String(50), nullable=True),
        sa.Column("commission_district", sa.String(50), nullable=True),
        sa.Column("school_board_district", sa.String(50), nullable=True),
        # Campaign-owned
        sa.Column("supporter_status", sa.String(30), nullable=False, server_default="unknown"),
        sa.Column("volunteer_likeliness", sa.String(30), nullable=False, server_default="unknown"),
        sa.Column("notes", sa.Text, nullable=True),
        # Source tracking
        sa.Column("address_source", sa.String(20), nullable=True),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default="true"),
        sa.Column("last_public_update", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_by", sa.String(100), nullable=True),
        sa.Column("last_updated_by", sa.String(100), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_contacts_system_id", "contacts", ["system_id"], unique=True)
    op.create_index("ix_contacts_voter_id_hash", "contacts", ["voter_id_hash"], unique=True)
    op.create_index("ix_contacts_last_name", "contacts", ["last_name"])
    op.create_index("ix_contacts_precinct", "contacts", ["precinct"])

    op.create_table(
        "contact_phones",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "contact_id",
            UUID(as_uuid=True),
            sa.ForeignKey("contacts.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("phone_number", sa.String(50), nullable=False),
        sa.Column("phone_type", sa.String(10), nullable=False, server_default="mobile"),
        sa.Column("is_primary", sa.Boolean, nullable=False, server_default="false"),
        sa.Column("is_baseline_data", sa.Boolean, nullable=False, server_default="false"),
        sa.Column("is_manually_added", sa.Boolean, nullable=False, server_default="false"),
        sa.Column("created_by", sa.String(100), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_contact_phones_contact_id", "contact_phones", ["contact_id"])

    op.create_table(
        "contact_aliases",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "contact_id",
            UUID(as_uuid=True),
            sa.ForeignKey("contacts.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("alias", sa.Text, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_contact_aliases_contact_id", "contact_aliases", ["contact_id"])

    op.create_table(
        "contact_field_edits",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "contact_id",
            UUID(as_uuid=True),
            sa.ForeignKey("contacts.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("field_name", sa.String(50), nullable=False),
        sa.Column("edited_by", sa.String(100), nullable=False),
        sa.Column("edited_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint("contact_id", "field_name", name="uq_contact_field_edit"),
    )
    op.create_index("ix_contact_field_edits_contact_id", "contact_field_edits", ["contact_id"])

    op.create_table(
        "import_runs",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("file_name", sa.String(255), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("dry_run", sa.Boolean, nullable=False, server_default="false"),
        sa.Column("overwrite_user_data", sa.Boolean, nullable=False, server_default="false"),
        sa.Column("batch_size", sa.Integer, nullable=False),
        sa.Column("total_rows", sa.Integer, nullable=True),
        sa.Column("records_created", sa.Integer, nullable=True),
        sa.Column("records_updated", sa.Integer, nullable=True),
        sa.Column("records_skipped", sa.Integer, nullable=True),
        sa.Column("records_duplicate", sa.Integer, nullable=True),
        sa.Column("records_failed", sa.Integer, nullable=True),
        sa.Column("rollback_id", sa.String(32), nullable=True),
        sa.Column("error_log", JSONB, nullable=True),
        sa.Column("triggered_by", sa.String(100), nullable=True),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("rolled_back_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_import_runs_status", "import_runs", ["status"])
    op.create_index("ix_import_runs_rollback_id", "import_runs", ["rollback_id"], unique=True)
    op.create_index("ix_import_runs_created_at", "import_runs", ["created_at"])

    op.create_table(
        "import_rollback_entries",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("rollback_id", sa.String(32), nullable=False),
        sa.Column(
            "run_id",
            UUID(as_uuid=True),
            sa.ForeignKey("import_runs.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("sequence", sa.Integer, nullable=False),
        sa.Column("operation", sa.String(10), nullable=False),
        sa.Column("contact_id", UUID(as_uuid=True), nullable=False),
        sa.Column("system_id", sa.String(67), nullable=True),
        sa.Column("pre_image", JSONB, nullable=True),
        sa.Column("post_image", JSONB, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("reversed_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index(
        "ix_rollback_entries_rollback_seq",
        "import_rollback_entries",
        ["rollback_id", "sequence"],
        unique=True,
    )
    op.create_index("ix_import_rollback_entries_run_id", "import_rollback_entries", ["run_id"])
    op.create_index("ix_import_rollback_entries_created_at", "import_rollback_entries", ["created_at"])


def downgrade() -> None:
    op.drop_table("import_rollback_entries")
    op.drop_table("import_runs")
    op.drop_table("contact_field_edits")
    op.drop_table("contact_aliases")
    op.drop_table("contact_phones")
    op.drop_table("contacts")
