"""ContactFieldEdit model — last human writer of each hand-edited contact field."""

import uuid
from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, String, UniqueConstraint, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from voter_reconciler.models.base import Base, UUIDMixin


class ContactFieldEdit(Base, UUIDMixin):
    """Provenance row: ``field_name`` on ``contact_id`` was last set by a person."""

    __tablename__ = "contact_field_edits"

    contact_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("contacts.id", ondelete="CASCADE"), nullable=False, index=True
    )
    field_name: Mapped[str] = mapped_column(String(50), nullable=False)
    edited_by: Mapped[str] = mapped_column(String(100), nullable=False)
    edited_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __table_args__ = (UniqueConstraint("contact_id", "field_name", name="uq_contact_field_edit"),)
