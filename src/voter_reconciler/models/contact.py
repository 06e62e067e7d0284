"""Contact models — campaign contacts reconciled from voter extracts, with phones and aliases."""

import uuid
from datetime import date, datetime

from sqlalchemy import Boolean, Date, DateTime, ForeignKey, String, Text, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from voter_reconciler.models.base import Base, TimestampMixin, UUIDMixin


class Contact(Base, UUIDMixin, TimestampMixin):
    """A voter contact.  System fields come from the extract; user fields from campaign staff."""

    __tablename__ = "contacts"

    # Identity (raw voter ID is never stored)
    system_id: Mapped[str] = mapped_column(String(67), unique=True, nullable=False, index=True)
    voter_id_hash: Mapped[str | None] = mapped_column(String(64), unique=True, nullable=True, index=True)
    voter_id_redacted: Mapped[str | None] = mapped_column(String(20), nullable=True)

    # Name fields
    full_name: Mapped[str] = mapped_column(Text, nullable=False)
    first_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    middle_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    last_name: Mapped[str | None] = mapped_column(String(100), nullable=True, index=True)
    date_of_birth: Mapped[date | None] = mapped_column(Date, nullable=True)

    # Address
    street_address: Mapped[str | None] = mapped_column(Text, nullable=True)
    city: Mapped[str | None] = mapped_column(String(100), nullable=True)
    state: Mapped[str | None] = mapped_column(String(50), nullable=True)
    zip_code: Mapped[str | None] = mapped_column(String(20), nullable=True)

    # Registration
    party: Mapped[str | None] = mapped_column(String(50), nullable=True)
    voter_status: Mapped[str | None] = mapped_column(String(50), nullable=True)
    registration_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    # Districts
    district: Mapped[str | None] = mapped_column(String(50), nullable=True)
    precinct: Mapped[str | None] = mapped_column(String(50), nullable=True, index=True)
    house_district: Mapped[str | None] = mapped_column(String(50), nullable=True)
    senate_district: Mapped[str | None] = mapped_column(String(50), nullable=True)
    commission_district: Mapped[str | None] = mapped_column(String(50), nullable=True)
    school_board_district: Mapped[str | None] = mapped_column(String(50), nullable=True)

    # Campaign-owned fields
    supporter_status: Mapped[str] = mapped_column(
        String(30), nullable=False, default="unknown", server_default="unknown"
    )
    volunteer_likeliness: Mapped[str] = mapped_column(
        String(30), nullable=False, default="unknown", server_default="unknown"
    )
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Source tracking
    address_source: Mapped[str | None] = mapped_column(String(20), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default="true")
    last_public_update: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_by: Mapped[str | None] = mapped_column(String(100), nullable=True)
    last_updated_by: Mapped[str | None] = mapped_column(String(100), nullable=True)

    # Relationships
    phones = relationship("ContactPhone", back_populates="contact", lazy="raise", passive_deletes=True)
    aliases = relationship("ContactAlias", back_populates="contact", lazy="raise", passive_deletes=True)


class ContactPhone(Base, UUIDMixin):
    """Phone number attached to a contact."""

    __tablename__ = "contact_phones"

    contact_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("contacts.id", ondelete="CASCADE"), nullable=False, index=True
    )
    phone_number: Mapped[str] = mapped_column(String(50), nullable=False)
    phone_type: Mapped[str] = mapped_column(String(10), nullable=False, default="mobile", server_default="mobile")
    is_primary: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="false")
    is_baseline_data: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="false")
    is_manually_added: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="false")
    created_by: Mapped[str | None] = mapped_column(String(100), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    contact = relationship("Contact", back_populates="phones", lazy="raise")


class ContactAlias(Base, UUIDMixin):
    """Alternate name or nickname for a contact."""

    __tablename__ = "contact_aliases"

    contact_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("contacts.id", ondelete="CASCADE"), nullable=False, index=True
    )
    alias: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    contact = relationship("Contact", back_populates="aliases", lazy="raise")
