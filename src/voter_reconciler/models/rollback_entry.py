"""RollbackEntry model — reversible log of writes made by a live import."""

import uuid
from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from voter_reconciler.models.base import Base, JSONType, UUIDMixin


class RollbackEntry(Base, UUIDMixin):
    """One insert or update performed by an import, with enough data to reverse it.

    ``contact_id`` carries no foreign key: reversing a ``create`` deletes the
    contact while the entry is kept as a record of the reversal.
    """

    __tablename__ = "import_rollback_entries"

    rollback_id: Mapped[str] = mapped_column(String(32), nullable=False)
    run_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("import_runs.id", ondelete="SET NULL"), nullable=True, index=True
    )
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)
    operation: Mapped[str] = mapped_column(String(10), nullable=False)
    contact_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    system_id: Mapped[str | None] = mapped_column(String(67), nullable=True)

    # field → JSON-encoded value, for updates only
    pre_image: Mapped[dict | None] = mapped_column(JSONType, nullable=True)
    post_image: Mapped[dict | None] = mapped_column(JSONType, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False, index=True
    )
    reversed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (Index("ix_rollback_entries_rollback_seq", "rollback_id", "sequence", unique=True),)
