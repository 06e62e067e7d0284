"""ImportRun model — tracks voter extract import operations."""

from datetime import datetime

from sqlalchemy import Boolean, DateTime, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column

from voter_reconciler.models.base import Base, JSONType, UUIDMixin


class ImportRun(Base, UUIDMixin):
    """One import of a voter extract workbook (live or dry-run)."""

    __tablename__ = "import_runs"

    file_name: Mapped[str] = mapped_column(String(255), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default="pending", server_default="pending", index=True
    )
    dry_run: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="false")
    overwrite_user_data: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="false")
    batch_size: Mapped[int] = mapped_column(Integer, nullable=False)

    # Record counts
    total_rows: Mapped[int | None] = mapped_column(Integer, nullable=True)
    records_created: Mapped[int | None] = mapped_column(Integer, nullable=True)
    records_updated: Mapped[int | None] = mapped_column(Integer, nullable=True)
    records_skipped: Mapped[int | None] = mapped_column(Integer, nullable=True)
    records_duplicate: Mapped[int | None] = mapped_column(Integer, nullable=True)
    records_failed: Mapped[int | None] = mapped_column(Integer, nullable=True)

    # Rollback handle (absent for dry runs)
    rollback_id: Mapped[str | None] = mapped_column(String(32), nullable=True, unique=True, index=True)

    # Redacted error messages
    error_log: Mapped[list[str] | None] = mapped_column(JSONType, nullable=True)

    # Metadata
    triggered_by: Mapped[str | None] = mapped_column(String(100), nullable=True)
    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    rolled_back_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False, index=True
    )
