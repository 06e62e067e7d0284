"""Import run Pydantic v2 request/response schemas."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field


class ImportOptions(BaseModel):
    """Caller-supplied parameters for one import run."""

    dry_run: bool = Field(default=False, description="Classify and count without writing")
    batch_size: int | None = Field(
        default=None,
        gt=0,
        description="Rows per chunk; falls back to the configured import_batch_size",
    )
    overwrite_user_data: bool = Field(
        default=False,
        description="Apply system-field changes even where a human edited the field",
    )


class ImportSummary(BaseModel):
    """Final result of an import run."""

    run_id: str
    total_rows: int = 0
    processed: int = 0
    created: int = 0
    updated: int = 0
    skipped: int = 0
    duplicates: int = 0
    errors: int = 0
    chunks: int = 0
    elapsed_seconds: float = 0.0
    rows_per_second: float = 0.0
    rollback_id: str | None = None
    dry_run: bool = False
    error_messages: list[str] = Field(default_factory=list, description="Redacted row/chunk messages")


class ImportRunResponse(BaseModel):
    """Persisted import run status and metadata."""

    id: UUID
    file_name: str
    status: str
    dry_run: bool
    overwrite_user_data: bool
    batch_size: int
    total_rows: int | None = None
    records_created: int | None = None
    records_updated: int | None = None
    records_skipped: int | None = None
    records_duplicate: int | None = None
    records_failed: int | None = None
    rollback_id: str | None = None
    error_log: list[str] | None = None
    triggered_by: str | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    rolled_back_at: datetime | None = None
    created_at: datetime

    model_config = {"from_attributes": True}


class UnresolvedRollbackEntry(BaseModel):
    """A rollback entry that could not be reversed."""

    sequence: int
    operation: str
    system_id: str | None = None
    reason: str


class RollbackResult(BaseModel):
    """Outcome of replaying a rollback log."""

    rollback_id: str
    success: bool
    reversed: int = 0
    unresolved: list[UnresolvedRollbackEntry] = Field(default_factory=list)
