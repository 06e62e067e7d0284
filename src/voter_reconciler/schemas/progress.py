"""Progress stream event schemas."""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel

from voter_reconciler.schemas.imports import ImportSummary

ImportPhase = Literal["parsing", "processing", "completed", "error"]
EventType = Literal["connected", "progress", "completed", "error"]

TERMINAL_EVENT_TYPES = frozenset({"completed", "error"})


class ProgressSnapshot(BaseModel):
    """Read-only copy of an import run's counters at one point in time."""

    total_rows: int
    processed: int
    created: int
    updated: int
    skipped: int
    duplicates: int
    errors: int
    current_chunk: int
    total_chunks: int
    phase: ImportPhase
    started_at: datetime
    elapsed_seconds: float
    eta_seconds: float | None = None
    rows_per_second: float = 0.0
    memory_usage_mb: float | None = None


class ProgressEvent(BaseModel):
    """One event on a run's progress stream."""

    type: EventType
    run_id: str
    progress: ProgressSnapshot | None = None
    summary: ImportSummary | None = None
    message: str | None = None

    @property
    def is_terminal(self) -> bool:
        return self.type in TERMINAL_EVENT_TYPES

    def to_sse(self) -> str:
        """Render as a Server-Sent Events ``data:`` frame."""
        return f"data: {self.model_dump_json(exclude_none=True)}\n\n"
