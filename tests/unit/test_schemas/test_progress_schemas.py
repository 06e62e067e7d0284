"""Tests for progress event schemas."""

import json
from datetime import UTC, datetime

from voter_reconciler.schemas.imports import ImportOptions, ImportSummary
from voter_reconciler.schemas.progress import ProgressEvent, ProgressSnapshot


def _snapshot() -> ProgressSnapshot:
    return ProgressSnapshot(
        total_rows=10,
        processed=4,
        created=2,
        updated=1,
        skipped=1,
        duplicates=0,
        errors=0,
        current_chunk=2,
        total_chunks=5,
        phase="processing",
        started_at=datetime(2026, 3, 1, tzinfo=UTC),
        elapsed_seconds=2.0,
        eta_seconds=3.0,
        rows_per_second=2.0,
    )


class TestProgressEvent:
    """Tests for ProgressEvent."""

    def test_terminal_types(self) -> None:
        assert ProgressEvent(type="completed", run_id="r").is_terminal
        assert ProgressEvent(type="error", run_id="r").is_terminal
        assert not ProgressEvent(type="progress", run_id="r").is_terminal
        assert not ProgressEvent(type="connected", run_id="r").is_terminal

    def test_to_sse_frame(self) -> None:
        event = ProgressEvent(type="progress", run_id="r", progress=_snapshot())
        frame = event.to_sse()
        assert frame.startswith("data: ")
        assert frame.endswith("\n\n")
        payload = json.loads(frame[len("data: ") :])
        assert payload["type"] == "progress"
        assert payload["progress"]["current_chunk"] == 2
        assert "summary" not in payload
        assert "memory_usage_mb" not in payload["progress"]

    def test_completed_event_carries_summary(self) -> None:
        event = ProgressEvent(type="completed", run_id="r", summary=ImportSummary(run_id="r", created=3))
        payload = json.loads(event.to_sse()[len("data: ") :])
        assert payload["summary"]["created"] == 3


class TestImportOptions:
    """Tests for ImportOptions."""

    def test_defaults(self) -> None:
        options = ImportOptions()
        assert options.dry_run is False
        assert options.batch_size is None
        assert options.overwrite_user_data is False
