"""Unit tests for resource reclamation checkpoints."""

from unittest.mock import patch

import pytest

from voter_reconciler.core.reclaim import GarbageCollectCheckpoint, noop_checkpoint, peak_memory_mb


class TestGarbageCollectCheckpoint:
    """Tests for GarbageCollectCheckpoint."""

    def test_collects_every_n_chunks(self) -> None:
        checkpoint = GarbageCollectCheckpoint(every=3)
        with patch("voter_reconciler.core.reclaim.gc.collect", return_value=0) as mock_collect:
            for chunk_index in range(7):
                checkpoint(chunk_index)
        assert mock_collect.call_count == 2

    def test_every_chunk(self) -> None:
        checkpoint = GarbageCollectCheckpoint(every=1)
        with patch("voter_reconciler.core.reclaim.gc.collect", return_value=0) as mock_collect:
            checkpoint(0)
            checkpoint(1)
        assert mock_collect.call_count == 2

    @pytest.mark.parametrize("every", [0, -2])
    def test_rejects_non_positive_interval(self, every: int) -> None:
        with pytest.raises(ValueError, match="every must be positive"):
            GarbageCollectCheckpoint(every=every)


def test_noop_checkpoint() -> None:
    assert noop_checkpoint(0) is None


def test_peak_memory_is_positive() -> None:
    assert peak_memory_mb() > 0
