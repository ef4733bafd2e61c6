"""Tests for best-effort batch resolution."""

import threading
from unittest.mock import Mock

from conftest import make_descriptor

from fontresolver.batch.processor import (
    BatchProgressCallback,
    BatchProgressInfo,
    BatchResolver,
)
from fontresolver.core.exceptions import FontNotFoundError
from fontresolver.core.models import FontSource, ResolutionResult


def fake_resolve(name, use_internet=False):
    if name.startswith("Missing"):
        raise FontNotFoundError(name, "no candidates")
    return ResolutionResult(
        original_name=name,
        resolved=make_descriptor("Arial"),
        source=FontSource.SYSTEM,
        compatibility_score=1.0,
    )


class RecordingCallback(BatchProgressCallback):
    def __init__(self):
        self.events = []
        self.lock = threading.Lock()

    def on_start(self, total_items):
        self.events.append(("start", total_items))

    def on_error(self, name, error):
        with self.lock:
            self.events.append(("error", name))

    def on_progress(self, progress):
        with self.lock:
            self.events.append(("progress", progress.completed_items))

    def on_complete(self, result):
        self.events.append(("complete", result.total_items))


class TestBatchProgressInfo:
    """Test progress arithmetic."""

    def test_percentages(self):
        """Test progress and success percentages."""
        info = BatchProgressInfo(total_items=4, completed_items=2, failed_items=1)
        assert info.progress_percentage == 50.0
        assert info.success_rate == 50.0

    def test_empty(self):
        """Test an empty batch counts as complete."""
        info = BatchProgressInfo(total_items=0, completed_items=0, failed_items=0)
        assert info.progress_percentage == 100.0
        assert info.success_rate == 100.0


class TestBatchResolver:
    """Test batch resolution semantics."""

    def _resolver(self):
        resolver = Mock()
        resolver.resolve.side_effect = fake_resolve
        return resolver

    def test_results_in_input_order(self):
        """Test items come back in input order regardless of completion order."""
        names = [f"Font{i}" for i in range(10)]
        batch = BatchResolver(self._resolver(), max_workers=4).resolve_all(names)
        assert [item.name for item in batch.results] == names
        assert [item.index for item in batch.results] == list(range(10))
        assert batch.successful_items == 10
        assert batch.success_rate == 100.0

    def test_failures_do_not_abort(self):
        """Test a failing name is reported in its slot while the rest resolve."""
        batch = BatchResolver(self._resolver(), max_workers=2).resolve_all(
            ["Arial", "MissingFont", "Helvetica"]
        )
        assert batch.total_items == 3
        assert batch.failed_items == 1
        failure = batch.results[1]
        assert not failure.success
        assert failure.result is None
        assert failure.error_type == "FontNotFoundError"
        assert batch.failures == [failure]
        assert batch.results[0].result.original_name == "Arial"

    def test_sequential_mode(self):
        """Test a single worker resolves sequentially with progress per item."""
        callback = RecordingCallback()
        resolver = self._resolver()
        BatchResolver(resolver, max_workers=1).resolve_all(
            ["Arial", "MissingFont"], use_internet=True, progress_callback=callback
        )
        assert callback.events == [
            ("start", 2),
            ("progress", 1),
            ("error", "MissingFont"),
            ("progress", 2),
            ("complete", 2),
        ]
        resolver.resolve.assert_any_call("Arial", use_internet=True)

    def test_empty_batch(self):
        """Test an empty batch completes immediately."""
        batch = BatchResolver(self._resolver()).resolve_all([])
        assert batch.total_items == 0
        assert batch.results == []
