"""
Batch Resolver
==============

Best-effort resolution of many font names in parallel with progress
tracking. A failing name is recorded in its item result and never aborts
the rest of the batch.
"""

import logging
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass

from ..core.models import BatchItemResult, BatchResolutionResult

logger = logging.getLogger(__name__)


@dataclass
class BatchProgressInfo:
    """Progress information for batch resolution."""

    total_items: int
    completed_items: int
    failed_items: int
    current_name: str | None = None

    @property
    def progress_percentage(self) -> float:
        """Calculate progress as percentage."""
        if self.total_items == 0:
            return 100.0
        return (self.completed_items / self.total_items) * 100.0

    @property
    def success_rate(self) -> float:
        """Calculate success rate as percentage."""
        if self.completed_items == 0:
            return 100.0
        return ((self.completed_items - self.failed_items) / self.completed_items) * 100.0


class BatchProgressCallback:
    """Base class for batch progress callbacks."""

    def on_start(self, total_items: int) -> None:
        """Called when batch resolution starts."""

    def on_item_start(self, name: str, item_index: int) -> None:
        """Called when resolution of a name starts."""

    def on_item_complete(self, name: str, success: bool, processing_time_ms: float) -> None:
        """Called when resolution of a name completes."""

    def on_progress(self, progress: BatchProgressInfo) -> None:
        """Called after every completed item."""

    def on_error(self, name: str, error: Exception) -> None:
        """Called when a name fails to resolve."""

    def on_complete(self, result: BatchResolutionResult) -> None:
        """Called when batch resolution completes."""


class ConsoleProgressCallback(BatchProgressCallback):
    """Console progress output, one line per name."""

    def __init__(self):
        self.start_time = None

    def on_start(self, total_items: int) -> None:
        self.start_time = time.time()
        print(f"Resolving {total_items} font names...")

    def on_item_complete(self, name: str, success: bool, processing_time_ms: float) -> None:
        status = "✓" if success else "✗"
        print(f"{status} {name} - {processing_time_ms:.1f}ms")

    def on_error(self, name: str, error: Exception) -> None:
        print(f"✗ Error resolving {name}: {error}")

    def on_complete(self, result: BatchResolutionResult) -> None:
        elapsed = time.time() - self.start_time if self.start_time else 0
        print(
            f"\nResolved {result.successful_items}/{result.total_items} "
            f"({result.success_rate:.1f}%) in {elapsed:.1f}s"
        )


class BatchResolver:
    """
    Parallel batch resolver.

    Works with any resolver exposing ``resolve(name, use_internet=...)``.
    Duplicate names in one batch share a single underlying resolution
    through the resolver's in-flight deduplication.
    """

    def __init__(self, resolver, max_workers: int = 4):
        """
        Initialize batch resolver.

        Args:
            resolver: Object with a ``resolve(name, use_internet=...)`` method
            max_workers: Maximum parallel resolutions
        """
        self.resolver = resolver
        self.max_workers = max(1, max_workers)

    def resolve_all(
        self,
        names: list[str],
        use_internet: bool = False,
        progress_callback: BatchProgressCallback | None = None,
    ) -> BatchResolutionResult:
        """
        Resolve every name, collecting failures per item.

        Args:
            names: Raw font names
            use_internet: Whether the live web tier may be queried
            progress_callback: Optional progress callback

        Returns:
            BatchResolutionResult with items in input order
        """
        start_time = time.time()
        callback = progress_callback or BatchProgressCallback()
        callback.on_start(len(names))

        results: list[BatchItemResult | None] = [None] * len(names)
        completed = failed = 0

        if self.max_workers == 1 or len(names) <= 1:
            for i, name in enumerate(names):
                item = self._resolve_one(i, name, use_internet, callback)
                results[i] = item
                completed += 1
                failed += 0 if item.success else 1
                callback.on_progress(BatchProgressInfo(len(names), completed, failed, name))
        else:
            with ThreadPoolExecutor(
                max_workers=min(self.max_workers, len(names)), thread_name_prefix="font-batch"
            ) as executor:
                futures = {
                    executor.submit(self._resolve_one, i, name, use_internet, callback): i
                    for i, name in enumerate(names)
                }
                for future in as_completed(futures):
                    item = future.result()
                    results[item.index] = item
                    completed += 1
                    failed += 0 if item.success else 1
                    callback.on_progress(BatchProgressInfo(len(names), completed, failed, item.name))

        batch = BatchResolutionResult(
            results=results,
            total_items=len(names),
            successful_items=completed - failed,
            failed_items=failed,
            total_processing_time_ms=(time.time() - start_time) * 1000,
        )
        logger.info(f"Batch resolved {batch.successful_items}/{batch.total_items} names")
        callback.on_complete(batch)
        return batch

    def _resolve_one(
        self, index: int, name: str, use_internet: bool, callback: BatchProgressCallback
    ) -> BatchItemResult:
        start_time = time.time()
        callback.on_item_start(name, index)
        try:
            result = self.resolver.resolve(name, use_internet=use_internet)
        except Exception as e:
            processing_time_ms = (time.time() - start_time) * 1000
            logger.warning(f"Failed to resolve {name!r}: {e}")
            callback.on_error(name, e)
            callback.on_item_complete(name, False, processing_time_ms)
            return BatchItemResult(
                index=index,
                name=name,
                success=False,
                error=str(e),
                error_type=type(e).__name__,
                processing_time_ms=processing_time_ms,
            )

        processing_time_ms = (time.time() - start_time) * 1000
        callback.on_item_complete(name, True, processing_time_ms)
        return BatchItemResult(
            index=index,
            name=name,
            success=True,
            result=result,
            processing_time_ms=processing_time_ms,
        )
