"""Batch Resolution Module
=======================

Best-effort parallel resolution of many font names.
"""

from .processor import BatchProgressCallback, BatchProgressInfo, BatchResolver, ConsoleProgressCallback

__all__ = ["BatchProgressCallback", "BatchProgressInfo", "BatchResolver", "ConsoleProgressCallback"]
