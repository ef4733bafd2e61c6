"""Dual-Layer Resolution Cache
===========================

Two layers share one logical key, the normalized font signature:
- a bounded in-memory layer holding recently used entries
- a larger persistent layer loaded at startup and written back on mutation

Policy:
- Disk hits are promoted into memory
- Capacity overflow evicts the unpinned entry with the lowest
  (access_count, last_access) pair
- Entries auto-pin when their access count reaches the configured threshold
- Pinned entries are never removed by eviction or cleanup

The persistent store is written by a single background writer, so writes are
serialized and each flush is bounded by the configured I/O timeout. Lookups
only update usage counters in memory; those reach disk with the next
structural write, every USAGE_FLUSH_INTERVAL hits, or on close.
"""

import json
import logging
import os
import threading
import time
from collections import OrderedDict
from collections.abc import Callable, Iterator
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, ValidationError

from ..core.config import ResolverConfig
from ..core.exceptions import (
    CacheEntryNotFoundError,
    CacheIOTimeoutError,
    CorruptCacheStoreError,
    UnsupportedCacheVersionError,
)
from ..core.models import FontDescriptor, FontSource, SubstitutionReason, comparison_key

logger = logging.getLogger(__name__)

CACHE_FORMAT = "fontresolver-cache"
CACHE_VERSION = 1
SECONDS_PER_DAY = 86400.0
# Cache hits between writes of usage counters alone
USAGE_FLUSH_INTERVAL = 100


class CacheLayer(str, Enum):
    MEMORY = "memory"
    DISK = "disk"


class CacheEntry(BaseModel):
    """A cached resolution with its usage metadata."""

    key: str = Field(..., description="Normalized signature")
    name: str = Field(..., description="Normalized font name, for listings")
    descriptor: FontDescriptor
    source: FontSource
    compatibility_score: float = Field(1.0, ge=0.0, le=1.0)
    substitution_reason: SubstitutionReason | None = None
    warnings: list[str] = Field(default_factory=list)
    created_at: float
    last_access: float
    access_count: int = Field(1, ge=0)
    pinned: bool = False
    auto_pinned: bool = False

    @property
    def is_pinned(self) -> bool:
        return self.pinned or self.auto_pinned

    def update_access(self, now: float) -> None:
        """Update access statistics."""
        self.last_access = now
        self.access_count += 1

    def size_bytes(self) -> int:
        return len(self.model_dump_json())


class WebResultSet(BaseModel):
    """Live-web provider results remembered for a family."""

    family_key: str
    fetched_at: float
    descriptors: list[FontDescriptor] = Field(default_factory=list)


@dataclass
class CacheStats:
    """Statistics for cache performance and occupancy."""

    hits: int = 0
    misses: int = 0
    evictions: int = 0
    promotions: int = 0
    memory_entries: int = 0
    disk_entries: int = 0
    pinned_entries: int = 0
    auto_pinned_entries: int = 0
    web_families: int = 0
    memory_bytes: int = 0
    disk_bytes: int = 0
    memory_limit_bytes: int = 0
    disk_limit_bytes: int = 0

    @property
    def hit_rate(self) -> float:
        """Calculate cache hit rate."""
        total = self.hits + self.misses
        return (self.hits / total * 100.0) if total > 0 else 0.0

    def to_dict(self) -> dict[str, Any]:
        """Convert stats to dictionary."""
        return {
            "hits": self.hits,
            "misses": self.misses,
            "evictions": self.evictions,
            "promotions": self.promotions,
            "hit_rate_percent": self.hit_rate,
            "memory_entries": self.memory_entries,
            "disk_entries": self.disk_entries,
            "pinned_entries": self.pinned_entries,
            "auto_pinned_entries": self.auto_pinned_entries,
            "web_families": self.web_families,
            "memory_bytes": self.memory_bytes,
            "disk_bytes": self.disk_bytes,
            "memory_limit_bytes": self.memory_limit_bytes,
            "disk_limit_bytes": self.disk_limit_bytes,
        }


class FontCache:
    """Thread-safe dual-layer cache of font resolutions."""

    def __init__(self, config: ResolverConfig, clock: Callable[[], float] = time.time):
        self.config = config
        self.cache_file = config.cache_file
        self.persist = config.cache_results
        self.memory_limit = config.memory_limit_bytes
        self.disk_limit = config.disk_limit_bytes
        self.auto_pin_threshold = config.auto_pin_threshold
        self.io_timeout = config.io_timeout_seconds
        self.usage_flush_interval = USAGE_FLUSH_INTERVAL
        self._clock = clock

        self._memory: OrderedDict[str, CacheEntry] = OrderedDict()
        self._disk: dict[str, CacheEntry] = {}
        self._sizes: dict[str, int] = {}
        self._memory_bytes = 0
        self._disk_bytes = 0
        self._web: dict[str, WebResultSet] = {}

        self._lock = threading.RLock()
        self._stats = CacheStats()
        self._dirty = False
        self._unsaved_accesses = 0
        self._batch_depth = 0
        self._writer = ThreadPoolExecutor(max_workers=1, thread_name_prefix="fontcache-writer")

        if self.persist:
            self._load()

        logger.info(
            f"FontCache initialized: memory={self.memory_limit}B, disk={self.disk_limit}B, "
            f"persist={self.persist}, entries={len(self._disk)}"
        )

    # ------------------------------------------------------------------ lookup

    def get(self, key: str) -> CacheEntry | None:
        """Look up an entry, checking memory then disk and promoting disk hits."""
        with self._lock:
            entry = self._memory.get(key)
            if entry is None and key in self._disk:
                self.promote(key)
                entry = self._memory.get(key)

            if entry is None:
                self._stats.misses += 1
                return None

            self._memory.move_to_end(key)
            self._touch(entry)
            self._stats.hits += 1
            snapshot = entry.model_copy(deep=True)
        self._flush_if_dirty()
        return snapshot

    def peek(self, key: str) -> CacheEntry | None:
        """Look up an entry without touching usage counters or layers."""
        with self._lock:
            entry = self._memory.get(key) or self._disk.get(key)
            return entry.model_copy(deep=True) if entry is not None else None

    def cached_identities(self) -> set[tuple]:
        with self._lock:
            return {descriptor_identity(e.descriptor) for e in self._all_entries()}

    # ------------------------------------------------------------- mutation

    def put(
        self,
        key: str,
        descriptor: FontDescriptor,
        *,
        name: str,
        source: FontSource,
        compatibility_score: float = 1.0,
        substitution_reason: SubstitutionReason | None = None,
        warnings: list[str] | None = None,
    ) -> CacheEntry:
        """Insert or refresh an entry; usage counters and pins of an existing entry survive."""
        now = self._clock()
        with self._lock:
            entry = self._memory.get(key) or self._disk.get(key)
            if entry is None:
                entry = CacheEntry(
                    key=key,
                    name=name,
                    descriptor=descriptor,
                    source=source,
                    compatibility_score=compatibility_score,
                    substitution_reason=substitution_reason,
                    warnings=list(warnings or []),
                    created_at=now,
                    last_access=now,
                )
            else:
                self._detach(key)
                entry.name = name
                entry.descriptor = descriptor
                entry.source = source
                entry.compatibility_score = compatibility_score
                entry.substitution_reason = substitution_reason
                entry.warnings = list(warnings or [])
                entry.last_access = now

            self._sizes[key] = entry.size_bytes()
            self._attach(key, entry, CacheLayer.MEMORY)
            self._enforce_budget(CacheLayer.MEMORY, protect=key)
            if self.persist:
                self._attach(key, entry, CacheLayer.DISK)
                self._enforce_budget(CacheLayer.DISK, protect=key)
                self._dirty = True
            snapshot = entry.model_copy(deep=True)

        logger.debug(f"Cached {key} -> {descriptor}")
        self._flush_if_dirty()
        return snapshot

    def promote(self, key: str) -> bool:
        """Move a disk-only entry into the memory layer, evicting as needed."""
        with self._lock:
            if key in self._memory:
                return True
            entry = self._disk.get(key)
            if entry is None:
                return False
            self._attach(key, entry, CacheLayer.MEMORY)
            self._stats.promotions += 1
            self._enforce_budget(CacheLayer.MEMORY, protect=key)
            return True

    def evict_one(self, layer: CacheLayer, protect: str | None = None) -> str | None:
        """Evict the least-frequently-then-least-recently used unpinned entry of a layer."""
        with self._lock:
            entries = self._memory if layer == CacheLayer.MEMORY else self._disk
            victims = [e for k, e in entries.items() if not e.is_pinned and k != protect]
            if not victims:
                return None
            victim = min(victims, key=lambda e: (e.access_count, e.last_access, e.key))
            self._remove_from_layer(victim.key, layer)
            self._stats.evictions += 1
            if layer == CacheLayer.DISK:
                self._dirty = True
            logger.info(
                f"Evicted {victim.key} from {layer.value} layer "
                f"(accessed {victim.access_count} times)"
            )
            return victim.key

    def pin(self, key: str) -> CacheEntry:
        with self._lock:
            entry = self._memory.get(key) or self._disk.get(key)
            if entry is None:
                raise CacheEntryNotFoundError(key)
            entry.pinned = True
            self._dirty = True
            snapshot = entry.model_copy(deep=True)
        self._flush_if_dirty()
        return snapshot

    def unpin(self, key: str) -> CacheEntry:
        """Clear both the manual and the usage-derived pin."""
        with self._lock:
            entry = self._memory.get(key) or self._disk.get(key)
            if entry is None:
                raise CacheEntryNotFoundError(key)
            entry.pinned = False
            entry.auto_pinned = False
            self._dirty = True
            snapshot = entry.model_copy(deep=True)
        self._flush_if_dirty()
        return snapshot

    def remove(self, keys: list[str]) -> int:
        """Remove entries by key; pinned entries are kept."""
        removed = 0
        with self._lock:
            for key in keys:
                entry = self._memory.get(key) or self._disk.get(key)
                if entry is None:
                    continue
                if entry.is_pinned:
                    logger.warning(f"Not removing pinned cache entry {key}; unpin it first")
                    continue
                self._detach(key)
                removed += 1
            if removed:
                self._dirty = True
        self._flush_if_dirty()
        return removed

    def cleanup(self, aggressive: bool = False) -> int:
        """
        Remove stale unpinned entries.

        Args:
            aggressive: Use the shorter idle age and also drop entries accessed at most once

        Returns:
            Number of entries removed
        """
        now = self._clock()
        max_idle_days = (
            self.config.aggressive_stale_after_days if aggressive else self.config.stale_after_days
        )
        max_idle = max_idle_days * SECONDS_PER_DAY

        with self._lock:
            doomed = [
                entry.key
                for entry in self._all_entries()
                if not entry.is_pinned
                and ((now - entry.last_access) > max_idle or (aggressive and entry.access_count <= 1))
            ]
            for key in doomed:
                self._detach(key)

            stale_web = [k for k, v in self._web.items() if (now - v.fetched_at) > max_idle]
            for key in stale_web:
                del self._web[key]

            if doomed or stale_web:
                self._dirty = True

        logger.info(f"Cache cleanup (aggressive={aggressive}) removed {len(doomed)} entries")
        self._flush_if_dirty()
        return len(doomed)

    # ------------------------------------------------------------ web results

    def put_web_results(self, family: str, descriptors: list[FontDescriptor]) -> None:
        """Remember complete provider results for a family, merged with earlier ones."""
        family_key = comparison_key(family)
        with self._lock:
            existing = self._web.get(family_key)
            merged = {descriptor_identity(d): d for d in (existing.descriptors if existing else [])}
            merged.update({descriptor_identity(d): d for d in descriptors})
            self._web[family_key] = WebResultSet(
                family_key=family_key, fetched_at=self._clock(), descriptors=list(merged.values())
            )
            if self.persist:
                self._dirty = True
        self._flush_if_dirty()

    def web_results(self, family: str) -> list[FontDescriptor]:
        with self._lock:
            result_set = self._web.get(comparison_key(family))
            return list(result_set.descriptors) if result_set else []

    def all_web_results(self) -> list[FontDescriptor]:
        with self._lock:
            return [d for key in sorted(self._web) for d in self._web[key].descriptors]

    # ---------------------------------------------------------------- reports

    def stats(self) -> CacheStats:
        with self._lock:
            entries = list(self._all_entries())
            stats = CacheStats(
                hits=self._stats.hits,
                misses=self._stats.misses,
                evictions=self._stats.evictions,
                promotions=self._stats.promotions,
                memory_entries=len(self._memory),
                disk_entries=len(self._disk),
                pinned_entries=sum(1 for e in entries if e.pinned),
                auto_pinned_entries=sum(1 for e in entries if e.auto_pinned and not e.pinned),
                web_families=len(self._web),
                memory_bytes=self._memory_bytes,
                disk_bytes=self._disk_bytes,
                memory_limit_bytes=self.memory_limit,
                disk_limit_bytes=self.disk_limit,
            )
        if self.persist and self.cache_file.exists():
            stats.disk_bytes = self.cache_file.stat().st_size
        return stats

    def list_pinned(self) -> list[str]:
        with self._lock:
            return sorted(e.name for e in self._all_entries() if e.is_pinned)

    def suggest_for_removal(self, limit: int | None = None) -> list[str]:
        """Unpinned entry names, least used and least recently used first. Does not mutate."""
        with self._lock:
            candidates = sorted(
                (e for e in self._all_entries() if not e.is_pinned),
                key=lambda e: (e.access_count, e.last_access, e.key),
            )
            names = [e.name for e in candidates]
        return names[:limit] if limit is not None else names

    def layer_of(self, key: str) -> set[CacheLayer]:
        with self._lock:
            layers = set()
            if key in self._memory:
                layers.add(CacheLayer.MEMORY)
            if key in self._disk:
                layers.add(CacheLayer.DISK)
            return layers

    def __len__(self) -> int:
        with self._lock:
            return len(set(self._memory) | set(self._disk))

    def __contains__(self, key: str) -> bool:
        with self._lock:
            return key in self._memory or key in self._disk

    # ------------------------------------------------------------ persistence

    @contextmanager
    def batch(self) -> Iterator["FontCache"]:
        """Group several mutations into a single write of the persistent store."""
        with self._lock:
            self._batch_depth += 1
        try:
            yield self
        finally:
            with self._lock:
                self._batch_depth -= 1
            self._flush_if_dirty()

    def flush(self) -> None:
        """Write the persistent layer now, waiting at most the I/O timeout."""
        if not self.persist:
            return
        with self._lock:
            # Submitting under the lock keeps snapshots in write order
            future = self._writer.submit(self._write_store, self._serialize())
            self._dirty = False
            self._unsaved_accesses = 0
        try:
            future.result(timeout=self.io_timeout)
        except FutureTimeoutError:
            # The write stays queued on the writer; mark dirty so a later flush retries
            with self._lock:
                self._dirty = True
            logger.warning(f"Cache write to {self.cache_file} exceeded {self.io_timeout}s")
        except OSError as e:
            with self._lock:
                self._dirty = True
            logger.warning(f"Cache write to {self.cache_file} failed: {e}")

    def close(self) -> None:
        if self._dirty or self._unsaved_accesses:
            self.flush()
        self._writer.shutdown(wait=True)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def _flush_if_dirty(self) -> None:
        with self._lock:
            should_flush = self._dirty and self._batch_depth == 0 and self.persist
        if should_flush:
            self.flush()

    def _serialize(self) -> str:
        return json.dumps(
            {
                "format": CACHE_FORMAT,
                "version": CACHE_VERSION,
                "saved_at": self._clock(),
                "entries": [e.model_dump(mode="json") for e in self._disk.values()],
                "web_results": [w.model_dump(mode="json") for w in self._web.values()],
            }
        )

    def _write_store(self, payload: str) -> None:
        self.cache_file.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.cache_file.with_suffix(".tmp")
        tmp_path.write_text(payload, encoding="utf-8")
        os.replace(tmp_path, self.cache_file)
        logger.debug(f"Flushed cache store {self.cache_file} ({len(payload)} bytes)")

    def _read_store(self) -> str:
        return self.cache_file.read_text(encoding="utf-8")

    def _load(self) -> None:
        if not self.cache_file.exists():
            return
        try:
            raw = self._writer.submit(self._read_store).result(timeout=self.io_timeout)
        except FutureTimeoutError as e:
            raise CacheIOTimeoutError("read", self.io_timeout) from e

        path = str(self.cache_file)
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            raise CorruptCacheStoreError(path, str(e)) from e

        if not isinstance(data, dict) or data.get("format") != CACHE_FORMAT:
            raise CorruptCacheStoreError(path, "missing cache format marker")
        if data.get("version") != CACHE_VERSION:
            raise UnsupportedCacheVersionError(path, data.get("version"))

        try:
            entries = [CacheEntry.model_validate(item) for item in data.get("entries", [])]
            web = [WebResultSet.model_validate(item) for item in data.get("web_results", [])]
        except ValidationError as e:
            raise CorruptCacheStoreError(path, str(e)) from e

        for entry in entries:
            self._sizes[entry.key] = entry.size_bytes()
            self._attach(entry.key, entry, CacheLayer.DISK)
        self._web = {w.family_key: w for w in web}
        self._enforce_budget(CacheLayer.DISK)
        logger.info(f"Loaded {len(entries)} cache entries from {self.cache_file}")

    # ---------------------------------------------------------------- helpers

    def _touch(self, entry: CacheEntry) -> None:
        entry.update_access(self._clock())
        auto_pinned = not entry.is_pinned and entry.access_count == self.auto_pin_threshold
        if auto_pinned:
            entry.auto_pinned = True
            logger.info(f"Auto-pinned {entry.key} after {entry.access_count} accesses")
        if not self.persist or entry.key not in self._disk:
            return
        self._unsaved_accesses += 1
        if auto_pinned or self._unsaved_accesses >= self.usage_flush_interval:
            self._dirty = True

    def _all_entries(self) -> Iterator[CacheEntry]:
        seen = set()
        for key, entry in list(self._memory.items()) + list(self._disk.items()):
            if key not in seen:
                seen.add(key)
                yield entry

    def _attach(self, key: str, entry: CacheEntry, layer: CacheLayer) -> None:
        size = self._sizes.get(key, 0)
        if layer == CacheLayer.MEMORY:
            if key not in self._memory:
                self._memory_bytes += size
            self._memory[key] = entry
        else:
            if key not in self._disk:
                self._disk_bytes += size
            self._disk[key] = entry

    def _remove_from_layer(self, key: str, layer: CacheLayer) -> None:
        size = self._sizes.get(key, 0)
        if layer == CacheLayer.MEMORY:
            if self._memory.pop(key, None) is not None:
                self._memory_bytes -= size
        elif self._disk.pop(key, None) is not None:
            self._disk_bytes -= size
        if key not in self._memory and key not in self._disk:
            self._sizes.pop(key, None)

    def _detach(self, key: str) -> None:
        size = self._sizes.get(key, 0)
        if self._memory.pop(key, None) is not None:
            self._memory_bytes -= size
        if self._disk.pop(key, None) is not None:
            self._disk_bytes -= size
        self._sizes.pop(key, None)

    def _enforce_budget(self, layer: CacheLayer, protect: str | None = None) -> None:
        limit = self.memory_limit if layer == CacheLayer.MEMORY else self.disk_limit
        while (self._memory_bytes if layer == CacheLayer.MEMORY else self._disk_bytes) > limit:
            if self.evict_one(layer, protect=protect) is None:
                logger.warning(f"{layer.value} cache over budget; remaining entries are pinned")
                break


def descriptor_identity(descriptor: FontDescriptor) -> tuple:
    """Key identifying the same physical or hosted font across descriptor instances."""
    return (descriptor.family_key, descriptor.weight, descriptor.italic, descriptor.path)
