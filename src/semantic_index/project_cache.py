# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Memory-bounded cache of parsed project handles with LRU eviction.

Parsing a whole project is expensive, so each project root is parsed at most
once per cache lifetime and the handle is shared by every later query.

Key Features:
- Path normalization: every spelling of a directory maps to one entry
- Admission control: projects estimated above the per-project ceiling (or
  above the total ceiling, whichever is lower) are returned to the caller but
  never cached
- LRU (Least Recently Used) eviction to keep the summed estimate under a
  total ceiling, enforced before insertion
- Hit/miss statistics

Design Decisions:
- Uses OrderedDict for LRU ordering (oldest access first)
- Memory is a heuristic: file_count * memory_per_file_mb, fixed at creation
- No staleness detection: project contents are assumed stable while cached

Thread Safety:
- _lock protects _entries and the counters
- The parse on a miss runs outside the lock. Two concurrent misses for the
  same path both parse and the later insert replaces the earlier entry
  (duplicate work, never a corrupted map).
"""

import logging
import time
from collections import OrderedDict
from pathlib import Path
from threading import Lock
from typing import Callable, Optional

from semantic_index.config import Config
from semantic_index.models import (
    CachedProjectEntry,
    ProjectCacheEntryInfo,
    ProjectCacheStatistics,
)
from semantic_index.project import ProjectHandle, load_project

logger = logging.getLogger(__name__)


class ProjectCache:
    """Process-wide cache mapping a project root to its parsed ProjectHandle.

    Usage:
        cache = ProjectCache(config)
        project = cache.get_or_create("/path/to/project")
        for source_file in project.get_source_files():
            ...
    """

    def __init__(
        self,
        config: Optional[Config] = None,
        loader: Callable[[str], ProjectHandle] = load_project,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the project cache.

        Args:
            config: Supplies the memory ceilings and the per-file estimate.
                If None, defaults are used.
            loader: Parses a normalized project root into a handle.
            clock: Monotonic time source used for last-access bookkeeping.
        """
        if config is None:
            config = Config.from_dict({})

        self._max_project_memory_mb = config.max_project_memory_mb
        self._max_total_memory_mb = config.max_total_memory_mb
        # A project larger than the whole budget can never be held
        self._admission_limit_mb = min(self._max_project_memory_mb, self._max_total_memory_mb)
        if self._max_project_memory_mb > self._max_total_memory_mb:
            logger.warning(
                f"max_project_memory_mb ({self._max_project_memory_mb}MB) exceeds "
                f"max_total_memory_mb ({self._max_total_memory_mb}MB); "
                f"admitting projects up to {self._admission_limit_mb}MB"
            )
        self._memory_per_file_mb = config.memory_per_file_mb
        self._loader = loader
        self._clock = clock

        self._entries: "OrderedDict[str, CachedProjectEntry]" = OrderedDict()
        self._total_hits = 0
        self._total_misses = 0
        self._evictions = 0

        self._lock = Lock()

        logger.debug(
            f"ProjectCache initialized with max_project={self._max_project_memory_mb}MB, "
            f"max_total={self._max_total_memory_mb}MB, "
            f"per_file={self._memory_per_file_mb}MB"
        )

    @staticmethod
    def normalize_path(project_path: str) -> str:
        """Canonical absolute form of a project path, used as the cache key."""
        return str(Path(project_path).expanduser().resolve())

    def get_or_create(self, project_path: str) -> ProjectHandle:
        """Return a ready-to-query handle for project_path, parsing on first use.

        Args:
            project_path: Project root directory (any spelling).

        Returns:
            The parsed project. Oversized projects are returned uncached.

        Raises:
            ProjectLoadError: If the project cannot be parsed. Failed
                attempts are never cached.
        """
        key = self.normalize_path(project_path)

        with self._lock:
            entry = self._entries.get(key)
            if entry is not None:
                entry.hit_count += 1
                entry.last_access_time = self._clock()
                self._total_hits += 1
                self._entries.move_to_end(key)
                logger.debug(
                    f"Project cache hit: {key} (hit_count={entry.hit_count})",
                    extra={
                        "extra_fields": {
                            "event": "project_cache_hit",
                            "project": key,
                            "hit_count": entry.hit_count,
                        }
                    },
                )
                return entry.handle
            self._total_misses += 1

        logger.info(f"Initializing new project for {key}")
        handle = self._loader(key)

        file_count = handle.file_count
        estimated_memory_mb = file_count * self._memory_per_file_mb

        if estimated_memory_mb > self._admission_limit_mb:
            logger.warning(
                f"Project {key} too large ({estimated_memory_mb:.1f}MB) - skipping cache",
                extra={
                    "extra_fields": {
                        "event": "project_cache_rejected",
                        "project": key,
                        "files": file_count,
                        "estimated_memory_mb": estimated_memory_mb,
                        "limit_mb": self._admission_limit_mb,
                    }
                },
            )
            return handle

        with self._lock:
            replaced = self._entries.pop(key, None)
            if replaced is not None:
                logger.debug(f"Concurrent load of {key} replaces the earlier entry")

            self._ensure_capacity(estimated_memory_mb)

            now = self._clock()
            self._entries[key] = CachedProjectEntry(
                key=key,
                handle=handle,
                last_access_time=now,
                file_count=file_count,
                estimated_memory_mb=estimated_memory_mb,
                hit_count=0,
                created_at=now,
            )
            total_mb = self._total_memory_usage()
            logger.debug(
                f"Project cache miss: {key} (files={file_count}, "
                f"estimated={estimated_memory_mb:.1f}MB, total={total_mb:.1f}MB)",
                extra={
                    "extra_fields": {
                        "event": "project_cache_miss",
                        "project": key,
                        "files": file_count,
                        "estimated_memory_mb": estimated_memory_mb,
                        "total_memory_mb": total_mb,
                    }
                },
            )

        return handle

    def _ensure_capacity(self, required_mb: float) -> None:
        """Evict least-recently-used entries until required_mb fits.

        Caller must hold _lock.
        """
        current_usage = self._total_memory_usage()
        if current_usage + required_mb <= self._max_total_memory_mb:
            return

        evicted_count = 0
        # Items at the beginning of the OrderedDict are least recently used
        while self._entries and current_usage + required_mb > self._max_total_memory_mb:
            key, entry = self._entries.popitem(last=False)
            current_usage -= entry.estimated_memory_mb
            evicted_count += 1
            logger.debug(
                f"Evicted LRU project: {key} (freed={entry.estimated_memory_mb:.1f}MB)",
                extra={
                    "extra_fields": {
                        "event": "project_cache_eviction",
                        "project": key,
                        "freed_memory_mb": entry.estimated_memory_mb,
                    }
                },
            )

        self._evictions += evicted_count
        logger.debug(
            f"LRU eviction complete: evicted={evicted_count} projects, "
            f"usage={current_usage:.1f}MB"
        )

    def _total_memory_usage(self) -> float:
        return sum(entry.estimated_memory_mb for entry in self._entries.values())

    @property
    def total_memory_mb(self) -> float:
        """Summed memory estimate of all cached projects."""
        with self._lock:
            return self._total_memory_usage()

    @property
    def total_hits(self) -> int:
        with self._lock:
            return self._total_hits

    @property
    def total_misses(self) -> int:
        with self._lock:
            return self._total_misses

    def get_entry(self, project_path: str) -> Optional[CachedProjectEntry]:
        """Inspect the entry for a path without counting a hit."""
        with self._lock:
            return self._entries.get(self.normalize_path(project_path))

    def __contains__(self, project_path: object) -> bool:
        if not isinstance(project_path, str):
            return False
        with self._lock:
            return self.normalize_path(project_path) in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def clear(self) -> None:
        """Drop all cached projects.

        Used for:
        - Testing: Reset cache to clean state
        - Process shutdown
        """
        with self._lock:
            self._entries.clear()
            logger.debug("Project cache cleared")

    def get_statistics(self) -> ProjectCacheStatistics:
        """Get cache usage statistics.

        Returns:
            ProjectCacheStatistics snapshot (safe to mutate).
        """
        with self._lock:
            now = self._clock()
            projects = [
                ProjectCacheEntryInfo(
                    path=entry.key,
                    files=entry.file_count,
                    memory_mb=entry.estimated_memory_mb,
                    age_seconds=now - entry.created_at,
                    hits=entry.hit_count,
                )
                for entry in self._entries.values()
            ]
            return ProjectCacheStatistics(
                size=len(self._entries),
                total_memory_mb=self._total_memory_usage(),
                total_hits=self._total_hits,
                total_misses=self._total_misses,
                evictions=self._evictions,
                projects=projects,
            )
