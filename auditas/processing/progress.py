#!/usr/bin/env python
# -*- coding: utf-8 -*-
"""
Progress tracking and resumption for batch processing.

Successfully processed items are appended to a resume cache, one
identifier per line. A later run with resume enabled subtracts the cache
from the full item list so only the remaining items are dispatched.

The subtraction sorts both sides and merges them, O(n log n + m log m),
which keeps resuming a million-item library to seconds.
"""

import os
from pathlib import Path
from typing import Iterable, List, Optional

from auditas.core import get_logger, LockAcquisitionError, ResumeCacheError
from .locks import NamedLock, ThreadLock


def filter_remaining(universe: Iterable[str], completed: Iterable[str]) -> List[str]:
    """
    Items of ``universe`` not present in ``completed``, in sorted order.

    ``completed`` may hold duplicates and items that are not in
    ``universe`` (files renamed or removed since they were recorded);
    both are ignored. The result equals plain set subtraction.

    Args:
        universe: All work items of this run (no duplicates)
        completed: Items already processed, as read from the cache

    Returns:
        Sorted list of items still to process
    """
    pending = sorted(universe)
    done = sorted(completed)
    if not done:
        return pending

    remaining = []
    j = 0
    n_done = len(done)
    for item in pending:
        while j < n_done and done[j] < item:
            j += 1
        if j < n_done and done[j] == item:
            continue
        remaining.append(item)
    return remaining


class ResumeCache:
    """
    Durable, append-only set of completed item identifiers.

    Reads fail open: a missing, unreadable or undecodable cache is treated
    as empty, with a warning, so the run simply re-processes everything.

    Example:
        cache = ResumeCache(config.resume_cache_path, locks.get("resume"))
        remaining = filter_remaining(all_files, cache.load())
        ...
        cache.record("/music/album/01.flac")
    """

    def __init__(self, path: Path, lock: Optional[NamedLock] = None):
        """
        Initialize the resume cache.

        Args:
            path: Cache file (newline-delimited identifiers)
            lock: Lock guarding appends and rewrites
        """
        self.path = Path(path)
        self._lock = lock or ThreadLock("resume")
        self.logger = get_logger(f"{__name__}.ResumeCache")

    def load(self) -> List[str]:
        """
        Read every recorded identifier.

        Returns:
            Identifiers in file order, duplicates included; [] if the
            cache is unavailable
        """
        if not self.path.exists():
            self.logger.warning(f"Resume cache {self.path} not found, processing all items")
            return []

        try:
            with open(self.path, "r", encoding="utf-8") as f:
                return [line.rstrip("\n") for line in f if line.strip()]
        except (OSError, UnicodeDecodeError) as e:
            self.logger.warning(f"Resume cache {self.path} unreadable, processing all items: {e}")
            return []

    def record(self, item: str) -> bool:
        """
        Append one completed item.

        Returns:
            True if the identifier was written
        """
        try:
            with self._lock:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                with open(self.path, "a", encoding="utf-8") as f:
                    f.write(f"{item}\n")
                    f.flush()
            return True
        except LockAcquisitionError as e:
            self.logger.error(f"Could not record {item} in resume cache: {e}")
        except OSError as e:
            self.logger.error(f"Failed to write resume cache {self.path}: {e}")
        return False

    def count(self) -> int:
        """Number of lines currently stored (duplicates counted)."""
        return len(self.load()) if self.path.exists() else 0

    def clear(self) -> bool:
        """
        Delete the cache so the next resumed run starts from scratch.

        Returns:
            True if a cache file existed
        """
        with self._lock:
            if not self.path.exists():
                self.logger.info("No resume cache file found")
                return False
            try:
                self.path.unlink()
            except OSError as e:
                raise ResumeCacheError(f"Cannot remove resume cache {self.path}: {e}") from e
        self.logger.info(f"Resume cache cleared ({self.path})")
        return True

    def compact(self) -> int:
        """
        Rewrite the cache as its sorted set of distinct identifiers.

        Never called automatically; repeated runs only append.

        Returns:
            Number of lines removed
        """
        with self._lock:
            entries = self.load()
            distinct = sorted(set(entries))
            removed = len(entries) - len(distinct)
            if removed == 0:
                return 0

            temp_path = self.path.with_suffix(self.path.suffix + ".tmp")
            try:
                with open(temp_path, "w", encoding="utf-8") as f:
                    f.writelines(f"{item}\n" for item in distinct)
                os.replace(temp_path, self.path)
            except OSError as e:
                temp_path.unlink(missing_ok=True)
                raise ResumeCacheError(f"Cannot compact resume cache {self.path}: {e}") from e

        self.logger.info(f"Compacted resume cache: removed {removed} duplicate entries")
        return removed

    def __repr__(self) -> str:
        return f"ResumeCache({self.path})"
