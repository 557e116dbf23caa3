#!/usr/bin/env python
# -*- coding: utf-8 -*-
"""
Shared progress counter for one run.

``increment()`` is a single critical section (read, add one, persist,
return) guarded by the same lock for every caller, so no update is lost
and no two callers ever see the same post-increment value.
"""

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional

from auditas.core import get_logger, ResourceError
from .locks import NamedLock, ThreadLock


class ProgressCounter(ABC):
    """
    Completed-item counter with a fixed total.

    ``total`` is set once per run from the (possibly resume-filtered)
    item count and never changes while the pool is draining.
    """

    def __init__(self, total: int):
        if total < 0:
            raise ValueError(f"total must be >= 0, got {total}")
        self._total = total

    @property
    def total(self) -> int:
        return self._total

    @abstractmethod
    def increment(self) -> int:
        """Atomically add one and return the new value."""

    @abstractmethod
    def read(self) -> int:
        """Return the current value."""

    @abstractmethod
    def reset(self, total: Optional[int] = None):
        """Set the value back to 0, optionally with a new total (run start only)."""

    def cleanup(self):
        """Remove any backing storage."""

    def __repr__(self) -> str:
        return f"{type(self).__name__}(total={self.total})"


class MemoryCounter(ProgressCounter):
    """Lock-guarded in-memory integer for thread workers."""

    def __init__(self, total: int, lock: Optional[NamedLock] = None):
        super().__init__(total)
        self._lock = lock or ThreadLock("counter")
        self._value = 0

    def increment(self) -> int:
        with self._lock:
            self._value += 1
            return self._value

    def read(self) -> int:
        return self._value

    def reset(self, total: Optional[int] = None):
        with self._lock:
            self._value = 0
            if total is not None:
                self._total = total


class FileCounter(ProgressCounter):
    """
    Counter persisted as a single integer in a small file.

    For workers in separate processes: each process opens a FileCounter on
    the same path with ``reset=False`` and a FileLock on the same lock file.

    Example:
        counter = FileCounter(path, total=100, lock=locks.get("counter"))
        new_value = counter.increment()
    """

    def __init__(
        self,
        path: Path,
        total: int,
        lock: NamedLock,
        reset: bool = True
    ):
        """
        Initialize the counter store.

        Args:
            path: File holding the integer
            total: Items expected in this run
            lock: Lock guarding every read-modify-write
            reset: Write 0 to the store (the run owner does this once)

        Raises:
            ResourceError: If the store cannot be created
        """
        super().__init__(total)
        self.path = Path(path)
        self._lock = lock
        self._released = False
        self._last_value = 0
        self.logger = get_logger(f"{__name__}.FileCounter")

        if reset:
            try:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                self._write(0)
            except OSError as e:
                raise ResourceError(f"Cannot create counter store {self.path}: {e}") from e

    def _read_raw(self) -> int:
        try:
            content = self.path.read_text().strip()
        except FileNotFoundError:
            return 0
        try:
            return int(content) if content else 0
        except ValueError:
            self.logger.warning(f"Counter store {self.path} is corrupt ({content!r}), treating as 0")
            return 0

    def _write(self, value: int):
        with open(self.path, "w") as f:
            f.write(f"{value}\n")
            f.flush()

    def increment(self) -> int:
        """
        Atomically add one and return the new value.

        Raises:
            ResourceError: If the store was already released or its lock
                cannot be acquired
        """
        with self._lock:
            if self._released:
                raise ResourceError(f"Counter store {self.path} already released")
            next_value = self._read_raw() + 1
            self._write(next_value)
            if self._released:
                # Released while writing
                self.path.unlink(missing_ok=True)
            self._last_value = next_value
            return next_value

    def read(self) -> int:
        """Current value; after cleanup, the last value this object saw."""
        if self._released:
            return self._last_value
        with self._lock:
            self._last_value = self._read_raw()
            return self._last_value

    def reset(self, total: Optional[int] = None):
        with self._lock:
            self._write(0)
            self._released = False
            self._last_value = 0
            if total is not None:
                self._total = total

    def cleanup(self):
        self._released = True
        self.path.unlink(missing_ok=True)

    def __repr__(self) -> str:
        return f"FileCounter({self.path}, total={self.total})"


def create_counter(
    total: int,
    locks,
    cross_process: bool = False,
    path: Optional[Path] = None,
    registry=None
) -> ProgressCounter:
    """
    Create the counter for a run, reset to 0.

    Args:
        total: Items expected in this run
        locks: LockManager providing the "counter" lock
        cross_process: Back the counter with a file
        path: Counter store path (default: next to the lock files)
        registry: Optional ResourceRegistry that removes the store

    Returns:
        A fresh ProgressCounter
    """
    lock = locks.get("counter")
    if not cross_process:
        return MemoryCounter(total, lock=lock)

    if path is None:
        if locks.lock_dir is None:
            raise ResourceError("A lock directory is required for a file-backed counter")
        path = locks.lock_dir / f"auditas_counter_{locks.run_id}"
    counter = FileCounter(path, total, lock=lock, reset=True)
    if registry is not None:
        registry.register(counter)
    return counter
