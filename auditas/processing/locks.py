#!/usr/bin/env python
# -*- coding: utf-8 -*-
"""
Named mutual-exclusion handles for short critical sections.

Two flavours share one interface:

- ThreadLock: an in-memory mutex, enough when every worker is a thread
  of the current process.
- FileLock: an advisory lock on a small file (portalocker), for workers
  living in separate processes. It also takes an in-process mutex first,
  so threads sharing one FileLock instance are serialised too.

A lock is held for one counter increment or one log append, never across
the execution of a per-item operation.
"""

import os
import re
import threading
import time
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, Optional

import portalocker

from auditas.core import get_logger, LockAcquisitionError


class NamedLock(ABC):
    """Interface of a named mutual-exclusion resource."""

    def __init__(self, name: str, timeout: Optional[float] = None):
        self.name = name
        self.timeout = timeout

    @abstractmethod
    def acquire(self, timeout: Optional[float] = None):
        """
        Block until the lock is held.

        Args:
            timeout: Seconds to wait (default: the lock's own timeout,
                None waits forever)

        Raises:
            LockAcquisitionError: If the lock was not acquired in time
        """

    @abstractmethod
    def release(self):
        """Release a lock held by the caller."""

    def cleanup(self):
        """Remove any backing storage. No-op for in-memory locks."""

    def _effective_timeout(self, timeout: Optional[float]) -> Optional[float]:
        return self.timeout if timeout is None else timeout

    def __enter__(self) -> "NamedLock":
        self.acquire()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.release()
        return False

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.name})"


class ThreadLock(NamedLock):
    """In-process mutex."""

    def __init__(self, name: str, timeout: Optional[float] = None):
        super().__init__(name, timeout)
        self._lock = threading.Lock()

    def acquire(self, timeout: Optional[float] = None):
        timeout = self._effective_timeout(timeout)
        acquired = self._lock.acquire(timeout=-1 if timeout is None else timeout)
        if not acquired:
            raise LockAcquisitionError(self.name, timeout)

    def release(self):
        self._lock.release()


class FileLock(NamedLock):
    """
    Advisory exclusive lock on a lock file, safe across processes.

    Polls with a non-blocking lock until the timeout expires, the same way
    the cross-process rate limiter coordinates its workers.

    Once cleaned up, the lock refuses to recreate its file: ``acquire()``
    raises LockAcquisitionError until ``reopen()`` is called.
    """

    POLL_INTERVAL = 0.005

    def __init__(self, name: str, path: Path, timeout: Optional[float] = None):
        super().__init__(name, timeout)
        self.path = Path(path)
        self._thread_lock = threading.Lock()
        self._handle = None
        self._retired = False

        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.touch(exist_ok=True)

    @property
    def retired(self) -> bool:
        """True after cleanup() until the next reopen()."""
        return self._retired

    def acquire(self, timeout: Optional[float] = None):
        timeout = self._effective_timeout(timeout)
        deadline = None if timeout is None else time.monotonic() + timeout

        if not self._thread_lock.acquire(timeout=-1 if timeout is None else timeout):
            raise LockAcquisitionError(self.name, timeout)

        if self._retired:
            self._thread_lock.release()
            raise LockAcquisitionError(self.name, timeout, reason="lock file already released")

        try:
            handle = open(self.path, "a+")
        except OSError as e:
            self._thread_lock.release()
            raise LockAcquisitionError(self.name, timeout) from e

        try:
            while True:
                try:
                    portalocker.lock(handle, portalocker.LOCK_EX | portalocker.LOCK_NB)
                    break
                except portalocker.LockException:
                    if deadline is not None and time.monotonic() >= deadline:
                        raise LockAcquisitionError(self.name, timeout)
                    time.sleep(self.POLL_INTERVAL)
        except BaseException:
            handle.close()
            self._thread_lock.release()
            raise

        self._handle = handle

    def release(self):
        handle, self._handle = self._handle, None
        try:
            if handle is not None:
                if self._retired:
                    # Cleaned up while held
                    self.path.unlink(missing_ok=True)
                portalocker.unlock(handle)
                handle.close()
        finally:
            self._thread_lock.release()

    def cleanup(self):
        # No thread lock here: a signal handler may run while this thread holds it
        self._retired = True
        self.path.unlink(missing_ok=True)

    def reopen(self):
        """Make a cleaned-up lock usable again for a new run."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.touch(exist_ok=True)
        self._retired = False

    def __repr__(self) -> str:
        return f"FileLock({self.name}, {self.path})"


_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9_.-]+")


class LockManager:
    """
    Hands out one named lock per name for a run.

    Every caller asking for the same name gets the same lock, and distinct
    names never share one, so writers to different channels do not block
    each other.

    File locks are registered with the resource registry (when given) so
    the lock files disappear with the run.

    Example:
        locks = LockManager(lock_dir, cross_process=True, registry=registry)
        with locks.get("counter"):
            ...
    """

    def __init__(
        self,
        lock_dir: Optional[Path] = None,
        cross_process: bool = False,
        timeout: Optional[float] = 30.0,
        registry=None,
        run_id: Optional[str] = None
    ):
        """
        Initialize the lock manager.

        Args:
            lock_dir: Directory for lock files (required for cross_process)
            cross_process: Use FileLock instead of ThreadLock
            timeout: Default acquisition timeout in seconds
            registry: Optional ResourceRegistry that removes lock files
            run_id: Shared suffix for lock file names (default: this PID)
        """
        if cross_process and lock_dir is None:
            raise ValueError("lock_dir is required for cross-process locks")

        self.lock_dir = Path(lock_dir) if lock_dir is not None else None
        self.cross_process = cross_process
        self.timeout = timeout
        self.registry = registry
        self.run_id = run_id or str(os.getpid())

        self._locks: Dict[str, NamedLock] = {}
        self._locks_lock = threading.Lock()
        self.logger = get_logger(f"{__name__}.LockManager")

    def lock_path(self, name: str) -> Path:
        """Path of the lock file backing ``name``."""
        safe_name = _UNSAFE_CHARS.sub("_", name)
        return self.lock_dir / f"auditas_{safe_name}_{self.run_id}.lock"

    def get(self, name: str) -> NamedLock:
        """Get (creating on first use) the lock called ``name``."""
        with self._locks_lock:
            lock = self._locks.get(name)
            if lock is None:
                if self.cross_process:
                    lock = FileLock(name, self.lock_path(name), timeout=self.timeout)
                    if self.registry is not None:
                        self.registry.register(lock)
                else:
                    lock = ThreadLock(name, timeout=self.timeout)
                self._locks[name] = lock
                self.logger.debug(f"Created {lock!r}")
            return lock

    def names(self):
        with self._locks_lock:
            return sorted(self._locks)

    def register_all(self, registry):
        """Reopen every file lock handed out so far and register it for cleanup."""
        with self._locks_lock:
            locks = list(self._locks.values())
        for lock in locks:
            if isinstance(lock, FileLock):
                lock.reopen()
                registry.register(lock)
