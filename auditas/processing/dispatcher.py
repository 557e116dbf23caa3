#!/usr/bin/env python
# -*- coding: utf-8 -*-
"""
Bounded worker pool that drains a static list of work items.

Each item goes through the same steps:

1. ``operation(item)`` runs outside any lock; it may block on slow I/O.
2. The shared counter is incremented (one critical section).
3. A failure is appended to the failure channel; a success is handed to
   the ``on_success`` hook (the resume cache).
4. One progress row is reported.

At most ``jobs`` items are in flight at any time. Submission blocks on a
bounded semaphore, so a million-item list never turns into a million
queued futures.
"""

import threading
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, Iterable, Optional

from auditas.core import get_logger, OperationError, ResourceError
from .channels import LogChannel
from .counter import ProgressCounter


class OutcomeStatus(str, Enum):
    SUCCESS = "success"
    FAILURE = "failure"


@dataclass(frozen=True)
class Outcome:
    """
    Result of one operation on one item.

    Example:
        def check(path):
            if flac_ok(path):
                return Outcome.ok(path)
            return Outcome.fail(path, "LOST_SYNC", category="FLAC_FAIL")
    """
    item: str
    status: OutcomeStatus
    detail: Optional[str] = None
    category: str = "FAIL"

    @classmethod
    def ok(cls, item: str, detail: Optional[str] = None) -> "Outcome":
        return cls(item=item, status=OutcomeStatus.SUCCESS, detail=detail, category="OK")

    @classmethod
    def fail(cls, item: str, detail: Optional[str] = None, category: str = "FAIL") -> "Outcome":
        return cls(item=item, status=OutcomeStatus.FAILURE, detail=detail, category=category)

    @property
    def success(self) -> bool:
        return self.status is OutcomeStatus.SUCCESS


Operation = Callable[[str], Outcome]
ProgressCallback = Callable[[Outcome, int, int], None]


@dataclass
class DispatchStats:
    """Tallies of one dispatcher run."""
    dispatched: int = 0
    succeeded: int = 0
    failed: int = 0
    lock_failures: int = 0
    cancelled: bool = False
    failures_by_category: Dict[str, int] = field(default_factory=dict)


class Dispatcher:
    """
    Runs an operation over work items with bounded concurrency.

    Example:
        dispatcher = Dispatcher(counter, failure_channel=channels["failures"])
        stats = dispatcher.run(files, jobs=8, operation=check)
        assert counter.read() == stats.dispatched
    """

    def __init__(
        self,
        counter: ProgressCounter,
        failure_channel: Optional[LogChannel] = None,
        on_success: Optional[Callable[[str], object]] = None,
        on_progress: Optional[ProgressCallback] = None
    ):
        """
        Initialize the dispatcher.

        Args:
            counter: Shared counter, already reset for this run
            failure_channel: Channel receiving one record per failed item
            on_success: Called with the item after a successful operation
            on_progress: Called with (outcome, count, total) after each item
        """
        self.counter = counter
        self.failure_channel = failure_channel
        self.on_success = on_success
        self.on_progress = on_progress

        self._stop = threading.Event()
        self._stats = DispatchStats()
        self._stats_lock = threading.Lock()
        self.logger = get_logger(f"{__name__}.Dispatcher")

    def stop(self):
        """Stop submitting new items. Items already running finish normally."""
        self._stop.set()

    @property
    def stopped(self) -> bool:
        return self._stop.is_set()

    def run(self, items: Iterable[str], jobs: int, operation: Operation) -> DispatchStats:
        """
        Execute ``operation`` over ``items`` with ``jobs`` concurrent slots.

        Completion order is unspecified. Returns (or re-raises an interrupt)
        only once every submitted item has finished.

        Args:
            items: Work items (consumed lazily)
            jobs: Number of concurrent execution slots (>= 1)
            operation: Per-item callable returning an Outcome

        Returns:
            DispatchStats for this run
        """
        if jobs < 1:
            raise ValueError(f"jobs must be >= 1, got {jobs}")

        self._stop.clear()
        self._stats = DispatchStats()
        slots = threading.BoundedSemaphore(jobs)

        def _release_slot(future: Future):
            slots.release()
            if not future.cancelled() and future.exception() is not None:
                self.logger.error(f"Worker crashed: {future.exception()!r}")

        executor = ThreadPoolExecutor(max_workers=jobs, thread_name_prefix="auditas-worker")
        try:
            for item in items:
                slots.acquire()
                if self._stop.is_set():
                    slots.release()
                    break
                future = executor.submit(self._execute, item, operation)
                future.add_done_callback(_release_slot)
        except BaseException:
            self._stop.set()
            executor.shutdown(wait=False, cancel_futures=True)
            raise
        finally:
            self._drain(executor)

        self._stats.cancelled = self._stop.is_set()
        return self._stats

    def _drain(self, executor: ThreadPoolExecutor):
        """Wait for in-flight items, even if an interrupt lands mid-wait."""
        try:
            executor.shutdown(wait=True)
        except BaseException:
            self._stop.set()
            self.logger.warning("Interrupted while draining, waiting for running items")
            executor.shutdown(wait=True, cancel_futures=True)
            raise

    def _invoke(self, item: str, operation: Operation) -> Outcome:
        """Run the operation, turning exceptions into failed outcomes."""
        try:
            outcome = operation(item)
        except OperationError as e:
            return Outcome.fail(item, str(e), category=e.category)
        except Exception as e:
            self.logger.debug(f"Operation raised on {item}", exc_info=True)
            return Outcome.fail(item, f"{type(e).__name__}: {e}", category="EXCEPTION")

        if not isinstance(outcome, Outcome):
            return Outcome.fail(item, f"operation returned {type(outcome).__name__}", category="EXCEPTION")
        return outcome

    def _execute(self, item: str, operation: Operation):
        outcome = self._invoke(item, operation)

        try:
            count = self.counter.increment()
        except ResourceError as e:
            self.logger.error(f"Progress count skipped for {item}: {e}")
            count = None
            with self._stats_lock:
                self._stats.lock_failures += 1

        appended = True
        if not outcome.success and self.failure_channel is not None:
            appended = self.failure_channel.append(outcome.category, outcome.item, outcome.detail)

        with self._stats_lock:
            self._stats.dispatched += 1
            if not appended:
                self._stats.lock_failures += 1
            if outcome.success:
                self._stats.succeeded += 1
            else:
                self._stats.failed += 1
                by_category = self._stats.failures_by_category
                by_category[outcome.category] = by_category.get(outcome.category, 0) + 1

        if outcome.success and self.on_success is not None:
            self._call_hook("on_success", self.on_success, outcome.item)
        if self.on_progress is not None and count is not None:
            self._call_hook("on_progress", self.on_progress, outcome, count, self.counter.total)

    def _call_hook(self, name: str, hook: Callable, *args):
        try:
            hook(*args)
        except Exception as e:
            self.logger.error("%s hook failed for %s: %s", name, args[0], e)
