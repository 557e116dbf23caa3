#!/usr/bin/env python
# -*- coding: utf-8 -*-
"""
Parallel batch processing with resumption.

Ties the engine together for one run:

    items -> resume filter -> bounded dispatcher -> counter + channels -> summary

The caller supplies the work items, the per-item operation and the names
of the result channels; the processor does not know what the operation
does.
"""

import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, Optional

from rich.console import Console

from auditas.core import get_config, get_logger, AuditasConfig
from auditas.core.formatting import format_duration
from .channels import ChannelSet, FAILURE_CHANNEL
from .counter import create_counter
from .dispatcher import Dispatcher, Operation
from .display import ProgressPrinter
from .locks import LockManager
from .progress import ResumeCache, filter_remaining
from .registry import ResourceRegistry


@dataclass
class BatchSummary:
    """Final counts of one run."""
    name: str
    total: int
    already_completed: int = 0
    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    failures_by_category: Dict[str, int] = field(default_factory=dict)
    elapsed_seconds: float = 0.0
    channel_paths: Dict[str, Path] = field(default_factory=dict)
    cancelled: bool = False

    @property
    def exit_code(self) -> int:
        """1 if any item failed, else 0."""
        return 1 if self.failed > 0 else 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "total": self.total,
            "already_completed": self.already_completed,
            "processed": self.processed,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "failures_by_category": dict(self.failures_by_category),
            "elapsed_seconds": round(self.elapsed_seconds, 3),
            "channel_paths": {name: str(path) for name, path in self.channel_paths.items()},
            "cancelled": self.cancelled,
            "exit_code": self.exit_code,
        }


class BatchProcessor:
    """
    Runs a per-item operation over a work list with bounded parallelism.

    Successful items are recorded in the resume cache; with ``resume=True``
    items recorded by earlier runs are skipped. Failures go to the
    ``failures`` channel; operations can write to any other named channel
    through ``processor.channels``.

    Example:
        processor = BatchProcessor("FLAC Verification", channels=["failures", "missing_md5"],
                                   jobs=8, resume=True, root=library)

        def check(path):
            ...
            processor.channels["missing_md5"].append_unique(str(Path(path).parent))
            return Outcome.ok(path)

        summary = processor.process_batch(files, check)
        sys.exit(summary.exit_code)
    """

    def __init__(
        self,
        name: str,
        channels: Iterable[str] = (FAILURE_CHANNEL,),
        jobs: Optional[int] = None,
        resume: bool = False,
        cross_process: Optional[bool] = None,
        config: Optional[AuditasConfig] = None,
        registry: Optional[ResourceRegistry] = None,
        console: Optional[Console] = None,
        root: Optional[Path] = None,
        show_progress: Optional[bool] = None,
        install_signal_handlers: bool = True,
        run_id: Optional[str] = None
    ):
        """
        Initialize the batch processor.

        Args:
            name: Title of the run (used in the header and logs)
            channels: Names of the result channels; "failures" is always added
            jobs: Concurrent execution slots (default: config.jobs)
            resume: Skip items recorded in the resume cache
            cross_process: Use file locks and a file counter (default: config)
            config: Configuration (default: the global config)
            registry: Resource registry (default: a private one per processor)
            console: Console for progress rows
            root: Directory item paths are shown relative to
            show_progress: Print one row per item (default: config)
            install_signal_handlers: Release resources on SIGINT/SIGTERM
            run_id: Suffix shared by this run's lock files
        """
        self.config = config or get_config()
        self.name = name
        self.jobs = jobs if jobs is not None else self.config.jobs
        if self.jobs < 1:
            raise ValueError(f"jobs must be >= 1, got {self.jobs}")
        self.resume = resume
        self.cross_process = self.config.cross_process if cross_process is None else cross_process
        self.show_progress = self.config.show_progress if show_progress is None else show_progress
        self.install_signal_handlers = install_signal_handlers
        self.root = Path(root) if root else None

        self.registry = registry or ResourceRegistry()
        self.locks = LockManager(
            lock_dir=self.config.lock_dir,
            cross_process=self.cross_process,
            timeout=self.config.lock_timeout,
            registry=self.registry,
            run_id=run_id,
        )

        channel_names = list(dict.fromkeys([FAILURE_CHANNEL, *channels]))
        self.channels = ChannelSet(self.config.log_dir, self.locks, channel_names)
        self.resume_cache = ResumeCache(self.config.resume_cache_path, self.locks.get("resume"))

        self.printer = ProgressPrinter(
            console=console,
            bar_width=self.config.bar_width,
            name_width=self.config.name_width,
            root=self.root,
        )
        self.dispatcher: Optional[Dispatcher] = None
        self.counter = None

        self.logger = get_logger(f"{__name__}.BatchProcessor")
        self.logger.info(
            f"Initialized batch processor '{name}': {self.jobs} jobs, "
            f"resume={'on' if resume else 'off'}, "
            f"locks={'file' if self.cross_process else 'memory'}"
        )

    @property
    def failure_channel(self):
        return self.channels[FAILURE_CHANNEL]

    def remaining_items(self, items: Iterable[str]):
        """
        De-duplicate ``items`` and, in resume mode, drop recorded ones.

        Returns:
            Tuple of (universe, remaining)
        """
        universe = list(dict.fromkeys(items))
        if not self.resume:
            return universe, universe

        completed = self.resume_cache.load()
        if completed:
            self.logger.info(f"Resume mode: filtering {len(completed)} previously completed entries")
        remaining = filter_remaining(universe, completed)
        self.logger.info(
            f"Filtered {len(universe) - len(remaining)} completed items, "
            f"{len(remaining)} remaining"
        )
        return universe, remaining

    def process_batch(self, items: Iterable[str], operation: Operation) -> BatchSummary:
        """
        Process every remaining item and return the run summary.

        Item failures never abort the batch; they are counted and logged
        to the failure channel. Run-level failures (counter store, lock
        directory) raise.

        Args:
            items: Work-item universe (path-like strings)
            operation: Callable returning an Outcome for one item

        Returns:
            BatchSummary; ``exit_code`` is 1 if any item failed
        """
        start_time = time.time()
        universe, remaining = self.remaining_items(items)
        summary = BatchSummary(
            name=self.name,
            total=len(remaining),
            already_completed=len(universe) - len(remaining),
            channel_paths=self.channels.paths(),
        )

        if not remaining:
            self.logger.info("No items to process")
            return summary

        with self.registry:
            if self.install_signal_handlers:
                self.registry.install_handlers(on_signal=self._on_signal)
            self.locks.register_all(self.registry)

            self.counter = create_counter(
                len(remaining),
                self.locks,
                cross_process=self.cross_process,
                registry=self.registry,
            )
            self.dispatcher = Dispatcher(
                self.counter,
                failure_channel=self.failure_channel,
                on_success=self.resume_cache.record,
                on_progress=self.printer if self.show_progress else None,
            )

            if self.show_progress:
                self.printer.header(
                    self.name,
                    total=len(remaining),
                    jobs=self.jobs,
                    already_completed=summary.already_completed,
                    resume=self.resume,
                )

            self.logger.info(
                f"Starting batch '{self.name}': {len(remaining)} items, {self.jobs} jobs"
            )
            stats = self.dispatcher.run(remaining, self.jobs, operation)

            summary.processed = self.counter.read()
            summary.succeeded = stats.succeeded
            summary.failed = stats.failed
            summary.failures_by_category = dict(stats.failures_by_category)
            summary.cancelled = stats.cancelled

        summary.elapsed_seconds = time.time() - start_time
        self.logger.info(
            f"Batch '{self.name}' complete: {summary.processed}/{summary.total} items, "
            f"{summary.failed} failed, in {format_duration(summary.elapsed_seconds)}"
        )
        if summary.failed:
            self.logger.info(f"Failure details saved to: {self.failure_channel.path}")
        return summary

    def stop(self):
        """Stop submitting new items to the running batch."""
        if self.dispatcher is not None:
            self.dispatcher.stop()

    def _on_signal(self, signum: int):
        self.stop()

    def clear_resume_cache(self) -> bool:
        """Delete the resume cache. Returns True if there was one."""
        with self.registry:
            self.locks.register_all(self.registry)
            return self.resume_cache.clear()

    def __repr__(self) -> str:
        return f"BatchProcessor({self.name!r}, jobs={self.jobs}, resume={self.resume})"
