#!/usr/bin/env python
# -*- coding: utf-8 -*-
"""
Concurrent batch engine: bounded dispatch, shared counter, log channels,
resume filtering and run-scoped resource cleanup.
"""

from .registry import ResourceRegistry, TempFile, get_resource_registry
from .locks import NamedLock, ThreadLock, FileLock, LockManager
from .counter import ProgressCounter, MemoryCounter, FileCounter, create_counter
from .channels import LogRecord, LogChannel, ChannelSet, FAILURE_CHANNEL
from .progress import ResumeCache, filter_remaining
from .dispatcher import Outcome, OutcomeStatus, Dispatcher, DispatchStats
from .display import ProgressPrinter
from .parallel import BatchProcessor, BatchSummary

__all__ = [
    "ResourceRegistry",
    "TempFile",
    "get_resource_registry",
    "NamedLock",
    "ThreadLock",
    "FileLock",
    "LockManager",
    "ProgressCounter",
    "MemoryCounter",
    "FileCounter",
    "create_counter",
    "LogRecord",
    "LogChannel",
    "ChannelSet",
    "FAILURE_CHANNEL",
    "ResumeCache",
    "filter_remaining",
    "Outcome",
    "OutcomeStatus",
    "Dispatcher",
    "DispatchStats",
    "ProgressPrinter",
    "BatchProcessor",
    "BatchSummary",
]
