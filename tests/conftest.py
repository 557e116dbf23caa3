#!/usr/bin/env python
# -*- coding: utf-8 -*-
"""
Shared test fixtures for Auditas tests.

Provides reusable fixtures for:
- Temporary directories and an isolated configuration
- Lock managers and channel sets
- Thread-safe collectors for concurrency assertions
"""

import os
import sys
import shutil
import tempfile
import threading
from pathlib import Path
from typing import Generator, List

import pytest

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))


# =============================================================================
# Temporary Directory Fixtures
# =============================================================================

@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory that's cleaned up after the test."""
    dir_path = tempfile.mkdtemp()
    yield Path(dir_path)
    shutil.rmtree(dir_path, ignore_errors=True)


@pytest.fixture
def lock_dir(temp_dir: Path) -> Path:
    """Temporary directory for lock files and counter stores."""
    path = temp_dir / "locks"
    path.mkdir(parents=True, exist_ok=True)
    return path


@pytest.fixture
def log_dir(temp_dir: Path) -> Path:
    """Temporary directory for channel files."""
    path = temp_dir / "logs"
    path.mkdir(parents=True, exist_ok=True)
    return path


# =============================================================================
# Configuration Fixtures
# =============================================================================

@pytest.fixture
def test_config(temp_dir: Path, monkeypatch):
    """AuditasConfig pointing every directory at the temp dir."""
    from auditas.core import AuditasConfig, reset_config

    for var in list(os.environ):
        if var.startswith("AUDITAS_"):
            monkeypatch.delenv(var, raising=False)

    reset_config()
    config = AuditasConfig(
        jobs=4,
        log_dir=temp_dir / "logs",
        state_dir=temp_dir / "state",
        lock_dir=temp_dir / "locks",
        lock_timeout=5.0,
        show_progress=False,
    )
    yield config
    reset_config()


# =============================================================================
# Engine Fixtures
# =============================================================================

@pytest.fixture
def thread_locks(lock_dir: Path):
    """LockManager handing out in-memory locks."""
    from auditas.processing.locks import LockManager
    return LockManager(lock_dir, cross_process=False, timeout=5.0)


@pytest.fixture
def file_locks(lock_dir: Path):
    """LockManager handing out advisory file locks."""
    from auditas.processing.locks import LockManager
    return LockManager(lock_dir, cross_process=True, timeout=5.0, run_id="test")


@pytest.fixture
def channel_set(log_dir: Path, thread_locks):
    """ChannelSet with a failure channel and a follow-up report channel."""
    from auditas.processing.channels import ChannelSet
    return ChannelSet(log_dir, thread_locks, ["failures", "missing_md5"], run_stamp="test")


@pytest.fixture
def sample_items() -> List[str]:
    """100 path-like work items spread over 10 album folders."""
    return [f"/music/album_{i // 10:02d}/track_{i:03d}.flac" for i in range(100)]


# =============================================================================
# Threading Test Fixtures
# =============================================================================

@pytest.fixture
def thread_safe_list():
    """Thread-safe list for collecting results from multiple threads."""
    class ThreadSafeList:
        def __init__(self):
            self._list = []
            self._lock = threading.Lock()

        def append(self, item):
            with self._lock:
                self._list.append(item)

        def extend(self, items):
            with self._lock:
                self._list.extend(items)

        def __len__(self):
            with self._lock:
                return len(self._list)

        def to_list(self):
            with self._lock:
                return list(self._list)

    return ThreadSafeList()


@pytest.fixture
def thread_error_collector():
    """Collect errors from multiple threads for assertion."""
    class ErrorCollector:
        def __init__(self):
            self._errors = []
            self._lock = threading.Lock()

        def add(self, error: str):
            with self._lock:
                self._errors.append(error)

        def get_errors(self) -> List[str]:
            with self._lock:
                return list(self._errors)

        def assert_no_errors(self):
            errors = self.get_errors()
            assert len(errors) == 0, f"Thread errors occurred: {errors}"

    return ErrorCollector()


# =============================================================================
# Pytest Markers
# =============================================================================

def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "unit: Unit tests (fast, no external dependencies)"
    )
    config.addinivalue_line(
        "markers", "integration: Integration tests (full batch runs on disk)"
    )
    config.addinivalue_line(
        "markers", "stress: Stress tests (slow, high concurrency)"
    )
    config.addinivalue_line(
        "markers", "slow: Tests that take > 5 seconds"
    )
