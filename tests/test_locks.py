#!/usr/bin/env python
# -*- coding: utf-8 -*-
"""
Tests for named locks and the lock manager.
"""

import threading
import time

import pytest

from auditas.core import LockAcquisitionError
from auditas.processing.locks import FileLock, LockManager, ThreadLock
from auditas.processing.registry import ResourceRegistry


class TestThreadLock:

    @pytest.mark.unit
    def test_context_manager(self):
        lock = ThreadLock("a")
        with lock:
            pass
        # Re-acquirable after release
        lock.acquire(timeout=0.1)
        lock.release()

    @pytest.mark.unit
    def test_timeout_raises(self):
        lock = ThreadLock("busy", timeout=0.05)
        lock.acquire()
        try:
            with pytest.raises(LockAcquisitionError) as exc_info:
                lock.acquire()
            assert exc_info.value.lock_name == "busy"
            assert exc_info.value.timeout == 0.05
        finally:
            lock.release()

    @pytest.mark.stress
    def test_mutual_exclusion(self, thread_error_collector):
        lock = ThreadLock("shared")
        state = {"inside": 0}

        def worker():
            for _ in range(200):
                with lock:
                    state["inside"] += 1
                    if state["inside"] != 1:
                        thread_error_collector.add("two holders at once")
                    state["inside"] -= 1

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        thread_error_collector.assert_no_errors()


class TestFileLock:

    @pytest.mark.unit
    def test_creates_lock_file(self, lock_dir):
        lock = FileLock("x", lock_dir / "x.lock")
        assert lock.path.exists()

    @pytest.mark.unit
    def test_acquire_release(self, lock_dir):
        lock = FileLock("x", lock_dir / "x.lock", timeout=1.0)
        with lock:
            pass
        with lock:
            pass

    @pytest.mark.unit
    def test_second_handle_times_out(self, lock_dir):
        """Two FileLock objects on one file exclude each other like two processes."""
        path = lock_dir / "shared.lock"
        first = FileLock("shared", path)
        second = FileLock("shared", path)

        first.acquire()
        try:
            start = time.monotonic()
            with pytest.raises(LockAcquisitionError):
                second.acquire(timeout=0.1)
            assert time.monotonic() - start >= 0.1
        finally:
            first.release()

        second.acquire(timeout=1.0)
        second.release()

    @pytest.mark.unit
    def test_cleanup_removes_file(self, lock_dir):
        lock = FileLock("x", lock_dir / "x.lock")
        lock.cleanup()

        assert not lock.path.exists()
        assert lock.retired

    @pytest.mark.unit
    def test_cleaned_up_lock_does_not_recreate_file(self, lock_dir):
        lock = FileLock("x", lock_dir / "x.lock", timeout=0.1)
        lock.cleanup()

        with pytest.raises(LockAcquisitionError) as exc_info:
            lock.acquire()
        assert exc_info.value.reason
        assert not lock.path.exists()

    @pytest.mark.unit
    def test_cleanup_while_held_removes_file_on_release(self, lock_dir):
        lock = FileLock("x", lock_dir / "x.lock")
        with lock:
            lock.cleanup()
        assert not lock.path.exists()

    @pytest.mark.unit
    def test_reopen(self, lock_dir):
        lock = FileLock("x", lock_dir / "x.lock")
        lock.cleanup()
        lock.reopen()

        assert lock.path.exists()
        with lock:
            pass


class TestLockManager:

    @pytest.mark.unit
    def test_same_name_same_lock(self, thread_locks):
        assert thread_locks.get("counter") is thread_locks.get("counter")

    @pytest.mark.unit
    def test_distinct_names_distinct_locks(self, thread_locks):
        assert thread_locks.get("channel.failures") is not thread_locks.get("channel.missing_md5")

    @pytest.mark.unit
    def test_distinct_names_do_not_block_each_other(self, thread_locks):
        with thread_locks.get("a"):
            thread_locks.get("b").acquire(timeout=0.1)
            thread_locks.get("b").release()

    @pytest.mark.unit
    def test_memory_locks_by_default(self, thread_locks):
        assert isinstance(thread_locks.get("x"), ThreadLock)

    @pytest.mark.unit
    def test_file_lock_names(self, file_locks, lock_dir):
        lock = file_locks.get("channel.missing md5")

        assert isinstance(lock, FileLock)
        assert lock.path == lock_dir / "auditas_channel.missing_md5_test.lock"

    @pytest.mark.unit
    def test_cross_process_requires_lock_dir(self):
        with pytest.raises(ValueError):
            LockManager(lock_dir=None, cross_process=True)

    @pytest.mark.unit
    def test_registered_locks_are_removed(self, lock_dir):
        registry = ResourceRegistry()
        locks = LockManager(lock_dir, cross_process=True, registry=registry, run_id="r1")
        paths = [locks.get(name).path for name in ("counter", "resume", "channel.failures")]

        assert all(p.exists() for p in paths)
        assert locks.names() == ["channel.failures", "counter", "resume"]

        registry.release_all()
        assert not any(p.exists() for p in paths)

    @pytest.mark.unit
    def test_register_all_after_release(self, lock_dir):
        registry = ResourceRegistry()
        locks = LockManager(lock_dir, cross_process=True, run_id="r2")
        lock = locks.get("counter")

        locks.register_all(registry)
        assert len(registry) == 1

        registry.release_all()
        assert not lock.path.exists()

        # Next run reopens the released lock
        locks.register_all(registry)
        assert lock.path.exists()
        assert not lock.retired
        with lock:
            pass
