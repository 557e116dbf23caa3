#!/usr/bin/env python
# -*- coding: utf-8 -*-
"""
Integration tests for BatchProcessor.

Runs complete batches on disk: resume filtering, bounded dispatch,
counter, channels and resource cleanup together.
"""

import io
import os
import signal
import threading
import time
from pathlib import Path

import pytest
from rich.console import Console

from auditas.processing.dispatcher import Dispatcher, Outcome
from auditas.processing.parallel import BatchProcessor, BatchSummary


def _processor(config, **kwargs) -> BatchProcessor:
    kwargs.setdefault("install_signal_handlers", False)
    return BatchProcessor("FLAC Verification", config=config, **kwargs)


class TestBatchProcessor:

    @pytest.mark.integration
    def test_all_items_succeed(self, test_config, sample_items):
        processor = _processor(test_config, jobs=8)
        summary = processor.process_batch(sample_items, Outcome.ok)

        assert summary.total == 100
        assert summary.processed == 100
        assert summary.succeeded == 100
        assert summary.failed == 0
        assert summary.exit_code == 0
        assert processor.resume_cache.count() == 100
        assert not processor.failure_channel.exists()

    @pytest.mark.integration
    def test_single_failure(self, test_config):
        items = [f"/music/{i:03d}.flac" for i in range(100)]
        failing = "/music/002.flac"

        def operation(item):
            if item == failing:
                return Outcome.fail(item, "LOST_SYNC", category="FLAC_FAIL")
            return Outcome.ok(item)

        processor = _processor(test_config, jobs=4)
        summary = processor.process_batch(items, operation)

        assert summary.processed == 100
        assert summary.failed == 1
        assert summary.exit_code == 1
        records = processor.failure_channel.records()
        assert len(records) == 1
        assert records[0].item == failing
        assert failing not in processor.resume_cache.load()

    @pytest.mark.integration
    def test_duplicate_items_processed_once(self, test_config):
        processor = _processor(test_config, jobs=2)
        summary = processor.process_batch(["a", "b", "a", "c", "b"], Outcome.ok)

        assert summary.total == 3
        assert summary.processed == 3

    @pytest.mark.integration
    def test_resume_skips_recorded_items(self, test_config, sample_items):
        first_half = sample_items[:50]
        _processor(test_config, jobs=4).process_batch(first_half, Outcome.ok)

        seen = []
        processor = _processor(test_config, jobs=4, resume=True)

        def operation(item):
            seen.append(item)
            return Outcome.ok(item)

        summary = processor.process_batch(sample_items, operation)

        assert summary.already_completed == 50
        assert summary.total == 50
        assert summary.processed == 50
        assert sorted(seen) == sorted(sample_items[50:])

    @pytest.mark.integration
    def test_resume_retries_failed_items(self, test_config):
        items = ["a", "b", "c"]

        def flaky(item):
            return Outcome.fail(item, "boom") if item == "b" else Outcome.ok(item)

        _processor(test_config, jobs=2).process_batch(items, flaky)

        seen = []

        def record(item):
            seen.append(item)
            return Outcome.ok(item)

        summary = _processor(test_config, jobs=2, resume=True).process_batch(items, record)
        assert seen == ["b"]
        assert summary.exit_code == 0

    @pytest.mark.integration
    def test_nothing_remaining(self, test_config):
        items = ["a", "b"]
        _processor(test_config).process_batch(items, Outcome.ok)

        called = []
        summary = _processor(test_config, resume=True).process_batch(
            items, lambda item: called.append(item)
        )

        assert called == []
        assert summary.total == 0
        assert summary.already_completed == 2
        assert summary.exit_code == 0

    @pytest.mark.integration
    def test_without_resume_everything_runs(self, test_config):
        items = ["a", "b"]
        _processor(test_config).process_batch(items, Outcome.ok)
        summary = _processor(test_config).process_batch(items, Outcome.ok)

        assert summary.processed == 2

    @pytest.mark.integration
    def test_cross_process_cleans_up_lock_files(self, test_config, sample_items):
        processor = _processor(test_config, jobs=4, cross_process=True, run_id="it")
        summary = processor.process_batch(sample_items, Outcome.ok)

        assert summary.processed == 100
        leftovers = list(Path(test_config.lock_dir).glob("auditas_*"))
        assert leftovers == []

    @pytest.mark.integration
    def test_cross_process_runs_twice(self, test_config):
        processor = _processor(test_config, jobs=2, cross_process=True, run_id="twice")

        assert processor.process_batch(["a", "b"], Outcome.ok).processed == 2
        assert processor.process_batch(["c", "d", "e"], Outcome.ok).processed == 3
        assert list(Path(test_config.lock_dir).glob("auditas_*")) == []

    @pytest.mark.integration
    def test_resources_released_when_run_is_interrupted(self, test_config, monkeypatch):
        processor = _processor(test_config, jobs=1, cross_process=True, run_id="kbd")

        def interrupted(self, items, jobs, operation):
            raise KeyboardInterrupt

        monkeypatch.setattr(Dispatcher, "run", interrupted)
        with pytest.raises(KeyboardInterrupt):
            processor.process_batch(["a", "b", "c"], Outcome.ok)

        assert list(Path(test_config.lock_dir).glob("auditas_*")) == []

    @pytest.mark.integration
    def test_sigint_mid_run_drains_before_release(self, test_config):
        processor = _processor(
            test_config, jobs=2, cross_process=True, run_id="sig", install_signal_handlers=True
        )
        finished = []

        def operation(item):
            time.sleep(0.3)
            finished.append(item)
            return Outcome.ok(item)

        original = signal.signal(signal.SIGINT, signal.default_int_handler)
        timer = threading.Timer(0.1, os.kill, args=(os.getpid(), signal.SIGINT))
        try:
            timer.start()
            with pytest.raises(KeyboardInterrupt):
                processor.process_batch([f"/music/{i}.flac" for i in range(6)], operation)
        finally:
            timer.cancel()
            signal.signal(signal.SIGINT, original)

        assert processor.dispatcher.stopped
        assert 0 < len(finished) < 6
        # Running items finished before the store and lock files went away
        assert list(Path(test_config.lock_dir).glob("auditas_*")) == []
        assert not processor.counter.path.exists()

    @pytest.mark.integration
    def test_failure_without_detail_recorded_by_item(self, test_config, sample_items):
        failing = sample_items[2]

        def operation(item):
            if item == failing:
                return Outcome.fail(item)
            return Outcome.ok(item)

        processor = _processor(test_config, jobs=4)
        summary = processor.process_batch(sample_items, operation)

        assert summary.failed == 1
        records = processor.failure_channel.records()
        assert [r.item for r in records] == [failing]
        assert records[0].detail == ""

    @pytest.mark.integration
    def test_extra_channel_unique_folders(self, test_config, sample_items):
        processor = _processor(test_config, jobs=8, channels=["missing_md5"])

        def operation(item):
            processor.channels["missing_md5"].append_unique(str(Path(item).parent))
            return Outcome.ok(item)

        processor.process_batch(sample_items, operation)

        folders = processor.channels["missing_md5"].lines()
        assert sorted(folders) == sorted({str(Path(i).parent) for i in sample_items})
        assert len(folders) == 10
        assert "failures" in processor.channels

    @pytest.mark.integration
    def test_progress_rows_printed(self, test_config):
        output = io.StringIO()
        console = Console(file=output, width=200, color_system=None)
        processor = _processor(
            test_config, jobs=2, console=console, show_progress=True, root=Path("/music")
        )

        def operation(item):
            if item.endswith("b.flac"):
                return Outcome.fail(item, "bad", category="FLAC_FAIL")
            return Outcome.ok(item)

        processor.process_batch(["/music/a.flac", "/music/b.flac"], operation)
        text = output.getvalue()

        assert "==> FLAC Verification" in text
        assert "Parallel jobs" in text
        assert "a.flac" in text and "/music/a.flac" not in text
        assert "FAIL (FLAC_FAIL)" in text
        assert "100%" in text

    @pytest.mark.unit
    def test_invalid_jobs(self, test_config):
        with pytest.raises(ValueError):
            _processor(test_config, jobs=-1)

    @pytest.mark.unit
    def test_zero_jobs_rejected(self, test_config):
        with pytest.raises(ValueError):
            _processor(test_config, jobs=0)

    @pytest.mark.unit
    def test_runs_get_separate_channel_files(self, test_config):
        first = _processor(test_config)
        second = _processor(test_config)

        assert first.failure_channel.path != second.failure_channel.path

    @pytest.mark.unit
    def test_defaults_from_config(self, test_config):
        processor = _processor(test_config)
        assert processor.jobs == 4
        assert processor.show_progress is False
        assert processor.cross_process is False
        assert processor.resume_cache.path == test_config.resume_cache_path

    @pytest.mark.unit
    def test_clear_resume_cache(self, test_config):
        processor = _processor(test_config)
        processor.process_batch(["a"], Outcome.ok)

        assert processor.clear_resume_cache() is True
        assert processor.clear_resume_cache() is False

    @pytest.mark.integration
    def test_clear_resume_cache_cross_process_leaves_no_lock_files(self, test_config):
        processor = _processor(test_config, cross_process=True, run_id="clear")
        processor.process_batch(["a"], Outcome.ok)

        assert processor.clear_resume_cache() is True
        assert list(Path(test_config.lock_dir).glob("auditas_*")) == []


class TestBatchSummary:

    @pytest.mark.unit
    def test_exit_code(self):
        assert BatchSummary(name="x", total=1).exit_code == 0
        assert BatchSummary(name="x", total=1, failed=1).exit_code == 1

    @pytest.mark.unit
    def test_to_dict(self):
        summary = BatchSummary(name="x", total=2, processed=2, channel_paths={"failures": Path("/l/f.log")})
        data = summary.to_dict()

        assert data["channel_paths"] == {"failures": "/l/f.log"}
        assert data["exit_code"] == 0
