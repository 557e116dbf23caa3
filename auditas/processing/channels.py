#!/usr/bin/env python
# -*- coding: utf-8 -*-
"""
Append-only log channels shared by concurrent workers.

A channel is a named text file of line records. Every append happens
inside that channel's own lock, so lines from concurrent workers never
interleave and none are lost. Different channels use different locks.

Record format (one per line):

    timestamp | category | item | detail

Channels are created lazily on first write and persist until cleared.
"""

import uuid
from collections import Counter
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Set, Iterable

from auditas.core import get_logger, LockAcquisitionError
from .locks import NamedLock

FIELD_SEPARATOR = " | "
FAILURE_CHANNEL = "failures"


def _one_line(value: str) -> str:
    return " ".join(str(value).splitlines()).strip()


def _flatten(line: str) -> str:
    """Join a multi-line string into one line, keeping edge whitespace."""
    return " ".join(str(line).splitlines())


@dataclass(frozen=True)
class LogRecord:
    """One ``timestamp | category | item | detail`` line."""
    timestamp: str
    category: str
    item: str
    detail: str = ""

    @classmethod
    def create(cls, category: str, item: str, detail: Optional[str] = None) -> "LogRecord":
        """Build a record stamped with the current local time."""
        return cls(
            timestamp=datetime.now().strftime("%Y-%m-%dT%H:%M:%S"),
            category=_one_line(category),
            item=_one_line(item),
            detail=_one_line(detail or ""),
        )

    def format(self) -> str:
        return FIELD_SEPARATOR.join((self.timestamp, self.category, self.item, self.detail))

    @classmethod
    def parse(cls, line: str) -> Optional["LogRecord"]:
        """
        Parse a record line; None if it is not one.

        The item may itself contain the separator (it is a path), so the
        detail is taken from the right.
        """
        parts = line.rstrip("\n").split(FIELD_SEPARATOR, 2)
        if len(parts) < 3:
            return None
        timestamp, category, rest = parts
        # Lines written with their trailing space trimmed
        if rest.endswith(FIELD_SEPARATOR.rstrip()) and not rest.endswith(FIELD_SEPARATOR):
            rest += " "
        if FIELD_SEPARATOR in rest:
            item, detail = rest.rsplit(FIELD_SEPARATOR, 1)
        else:
            item, detail = rest, ""
        return cls(timestamp=timestamp, category=category, item=item, detail=detail)


class LogChannel:
    """
    A named, durable, append-only sequence of lines.

    Appends never raise: a lock timeout or write error is logged and the
    append reports False, so one bad critical section cannot take a
    worker down.

    Example:
        channel = LogChannel("failures", log_dir / "failures.log", locks.get("failures"))
        channel.append("FLAC_FAIL", "/music/a.flac", "LOST_SYNC")
    """

    def __init__(self, name: str, path: Path, lock: NamedLock):
        self.name = name
        self.path = Path(path)
        self._lock = lock

        # Lines already seen by append_unique, and how far into the file we read
        self._seen: Set[str] = set()
        self._seen_offset = 0

        self.logger = get_logger(f"{__name__}.LogChannel")

    def append(self, category: str, item: str, detail: Optional[str] = None) -> bool:
        """Append a ``timestamp | category | item | detail`` record."""
        return self.append_record(LogRecord.create(category, item, detail))

    def append_record(self, record: LogRecord) -> bool:
        return self.append_line(record.format())

    def append_line(self, line: str) -> bool:
        """
        Append one raw line.

        Returns:
            True if the line was written
        """
        try:
            with self._lock:
                self._write(_flatten(line))
            return True
        except LockAcquisitionError as e:
            self.logger.error(f"Skipped append to channel '{self.name}': {e}")
        except OSError as e:
            self.logger.error(f"Failed to append to channel '{self.name}' ({self.path}): {e}")
        return False

    def append_unique(self, key: str) -> bool:
        """
        Append ``key`` as a bare line unless the channel already holds it.

        The membership check and the write share one critical section, so
        two workers can never both write the same first occurrence. Lines
        appended by other processes are picked up before checking.

        Returns:
            True if the key was written by this call
        """
        key = _one_line(key)
        try:
            with self._lock:
                self._refresh_seen()
                if key in self._seen:
                    return False
                self._write(key)
                self._seen.add(key)
                self._seen_offset = self.path.stat().st_size
            return True
        except LockAcquisitionError as e:
            self.logger.error(f"Skipped unique append to channel '{self.name}': {e}")
        except OSError as e:
            self.logger.error(f"Failed to append to channel '{self.name}' ({self.path}): {e}")
        return False

    def _write(self, line: str):
        with open(self.path, "a", encoding="utf-8") as f:
            f.write(line + "\n")
            f.flush()

    def _refresh_seen(self):
        """Read complete lines appended since the last check. Caller holds the lock."""
        try:
            size = self.path.stat().st_size
        except FileNotFoundError:
            self._seen.clear()
            self._seen_offset = 0
            return

        if size < self._seen_offset:
            # Truncated or replaced underneath us
            self._seen.clear()
            self._seen_offset = 0
        if size == self._seen_offset:
            return

        with open(self.path, "rb") as f:
            f.seek(self._seen_offset)
            data = f.read()

        complete = data.rfind(b"\n") + 1
        for raw in data[:complete].splitlines():
            self._seen.add(raw.decode("utf-8", errors="replace"))
        self._seen_offset += complete

    def exists(self) -> bool:
        """True once something has been written."""
        return self.path.exists()

    def lines(self) -> List[str]:
        """All lines, in append order. Empty if the channel was never written."""
        try:
            with open(self.path, "r", encoding="utf-8", errors="replace") as f:
                return [line.rstrip("\n") for line in f if line.strip()]
        except FileNotFoundError:
            return []

    def records(self) -> List[LogRecord]:
        """All well-formed records, skipping bare lines."""
        records = []
        for line in self.lines():
            record = LogRecord.parse(line)
            if record is not None:
                records.append(record)
        return records

    def count(self) -> int:
        return len(self.lines())

    def count_by_category(self) -> Dict[str, int]:
        return dict(Counter(record.category for record in self.records()))

    def clear(self) -> bool:
        """
        Delete the channel file.

        Returns:
            True if there was a file to delete
        """
        with self._lock:
            existed = self.path.exists()
            self.path.unlink(missing_ok=True)
            self._seen.clear()
            self._seen_offset = 0
        if existed:
            self.logger.info(f"Cleared channel '{self.name}' ({self.path})")
        return existed

    def __repr__(self) -> str:
        return f"LogChannel({self.name}, {self.path})"


def _new_run_stamp() -> str:
    """Timestamp plus a short random suffix, unique per run."""
    return f"{datetime.now():%Y%m%d_%H%M%S}_{uuid.uuid4().hex[:6]}"


class ChannelSet:
    """
    The named channels of one run.

    Files are named ``<channel>_<YYYYmmdd_HHMMSS>_<suffix>.log`` inside
    ``log_dir``; runs started in the same second get different suffixes.
    Each channel gets its own lock from the lock manager.

    Example:
        channels = ChannelSet(config.log_dir, locks, ["failures", "missing_md5"])
        channels["missing_md5"].append_unique(str(path.parent))
    """

    def __init__(
        self,
        log_dir: Path,
        locks,
        names: Iterable[str] = (FAILURE_CHANNEL,),
        run_stamp: Optional[str] = None
    ):
        self.log_dir = Path(log_dir)
        self.log_dir.mkdir(parents=True, exist_ok=True)
        self.locks = locks
        self.run_stamp = run_stamp or _new_run_stamp()
        self._channels: Dict[str, LogChannel] = {}

        for name in names:
            self.add(name)

    def add(self, name: str) -> LogChannel:
        """Add a channel (or return the existing one with that name)."""
        if name not in self._channels:
            path = self.log_dir / f"{name}_{self.run_stamp}.log"
            self._channels[name] = LogChannel(name, path, self.locks.get(f"channel.{name}"))
        return self._channels[name]

    def get(self, name: str) -> Optional[LogChannel]:
        return self._channels.get(name)

    @property
    def names(self) -> List[str]:
        return list(self._channels)

    def paths(self) -> Dict[str, Path]:
        return {name: channel.path for name, channel in self._channels.items()}

    def __getitem__(self, name: str) -> LogChannel:
        return self._channels[name]

    def __contains__(self, name: str) -> bool:
        return name in self._channels

    def __iter__(self) -> Iterator[LogChannel]:
        return iter(self._channels.values())

    def __len__(self) -> int:
        return len(self._channels)
