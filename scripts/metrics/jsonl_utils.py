"""
JSONL utilities for event exports and structured logs.

Provides reading of exported event sequences (one wire event per line) and
locked, optionally batched appends for structured log entries.
"""

import fcntl
import json
import sys
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, List, Optional

from tracking.schema import Event, EventQueryFilters, MalformedEvent, TrackerEvent, parse_timestamp


class JSONLReader:
    """Read and filter JSONL files with error handling."""

    @staticmethod
    def read_log(
        path: Path,
        filter_fn: Callable[[dict], bool] = None
    ) -> List[dict]:
        """
        Read JSONL with optional filtering.

        Args:
            path: Path to JSONL file
            filter_fn: Optional filter function (entry) -> bool

        Returns:
            List of dict entries
        """
        path = Path(path)
        if not path.exists():
            return []

        entries = []
        with open(path, 'r') as f:
            for line_num, line in enumerate(f, 1):
                line = line.strip()
                if not line:
                    continue
                try:
                    entry = json.loads(line)
                except json.JSONDecodeError as e:
                    print(f"Warning: Malformed JSON at {path}:{line_num}: {e}",
                          file=sys.stderr)
                    continue

                if filter_fn and not filter_fn(entry):
                    continue

                entries.append(entry)

        return entries

    @staticmethod
    def parse_event(entry: dict) -> TrackerEvent:
        """
        Build an event from an exported row.

        Rows carrying identity (id/sessionId/projectId) become Event records.

        Raises:
            MalformedEvent: If the row is not a valid wire event
        """
        event = TrackerEvent.from_dict(entry)
        if not any(k in entry for k in ("id", "sessionId", "projectId")):
            return event

        created_at = entry.get("createdAt")
        return Event(
            **{f: getattr(event, f) for f in TrackerEvent.__dataclass_fields__},
            id=str(entry.get("id", "")),
            session_id=str(entry.get("sessionId", "")),
            project_id=str(entry.get("projectId", "")),
            created_at=parse_timestamp(created_at) if created_at else None,
        )

    @classmethod
    def read_events(
        cls,
        path: Path,
        filters: Optional[EventQueryFilters] = None
    ) -> List[TrackerEvent]:
        """
        Load a chronologically ordered event sequence from a JSONL export.

        Malformed rows are skipped with a warning.

        Args:
            path: Path to JSONL export
            filters: Optional query filters (applied after ordering)

        Returns:
            Events sorted by timestamp (stable)
        """
        events = []
        for index, entry in enumerate(cls.read_log(path), 1):
            try:
                events.append(cls.parse_event(entry))
            except MalformedEvent as e:
                print(f"Warning: Skipping malformed event #{index} in {path}: {e}",
                      file=sys.stderr)

        events.sort(key=lambda e: e.timestamp)

        if filters is not None:
            events = filters.apply(events)
        return events


class JSONLWriter:
    """Process-safe JSONL writer with file locking."""

    def __init__(self, path: Path):
        """
        Initialize writer.

        Args:
            path: Path to JSONL file
        """
        self.path = Path(path).expanduser()
        self.path.parent.mkdir(parents=True, exist_ok=True)

    def append(self, data: dict):
        """
        Atomically append entry to JSONL file.

        Args:
            data: Dictionary to append as JSON line
        """
        self.append_batch([data])

    def append_batch(self, data_list: List[dict]):
        """
        Atomically append multiple entries.

        Args:
            data_list: List of dictionaries to append
        """
        if not data_list:
            return

        with open(self.path, 'a') as f:
            try:
                fcntl.flock(f.fileno(), fcntl.LOCK_EX)
                for data in data_list:
                    # default=str for datetime and enum values
                    f.write(json.dumps(data, ensure_ascii=False, default=str) + '\n')
                f.flush()
            finally:
                fcntl.flock(f.fileno(), fcntl.LOCK_UN)


class BatchedJSONLWriter:
    """
    Buffered JSONL writer with automatic batching.

    Accumulates entries in memory and flushes when:
    - Buffer reaches batch_size
    - Time since last flush exceeds flush_interval
    - flush() is called explicitly
    """

    def __init__(
        self,
        path: Path,
        batch_size: int = 10,
        flush_interval: float = 5.0
    ):
        """
        Initialize batched writer.

        Args:
            path: Path to JSONL file
            batch_size: Flush when buffer reaches this size
            flush_interval: Flush after this many seconds (0 = disable)
        """
        self.writer = JSONLWriter(path)
        self.path = self.writer.path
        self.batch_size = batch_size
        self.flush_interval = flush_interval
        self.buffer = []
        self.last_flush = time.time()

    def append(self, data: dict):
        """
        Add entry to buffer (may trigger flush).

        Args:
            data: Dictionary to append
        """
        if "logged_at" not in data:
            data = {**data, "logged_at": datetime.now(timezone.utc).isoformat()}
        self.buffer.append(data)

        should_flush = (
            len(self.buffer) >= self.batch_size or
            (self.flush_interval > 0 and
             (time.time() - self.last_flush) > self.flush_interval)
        )

        if should_flush:
            self.flush()

    def flush(self):
        """Force flush buffered entries to disk."""
        if not self.buffer:
            return

        try:
            self.writer.append_batch(self.buffer)
            self.buffer.clear()
            self.last_flush = time.time()
        except OSError as e:
            print(f"Warning: Failed to flush batch to {self.path}: {e}",
                  file=sys.stderr)

    def __enter__(self):
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit - flush remaining buffer."""
        self.flush()
