"""Watch history: a bounded, most-recent-first log of selected videos."""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path

from ytsurf.utils import atomic_write_json
from ytsurf.video import VideoRecord

logger = logging.getLogger(__name__)

DEFAULT_CAPACITY = 100


class HistoryError(Exception):
    """Exception raised when the history file cannot be written."""

    pass


class HistoryStore:
    """Persisted watch history.

    Storage is a single JSON array, most recent first. Every mutation
    rewrites the whole file through an atomic rename, so overlapping runs
    never see a torn file; the last writer wins.
    """

    def __init__(self, path: Path, capacity: int = DEFAULT_CAPACITY) -> None:
        if capacity < 1:
            raise ValueError("History capacity must be at least 1")
        self.path = path
        self.capacity = capacity

    def list(self) -> list[VideoRecord]:
        """Return the stored history, most recent first.

        A missing file is an empty history. An unreadable or corrupted
        file is reset to empty with a warning.
        """
        try:
            text = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return []
        except (OSError, UnicodeDecodeError) as e:
            logger.warning("Cannot read history file %s: %s", self.path, e)
            return []

        if not text.strip():
            return []

        try:
            data = json.loads(text)
            if not isinstance(data, list):
                raise ValueError("history is not a list")
        except (ValueError, RecursionError) as e:
            logger.warning("History file %s is corrupted (%s), starting fresh", self.path, e)
            self._reset()
            return []

        records: list[VideoRecord] = []
        seen: set[str] = set()
        for item in data:
            try:
                record = VideoRecord.from_dict(item)
            except ValueError:
                logger.debug("Skipping malformed history entry: %r", item)
                continue
            if record.id in seen:
                continue
            seen.add(record.id)
            records.append(record)

        return records[:self.capacity]

    def record_selection(self, record: VideoRecord) -> list[VideoRecord]:
        """Insert record at the front, removing any older entry with its id.

        The log is truncated to capacity afterwards.

        Returns:
            The new history.

        Raises:
            HistoryError: If the history file cannot be written.
        """
        stamped = record.stamped(datetime.now(timezone.utc).isoformat(timespec="seconds"))
        entries = [stamped] + [r for r in self.list() if r.id != record.id]
        entries = entries[:self.capacity]
        self._write(entries)
        return entries

    def clear(self) -> None:
        """Remove every entry.

        Raises:
            HistoryError: If the history file cannot be written.
        """
        self._write([])

    def _write(self, entries: list[VideoRecord]) -> None:
        try:
            atomic_write_json(self.path, [entry.to_dict() for entry in entries])
        except OSError as e:
            raise HistoryError(f"Cannot write history file {self.path}: {e}") from e

    def _reset(self) -> None:
        try:
            atomic_write_json(self.path, [])
        except OSError as e:
            logger.warning("Could not reset history file %s: %s", self.path, e)
