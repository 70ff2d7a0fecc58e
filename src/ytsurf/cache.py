"""Time-expiring cache of search results, keyed by query digest."""

import json
import logging
import time
from pathlib import Path
from typing import Callable

from ytsurf.utils import atomic_write_json, query_digest
from ytsurf.video import VideoRecord

logger = logging.getLogger(__name__)

CACHE_TTL_SECONDS = 10 * 60


class CacheError(Exception):
    """Exception raised when a cache entry cannot be written."""

    pass


class ResultCache:
    """Search results stored as one JSON file per query digest.

    Entries are never merged: a put replaces the whole file. An entry older
    than the TTL, or one that cannot be parsed, reads as a miss.
    """

    def __init__(
        self,
        cache_dir: Path,
        ttl: float = CACHE_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.cache_dir = cache_dir
        self.ttl = ttl
        self.clock = clock

    def path_for(self, query: str) -> Path:
        """Return the file holding the entry for query."""
        return self.cache_dir / f"{query_digest(query)}.json"

    def get(self, query: str) -> list[VideoRecord] | None:
        """Return cached records for query, or None on a miss.

        Missing, expired and corrupted entries are all misses.
        """
        path = self.path_for(query)
        try:
            age = self.clock() - path.stat().st_mtime
        except FileNotFoundError:
            return None
        except OSError as e:
            logger.debug("Cannot stat cache entry %s: %s", path, e)
            return None

        if age >= self.ttl:
            logger.debug("Cache entry for %r expired (%.0fs old)", query, age)
            return None

        try:
            data = json.loads(path.read_text(encoding="utf-8"))
            if not isinstance(data, list):
                raise ValueError("cache entry is not a list")
            records = [VideoRecord.from_dict(item) for item in data]
        except (OSError, UnicodeDecodeError, ValueError, RecursionError) as e:
            # json.JSONDecodeError is a ValueError; absurd nesting is a RecursionError
            logger.warning("Ignoring corrupted cache entry %s: %s", path, e)
            return None

        logger.debug("Cache hit for %r (%d records)", query, len(records))
        return records

    def put(self, query: str, records: list[VideoRecord]) -> Path:
        """Store records for query, replacing any existing entry.

        Raises:
            CacheError: If the entry cannot be written.
        """
        path = self.path_for(query)
        try:
            atomic_write_json(path, [record.to_dict() for record in records])
        except OSError as e:
            raise CacheError(f"Cannot write cache file {path}: {e}") from e
        return path
