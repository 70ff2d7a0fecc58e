"""Utility functions for ytsurf."""

import hashlib
import json
import logging
import os
import re
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from dateutil import parser as date_parser
from dateutil.relativedelta import relativedelta

logger = logging.getLogger(__name__)

WATCH_URL = "https://www.youtube.com/watch?v={video_id}"
THUMBNAIL_URL = "https://i.ytimg.com/vi/{video_id}/hqdefault.jpg"


def watch_url(video_id: str) -> str:
    """Return the watch page URL for a video ID."""
    return WATCH_URL.format(video_id=video_id)


def query_digest(query: str) -> str:
    """Return the SHA-256 hex digest of a query string.

    Used as a filesystem-safe cache filename: identical queries always map
    to the same digest.
    """
    return hashlib.sha256(query.encode('utf-8')).hexdigest()


def truncate_title(title: str, max_length: int = 40) -> str:
    """Truncate a title for menu display, marking the cut with '...'."""
    if len(title) <= max_length:
        return title
    return title[:max_length] + '...'


def clean_label(text: str) -> str:
    """Collapse tabs, newlines and runs of whitespace into single spaces.

    Menu backends are line and tab delimited, so labels must not contain
    either.
    """
    return re.sub(r'\s+', ' ', text).strip()


def format_duration(seconds: float | int | None) -> str:
    """Convert seconds to HH:MM:SS format.

    Args:
        seconds: Duration in seconds, or None when unknown (live streams,
            some flat search entries).

    Returns:
        Formatted string in HH:MM:SS format, or 'N/A'.
    """
    if seconds is None:
        return 'N/A'
    try:
        total_seconds = int(float(seconds))
    except (TypeError, ValueError):
        return 'N/A'
    hours = total_seconds // 3600
    minutes = (total_seconds % 3600) // 60
    secs = total_seconds % 60
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"


def format_views(count: int | float | None) -> str:
    """Format a view count as '1.2M views', '35K views' or '812 views'."""
    if count is None:
        return 'N/A'
    try:
        n = int(count)
    except (TypeError, ValueError):
        return 'N/A'
    if n >= 1_000_000_000:
        return f"{n / 1_000_000_000:.1f}B views"
    if n >= 1_000_000:
        return f"{n / 1_000_000:.1f}M views"
    if n >= 1_000:
        return f"{n // 1_000}K views"
    return f"{n} views"


def format_date(date_str: str | None) -> str:
    """Parse a date string and return YYYY-MM-DD format.

    Args:
        date_str: A date string in various formats (e.g., "20241215", ISO 8601).

    Returns:
        Date formatted as YYYY-MM-DD, or empty string if parsing fails.
    """
    if not date_str:
        return ""

    try:
        # Handle yt-dlp format: YYYYMMDD
        if re.match(r'^\d{8}$', date_str):
            return f"{date_str[:4]}-{date_str[4:6]}-{date_str[6:8]}"

        parsed = date_parser.parse(date_str)
        return parsed.strftime("%Y-%m-%d")
    except (ValueError, TypeError, OverflowError):
        return ""


def format_relative(timestamp: float | int, now: datetime | None = None) -> str:
    """Describe a UNIX timestamp relative to now, e.g. '3 weeks ago'.

    Args:
        timestamp: Seconds since the epoch.
        now: Reference time (defaults to the current UTC time).

    Returns:
        A human-readable relative age.
    """
    now = now or datetime.now(timezone.utc)
    then = datetime.fromtimestamp(float(timestamp), tz=timezone.utc)
    if then >= now:
        return 'just now'

    delta = relativedelta(now, then)
    for unit in ('years', 'months', 'days', 'hours', 'minutes'):
        value = getattr(delta, unit)
        if unit == 'days' and value >= 7:
            weeks = value // 7
            return f"{weeks} week{'s' if weeks != 1 else ''} ago"
        if value:
            label = unit[:-1] if value == 1 else unit
            return f"{value} {label} ago"
    return 'just now'


def format_published(info: dict[str, Any]) -> str:
    """Build the published label for a yt-dlp info entry.

    Prefers an exact timestamp (rendered relative to now), then the
    YYYYMMDD upload date.
    """
    timestamp = info.get('timestamp') or info.get('release_timestamp')
    if timestamp:
        try:
            return format_relative(timestamp)
        except (TypeError, ValueError, OverflowError, OSError):
            logger.debug("Bad timestamp %r for %s", timestamp, info.get('id'))

    date = format_date(info.get('upload_date'))
    if date:
        return date

    return 'N/A'


def atomic_write_json(path: Path, data: Any) -> None:
    """Write JSON to path by writing a sibling temp file and renaming it.

    Readers never observe a partially written file; concurrent writers
    resolve as last-writer-wins.

    Raises:
        OSError: If the directory or the file cannot be written.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix='.tmp')
    try:
        with os.fdopen(fd, 'w', encoding='utf-8') as f:
            json.dump(data, f, indent=2, ensure_ascii=False)
        os.replace(tmp_name, path)
    except BaseException:
        try:
            os.unlink(tmp_name)
        except OSError:
            pass
        raise
