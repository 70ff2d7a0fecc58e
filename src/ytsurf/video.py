"""Video records, search and format listing using yt-dlp."""

import json
import logging
import subprocess
from dataclasses import asdict, dataclass, replace
from typing import Any

from ytsurf.utils import (
    THUMBNAIL_URL,
    format_duration,
    format_published,
    format_views,
)

logger = logging.getLogger(__name__)

YTDLP_MISSING = (
    "yt-dlp not found. Please install yt-dlp:\n"
    "  pip install yt-dlp\n"
    "  or: brew install yt-dlp"
)


def _optional_text(value: Any) -> str | None:
    return value if isinstance(value, str) and value else None


@dataclass(frozen=True)
class VideoRecord:
    """One searched or previously watched video.

    Display fields are pre-formatted strings so cached and historical
    records render identically without re-deriving anything.
    """

    id: str
    title: str
    author: str = 'N/A'
    duration_display: str = 'N/A'
    views_display: str = 'N/A'
    published_display: str = 'N/A'
    thumbnail_url: str | None = None
    added_at: str | None = None

    def __post_init__(self) -> None:
        if not self.id:
            raise ValueError("VideoRecord requires a non-empty id")

    @property
    def thumbnail(self) -> str:
        """Thumbnail URL, falling back to the platform's default still."""
        return self.thumbnail_url or THUMBNAIL_URL.format(video_id=self.id)

    def stamped(self, added_at: str) -> 'VideoRecord':
        """Return a copy carrying a history timestamp."""
        return replace(self, added_at=added_at)

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        if data['added_at'] is None:
            del data['added_at']
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> 'VideoRecord':
        """Rebuild a record from its persisted form.

        Raises:
            ValueError: If data is not a mapping or lacks an id.
        """
        if not isinstance(data, dict):
            raise ValueError(f"Expected an object, got {type(data).__name__}")
        video_id = data.get('id')
        if not video_id or not isinstance(video_id, str):
            raise ValueError("Record is missing an id")
        return cls(
            id=video_id,
            title=str(data.get('title') or 'Untitled'),
            author=str(data.get('author') or 'N/A'),
            duration_display=str(data.get('duration_display') or 'N/A'),
            views_display=str(data.get('views_display') or 'N/A'),
            published_display=str(data.get('published_display') or 'N/A'),
            thumbnail_url=_optional_text(data.get('thumbnail_url')),
            added_at=_optional_text(data.get('added_at')),
        )

    @classmethod
    def from_info(cls, info: dict[str, Any]) -> 'VideoRecord':
        """Build a record from one yt-dlp JSON entry.

        Text fields of the wrong type are converted to strings, and
        thumbnail entries that are not objects are skipped.

        Raises:
            ValueError: If the entry has no id.
        """
        video_id = info.get('id')
        if not video_id or isinstance(video_id, (dict, list)):
            raise ValueError("yt-dlp entry is missing an id")

        thumbnail_url = info.get('thumbnail')
        if not isinstance(thumbnail_url, str):
            thumbnail_url = None
        thumbnails = info.get('thumbnails')
        if not thumbnail_url and isinstance(thumbnails, list):
            urls = [t.get('url') for t in thumbnails if isinstance(t, dict)]
            urls = [u for u in urls if isinstance(u, str) and u]
            if urls:
                thumbnail_url = urls[-1]

        return cls(
            id=str(video_id),
            title=str(info.get('title') or 'Untitled'),
            author=str(info.get('channel') or info.get('uploader') or 'N/A'),
            duration_display=format_duration(info.get('duration')),
            views_display=format_views(info.get('view_count')),
            published_display=format_published(info),
            thumbnail_url=thumbnail_url or None,
        )


class VideoError(Exception):
    """Exception raised for video-related errors."""

    pass


class MalformedOutputError(VideoError):
    """yt-dlp exited cleanly but printed something that is not JSON."""

    pass


def search_expression(query: str, limit: int) -> str:
    """Return the yt-dlp search URL for a query, e.g. 'ytsearch10:lofi'."""
    return f"ytsearch{limit}:{query}"


def search_videos(query: str, limit: int, timeout: int = 60) -> list[VideoRecord]:
    """Search YouTube and return the first `limit` results.

    Uses yt-dlp with --flat-playlist so no per-video page is fetched.

    Args:
        query: Free-text search query.
        limit: Maximum number of results.
        timeout: Seconds to wait for yt-dlp.

    Returns:
        Ordered list of VideoRecord objects. Empty if nothing matched.
        Entries without an id are dropped.

    Raises:
        MalformedOutputError: If yt-dlp output cannot be parsed.
        VideoError: If the search fails or times out.
    """
    cmd = [
        'yt-dlp',
        search_expression(query, limit),
        '--flat-playlist',
        '--dump-json',
        '--no-warnings',
    ]

    try:
        result = subprocess.run(
            cmd,
            capture_output=True,
            text=True,
            timeout=timeout,
        )
    except subprocess.TimeoutExpired:
        raise VideoError(f"Search timed out after {timeout} seconds")
    except FileNotFoundError:
        raise VideoError(YTDLP_MISSING)

    if result.returncode != 0:
        raise VideoError(f"Search failed: {result.stderr.strip()}")

    return parse_search_output(result.stdout)


def parse_search_output(output: str) -> list[VideoRecord]:
    """Parse yt-dlp NDJSON search output into records.

    Raises:
        MalformedOutputError: If any non-blank line is not a JSON object.
    """
    records: list[VideoRecord] = []
    seen: set[str] = set()

    for line_no, line in enumerate(output.splitlines(), start=1):
        if not line.strip():
            continue
        try:
            entry = json.loads(line)
        except (json.JSONDecodeError, RecursionError) as e:
            raise MalformedOutputError(f"Unparseable search output on line {line_no}: {e}") from e
        if not isinstance(entry, dict):
            raise MalformedOutputError(f"Unexpected search output on line {line_no}")

        try:
            record = VideoRecord.from_info(entry)
        except ValueError:
            logger.debug("Dropping search entry without id: %r", entry.get('title'))
            continue
        except (TypeError, AttributeError) as e:
            raise MalformedOutputError(f"Unexpected search entry on line {line_no}: {e}") from e

        if record.id in seen:
            logger.debug("Dropping duplicate search entry %s", record.id)
            continue
        seen.add(record.id)
        records.append(record)

    return records


def list_resolutions(url: str, timeout: int = 60) -> list[str]:
    """List the distinct video resolutions available for a video.

    Args:
        url: Video URL.
        timeout: Seconds to wait for yt-dlp.

    Returns:
        Labels such as ['1080p', '720p', '360p'], highest first. Empty if
        the video exposes no video formats.

    Raises:
        VideoError: If format extraction fails.
    """
    cmd = [
        'yt-dlp',
        '--dump-json',
        '--skip-download',
        '--no-warnings',
        url,
    ]

    try:
        result = subprocess.run(
            cmd,
            capture_output=True,
            text=True,
            timeout=timeout,
        )

        if result.returncode != 0:
            error_msg = result.stderr
            if 'Private video' in error_msg:
                raise VideoError(f"Video is private: {url}")
            if 'Video unavailable' in error_msg:
                raise VideoError(f"Video is unavailable: {url}")
            if 'Sign in' in error_msg:
                raise VideoError(f"Video requires authentication: {url}")
            raise VideoError(f"Failed to list formats: {error_msg}")

        info = json.loads(result.stdout)

    except subprocess.TimeoutExpired:
        raise VideoError("Format listing timed out")
    except json.JSONDecodeError as e:
        raise VideoError(f"Failed to parse format list: {e}") from e
    except FileNotFoundError:
        raise VideoError(YTDLP_MISSING)

    return resolutions_from_formats(info.get('formats') or [])


def resolutions_from_formats(formats: list[dict[str, Any]]) -> list[str]:
    """Extract distinct '<height>p' labels from yt-dlp format dicts."""
    heights: set[int] = set()
    for fmt in formats:
        if fmt.get('vcodec') == 'none':
            continue
        height = fmt.get('height')
        if isinstance(height, (int, float)) and height > 0:
            heights.add(int(height))
    return [f"{h}p" for h in sorted(heights, reverse=True)]
