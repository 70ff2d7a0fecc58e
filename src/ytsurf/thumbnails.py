"""Thumbnail download and terminal rendering for menu previews."""

import logging
import os
import shutil
import subprocess
import time
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

import requests

from ytsurf.video import VideoRecord

logger = logging.getLogger(__name__)

FETCH_TIMEOUT = 10
LOCK_TIMEOUT = 5.0
POLL_INTERVAL = 0.1
MAX_WORKERS = 8


class ThumbnailError(Exception):
    """Exception raised when a thumbnail cannot be fetched or rendered."""

    pass


def thumbnail_path(record: VideoRecord, directory: Path) -> Path:
    """Return where the thumbnail for record is stored."""
    return directory / f"thumb_{record.id}.jpg"


def _is_complete(path: Path) -> bool:
    try:
        return path.stat().st_size > 0
    except OSError:
        return False


def fetch(url: str, dest: Path, timeout: float = FETCH_TIMEOUT) -> None:
    """Download url into dest.

    Raises:
        requests.RequestException: On network or HTTP errors.
    """
    response = requests.get(url, timeout=timeout)
    response.raise_for_status()
    dest.write_bytes(response.content)


def download_thumbnail(
    url: str,
    dest: Path,
    timeout: float = FETCH_TIMEOUT,
    lock_timeout: float = LOCK_TIMEOUT,
    poll_interval: float = POLL_INTERVAL,
) -> Path:
    """Download a thumbnail once, even when several callers race for it.

    A '<dest>.lock' marker, created exclusively, tells other threads and
    processes that a download is in progress; they poll until it is gone.
    An existing non-empty dest is reused without any network access.

    Args:
        url: Image URL.
        dest: Destination file.
        timeout: Network timeout in seconds.
        lock_timeout: Seconds to wait for another caller's download.
        poll_interval: Seconds between lock checks.

    Returns:
        dest, once it holds a complete image.

    Raises:
        ThumbnailError: If the download fails or the lock wait times out.
    """
    lock = dest.with_name(dest.name + '.lock')
    deadline = time.monotonic() + lock_timeout

    while True:
        if _is_complete(dest):
            return dest
        try:
            fd = os.open(lock, os.O_CREAT | os.O_EXCL | os.O_WRONLY)
        except FileExistsError:
            if time.monotonic() >= deadline:
                raise ThumbnailError(f"Timed out waiting for lock on {dest}")
            time.sleep(poll_interval)
            continue
        except OSError as e:
            raise ThumbnailError(f"Cannot create lock {lock}: {e}") from e
        os.close(fd)
        break

    try:
        # Another caller may have finished between our check and the lock
        if _is_complete(dest):
            return dest
        partial = dest.with_name(dest.name + '.part')
        try:
            fetch(url, partial, timeout=timeout)
            if not _is_complete(partial):
                raise ThumbnailError(f"Empty thumbnail downloaded from {url}")
            os.replace(partial, dest)
        except (requests.RequestException, OSError) as e:
            raise ThumbnailError(f"Failed to download thumbnail {url}: {e}") from e
        finally:
            partial.unlink(missing_ok=True)
        return dest
    finally:
        lock.unlink(missing_ok=True)


def prefetch_thumbnails(records: list[VideoRecord], directory: Path) -> list[Path | None]:
    """Download thumbnails for all records concurrently.

    Returns only after every download has finished or failed.

    Returns:
        One entry per record: the image path, or None if it failed.
    """
    directory.mkdir(parents=True, exist_ok=True)

    def one(record: VideoRecord) -> Path | None:
        try:
            return download_thumbnail(record.thumbnail, thumbnail_path(record, directory))
        except ThumbnailError as e:
            logger.debug("%s", e)
            return None

    if not records:
        return []

    with ThreadPoolExecutor(max_workers=min(MAX_WORKERS, len(records))) as pool:
        return list(pool.map(one, records))


def check_renderer() -> bool:
    """Check if chafa is available in PATH."""
    return shutil.which('chafa') is not None


def render_thumbnail(image: Path, cols: int, lines: int) -> str:
    """Render an image as terminal text with chafa.

    Args:
        image: Image file.
        cols: Width in terminal columns.
        lines: Height in terminal lines.

    Returns:
        The rendered image, including escape sequences.

    Raises:
        ThumbnailError: If chafa is missing or fails.
    """
    cmd = [
        'chafa',
        '--symbols=block',
        f'--size={cols}x{lines}',
        str(image),
    ]

    try:
        result = subprocess.run(
            cmd,
            capture_output=True,
            text=True,
            timeout=10,
        )
    except FileNotFoundError:
        raise ThumbnailError("chafa not found")
    except subprocess.TimeoutExpired:
        raise ThumbnailError("chafa timed out")

    if result.returncode != 0:
        raise ThumbnailError(f"chafa failed: {result.stderr.strip()}")

    return result.stdout
