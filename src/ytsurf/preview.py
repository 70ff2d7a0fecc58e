"""Live menu previews served from inside the running process.

fzf can only preview by running a shell command, so the menu starts a
loopback HTTP endpoint and points fzf's preview command at it with curl.
Each request calls a plain Python callback with the highlighted 1-based
position; no interpreter is started per keystroke.
"""

import io
import logging
import threading
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from pathlib import Path
from typing import Callable
from urllib.parse import parse_qs, urlparse

from rich.console import Console
from rich.markup import escape
from rich.rule import Rule

from ytsurf.thumbnails import ThumbnailError, download_thumbnail, render_thumbnail, thumbnail_path
from ytsurf.video import VideoRecord

logger = logging.getLogger(__name__)

# (position, columns, lines) -> rendered text
PreviewCallback = Callable[[int, int, int], str]

DEFAULT_COLS = 80
DEFAULT_LINES = 40


def render_details(record: VideoRecord, cols: int, history: bool = False) -> str:
    """Render the text part of a preview: title and metadata fields."""
    buffer = io.StringIO()
    console = Console(file=buffer, force_terminal=True, width=max(cols, 20), color_system="standard")

    console.print(Rule(style="dim"))
    if history:
        console.print("[reverse magenta] HISTORY [/]")
    console.print(f"[bold]{escape(record.title)}[/]", highlight=False)
    console.print(Rule(style="dim"))
    console.print(f"[bold magenta]Channel:[/] {escape(record.author)}", highlight=False)
    console.print(f"[bold magenta]Duration:[/] {escape(record.duration_display)}", highlight=False)
    console.print(f"[bold magenta]Views:[/] {escape(record.views_display)}", highlight=False)
    console.print(f"[bold magenta]Published:[/] {escape(record.published_display)}", highlight=False)
    if record.added_at:
        console.print(f"[bold magenta]Watched:[/] {record.added_at}", highlight=False)
    console.print(Rule(style="dim"))

    return buffer.getvalue()


def make_preview_callback(
    records: list[VideoRecord],
    thumbnails_dir: Path,
    history: bool = False,
    images: bool = True,
) -> PreviewCallback:
    """Build the preview callback for a list of records.

    The callback maps the 1-based position back to the record through the
    same list used to build the menu. Thumbnail problems fall back to a
    text-only preview.

    Args:
        records: Records in menu order.
        thumbnails_dir: Per-run directory for downloaded thumbnails.
        history: Show the history badge.
        images: Try to render thumbnails at all.

    Returns:
        A callable taking (position, columns, lines).
    """

    def preview(position: int, cols: int = DEFAULT_COLS, lines: int = DEFAULT_LINES) -> str:
        if not 1 <= position <= len(records):
            return "No preview available\n"
        record = records[position - 1]

        details = render_details(record, cols, history=history)
        if not images:
            return details

        image_lines = max(lines - details.count('\n') - 1, 5)
        try:
            image = download_thumbnail(record.thumbnail, thumbnail_path(record, thumbnails_dir))
            picture = render_thumbnail(image, cols, image_lines)
        except ThumbnailError as e:
            logger.debug("Preview for %s without image: %s", record.id, e)
            return "(no thumbnail)\n" + details

        return picture + details

    return preview


class _PreviewHandler(BaseHTTPRequestHandler):
    server: "PreviewServer"

    def do_GET(self) -> None:
        params = parse_qs(urlparse(self.path).query)
        position = _int_param(params, 'pos', 0)
        cols = _int_param(params, 'cols', DEFAULT_COLS)
        lines = _int_param(params, 'lines', DEFAULT_LINES)

        try:
            body = self.server.callback(position, cols, lines)
        except Exception as e:
            logger.debug("Preview callback failed: %s", e)
            body = "No preview available\n"

        data = body.encode('utf-8', errors='replace')
        self.send_response(200)
        self.send_header('Content-Type', 'text/plain; charset=utf-8')
        self.send_header('Content-Length', str(len(data)))
        self.end_headers()
        self.wfile.write(data)

    def log_message(self, format: str, *args) -> None:
        logger.debug("preview: " + format, *args)


def _int_param(params: dict[str, list[str]], name: str, default: int) -> int:
    try:
        return int(params[name][0].strip().strip("'\""))
    except (KeyError, IndexError, ValueError):
        return default


class PreviewServer(ThreadingHTTPServer):
    """Loopback HTTP server answering preview requests from fzf.

    Use as a context manager; the server runs in a daemon thread until the
    block exits.
    """

    daemon_threads = True

    def __init__(self, callback: PreviewCallback) -> None:
        super().__init__(('127.0.0.1', 0), _PreviewHandler)
        self.callback = callback
        self._thread: threading.Thread | None = None

    @property
    def port(self) -> int:
        return self.server_address[1]

    def command(self) -> str:
        """Return the fzf --preview command that queries this server.

        fzf substitutes {1} with the quoted first field (the 1-based
        position) and exports the preview pane size.
        """
        return (
            f"curl -sG --noproxy '*' -m 2 http://127.0.0.1:{self.port}/ "
            "-d pos={1} "
            "-d cols=$FZF_PREVIEW_COLUMNS "
            "-d lines=$FZF_PREVIEW_LINES"
        )

    def __enter__(self) -> "PreviewServer":
        self._thread = threading.Thread(target=self.serve_forever, name="ytsurf-preview", daemon=True)
        self._thread.start()
        return self

    def __exit__(self, *exc_info) -> None:
        self.shutdown()
        self.server_close()
        if self._thread is not None:
            self._thread.join(timeout=1)
