"""Watch or download a selected video."""

import logging
import re
import shutil
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Callable

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel

from ytsurf.config import Settings
from ytsurf.menu import Menu, choose_option
from ytsurf.utils import watch_url
from ytsurf.video import VideoError, VideoRecord, list_resolutions

logger = logging.getLogger(__name__)

console = Console()

WATCH = "watch"
DOWNLOAD = "download"

BEST = "best"
BEST_AUDIO = "best audio"
BEST_AUDIO_CODE = "bestaudio"

OUTPUT_TEMPLATE = "%(title)s [%(id)s].%(ext)s"


class ActionError(Exception):
    """Exception raised when playback or download cannot be carried out."""

    pass


@dataclass(frozen=True)
class ActionPlan:
    """What to do with a record: mode plus an optional yt-dlp format code."""

    mode: str
    format_code: str | None = None


def resolution_to_format(choice: str) -> str:
    """Translate a menu choice into a yt-dlp format expression.

    '720p' becomes the best video+audio no taller than 720 lines, falling
    back to the best single file within that limit. 'best' and 'best audio'
    map to their yt-dlp codes.
    """
    if choice == BEST:
        return BEST
    if choice == BEST_AUDIO:
        return BEST_AUDIO_CODE
    match = re.match(r'^(\d+)p', choice)
    if not match:
        raise ValueError(f"Not a resolution: {choice!r}")
    height = match.group(1)
    return f"bestvideo[height<={height}]+bestaudio/best[height<={height}]"


def choose_mode(settings: Settings, menu: Menu) -> str | None:
    """Return 'watch' or 'download', asking only if configured to."""
    if settings.action in (WATCH, DOWNLOAD):
        return settings.action
    return choose_option(menu, [WATCH, DOWNLOAD], "Action")


def choose_format(
    url: str,
    settings: Settings,
    menu: Menu,
    resolutions: Callable[[str], list[str]] = list_resolutions,
) -> str | None:
    """Work out the format code for url.

    Audio-only mode always uses the best audio stream without listing
    formats. Otherwise the user picks from the available resolutions plus
    'best' and 'best audio'. If nothing can be listed, 'best' is used.

    Returns:
        The format code, or None if the user cancelled.
    """
    if settings.audio_only:
        return BEST_AUDIO_CODE

    try:
        with console.status("[bold blue]Fetching available formats...", spinner="dots"):
            available = resolutions(url)
    except VideoError as e:
        logger.warning("Could not list formats, using best: %s", e)
        return BEST

    if not available:
        logger.info("No formats listed for %s, using best", url)
        return BEST

    choice = choose_option(menu, available + [BEST, BEST_AUDIO], "Select video quality")
    if choice is None:
        return None
    return resolution_to_format(choice)


def plan_action(
    record: VideoRecord,
    settings: Settings,
    menu: Menu,
    resolutions: Callable[[str], list[str]] = list_resolutions,
) -> ActionPlan | None:
    """Resolve mode and format for a record.

    Returns:
        The plan, or None if the user cancelled either choice.
    """
    mode = choose_mode(settings, menu)
    if mode is None:
        return None

    format_code = None
    if settings.format_selection:
        format_code = choose_format(watch_url(record.id), settings, menu, resolutions)
        if format_code is None:
            return None

    return ActionPlan(mode=mode, format_code=format_code)


def notify(message: str, title: str = "ytsurf") -> None:
    """Show a desktop notification, or a banner in the terminal."""
    if shutil.which("notify-send"):
        try:
            subprocess.run(["notify-send", title, message], capture_output=True, timeout=5)
            return
        except (OSError, subprocess.TimeoutExpired) as e:
            logger.debug("notify-send failed: %s", e)
    console.print(Panel(escape(message), title=title, border_style="magenta", expand=False))


def player_command(record: VideoRecord, plan: ActionPlan, settings: Settings) -> list[str]:
    cmd = [settings.player]
    if settings.audio_only:
        cmd.append("--no-video")
    if plan.format_code:
        cmd.append(f"--ytdl-format={plan.format_code}")
    cmd.append(watch_url(record.id))
    return cmd


def download_command(record: VideoRecord, plan: ActionPlan, settings: Settings) -> list[str]:
    cmd = ["yt-dlp", "-o", str(settings.download_dir / OUTPUT_TEMPLATE)]
    if settings.audio_only:
        cmd += ["-x", "--audio-format", "mp3", "--audio-quality", "0"]
    else:
        cmd += ["--remux-video", "mp4"]
        if plan.format_code:
            cmd += ["--format", plan.format_code]
    cmd.append(watch_url(record.id))
    return cmd


def ensure_directory(path: Path) -> Path:
    """Create path if needed.

    Raises:
        ActionError: If it cannot be created or is not a directory.
    """
    try:
        path.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise ActionError(f"Cannot create download directory {path}: {e}") from e
    return path


def perform(record: VideoRecord, plan: ActionPlan, settings: Settings) -> None:
    """Notify, then hand the video to the player or the downloader.

    Both run in the foreground for as long as the user keeps them open.

    Raises:
        ActionError: If the program is missing, exits with an error, or the
            download directory cannot be created.
    """
    if plan.mode == DOWNLOAD:
        ensure_directory(settings.download_dir)
        cmd = download_command(record, plan, settings)
        notify(f"Downloading: {record.title}")
        console.print(f"  [dim]Saving to:[/] {settings.download_dir}")
    else:
        cmd = player_command(record, plan, settings)
        notify(f"Playing: {record.title}")

    logger.debug("Running %s", cmd)
    try:
        result = subprocess.run(cmd)
    except FileNotFoundError:
        raise ActionError(f"{cmd[0]} not found")

    if result.returncode != 0:
        raise ActionError(f"{cmd[0]} exited with code {result.returncode}")

    if plan.mode == DOWNLOAD:
        console.print(f"[green]✓[/] Downloaded to {settings.download_dir}")
