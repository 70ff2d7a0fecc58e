"""Interactive selection menus: fzf, rofi and a plain numbered prompt.

Every backend reports the chosen item by its position in the list it was
given. Labels are never matched back to records by string equality, since
two videos can share a title.
"""

import logging
import shutil
import subprocess
from pathlib import Path
from typing import Protocol, runtime_checkable

import click
from rich.console import Console
from rich.markup import escape

from ytsurf.config import Settings
from ytsurf.preview import PreviewCallback, PreviewServer, make_preview_callback
from ytsurf.thumbnails import check_renderer, prefetch_thumbnails
from ytsurf.utils import clean_label, truncate_title
from ytsurf.video import VideoRecord

logger = logging.getLogger(__name__)

console = Console(stderr=True)

QUIT = "q"


class MenuError(Exception):
    """Exception raised when a menu backend fails (not on cancellation)."""

    pass


@runtime_checkable
class Menu(Protocol):
    """Protocol shared by all selection backends."""

    name: str

    @property
    def supports_preview(self) -> bool:
        """True if the backend can show a live preview per highlighted item."""
        ...

    @property
    def supports_icons(self) -> bool:
        """True if the backend can show a static image next to each item."""
        ...

    def choose(
        self,
        labels: list[str],
        prompt: str,
        preview: PreviewCallback | None = None,
        icons: list[Path | None] | None = None,
    ) -> int | None:
        """Let the user pick one label.

        Returns:
            The 0-based index of the chosen label, or None if cancelled.

        Raises:
            MenuError: If the backend fails.
        """
        ...

    def ask(self, prompt: str) -> str:
        """Read a line of free text. Empty string means cancelled."""
        ...


def _prompt_line(prompt: str) -> str:
    try:
        return click.prompt(prompt, default="", show_default=False).strip()
    except click.Abort:
        return ""


def _parse_index(raw: str, count: int, offset: int = 0) -> int | None:
    """Turn a backend's reply into a 0-based index, or None if out of range."""
    try:
        index = int(raw.strip()) - offset
    except ValueError:
        return None
    if 0 <= index < count:
        return index
    return None


class FzfMenu:
    """Fuzzy finder backend with an optional live preview pane.

    Lines are sent as '<position>\\t<label>' and only the label is shown,
    so the selected line carries its own position.
    """

    name = "fzf"
    supports_icons = False

    def __init__(self, executable: str = "fzf") -> None:
        self.executable = executable

    @property
    def supports_preview(self) -> bool:
        return shutil.which("curl") is not None

    def choose(
        self,
        labels: list[str],
        prompt: str,
        preview: PreviewCallback | None = None,
        icons: list[Path | None] | None = None,
    ) -> int | None:
        lines = "\n".join(
            f"{position}\t{clean_label(label)}"
            for position, label in enumerate(labels, start=1)
        )
        cmd = [
            self.executable,
            f"--prompt={prompt}: ",
            "--delimiter=\t",
            "--with-nth=2..",
            "--layout=reverse",
            "--height=100%",
            "--cycle",
        ]

        if preview is not None and self.supports_preview:
            with PreviewServer(preview) as server:
                cmd += [
                    f"--preview={server.command()}",
                    "--preview-window=right,50%,wrap",
                ]
                output = self._run(cmd, lines)
        else:
            output = self._run(cmd, lines)

        if output is None:
            return None

        selected = output.splitlines()[0] if output.strip() else ""
        if not selected:
            return None
        index = _parse_index(selected.split("\t", 1)[0], len(labels), offset=1)
        if index is None:
            raise MenuError(f"fzf returned an unexpected selection: {selected!r}")
        return index

    def _run(self, cmd: list[str], lines: str) -> str | None:
        try:
            result = subprocess.run(cmd, input=lines, stdout=subprocess.PIPE, text=True)
        except FileNotFoundError:
            raise MenuError(f"{self.executable} not found")

        # 1: no match, 130: interrupted with Esc or Ctrl-C
        if result.returncode in (1, 130):
            return None
        if result.returncode != 0:
            raise MenuError(f"{self.executable} failed with exit code {result.returncode}")
        return result.stdout

    def ask(self, prompt: str) -> str:
        return _prompt_line(prompt)


class RofiMenu:
    """Launcher backend. No live preview; thumbnails can be shown as icons."""

    name = "rofi"
    supports_preview = False
    supports_icons = True

    def __init__(self, executable: str = "rofi") -> None:
        self.executable = executable

    def choose(
        self,
        labels: list[str],
        prompt: str,
        preview: PreviewCallback | None = None,
        icons: list[Path | None] | None = None,
    ) -> int | None:
        rows = []
        for position, label in enumerate(labels):
            row = clean_label(label)
            icon = icons[position] if icons and position < len(icons) else None
            if icon is not None:
                row += f"\0icon\x1f{icon}"
            rows.append(row)

        # -format i prints the 0-based index of the chosen row
        cmd = [self.executable, "-dmenu", "-i", "-p", prompt, "-format", "i"]
        if icons and any(icons):
            cmd.append("-show-icons")

        output = self._run(cmd, "\n".join(rows))
        if not output:
            return None
        index = _parse_index(output, len(labels))
        if index is None:
            # Custom text that matched no row comes back as -1
            logger.debug("rofi returned %r, treating as cancelled", output)
        return index

    def ask(self, prompt: str) -> str:
        return self._run([self.executable, "-dmenu", "-p", prompt], "") or ""

    def _run(self, cmd: list[str], rows: str) -> str | None:
        try:
            result = subprocess.run(cmd, input=rows, stdout=subprocess.PIPE, text=True)
        except FileNotFoundError:
            raise MenuError(f"{self.executable} not found")

        # 1: dismissed with Esc
        if result.returncode == 1:
            return None
        if result.returncode != 0:
            raise MenuError(f"{self.executable} failed with exit code {result.returncode}")
        return result.stdout.strip()


class PlainMenu:
    """Numbered list on the terminal, read with a prompt."""

    name = "plain"
    supports_preview = False
    supports_icons = False

    def choose(
        self,
        labels: list[str],
        prompt: str,
        preview: PreviewCallback | None = None,
        icons: list[Path | None] | None = None,
    ) -> int | None:
        console.print(f"\n[bold]{escape(prompt)}[/]")
        for position, label in enumerate(labels, start=1):
            console.print(f"[cyan]{position:3d}.[/] {escape(clean_label(label))}", highlight=False)
        console.print(f"[dim]Enter a number, or '{QUIT}' to quit[/]")

        while True:
            choice = _prompt_line("Your choice")
            if not choice or choice.lower() == QUIT:
                return None
            index = _parse_index(choice, len(labels), offset=1)
            if index is not None:
                return index
            console.print(f"[yellow]⚠[/] Please enter a number between 1 and {len(labels)}.")

    def ask(self, prompt: str) -> str:
        return _prompt_line(prompt)


BACKENDS = {
    "fzf": FzfMenu,
    "rofi": RofiMenu,
    "plain": PlainMenu,
}


def build_menu(settings: Settings) -> Menu:
    """Return the configured menu backend, or the best available fallback.

    Order: configured backend, then fzf, then the plain prompt, which needs
    no external program.
    """
    order = [settings.menu] + [name for name in ("fzf", "plain") if name != settings.menu]
    for name in order:
        if name == "plain" or shutil.which(name):
            if name != settings.menu:
                logger.warning("%s not found, using the %s menu", settings.menu, name)
            menu = BACKENDS[name]()
            logger.debug("Using the %s menu", menu.name)
            return menu
    return PlainMenu()


def menu_label(record: VideoRecord) -> str:
    """Return the one-line menu label for a record."""
    return (
        f"{truncate_title(record.title)} [{record.duration_display}] "
        f"by {record.author} ({record.views_display})"
    )


def pick_record(
    menu: Menu,
    records: list[VideoRecord],
    prompt: str,
    thumbnails_dir: Path,
    history: bool = False,
    preview: bool = True,
) -> VideoRecord | None:
    """Offer records in menu and return the chosen one.

    Args:
        menu: Backend to use.
        records: Records in display order. Must not be empty.
        prompt: Menu prompt.
        thumbnails_dir: Per-run directory for thumbnails.
        history: Mark the menu as showing watch history.
        preview: Show thumbnails/previews where the backend supports them.

    Returns:
        The chosen record, or None if the user cancelled.

    Raises:
        ValueError: If records is empty.
        MenuError: If the backend fails.
    """
    if not records:
        raise ValueError("No records to choose from")

    labels = [menu_label(record) for record in records]
    if history:
        prompt = f"[history] {prompt}"

    callback: PreviewCallback | None = None
    icons: list[Path | None] | None = None
    if preview and menu.supports_preview:
        callback = make_preview_callback(
            records, thumbnails_dir, history=history, images=check_renderer()
        )
    elif preview and menu.supports_icons:
        icons = prefetch_thumbnails(records, thumbnails_dir)

    index = menu.choose(labels, prompt, preview=callback, icons=icons)
    if index is None:
        return None
    return records[index]


def choose_option(menu: Menu, options: list[str], prompt: str) -> str | None:
    """Let the user pick one of a few plain options. None if cancelled."""
    index = menu.choose(options, prompt)
    if index is None:
        return None
    return options[index]
