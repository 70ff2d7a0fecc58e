"""CLI interface for ytsurf."""

import logging
import shutil
import tempfile
from pathlib import Path

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape

from ytsurf import __version__
from ytsurf.actions import DOWNLOAD, ActionError, perform, plan_action
from ytsurf.cache import CacheError, ResultCache
from ytsurf.config import LIMIT_RANGE, ConfigError, Settings, resolve_settings
from ytsurf.config import init_config as write_default_config
from ytsurf.history import HistoryError, HistoryStore
from ytsurf.menu import Menu, MenuError, build_menu, pick_record
from ytsurf.video import MalformedOutputError, VideoError, VideoRecord, search_expression, search_videos

logger = logging.getLogger(__name__)

console = Console()


def setup_logging(verbose: bool) -> None:
    """Send log records to stderr through rich."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False, show_time=verbose)],
        force=True,
    )


def missing_dependencies(settings: Settings) -> list[str]:
    """Return required external programs that are not on PATH.

    yt-dlp is always needed; the player only when the run may play.
    Menu and preview programs are optional and degrade instead.
    """
    required = ['yt-dlp']
    if settings.action != DOWNLOAD:
        required.append(settings.player)
    return [name for name in required if shutil.which(name) is None]


def fetch_results(query: str, settings: Settings, cache: ResultCache) -> list[VideoRecord]:
    """Return search results for query, from the cache when fresh.

    Empty results are not cached.

    Raises:
        click.ClickException: If the search fails or the cache cannot be written.
    """
    key = search_expression(query, settings.limit)
    records = cache.get(key)
    if records is not None:
        logger.debug("Using cached results for %r", query)
        return records

    with console.status(f"[bold blue]Searching for {escape(repr(query))}...", spinner="dots"):
        try:
            records = search_videos(query, settings.limit)
        except MalformedOutputError as e:
            console.print("[red]✗[/] Could not understand the search results")
            raise click.ClickException(str(e))
        except VideoError as e:
            console.print("[red]✗[/] Search failed")
            raise click.ClickException(str(e))

    if records:
        try:
            cache.put(key, records)
        except CacheError as e:
            raise click.ClickException(str(e))
    return records


def select_and_act(
    record: VideoRecord,
    settings: Settings,
    menu: Menu,
    history: HistoryStore,
) -> None:
    """Plan the action, remember the choice, then play or download."""
    try:
        plan = plan_action(record, settings, menu)
    except MenuError as e:
        raise click.ClickException(str(e))
    if plan is None:
        return

    try:
        history.record_selection(record)
    except HistoryError as e:
        raise click.ClickException(str(e))

    console.print(f"[green]▶[/] {escape(record.title)}")
    try:
        perform(record, plan, settings)
    except ActionError as e:
        console.print(f"[red]✗[/] {escape(str(e))}")
        raise click.ClickException(str(e))


def run_history(settings: Settings, menu: Menu, history: HistoryStore, scratch: Path) -> None:
    records = history.list()
    if not records:
        console.print("No watched history yet.")
        return

    try:
        record = pick_record(
            menu, records, "Watch history", scratch, history=True, preview=settings.preview
        )
    except MenuError as e:
        raise click.ClickException(str(e))
    if record is None:
        return

    select_and_act(record, settings, menu, history)


def run_search(
    query: str,
    settings: Settings,
    menu: Menu,
    history: HistoryStore,
    scratch: Path,
) -> None:
    if not query:
        query = menu.ask("Search YouTube").strip()
    if not query:
        console.print("No query entered.")
        return

    records = fetch_results(query, settings, ResultCache(settings.cache_dir))
    if not records:
        console.print(f"No results found for {escape(repr(query))}")
        return

    try:
        record = pick_record(menu, records, "Search YouTube", scratch, preview=settings.preview)
    except MenuError as e:
        raise click.ClickException(str(e))
    if record is None:
        return

    select_and_act(record, settings, menu, history)


@click.command(context_settings={'help_option_names': ['-h', '--help']})
@click.argument('query', nargs=-1)
@click.option('--audio', is_flag=True, help='Play or download audio only')
@click.option('--download', is_flag=True, help='Download instead of playing')
@click.option('--ask', is_flag=True, help='Ask whether to watch or download')
@click.option('--format', 'format_selection', is_flag=True, help='Choose video quality first')
@click.option('--history', 'history_mode', is_flag=True, help='Pick from watch history')
@click.option('--rofi', is_flag=True, help='Use rofi for menus')
@click.option('--plain', is_flag=True, help='Use a plain numbered menu')
@click.option('--no-preview', is_flag=True, help='Disable thumbnail previews')
@click.option(
    '--limit',
    metavar='N',
    help=f'Number of search results ({LIMIT_RANGE[0]}-{LIMIT_RANGE[1]})',
)
@click.option('--clear-history', is_flag=True, help='Delete the watch history and exit')
@click.option('--init-config', is_flag=True, help='Write a default config file and exit')
@click.option('-v', '--verbose', is_flag=True, help='Verbose output')
@click.version_option(version=__version__)
def main(
    query: tuple[str, ...],
    audio: bool,
    download: bool,
    ask: bool,
    format_selection: bool,
    history_mode: bool,
    rofi: bool,
    plain: bool,
    no_preview: bool,
    limit: str | None,
    clear_history: bool,
    init_config: bool,
    verbose: bool,
) -> None:
    """Search YouTube, pick a video, and watch or download it.

    QUERY is free text; when omitted you are asked for one.

    Example:

        ytsurf lofi hip hop radio
    """
    setup_logging(verbose)

    if init_config:
        try:
            path = write_default_config()
        except FileExistsError as e:
            raise click.ClickException(str(e))
        console.print(f"[green]✓[/] Created {path}")
        return

    if limit is not None:
        try:
            limit = int(limit)
        except ValueError:
            raise click.ClickException(f"Invalid value for limit: {limit!r} is not a whole number")

    overrides = {
        'audio_only': True if audio else None,
        'format_selection': True if format_selection else None,
        'history_mode': True if history_mode else None,
        'preview': False if no_preview else None,
        'limit': limit,
        'action': 'download' if download else ('ask' if ask else None),
        'menu': 'plain' if plain else ('rofi' if rofi else None),
    }
    try:
        settings = resolve_settings(overrides)
    except ConfigError as e:
        raise click.ClickException(str(e))

    history = HistoryStore(settings.history_file, capacity=settings.history_size)

    if clear_history:
        try:
            history.clear()
        except HistoryError as e:
            raise click.ClickException(str(e))
        console.print("[green]✓[/] Watch history cleared")
        return

    missing = missing_dependencies(settings)
    if missing:
        raise click.ClickException(f"Required program not found: {', '.join(missing)}")

    menu = build_menu(settings)

    with tempfile.TemporaryDirectory(prefix='ytsurf-') as scratch:
        if settings.history_mode:
            run_history(settings, menu, history, Path(scratch))
        else:
            run_search(' '.join(query).strip(), settings, menu, history, Path(scratch))


if __name__ == '__main__':
    main()
