"""Configuration file handling for ytsurf."""

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable

import yaml

logger = logging.getLogger(__name__)

APP_NAME = "ytsurf"

LIMIT_RANGE = (1, 50)
HISTORY_SIZE_RANGE = (1, 1000)
ACTIONS = ("watch", "download", "ask")
MENUS = ("fzf", "rofi", "plain")

# Default configuration values
DEFAULT_CONFIG: dict[str, Any] = {
    "limit": 10,
    "history_size": 100,
    "audio_only": False,
    "format_selection": False,
    "history_mode": False,
    "preview": True,
    "action": "watch",
    "menu": "fzf",
    "player": "mpv",
    # Filled in from the environment by default_config()
    "download_dir": None,
}

# Default config file content
DEFAULT_CONFIG_TEXT = """\
# ytsurf configuration
# Location: ~/.config/ytsurf/config
#
# One key=value per line. Settings can be removed or commented out to use
# built-in defaults. Built-in defaults are noted in [brackets].

# Number of search results, 1-50 [10]
limit=10

# Number of entries kept in the watch history, 1-1000 [100]
history_size=100

# Play or download audio only [false]
audio_only=false

# Ask for a video quality before playing or downloading [false]
format_selection=false

# What to do with a selected video: watch, download or ask [watch]
action=watch

# Menu backend: fzf, rofi or plain [fzf]
menu=fzf

# Show thumbnail previews in the menu [true]
preview=true

# Media player command [mpv]
player=mpv

# Download directory [$XDG_DOWNLOAD_DIR or ~/Downloads]
# download_dir="$HOME/Videos"
"""


class ConfigError(Exception):
    """Exception raised for unusable configuration."""

    pass


@dataclass(frozen=True)
class Settings:
    """Resolved configuration for one invocation."""

    limit: int
    history_size: int
    audio_only: bool
    format_selection: bool
    history_mode: bool
    preview: bool
    action: str
    menu: str
    player: str
    download_dir: Path
    cache_dir: Path

    @property
    def history_file(self) -> Path:
        return self.cache_dir / "history.json"


def get_config_dir() -> Path:
    """Return the config directory (~/.config/ytsurf or $XDG_CONFIG_HOME/ytsurf)."""
    base = os.environ.get("XDG_CONFIG_HOME") or Path.home() / ".config"
    return Path(base).expanduser() / APP_NAME


def get_cache_dir() -> Path:
    """Return the cache directory (~/.cache/ytsurf or $XDG_CACHE_HOME/ytsurf)."""
    base = os.environ.get("XDG_CACHE_HOME") or Path.home() / ".cache"
    return Path(base).expanduser() / APP_NAME


def get_download_dir() -> Path:
    """Return the default download directory ($XDG_DOWNLOAD_DIR or ~/Downloads)."""
    base = os.environ.get("XDG_DOWNLOAD_DIR") or Path.home() / "Downloads"
    return Path(base).expanduser()


def get_config_path() -> Path:
    """Return the default config file path."""
    return get_config_dir() / "config"


def init_config(path: Path | None = None) -> Path:
    """Initialize default config file. Returns the path to the created file."""
    config_path = path or get_config_path()
    if config_path.exists():
        raise FileExistsError(f"Config file already exists: {config_path}")
    config_path.parent.mkdir(parents=True, exist_ok=True)
    config_path.write_text(DEFAULT_CONFIG_TEXT, encoding="utf-8")
    return config_path


def default_config() -> dict[str, Any]:
    """Return built-in defaults with environment-derived paths filled in."""
    config = DEFAULT_CONFIG.copy()
    config["download_dir"] = get_download_dir()
    return config


def _int_in_range(low: int, high: int) -> Callable[[Any], int]:
    def validate(value: Any) -> int:
        if isinstance(value, bool) or not isinstance(value, int):
            raise ValueError(f"expected a whole number between {low} and {high}")
        if not low <= value <= high:
            raise ValueError(f"must be between {low} and {high}")
        return value

    return validate


def _boolean(value: Any) -> bool:
    if not isinstance(value, bool):
        raise ValueError("expected true or false")
    return value


def _one_of(*choices: str) -> Callable[[Any], str]:
    def validate(value: Any) -> str:
        if not isinstance(value, str) or value.lower() not in choices:
            raise ValueError(f"expected one of: {', '.join(choices)}")
        return value.lower()

    return validate


def _path(value: Any) -> Path:
    if isinstance(value, Path):
        return value.expanduser()
    if not isinstance(value, str) or not value.strip():
        raise ValueError("expected a path")
    return Path(os.path.expandvars(value.strip())).expanduser()


def _command(value: Any) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValueError("expected a command name")
    return value.strip()


VALIDATORS: dict[str, Callable[[Any], Any]] = {
    "limit": _int_in_range(*LIMIT_RANGE),
    "history_size": _int_in_range(*HISTORY_SIZE_RANGE),
    "audio_only": _boolean,
    "format_selection": _boolean,
    "history_mode": _boolean,
    "preview": _boolean,
    "action": _one_of(*ACTIONS),
    "menu": _one_of(*MENUS),
    "player": _command,
    "download_dir": _path,
}

# Keys from older shell-sourced config files, mapped onto current keys
LEGACY_KEYS: dict[str, tuple[str, Callable[[bool], Any]]] = {
    "download_mode": ("action", lambda on: "download" if on else "watch"),
    "use_rofi": ("menu", lambda on: "rofi" if on else "fzf"),
}


def _decode_value(raw: str) -> Any:
    """Decode a raw config value into a bool, int or string."""
    raw = raw.strip()
    if not raw:
        return ""
    try:
        value = yaml.safe_load(raw)
    except yaml.YAMLError:
        return raw
    if value is None:
        return ""
    if isinstance(value, (bool, int, float, str)):
        return value
    return raw


def parse_config_text(text: str, source: str = "config") -> dict[str, Any]:
    """Parse key=value config text into validated settings.

    Comment lines, blank lines and unknown keys are skipped. Invalid values
    are dropped with a warning so the built-in default applies.

    Args:
        text: Config file contents.
        source: Name used in warnings.

    Returns:
        Dict of the keys that were present and valid.
    """
    config: dict[str, Any] = {}

    for line_no, line in enumerate(text.splitlines(), start=1):
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        if line.startswith("export "):
            line = line[len("export "):].lstrip()
        if "=" not in line:
            logger.warning("%s:%d: ignoring malformed line %r", source, line_no, line)
            continue

        key, raw = line.split("=", 1)
        key = key.strip().lower()
        value = _decode_value(raw)

        if key in LEGACY_KEYS:
            if not isinstance(value, bool):
                logger.warning("%s:%d: invalid value %r for %s, ignoring", source, line_no, raw.strip(), key)
                continue
            key, translate = LEGACY_KEYS[key]
            value = translate(value)

        validator = VALIDATORS.get(key)
        if validator is None:
            logger.debug("%s:%d: ignoring unknown key %r", source, line_no, key)
            continue

        try:
            config[key] = validator(value)
        except ValueError as e:
            logger.warning(
                "%s:%d: invalid value %r for %s (%s), using default %r",
                source, line_no, raw.strip(), key, e, DEFAULT_CONFIG.get(key),
            )

    return config


def load_config(path: Path | None = None) -> dict[str, Any]:
    """Load configuration from file merged over the defaults.

    A missing file means defaults; an unreadable one is reported and
    treated the same way.

    Args:
        path: Optional path to config file. Uses the default location if not
            specified.

    Returns:
        Config dict with all settings.
    """
    config_path = path or get_config_path()
    config = default_config()

    if not config_path.exists():
        return config

    try:
        text = config_path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        logger.warning("Could not read config file %s: %s", config_path, e)
        return config

    return merge_config(config, parse_config_text(text, source=str(config_path)))


def merge_config(
    file_config: dict[str, Any], cli_overrides: dict[str, Any]
) -> dict[str, Any]:
    """Merge CLI overrides into file configuration.

    CLI overrides take precedence over file config. None values mean the
    option was not given.
    """
    result = file_config.copy()
    for key, value in cli_overrides.items():
        if value is not None:
            result[key] = value
    return result


def resolve_settings(
    cli_overrides: dict[str, Any] | None = None,
    path: Path | None = None,
) -> Settings:
    """Build the immutable Settings for this run.

    Args:
        cli_overrides: Values given on the command line.
        path: Optional config file path.

    Returns:
        Settings with defaults < config file < CLI precedence applied.

    Raises:
        ConfigError: If a CLI override is invalid.
    """
    config = load_config(path)

    for key, value in (cli_overrides or {}).items():
        if value is None:
            continue
        validator = VALIDATORS.get(key)
        if validator is None:
            raise ConfigError(f"Unknown setting: {key}")
        try:
            config[key] = validator(value)
        except ValueError as e:
            raise ConfigError(f"Invalid value for {key}: {e}") from e

    return Settings(
        limit=config["limit"],
        history_size=config["history_size"],
        audio_only=config["audio_only"],
        format_selection=config["format_selection"],
        history_mode=config["history_mode"],
        preview=config["preview"],
        action=config["action"],
        menu=config["menu"],
        player=config["player"],
        download_dir=Path(config["download_dir"]),
        cache_dir=get_cache_dir(),
    )
