"""Tests for configuration loading and resolution."""

import dataclasses
import logging
from pathlib import Path

import pytest

from ytsurf.config import (
    DEFAULT_CONFIG,
    DEFAULT_CONFIG_TEXT,
    ConfigError,
    get_cache_dir,
    get_config_path,
    init_config,
    load_config,
    merge_config,
    parse_config_text,
    resolve_settings,
)


class TestParseConfigText:
    """Tests for parse_config_text()."""

    def test_values_are_typed(self):
        config = parse_config_text("limit=25\naudio_only=true\naction=download\nmenu=rofi\n")
        assert config == {"limit": 25, "audio_only": True, "action": "download", "menu": "rofi"}

    def test_comments_blanks_and_unknown_keys(self):
        text = "# a comment\n\n   \nlimit=5\ncolour=blue\n  # indented comment\n"
        assert parse_config_text(text) == {"limit": 5}

    def test_out_of_range_limit_uses_default(self, caplog):
        with caplog.at_level(logging.WARNING, logger="ytsurf.config"):
            config = parse_config_text("limit=9999\n")
        assert "limit" not in config
        assert "invalid value '9999' for limit" in caplog.text
        assert "using default 10" in caplog.text

    def test_out_of_range_history_size(self):
        assert parse_config_text("history_size=0\nhistory_size=5000\n") == {}

    def test_invalid_bool(self, caplog):
        with caplog.at_level(logging.WARNING, logger="ytsurf.config"):
            assert parse_config_text("audio_only=maybe\n") == {}
        assert "audio_only" in caplog.text

    def test_bool_spellings(self):
        config = parse_config_text("audio_only=yes\npreview=off\nformat_selection=True\n")
        assert config == {"audio_only": True, "preview": False, "format_selection": True}

    def test_quoted_path_is_expanded(self, monkeypatch, tmp_path):
        monkeypatch.setenv("HOME", str(tmp_path))
        config = parse_config_text('download_dir="$HOME/Videos"\n')
        assert config["download_dir"] == tmp_path / "Videos"

    def test_tilde_path(self, monkeypatch, tmp_path):
        monkeypatch.setenv("HOME", str(tmp_path))
        assert parse_config_text("download_dir=~/Music\n")["download_dir"] == tmp_path / "Music"

    def test_export_prefix(self):
        assert parse_config_text("export limit=15\n") == {"limit": 15}

    def test_legacy_keys(self):
        config = parse_config_text("download_mode=true\nuse_rofi=true\n")
        assert config == {"action": "download", "menu": "rofi"}

    def test_legacy_keys_off(self):
        config = parse_config_text("download_mode=false\nuse_rofi=false\n")
        assert config == {"action": "watch", "menu": "fzf"}

    def test_invalid_choice(self):
        assert parse_config_text("menu=dmenu\naction=stream\n") == {}

    def test_choices_are_case_insensitive(self):
        assert parse_config_text("menu=Plain\n") == {"menu": "plain"}

    def test_malformed_line(self, caplog):
        with caplog.at_level(logging.WARNING, logger="ytsurf.config"):
            config = parse_config_text("this is not a setting\nlimit=3\n", source="cfg")
        assert config == {"limit": 3}
        assert "cfg:1: ignoring malformed line" in caplog.text

    def test_later_lines_win(self):
        assert parse_config_text("limit=3\nlimit=4\n") == {"limit": 4}

    def test_default_text_parses_cleanly(self, caplog):
        with caplog.at_level(logging.DEBUG, logger="ytsurf.config"):
            config = parse_config_text(DEFAULT_CONFIG_TEXT)
        assert caplog.records == []
        for key, value in config.items():
            assert DEFAULT_CONFIG[key] == value


class TestLoadConfig:
    """Tests for load_config()."""

    def test_missing_file_gives_defaults(self, isolated_env):
        config = load_config(isolated_env / "nope")
        assert config["limit"] == 10
        assert config["action"] == "watch"
        assert config["download_dir"] == isolated_env / "downloads"

    def test_file_overrides_defaults(self, isolated_env):
        path = isolated_env / "config"
        path.write_text("limit=20\nplayer=vlc\n")
        config = load_config(path)
        assert config["limit"] == 20
        assert config["player"] == "vlc"
        assert config["history_size"] == 100

    def test_unreadable_file_gives_defaults(self, isolated_env):
        path = isolated_env / "config"
        path.write_bytes(b"\xff\xfe limit=3")
        assert load_config(path)["limit"] == 10

    def test_default_path_follows_xdg(self, isolated_env):
        path = get_config_path()
        assert path == isolated_env / "config" / "ytsurf" / "config"
        path.parent.mkdir(parents=True)
        path.write_text("limit=7\n")
        assert load_config()["limit"] == 7


class TestMergeConfig:
    def test_none_means_not_given(self):
        merged = merge_config({"limit": 10, "menu": "fzf"}, {"limit": None, "menu": "rofi"})
        assert merged == {"limit": 10, "menu": "rofi"}


class TestResolveSettings:
    """Tests for resolve_settings()."""

    def test_precedence(self, isolated_env):
        path = isolated_env / "config"
        path.write_text("limit=20\nmenu=rofi\naudio_only=true\n")
        settings = resolve_settings({"limit": 5, "menu": None}, path)
        assert settings.limit == 5
        assert settings.menu == "rofi"
        assert settings.audio_only is True

    def test_default_dirs_never_point_at_real_home(self, tmp_path):
        assert get_cache_dir() == tmp_path / "cache" / "ytsurf"
        assert get_config_path() == tmp_path / "config" / "ytsurf" / "config"

    def test_paths(self, isolated_env):
        settings = resolve_settings({}, isolated_env / "missing")
        assert settings.cache_dir == isolated_env / "cache" / "ytsurf"
        assert settings.cache_dir == get_cache_dir()
        assert settings.history_file == isolated_env / "cache" / "ytsurf" / "history.json"
        assert settings.download_dir == isolated_env / "downloads"

    def test_download_dir_override(self, isolated_env):
        settings = resolve_settings({"download_dir": str(isolated_env / "vids")}, isolated_env / "missing")
        assert settings.download_dir == isolated_env / "vids"

    def test_invalid_override(self, isolated_env):
        with pytest.raises(ConfigError, match="limit"):
            resolve_settings({"limit": 0}, isolated_env / "missing")

    def test_unknown_override(self, isolated_env):
        with pytest.raises(ConfigError, match="Unknown setting"):
            resolve_settings({"colour": "blue"}, isolated_env / "missing")

    def test_settings_are_frozen(self, isolated_env):
        settings = resolve_settings({}, isolated_env / "missing")
        with pytest.raises(dataclasses.FrozenInstanceError):
            settings.limit = 3


class TestInitConfig:
    """Tests for init_config()."""

    def test_creates_file(self, tmp_path):
        path = tmp_path / "ytsurf" / "config"
        assert not path.exists()
        assert init_config(path) == path
        assert path.read_text() == DEFAULT_CONFIG_TEXT

    def test_refuses_to_overwrite(self, tmp_path):
        path = tmp_path / "config"
        path.write_text("limit=3\n")
        with pytest.raises(FileExistsError):
            init_config(path)
        assert path.read_text() == "limit=3\n"

    def test_default_location(self, isolated_env):
        path = init_config()
        assert path == Path(isolated_env) / "config" / "ytsurf" / "config"
