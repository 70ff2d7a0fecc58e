"""Shared fixtures for ytsurf tests."""

from pathlib import Path

import pytest

from ytsurf.config import Settings
from ytsurf.video import VideoRecord


def make_record(video_id: str, title: str | None = None, **kwargs) -> VideoRecord:
    return VideoRecord(id=video_id, title=title or f"Video {video_id}", **kwargs)


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        limit=10,
        history_size=100,
        audio_only=False,
        format_selection=False,
        history_mode=False,
        preview=False,
        action="watch",
        menu="plain",
        player="mpv",
        download_dir=tmp_path / "downloads",
        cache_dir=tmp_path / "cache",
    )


@pytest.fixture(autouse=True)
def isolated_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Point every XDG location at tmp_path so no test touches real user files."""
    monkeypatch.setenv("XDG_CACHE_HOME", str(tmp_path / "cache"))
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "config"))
    monkeypatch.setenv("XDG_DOWNLOAD_DIR", str(tmp_path / "downloads"))
    return tmp_path
