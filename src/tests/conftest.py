from pathlib import Path

import pytest

from kitchenscore.config import clear_config_cache

from .fakes import write_video


@pytest.fixture(autouse=True)
def isolated_config(tmp_path, monkeypatch):
    """Run every test outside the repository so no pyproject config leaks in."""
    monkeypatch.chdir(tmp_path)
    clear_config_cache()
    yield
    clear_config_cache()


@pytest.fixture
def bright_video(tmp_path) -> Path:
    return write_video(tmp_path / "bright.avi", seconds=10, value=200)


@pytest.fixture
def dark_video(tmp_path) -> Path:
    return write_video(tmp_path / "dark.avi", seconds=10, value=5)
