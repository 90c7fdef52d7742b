"""Tests for the TOML configuration loader."""

import pytest

from kitchenscore.config import (
    clear_config_cache,
    get_backend_options,
    get_config,
    get_default_backend,
    get_section,
)


def test_no_config_file() -> None:
    assert get_config() == {}
    assert get_section("sampling") == {}
    assert get_default_backend() == "openai"


def test_kitchenscore_toml(tmp_path) -> None:
    (tmp_path / "kitchenscore.toml").write_text(
        '[detection]\nbackend = "gemini"\n\n[detection.gemini]\nmodel = "gemini-1.5-pro"\n'
    )

    assert get_default_backend() == "gemini"
    assert get_backend_options("gemini") == {"model": "gemini-1.5-pro"}
    assert get_backend_options("openai") == {}


def test_pyproject_tool_section(tmp_path) -> None:
    (tmp_path / "pyproject.toml").write_text(
        '[project]\nname = "kitchen"\n\n[tool.kitchenscore.sampling]\nframe_stride = 2\n'
    )
    assert get_section("sampling") == {"frame_stride": 2}


def test_kitchenscore_toml_takes_precedence(tmp_path) -> None:
    (tmp_path / "pyproject.toml").write_text('[tool.kitchenscore.detection]\nbackend = "gemini"\n')
    (tmp_path / "kitchenscore.toml").write_text('[detection]\nbackend = "huggingface"\n')
    assert get_default_backend() == "huggingface"


def test_invalid_toml_warns(tmp_path) -> None:
    (tmp_path / "kitchenscore.toml").write_text("[detection\nbackend = ")
    with pytest.warns(RuntimeWarning, match="Invalid TOML"):
        assert get_config() == {}


def test_non_table_section_is_ignored(tmp_path) -> None:
    (tmp_path / "kitchenscore.toml").write_text('sampling = "fast"\n')
    assert get_section("sampling") == {}


def test_config_is_cached_until_cleared(tmp_path) -> None:
    assert get_default_backend() == "openai"

    (tmp_path / "kitchenscore.toml").write_text('[detection]\nbackend = "google_vision"\n')
    assert get_default_backend() == "openai"

    clear_config_cache()
    assert get_default_backend() == "google_vision"


def test_pyproject_without_tool_table(tmp_path) -> None:
    (tmp_path / "pyproject.toml").write_text('[project]\nname = "kitchen"\n\n[tool]\nkitchenscore = 3\n')
    assert get_config() == {}
    assert get_default_backend() == "openai"
