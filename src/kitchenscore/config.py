"""Project settings read from ``kitchenscore.toml`` or ``[tool.kitchenscore]`` in pyproject.toml.

Example ``kitchenscore.toml``::

    [detection]
    backend = "gemini"

    [detection.gemini]
    model = "gemini-2.0-flash"

    [sampling]
    max_frames = 8

    [categories.proper_apron]
    severity = "minor"
"""

from __future__ import annotations

import warnings
from functools import lru_cache
from pathlib import Path
from typing import Any

import tomllib

DEFAULT_DETECTOR_BACKEND = "openai"

# Candidate files in the working directory, first match wins.
_CONFIG_FILES: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("kitchenscore.toml", ()),
    ("pyproject.toml", ("tool", "kitchenscore")),
)


def _read_settings(path: Path, table_path: tuple[str, ...]) -> dict[str, Any]:
    try:
        with open(path, "rb") as f:
            data: Any = tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        warnings.warn(f"Invalid TOML in config file {path}: {e}", RuntimeWarning)
        return {}
    except OSError as e:
        warnings.warn(f"Cannot read config file {path}: {e}", RuntimeWarning)
        return {}

    for key in table_path:
        data = data.get(key, {}) if isinstance(data, dict) else {}
    return data if isinstance(data, dict) else {}


@lru_cache(maxsize=1)
def _load_settings() -> dict[str, Any]:
    cwd = Path.cwd()
    for filename, table_path in _CONFIG_FILES:
        path = cwd / filename
        if path.exists():
            return _read_settings(path, table_path)
    return {}


def get_config() -> dict[str, Any]:
    """All settings, or an empty dict when no config file is present."""
    return _load_settings()


def get_section(name: str) -> dict[str, Any]:
    """One top-level table, e.g. ``sampling``. Non-table values read as empty."""
    section = get_config().get(name, {})
    return section if isinstance(section, dict) else {}


def get_default_backend() -> str:
    """``[detection] backend``, falling back to "openai"."""
    return str(get_section("detection").get("backend", DEFAULT_DETECTOR_BACKEND))


def get_backend_options(backend: str) -> dict[str, Any]:
    """The ``[detection.<backend>]`` table, e.g. a model override."""
    options = get_section("detection").get(backend, {})
    return dict(options) if isinstance(options, dict) else {}


def clear_config_cache() -> None:
    """Forget the loaded settings so the next call re-reads the file."""
    _load_settings.cache_clear()
