"""Backend utilities for kitchenscore detectors."""

from __future__ import annotations

import os
from typing import Literal

from kitchenscore.exceptions import API_KEY_ENV_VARS, MissingAPIKeyError

# Backend type definitions per detector shape
LabelBackend = Literal["google_vision"]
VisionLanguageBackend = Literal["openai", "huggingface", "gemini"]
DetectorBackend = Literal["google_vision", "openai", "huggingface", "gemini"]

LABEL_BACKENDS: list[str] = ["google_vision"]
VISION_LANGUAGE_BACKENDS: list[str] = ["openai", "huggingface", "gemini"]

# Default models per backend, overridable with [detection.<backend>] model = "..."
DEFAULT_MODELS: dict[str, str] = {
    "openai": "gpt-4o",
    "huggingface": "Qwen/Qwen2.5-VL-7B-Instruct",
    "gemini": "gemini-2.0-flash",
}

HUGGINGFACE_ROUTER_URL = "https://router.huggingface.co/v1"
GOOGLE_VISION_URL = "https://vision.googleapis.com/v1/images:annotate"


def get_api_key(provider: str, api_key: str | None = None) -> str:
    """Get API key for a provider.

    Args:
        provider: Provider name (e.g., 'openai', 'gemini', 'google_vision')
        api_key: Optional explicit API key. If provided, returns this directly.

    Returns:
        The API key string.

    Raises:
        MissingAPIKeyError: If no API key is found.
    """
    if api_key:
        return api_key

    env_var = API_KEY_ENV_VARS.get(provider)
    if env_var:
        key = os.environ.get(env_var)
        if key:
            return key

    raise MissingAPIKeyError(provider)
