"""Exception hierarchy for kitchenscore."""

from __future__ import annotations

from enum import Enum

import requests

# Environment variable names per provider
API_KEY_ENV_VARS: dict[str, str] = {
    "openai": "OPENAI_API_KEY",
    "gemini": "GOOGLE_API_KEY",
    "huggingface": "HUGGINGFACE_API_TOKEN",
    "google_vision": "GOOGLE_CLOUD_VISION_API_KEY",
}


class KitchenScoreError(Exception):
    """Base exception for all kitchenscore errors."""

    pass


class AnalysisError(KitchenScoreError):
    """Base exception for errors that abort an analysis run."""

    pass


class InvalidDurationError(AnalysisError):
    """Raised when a video is too short or too long to be analyzed."""

    def __init__(self, duration: float, minimum: float, maximum: float):
        if duration < minimum:
            message = f"Video too short ({duration:g}s). Please record at least {minimum:g} seconds."
        else:
            message = f"Video too long ({duration:g}s). Maximum duration is {maximum:g} seconds."
        super().__init__(message)
        self.duration = duration
        self.minimum = minimum
        self.maximum = maximum


class VideoDecodeError(AnalysisError):
    """Raised when the video cannot be decoded into frames."""

    pass


class InsufficientLightingError(AnalysisError):
    """Raised when the footage is too dark for reliable analysis."""

    def __init__(self, brightness: float, threshold: float):
        super().__init__(
            f"Video too dark for reliable analysis (brightness {brightness:.1f}, minimum {threshold:g}). "
            "Please record in a well-lit environment."
        )
        self.brightness = brightness
        self.threshold = threshold


class DetectionErrorKind(str, Enum):
    """Classification of a detector backend failure."""

    AUTH = "auth"
    BILLING = "billing"
    QUOTA = "quota"
    RATE_LIMIT = "rate_limit"
    NETWORK = "network"
    UNKNOWN = "unknown"

    @property
    def remediation(self) -> str:
        return _REMEDIATION_MESSAGES[self]


_REMEDIATION_MESSAGES: dict[DetectionErrorKind, str] = {
    DetectionErrorKind.AUTH: (
        "Invalid or missing API key. Make sure the key for the selected detection backend is set and valid."
    ),
    DetectionErrorKind.BILLING: (
        "The detection service requires billing to be enabled. Enable billing on your account and try again."
    ),
    DetectionErrorKind.QUOTA: "Detection API quota exceeded. Check the quota limits of your account.",
    DetectionErrorKind.RATE_LIMIT: "Detection API rate limit exceeded. Please try again in a few moments.",
    DetectionErrorKind.NETWORK: (
        "Could not reach the detection service. Check your network connection and try again."
    ),
    DetectionErrorKind.UNKNOWN: "Frame analysis failed.",
}


class DetectionUnavailableError(AnalysisError):
    """Raised when detection failed for every sampled frame."""

    def __init__(self, kind: DetectionErrorKind, cause: BaseException | None = None):
        message = kind.remediation
        if kind is DetectionErrorKind.UNKNOWN and cause is not None:
            message = f"{message} {cause}"
        super().__init__(message)
        self.kind = kind
        self.cause = cause


class BackendError(KitchenScoreError):
    """Base exception for backend-related errors."""

    pass


class MissingAPIKeyError(BackendError):
    """Raised when a required API key is not found."""

    def __init__(self, provider: str):
        env_var = API_KEY_ENV_VARS.get(provider, f"{provider.upper()}_API_KEY")
        super().__init__(
            f"API key for '{provider}' not found. Set the {env_var} environment variable or pass api_key parameter."
        )
        self.provider = provider


class UnsupportedBackendError(BackendError):
    """Raised when an unsupported backend is requested."""

    def __init__(self, backend: str, supported: list[str]):
        super().__init__(f"Backend '{backend}' is not supported. Supported backends: {', '.join(supported)}")
        self.backend = backend
        self.supported = supported


class DetectionRequestError(BackendError):
    """Raised when a detection backend answers with an error status."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class ConfigError(KitchenScoreError):
    """Raised when there's an error loading or validating configuration."""

    pass


def _status_code(exc: BaseException) -> int | None:
    for candidate in (
        getattr(exc, "status_code", None),
        getattr(getattr(exc, "response", None), "status_code", None),
        getattr(exc, "code", None),
    ):
        if isinstance(candidate, int):
            return candidate
    return None


def classify_detection_error(exc: BaseException) -> DetectionErrorKind:
    """Map a backend exception to a `DetectionErrorKind`.

    Billing and quota problems are checked first because providers often
    report them with the same status codes as auth and rate-limit errors.
    """
    message = str(exc).lower()
    status = _status_code(exc)

    if "billing" in message:
        return DetectionErrorKind.BILLING
    if "quota" in message:
        return DetectionErrorKind.QUOTA
    if (
        isinstance(exc, MissingAPIKeyError)
        or status in (401, 403)
        or "api key" in message
        or "unauthenticated" in message
        or "unauthorized" in message
    ):
        return DetectionErrorKind.AUTH
    if status == 429 or "rate limit" in message or "too many requests" in message:
        return DetectionErrorKind.RATE_LIMIT
    if (
        isinstance(exc, (ConnectionError, TimeoutError, requests.ConnectionError, requests.Timeout))
        or status in (502, 503, 504)
        or "connection" in message
        or "timed out" in message
    ):
        return DetectionErrorKind.NETWORK
    return DetectionErrorKind.UNKNOWN
