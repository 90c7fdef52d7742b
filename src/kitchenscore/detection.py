"""Detector backends that turn a frame into per-category verdicts."""

from __future__ import annotations

import io
import logging
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Any, Callable

import requests
from PIL import Image

from kitchenscore.backends import (
    DEFAULT_MODELS,
    GOOGLE_VISION_URL,
    HUGGINGFACE_ROUTER_URL,
    LABEL_BACKENDS,
    VISION_LANGUAGE_BACKENDS,
    DetectorBackend,
    LabelBackend,
    VisionLanguageBackend,
    get_api_key,
)
from kitchenscore.categories import DEFAULT_CATEGORY_CONFIG, Category, CategoryConfig
from kitchenscore.config import get_backend_options, get_default_backend
from kitchenscore.exceptions import (
    DetectionRequestError,
    DetectionUnavailableError,
    UnsupportedBackendError,
    classify_detection_error,
)
from kitchenscore.models import Frame, FrameDetections
from kitchenscore.parsing import Label, map_labels, parse_label_annotations, parse_structured_response

__all__ = [
    "BatchDetectionResult",
    "FrameDetector",
    "FrameFailure",
    "LabelDetector",
    "VisionLanguageDetector",
    "create_detector",
]

logger = logging.getLogger(__name__)

FrameDoneCallback = Callable[[int, int], None]

# What each category means, shared by every structured backend prompt.
CATEGORY_DEFINITIONS: dict[Category, str] = {
    Category.PROTECTIVE_GLOVES: "Food-safe gloves worn on hands while handling food",
    Category.BARE_HANDS: "Ungloved hands directly touching food, food contact surfaces, or utensils",
    Category.HAIR_COVERING: "Hair net, chef hat, bandana, or head covering that restrains hair",
    Category.CLEAN_SURFACE: (
        "Visibly clean countertops, cutting boards, work surfaces (no grease, food debris, stains, spills)"
    ),
    Category.PROPER_APRON: "Clean apron or chef coat being worn (no visible stains or food debris)",
    Category.HANDWASH_STATION: (
        "Dedicated handwashing sink visible with soap dispenser and paper towels within reach, "
        "OR person actively washing their hands with soap"
    ),
    Category.PEST_SIGNS: "Rodent droppings, insects (flies, cockroaches, ants), pest damage, or infestation evidence",
    Category.CROSS_CONTAMINATION: "Raw meat/poultry/fish in direct physical contact with ready-to-eat foods",
}


def build_system_prompt(categories: list[Category]) -> str:
    schema = ",\n".join(
        f'  "{c.value}": {{ "detected": boolean, "confidence": number, "details": string }}' for c in categories
    )
    rules = "\n".join(f"- {c.value}: {CATEGORY_DEFINITIONS[c]}" for c in categories)
    return f"""You are a food safety inspector analyzing kitchen images. For each image, detect the presence of \
the following hygiene categories. Respond ONLY with a JSON object (no markdown, no explanation) using this exact schema:

{{
{schema}
}}

Rules:
- "confidence" is a number between 0 and 1
- "details" is a brief description of what you see
- "detected" is true only if you clearly see evidence of that category
{rules}"""


USER_PROMPT = "Analyze this kitchen image for food safety compliance. Return JSON only."


@dataclass(frozen=True)
class FrameFailure:
    frame_index: int
    timestamp_seconds: int
    error: BaseException


@dataclass
class BatchDetectionResult:
    """Settled outcome of a batch: successful detections and the frames that failed."""

    detections: list[FrameDetections] = field(default_factory=list)
    failures: list[FrameFailure] = field(default_factory=list)
    total_frames: int = 0

    @property
    def succeeded(self) -> int:
        return len(self.detections)


class FrameDetector(ABC):
    """Common interface of every detector backend.

    Subclasses implement `detect` for a single frame. `detect_batch` fans the frames out
    concurrently and tolerates partial failure.
    """

    SUPPORTED_BACKENDS: list[str] = []

    def __init__(self, backend: str, *, config: CategoryConfig | None = None, api_key: str | None = None):
        if backend not in self.SUPPORTED_BACKENDS:
            raise UnsupportedBackendError(backend, self.SUPPORTED_BACKENDS)
        self.backend = backend
        self.config = config or DEFAULT_CATEGORY_CONFIG
        self.api_key = api_key

    @abstractmethod
    def detect(self, frame: Frame) -> FrameDetections:
        """Detect every category in one frame."""

    def detect_batch(
        self, frames: list[Frame], on_frame_done: FrameDoneCallback | None = None
    ) -> BatchDetectionResult:
        """Detect all frames concurrently and collect every settled result.

        Args:
            frames: Frames to analyze.
            on_frame_done: Called with ``(completed, total)`` after each frame settles.

        Returns:
            BatchDetectionResult with detections sorted by frame index.

        Raises:
            DetectionUnavailableError: When detection failed for every frame.
        """
        result = BatchDetectionResult(total_frames=len(frames))
        if not frames:
            return result

        with ThreadPoolExecutor(max_workers=len(frames)) as executor:
            future_to_frame = {executor.submit(self.detect, frame): frame for frame in frames}
            for completed, future in enumerate(as_completed(future_to_frame), start=1):
                frame = future_to_frame[future]
                error = future.exception()
                if error is None:
                    result.detections.append(future.result())
                else:
                    logger.warning("Detection failed for frame %d: %s", frame.index, error)
                    result.failures.append(FrameFailure(frame.index, frame.timestamp_seconds, error))
                if on_frame_done is not None:
                    on_frame_done(completed, len(frames))

        result.detections.sort(key=lambda d: d.frame_index)
        result.failures.sort(key=lambda f: f.frame_index)

        if not result.detections:
            first_error = result.failures[0].error
            kind = classify_detection_error(first_error)
            logger.error("Detection failed for all %d frames (%s): %s", len(frames), kind.value, first_error)
            raise DetectionUnavailableError(kind, first_error)

        logger.info("Detection complete: %d of %d frames analyzed", result.succeeded, len(frames))
        return result


class LabelDetector(FrameDetector):
    """Detects categories from ranked free-text labels (Cloud Vision label detection)."""

    SUPPORTED_BACKENDS: list[str] = LABEL_BACKENDS

    def __init__(
        self,
        backend: LabelBackend = "google_vision",
        *,
        config: CategoryConfig | None = None,
        api_key: str | None = None,
        min_label_confidence: float = 0.5,
        max_results: int = 20,
        timeout: float = 30.0,
    ):
        """Initialize label detector.

        Args:
            backend: Label backend to use.
            config: Category table providing the keyword lists.
            api_key: API key, read from the environment when omitted.
            min_label_confidence: Labels scoring below this are ignored.
            max_results: Number of labels requested per frame.
            timeout: HTTP timeout in seconds.
        """
        super().__init__(backend, config=config, api_key=api_key)
        self.min_label_confidence = min_label_confidence
        self.max_results = max_results
        self.timeout = timeout

    def _labels_google_vision(self, frame: Frame) -> list[Label]:
        api_key = get_api_key("google_vision", self.api_key)
        payload = {
            "requests": [
                {
                    "image": {"content": frame.to_base64()},
                    "features": [{"type": "LABEL_DETECTION", "maxResults": self.max_results}],
                }
            ]
        }
        try:
            response = requests.post(GOOGLE_VISION_URL, params={"key": api_key}, json=payload, timeout=self.timeout)
        except requests.RequestException as e:
            raise DetectionRequestError(f"Failed to reach Vision API: {e}") from e

        if not response.ok:
            raise DetectionRequestError(_error_message(response), status_code=response.status_code)

        data = response.json()
        responses = data.get("responses") or []
        if responses and responses[0].get("error"):
            error = responses[0]["error"]
            raise DetectionRequestError(error.get("message", "Vision API annotation error"), error.get("code"))
        return parse_label_annotations(data)

    def labels(self, frame: Frame) -> list[Label]:
        if self.backend == "google_vision":
            return self._labels_google_vision(frame)
        raise UnsupportedBackendError(self.backend, self.SUPPORTED_BACKENDS)

    def detect(self, frame: Frame) -> FrameDetections:
        labels = self.labels(frame)
        logger.debug("Frame %d labels: %s", frame.index, ", ".join(label.description for label in labels))
        return map_labels(labels, frame, self.config, min_confidence=self.min_label_confidence)


class VisionLanguageDetector(FrameDetector):
    """Detects categories with a vision-language model answering a fixed JSON schema."""

    SUPPORTED_BACKENDS: list[str] = VISION_LANGUAGE_BACKENDS

    def __init__(
        self,
        backend: VisionLanguageBackend = "openai",
        *,
        config: CategoryConfig | None = None,
        api_key: str | None = None,
        model: str | None = None,
        temperature: float = 0.1,
        max_tokens: int = 1024,
        timeout: float = 60.0,
    ):
        """Initialize vision-language detector.

        Args:
            backend: Backend to use ('openai', 'huggingface' or 'gemini').
            config: Category table; the prompt asks for every category in it.
            api_key: API key, read from the environment when omitted.
            model: Model name, defaults per backend.
            temperature: Sampling temperature.
            max_tokens: Maximum response length.
            timeout: Request timeout in seconds.
        """
        super().__init__(backend, config=config, api_key=api_key)
        self.model = model or get_backend_options(backend).get("model") or DEFAULT_MODELS[backend]
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.timeout = timeout
        self.system_prompt = build_system_prompt(list(self.config))

    def _chat_completion(self, client: Any, frame: Frame) -> str:
        response = client.chat.completions.create(
            model=self.model,
            messages=[
                {"role": "system", "content": self.system_prompt},
                {
                    "role": "user",
                    "content": [
                        {"type": "image_url", "image_url": {"url": frame.data_url()}},
                        {"type": "text", "text": USER_PROMPT},
                    ],
                },
            ],
            temperature=self.temperature,
            max_tokens=self.max_tokens,
        )
        return response.choices[0].message.content or ""

    def _respond_openai(self, frame: Frame) -> str:
        """Ask OpenAI GPT-4o about one frame."""
        from openai import OpenAI

        api_key = get_api_key("openai", self.api_key)
        client = OpenAI(api_key=api_key, timeout=self.timeout, max_retries=0)
        return self._chat_completion(client, frame)

    def _respond_huggingface(self, frame: Frame) -> str:
        """Ask a Hugging Face hosted model through the OpenAI-compatible router."""
        from openai import OpenAI

        api_key = get_api_key("huggingface", self.api_key)
        client = OpenAI(api_key=api_key, base_url=HUGGINGFACE_ROUTER_URL, timeout=self.timeout, max_retries=0)
        return self._chat_completion(client, frame)

    def _respond_gemini(self, frame: Frame) -> str:
        """Ask Google Gemini about one frame."""
        import google.generativeai as genai

        api_key = get_api_key("gemini", self.api_key)
        genai.configure(api_key=api_key)

        model = genai.GenerativeModel(self.model, system_instruction=self.system_prompt)
        image = Image.open(io.BytesIO(frame.image_bytes))
        response = model.generate_content(
            [USER_PROMPT, image],
            generation_config={"temperature": self.temperature, "max_output_tokens": self.max_tokens},
            request_options={"timeout": self.timeout},
        )
        return response.text

    def respond(self, frame: Frame) -> str:
        """Raw model response for one frame."""
        if self.backend == "openai":
            return self._respond_openai(frame)
        elif self.backend == "huggingface":
            return self._respond_huggingface(frame)
        elif self.backend == "gemini":
            return self._respond_gemini(frame)
        else:
            raise UnsupportedBackendError(self.backend, self.SUPPORTED_BACKENDS)

    def detect(self, frame: Frame) -> FrameDetections:
        text = self.respond(frame)
        logger.debug("Frame %d raw response length: %d", frame.index, len(text))
        return parse_structured_response(text, frame)


def _error_message(response: requests.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return f"Detection API returned status {response.status_code}"
    error = body.get("error") if isinstance(body, dict) else None
    if isinstance(error, dict) and error.get("message"):
        return str(error["message"])
    if isinstance(error, str):
        return error
    return f"Detection API returned status {response.status_code}"


def create_detector(
    backend: DetectorBackend | None = None,
    *,
    config: CategoryConfig | None = None,
    api_key: str | None = None,
    **kwargs: Any,
) -> FrameDetector:
    """Create the detector variant matching a backend name.

    Args:
        backend: Backend name, taken from the config file when omitted.
        config: Category table.
        api_key: API key for the backend.
        **kwargs: Extra options for the detector class.
    """
    resolved_backend: str = backend if backend is not None else get_default_backend()
    if resolved_backend in LABEL_BACKENDS:
        return LabelDetector(resolved_backend, config=config, api_key=api_key, **kwargs)  # type: ignore[arg-type]
    if resolved_backend in VISION_LANGUAGE_BACKENDS:
        return VisionLanguageDetector(resolved_backend, config=config, api_key=api_key, **kwargs)  # type: ignore[arg-type]
    raise UnsupportedBackendError(resolved_backend, LABEL_BACKENDS + VISION_LANGUAGE_BACKENDS)
