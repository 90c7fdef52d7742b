"""Tests for detector backends and batch detection."""

from __future__ import annotations

import json
import threading

import pytest
import requests

import kitchenscore.detection as detection
from kitchenscore.categories import Category
from kitchenscore.detection import (
    LabelDetector,
    VisionLanguageDetector,
    build_system_prompt,
    create_detector,
)
from kitchenscore.exceptions import (
    DetectionErrorKind,
    DetectionRequestError,
    DetectionUnavailableError,
    MissingAPIKeyError,
    UnsupportedBackendError,
    classify_detection_error,
)

from .fakes import FakeDetector, StatusError, make_frame


class FakeResponse:
    def __init__(self, status_code: int = 200, payload: object = None):
        self.status_code = status_code
        self._payload = payload

    @property
    def ok(self) -> bool:
        return self.status_code < 400

    def json(self):
        if self._payload is None:
            raise ValueError("No JSON")
        return self._payload


class TestDetectBatch:
    def test_frames_are_detected_concurrently(self) -> None:
        frames = [make_frame(t) for t in (0, 3, 6, 9, 12)]
        barrier = threading.Barrier(len(frames), timeout=5)
        def wait_for_all(frame):
            # Blocks until every frame is in flight at once, raises BrokenBarrierError otherwise
            barrier.wait()
            return None

        detector = FakeDetector(fail_with=wait_for_all)

        result = detector.detect_batch(frames)

        assert result.failures == []
        assert result.succeeded == len(frames)
        assert not barrier.broken

    def test_empty_batch(self) -> None:
        result = FakeDetector().detect_batch([])
        assert result.detections == []
        assert result.failures == []
        assert result.total_frames == 0

    def test_results_are_sorted_by_frame(self) -> None:
        detector = FakeDetector({3: {Category.PEST_SIGNS}})
        frames = [make_frame(t) for t in (9, 0, 6, 3)]

        result = detector.detect_batch(frames)

        assert [d.timestamp_seconds for d in result.detections] == [0, 3, 6, 9]
        assert result.detections[1].is_detected(Category.PEST_SIGNS)
        assert result.succeeded == 4
        assert detector.calls == 4

    def test_partial_failure_is_tolerated(self) -> None:
        detector = FakeDetector(fail_with=lambda frame: RuntimeError("boom") if frame.timestamp_seconds == 3 else None)
        frames = [make_frame(t) for t in (0, 3, 6)]

        result = detector.detect_batch(frames)

        assert [d.timestamp_seconds for d in result.detections] == [0, 6]
        assert len(result.failures) == 1
        assert result.failures[0].timestamp_seconds == 3
        assert str(result.failures[0].error) == "boom"
        assert result.total_frames == 3

    def test_progress_callback_counts_every_frame(self) -> None:
        detector = FakeDetector(fail_with=lambda frame: RuntimeError("boom") if frame.timestamp_seconds == 0 else None)
        calls = []

        detector.detect_batch(
            [make_frame(t) for t in range(4)],
            on_frame_done=lambda done, total: calls.append((done, total)),
        )

        assert calls == [(1, 4), (2, 4), (3, 4), (4, 4)]

    def test_all_rate_limited_raises_unavailable(self) -> None:
        detector = FakeDetector(fail_with=lambda frame: StatusError("Error code: 429", status_code=429))

        with pytest.raises(DetectionUnavailableError) as exc_info:
            detector.detect_batch([make_frame(t) for t in (0, 3, 6, 9)])

        assert exc_info.value.kind is DetectionErrorKind.RATE_LIMIT
        assert "rate limit" in str(exc_info.value)
        assert isinstance(exc_info.value.cause, StatusError)
        assert detector.calls == 4


class TestClassifyDetectionError:
    @pytest.mark.parametrize(
        "error,kind",
        [
            (StatusError("Too many requests", 429), DetectionErrorKind.RATE_LIMIT),
            (RuntimeError("Rate limit reached for gpt-4o"), DetectionErrorKind.RATE_LIMIT),
            (StatusError("Forbidden", 403), DetectionErrorKind.AUTH),
            (StatusError("Incorrect API key provided", 401), DetectionErrorKind.AUTH),
            (MissingAPIKeyError("openai"), DetectionErrorKind.AUTH),
            (StatusError("This API method requires billing to be enabled", 403), DetectionErrorKind.BILLING),
            (StatusError("You exceeded your current quota", 429), DetectionErrorKind.QUOTA),
            (requests.ConnectionError("Name resolution failed"), DetectionErrorKind.NETWORK),
            (TimeoutError(), DetectionErrorKind.NETWORK),
            (StatusError("Service Unavailable", 503), DetectionErrorKind.NETWORK),
            (ValueError("something odd"), DetectionErrorKind.UNKNOWN),
        ],
    )
    def test_classification(self, error, kind) -> None:
        assert classify_detection_error(error) is kind

    def test_status_code_from_response_attribute(self) -> None:
        error = requests.HTTPError("bad", response=FakeResponse(status_code=429))  # type: ignore[arg-type]
        assert classify_detection_error(error) is DetectionErrorKind.RATE_LIMIT

    def test_unknown_message_includes_cause(self) -> None:
        error = DetectionUnavailableError(DetectionErrorKind.UNKNOWN, ValueError("weird"))
        assert str(error) == "Frame analysis failed. weird"


class TestCreateDetector:
    def test_vision_language_backends(self) -> None:
        for backend in ("openai", "huggingface", "gemini"):
            detector = create_detector(backend)
            assert isinstance(detector, VisionLanguageDetector)
            assert detector.backend == backend

    def test_label_backend(self) -> None:
        assert isinstance(create_detector("google_vision"), LabelDetector)

    def test_default_backend_from_config(self, tmp_path) -> None:
        (tmp_path / "kitchenscore.toml").write_text('[detection]\nbackend = "google_vision"\n')
        assert isinstance(create_detector(), LabelDetector)

    def test_default_backend_without_config(self) -> None:
        detector = create_detector()
        assert detector.backend == "openai"
        assert detector.model == "gpt-4o"

    def test_unknown_backend(self) -> None:
        with pytest.raises(UnsupportedBackendError):
            create_detector("clarifai")  # type: ignore[arg-type]

    def test_detector_rejects_other_shape(self) -> None:
        with pytest.raises(UnsupportedBackendError):
            LabelDetector("openai")  # type: ignore[arg-type]


class TestVisionLanguageDetector:
    def test_model_defaults_and_overrides(self, tmp_path) -> None:
        (tmp_path / "kitchenscore.toml").write_text('[detection.openai]\nmodel = "gpt-4o-mini"\n')

        assert VisionLanguageDetector("openai").model == "gpt-4o-mini"
        assert VisionLanguageDetector("huggingface").model == "Qwen/Qwen2.5-VL-7B-Instruct"
        assert VisionLanguageDetector("gemini", model="gemini-1.5-pro").model == "gemini-1.5-pro"

    def test_prompt_lists_every_category(self) -> None:
        prompt = build_system_prompt(list(Category))
        for category in Category:
            assert f'"{category.value}"' in prompt

    def test_detect_parses_response(self, monkeypatch) -> None:
        detector = VisionLanguageDetector("openai", api_key="sk-test")
        response = "```json\n" + json.dumps({"hair_covering": {"detected": True, "confidence": 0.7}}) + "\n```"
        monkeypatch.setattr(detector, "respond", lambda frame: response)

        detections = detector.detect(make_frame(4))

        assert detections.is_detected(Category.HAIR_COVERING)
        assert detections.timestamp_seconds == 4

    def test_chat_completion_request(self) -> None:
        captured = {}

        class Completions:
            def create(self, **kwargs):
                captured.update(kwargs)
                message = type("Message", (), {"content": '{"pest_signs": {"detected": false, "confidence": 0.9}}'})
                choice = type("Choice", (), {"message": message})
                return type("Response", (), {"choices": [choice]})

        client = type("Client", (), {"chat": type("Chat", (), {"completions": Completions()})})
        detector = VisionLanguageDetector("openai", api_key="sk-test")

        text = detector._chat_completion(client, make_frame(0))

        assert "pest_signs" in text
        assert captured["model"] == "gpt-4o"
        assert captured["messages"][0]["role"] == "system"
        image_part = captured["messages"][1]["content"][0]
        assert image_part["image_url"]["url"].startswith("data:image/jpeg;base64,")

    def test_missing_api_key(self, monkeypatch) -> None:
        monkeypatch.delenv("OPENAI_API_KEY", raising=False)
        detector = VisionLanguageDetector("openai")

        with pytest.raises(MissingAPIKeyError, match="OPENAI_API_KEY"):
            detector.detect(make_frame(0))


class TestLabelDetector:
    def test_google_vision_labels(self, monkeypatch) -> None:
        captured = {}

        def fake_post(url, params=None, json=None, timeout=None):
            captured.update(url=url, params=params, json=json, timeout=timeout)
            return FakeResponse(
                payload={
                    "responses": [
                        {
                            "labelAnnotations": [
                                {"description": "Hairnet", "score": 0.88},
                                {"description": "Apron", "score": 0.66},
                            ]
                        }
                    ]
                }
            )

        monkeypatch.setattr(detection.requests, "post", fake_post)
        detector = LabelDetector(api_key="vision-key")

        detections = detector.detect(make_frame(2))

        assert captured["params"] == {"key": "vision-key"}
        assert captured["json"]["requests"][0]["features"] == [{"type": "LABEL_DETECTION", "maxResults": 20}]
        assert detections.is_detected(Category.HAIR_COVERING)
        assert detections.is_detected(Category.PROPER_APRON)
        assert not detections.is_detected(Category.PEST_SIGNS)

    def test_error_status_is_raised(self, monkeypatch) -> None:
        monkeypatch.setattr(
            detection.requests,
            "post",
            lambda *args, **kwargs: FakeResponse(429, {"error": {"message": "Quota per minute hit"}}),
        )
        detector = LabelDetector(api_key="vision-key")

        with pytest.raises(DetectionRequestError) as exc_info:
            detector.detect(make_frame(0))

        assert exc_info.value.status_code == 429
        assert str(exc_info.value) == "Quota per minute hit"

    def test_annotation_error_is_raised(self, monkeypatch) -> None:
        payload = {"responses": [{"error": {"code": 7, "message": "Billing not enabled"}}]}
        monkeypatch.setattr(detection.requests, "post", lambda *args, **kwargs: FakeResponse(200, payload))

        with pytest.raises(DetectionRequestError, match="Billing"):
            LabelDetector(api_key="vision-key").detect(make_frame(0))

    def test_network_failure_is_wrapped(self, monkeypatch) -> None:
        def fail(*args, **kwargs):
            raise requests.ConnectionError("connection refused")

        monkeypatch.setattr(detection.requests, "post", fail)

        with pytest.raises(DetectionRequestError) as exc_info:
            LabelDetector(api_key="vision-key").detect(make_frame(0))
        assert classify_detection_error(exc_info.value) is DetectionErrorKind.NETWORK
