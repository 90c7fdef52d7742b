from __future__ import annotations

from typing import Callable

from tqdm import tqdm

from kitchenscore.models import ProgressStage, ProgressUpdate

__all__ = ["ProgressCallback", "ProgressReporter", "STAGE_RANGES", "TqdmProgress"]

ProgressCallback = Callable[[ProgressUpdate], None]

# Share of the overall run assigned to each stage, in percent.
STAGE_RANGES: dict[str, tuple[float, float]] = {
    "sampling": (0.0, 30.0),
    "detecting": (30.0, 80.0),
    "scoring": (80.0, 100.0),
}


class ProgressReporter:
    """Forwards progress to an optional callback, never letting the percentage go backwards."""

    def __init__(self, callback: ProgressCallback | None = None):
        self._callback = callback
        self._percent = 0.0

    @property
    def percent(self) -> float:
        return self._percent

    def report(self, stage: ProgressStage, percent: float, message: str) -> None:
        self._percent = max(self._percent, min(100.0, max(0.0, float(percent))))
        if self._callback is not None:
            self._callback(ProgressUpdate(stage=stage, percent=self._percent, message=message))

    def stage(self, stage: ProgressStage, fraction: float, message: str) -> None:
        """Report progress as a 0-1 fraction of one stage's band."""
        start, end = STAGE_RANGES[stage]
        fraction = min(1.0, max(0.0, fraction))
        self.report(stage, start + (end - start) * fraction, message)


class TqdmProgress:
    """Renders `ProgressUpdate`s as a tqdm bar."""

    def __init__(self, *, disable: bool = False):
        self._bar = tqdm(total=100, unit="%", disable=disable, bar_format="{l_bar}{bar}| {n:.0f}/{total:.0f}%")

    def __call__(self, update: ProgressUpdate) -> None:
        self._bar.set_description(update.message)
        self._bar.update(update.percent - self._bar.n)

    def close(self) -> None:
        self._bar.close()

    def __enter__(self) -> TqdmProgress:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()
