from __future__ import annotations

from pathlib import Path

import click

from kitchenscore.backends import LABEL_BACKENDS, VISION_LANGUAGE_BACKENDS
from kitchenscore.categories import CategoryConfig
from kitchenscore.config import get_section
from kitchenscore.detection import create_detector
from kitchenscore.exceptions import AnalysisError, BackendError, ConfigError
from kitchenscore.models import AnalysisResult
from kitchenscore.pipeline import HygieneAnalyzer
from kitchenscore.progress import TqdmProgress
from kitchenscore.sampling import SamplingConfig, probe_duration
from kitchenscore.utils.logger import setup_logger


@click.group(help="Scores kitchen preparation videos for hygiene compliance.")
@click.option("--log-level", default=None, help="Logging level, defaults to the LOG_LEVEL environment variable.")
def main(log_level: str | None) -> None:
    setup_logger(log_level)


def _print_report(result: AnalysisResult) -> None:
    click.echo(f"Hygiene score: {result.overall_score}/100")
    click.echo(result.summary)
    click.echo("")
    click.echo("Category scores:")
    for score in result.category_scores.values():
        click.echo(f"  {score.label:<20} {round(score.score):>3}  (detected in {score.detection_rate:.0f}% of frames)")
    if result.findings:
        click.echo("")
        click.echo("Findings:")
        for finding in result.findings:
            click.echo(f"  [{finding.severity.value}] {finding.display_timestamp}: {finding.description}")
    click.echo("")
    click.echo("Suggestions:")
    for suggestion in result.suggestions:
        click.echo(f"  - {suggestion}")


@main.command(help="Analyzes a video file.")
@click.argument("video", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("-d", "--duration", type=float, default=None, help="Video duration in seconds, read from the file if omitted.")
@click.option(
    "-b",
    "--backend",
    type=click.Choice(LABEL_BACKENDS + VISION_LANGUAGE_BACKENDS),
    default=None,
    help="Detection backend, defaults to the config file setting.",
)
@click.option("--max-frames", type=int, default=None, help="Maximum number of frames sent to the detector.")
@click.option("--stride", type=int, default=None, help="Keep every Nth second of the video.")
@click.option("-o", "--output", type=click.Path(dir_okay=False, path_type=Path), default=None, help="Write JSON here.")
@click.option("--json", "as_json", is_flag=True, help="Print the JSON result instead of a report.")
@click.option("--no-progress", is_flag=True, help="Hide the progress bar.")
def analyze(
    video: Path,
    duration: float | None,
    backend: str | None,
    max_frames: int | None,
    stride: int | None,
    output: Path | None,
    as_json: bool,
    no_progress: bool,
) -> None:
    try:
        category_config = CategoryConfig.from_project_config()
        sampling_options = dict(get_section("sampling"))
        if max_frames is not None:
            sampling_options["max_frames"] = max_frames
        if stride is not None:
            sampling_options["frame_stride"] = stride
        sampling_config = SamplingConfig.from_dict(sampling_options)
        analyzer = HygieneAnalyzer(
            create_detector(backend, config=category_config),  # type: ignore[arg-type]
            category_config=category_config,
            sampling_config=sampling_config,
        )
    except (ConfigError, BackendError, ValueError) as e:
        raise click.ClickException(str(e)) from e

    if duration is None:
        duration = probe_duration(video)
        if duration is None:
            raise click.ClickException(f"Could not read the duration of {video}, pass --duration.")

    try:
        with TqdmProgress(disable=no_progress or as_json) as progress:
            result = analyzer.analyze(video, duration, progress, suffix=video.suffix or ".mp4")
    except AnalysisError as e:
        raise click.ClickException(str(e)) from e

    if output is not None:
        result.save(output)
    if as_json:
        click.echo(result.to_json())
    else:
        _print_report(result)


if __name__ == "__main__":
    main()
