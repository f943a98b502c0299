"""Command-line interface for pagebinder.

Responsibilities:
- Expose user-facing commands for analysis and full CBZ builds.
- Merge YAML defaults with explicit CLI overrides into `PagebinderConfig`.

Key public functions:
- `app`: Typer application instance.
- `main`: invoke the Typer application.
"""

from __future__ import annotations

import asyncio
from dataclasses import replace
from pathlib import Path
from typing import Annotated

import typer

from .cli_rendering import (
    echo_analysis_summary,
    echo_findings,
    echo_generated_volumes,
    echo_structure_report,
    exit_with_command_error,
)
from .config import (
    ConfigLoader,
    PagebinderConfig,
    parse_collection_depth,
    parse_grouping_strategy,
)
from .errors import ConfigurationError, PipelineStageError
from .io.imaging import CoverDetector
from .models.datatypes import GeneratedVolume, SeriesMetadata
from .parsing import parse_volume_sizes
from .pipeline import PagebinderPipeline
from .telemetry.logger import RunLogger

app = typer.Typer(
    name="pagebinder",
    no_args_is_help=True,
    help="Bundle page-image directories into volume-structured comic archives.",
)


class BuildProgressIndicator:
    """Render deterministic per-stage progress lines for long-running commands."""

    _SPINNER_FRAMES = "|/-\\"

    def __init__(self, command_name: str) -> None:
        self._command_name = command_name

    def on_stage_start(self, stage_name: str, stage_index: int, stage_total: int) -> None:
        """Print one progress line for a stage start transition."""

        spinner = self._SPINNER_FRAMES[(stage_index - 1) % len(self._SPINNER_FRAMES)]
        typer.echo(
            f"[progress] command={self._command_name} "
            f"{spinner} {stage_index}/{stage_total} stage={stage_name}"
        )


def _load_yaml_config(config_path: Path | None, *, require_source: bool) -> PagebinderConfig | None:
    """Load a YAML config file when requested and map failures to stage errors."""

    if config_path is None:
        return None

    try:
        return ConfigLoader.from_yaml(config_path, require_source=require_source)
    except FileNotFoundError as exc:
        raise PipelineStageError(
            stage="config",
            detail=f"Config file not found: `{config_path}`.",
            hint="Provide an existing path via `--config <path.yaml>`.",
        ) from exc
    except PipelineStageError:
        raise
    except OSError as exc:
        raise PipelineStageError(
            stage="config",
            detail=f"Failed to read config file `{config_path}`: {exc}",
            hint="Verify the file permissions.",
        ) from exc


def _resolve_command_config(
    config_file: Path | None,
    source: Path | None,
    **overrides: object,
) -> PagebinderConfig:
    """Resolve effective command config from YAML defaults and explicit CLI overrides."""

    loaded = _load_yaml_config(config_file, require_source=source is None)
    if loaded is None:
        if source is None:
            raise PipelineStageError(
                stage="config",
                detail="Source directory is required when `--config` is not provided.",
                hint="Pass `<source>` or use `--config <path.yaml>` with `source_path`.",
            )
        loaded = PagebinderConfig()

    errors: list[str] = []
    changes: dict[str, object] = {}
    if source is not None:
        changes["source_path"] = source

    for field_name, raw_value in overrides.items():
        if raw_value is None:
            continue
        try:
            if field_name == "grouping_strategy":
                changes[field_name] = parse_grouping_strategy(raw_value, "--strategy")
            elif field_name == "collection_depth":
                changes[field_name] = parse_collection_depth(raw_value, "--depth")
            elif field_name == "volume_sizes":
                changes[field_name] = parse_volume_sizes(raw_value, "--volume-sizes")
            elif field_name == "title":
                continue
            else:
                changes[field_name] = raw_value
        except ValueError as exc:
            errors.append(str(exc))
    if errors:
        raise ConfigurationError(errors, hint="Fix the listed command-line options.")

    config = replace(loaded, **changes)
    title = overrides.get("title")
    if title is not None:
        base_metadata = config.metadata or SeriesMetadata.with_title(str(title))
        config = replace(config, metadata=replace(base_metadata, title=str(title)))
    return config


async def _run_build(pipeline: PagebinderPipeline) -> tuple[GeneratedVolume, ...]:
    await pipeline.analyze()
    await pipeline.bundle()
    return await pipeline.convert()


@app.command("analyze")
def analyze_command(
    source: Annotated[
        Path | None,
        typer.Argument(help="Source directory. Required unless provided by `--config`."),
    ] = None,
    depth: Annotated[
        str | None,
        typer.Option("--depth", help="Collection depth: `deep` (chapter dirs) or `shallow`."),
    ] = None,
    config_file: Annotated[
        Path | None,
        typer.Option("--config", help="Path to YAML config file with command defaults."),
    ] = None,
    chapter_regex: Annotated[
        str | None,
        typer.Option("--chapter-regex", help="Regex extracting numbers from chapter names."),
    ] = None,
    page_regex: Annotated[
        str | None,
        typer.Option("--page-regex", help="Regex extracting numbers from page names."),
    ] = None,
    name_regex: Annotated[
        str | None,
        typer.Option("--name-regex", help="Regex extracting `(volume, chapter)` pairs."),
    ] = None,
) -> None:
    """Inspect a source tree and recommend a grouping strategy."""

    try:
        config = _resolve_command_config(
            config_file,
            source,
            collection_depth=depth,
            chapter_name_regex=chapter_regex,
            page_name_regex=page_regex,
            name_grouping_regex=name_regex,
        )
        progress = BuildProgressIndicator(command_name="analyze")
        with CoverDetector(
            max_workers=config.analysis_workers,
            concurrency_limit=config.concurrency_limit,
        ) as detector:
            pipeline = PagebinderPipeline(
                config,
                cover_detector=detector,
                run_logger=RunLogger(),
                stage_progress_callback=progress.on_stage_start,
            )
            report = asyncio.run(pipeline.analyze())
    except Exception as exc:
        exit_with_command_error("analyze", exc)

    chapters = pipeline.chapters or ()
    typer.echo(f"Chapters: {len(chapters)}")
    typer.echo(f"Pages: {sum(chapter.page_count for chapter in chapters)}")
    echo_findings(report)
    echo_analysis_summary(report)


@app.command("build")
def build_command(
    source: Annotated[
        Path | None,
        typer.Argument(help="Source directory. Required unless provided by `--config`."),
    ] = None,
    out: Annotated[
        Path | None,
        typer.Option("--out", help="Target directory (overrides config file value)."),
    ] = None,
    title: Annotated[
        str | None,
        typer.Option("--title", help="Series title; defaults to the source directory name."),
    ] = None,
    strategy: Annotated[
        str | None,
        typer.Option(
            "--strategy",
            help="Grouping strategy: `auto`, `name`, `image_analysis`, `manual`, or `flat`.",
        ),
    ] = None,
    volume_sizes: Annotated[
        str | None,
        typer.Option("--volume-sizes", help="Chapters per volume for manual grouping: `10,8,5`."),
    ] = None,
    depth: Annotated[
        str | None,
        typer.Option("--depth", help="Collection depth: `deep` (chapter dirs) or `shallow`."),
    ] = None,
    chapter_regex: Annotated[
        str | None,
        typer.Option("--chapter-regex", help="Regex extracting numbers from chapter names."),
    ] = None,
    page_regex: Annotated[
        str | None,
        typer.Option("--page-regex", help="Regex extracting numbers from page names."),
    ] = None,
    name_regex: Annotated[
        str | None,
        typer.Option("--name-regex", help="Regex extracting `(volume, chapter)` pairs."),
    ] = None,
    sensibility: Annotated[
        int | None,
        typer.Option("--sensibility", help="Cover gray-fraction threshold in percent (0-100)."),
    ] = None,
    separator: Annotated[
        str | None,
        typer.Option("--separator", help="Text between title and `Volume N` in file names."),
    ] = None,
    config_file: Annotated[
        Path | None,
        typer.Option("--config", help="Path to YAML config file with command defaults."),
    ] = None,
) -> None:
    """Run the full pipeline and write CBZ volumes."""

    try:
        config = _resolve_command_config(
            config_file,
            source,
            target_path=out,
            title=title,
            grouping_strategy=strategy,
            volume_sizes=volume_sizes,
            collection_depth=depth,
            chapter_name_regex=chapter_regex,
            page_name_regex=page_regex,
            name_grouping_regex=name_regex,
            image_analysis_sensibility=sensibility,
            volume_separator=separator,
        )
        if config.target_path is None:
            raise PipelineStageError(
                stage="config",
                detail="Target directory is required.",
                hint="Pass `--out <dir>` or set `target_path` in the config file.",
            )
        progress = BuildProgressIndicator(command_name="build")
        with CoverDetector(
            max_workers=config.analysis_workers,
            concurrency_limit=config.concurrency_limit,
        ) as detector:
            pipeline = PagebinderPipeline(
                config,
                cover_detector=detector,
                run_logger=RunLogger(),
                stage_progress_callback=progress.on_stage_start,
            )
            generated = asyncio.run(_run_build(pipeline))
    except Exception as exc:
        exit_with_command_error("build", exc)

    if pipeline.structure_report is not None:
        echo_structure_report(pipeline.structure_report)
    echo_generated_volumes(generated)


def main() -> None:
    """CLI entrypoint for console scripts."""
    app()


if __name__ == "__main__":
    main()
