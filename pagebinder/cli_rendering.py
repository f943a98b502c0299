"""CLI output and error rendering helpers.

This module centralizes user-facing CLI presentation for command diagnostics,
analysis findings, volume summaries, and written output files.
"""

from __future__ import annotations

from typing import NoReturn, Sequence

import typer

from .errors import ConfigurationError, PipelineStageError
from .models.datatypes import (
    AnalyzeReport,
    FindingSeverity,
    GeneratedVolume,
    VolumeStructureReport,
)


_SEVERITY_LABELS = {
    FindingSeverity.POSITIVE: ("OK", typer.colors.GREEN),
    FindingSeverity.WARNING: ("WARN", typer.colors.YELLOW),
    FindingSeverity.NEGATIVE: ("ERROR", typer.colors.RED),
}


def exit_with_command_error(command_name: str, exc: Exception) -> NoReturn:
    """Print concise diagnostics for command failures and exit with code 1."""

    if isinstance(exc, PipelineStageError):
        typer.secho(
            f"{command_name} failed at stage `{exc.stage}`: {exc.detail}",
            fg=typer.colors.RED,
            err=True,
        )
        if isinstance(exc, ConfigurationError) and len(exc.errors) > 1:
            for message in exc.errors:
                typer.secho(f"  - {message}", fg=typer.colors.RED, err=True)
        if exc.hint:
            typer.secho(f"Hint: {exc.hint}", fg=typer.colors.YELLOW, err=True)
    else:
        typer.secho(f"{command_name} failed: {exc}", fg=typer.colors.RED, err=True)
    raise typer.Exit(code=1) from exc


def echo_findings(report: AnalyzeReport) -> None:
    """Print findings in report order, one severity-tagged line each."""

    if not report.findings:
        typer.echo("No findings.")
        return
    for finding in report.findings:
        label, color = _SEVERITY_LABELS[finding.severity]
        typer.secho(f"[{label}] {finding.describe()}", fg=color)


def echo_analysis_summary(report: AnalyzeReport) -> None:
    """Print severity counts, the recommended strategy, and detected boundaries."""

    counts = ", ".join(
        f"{severity.value}={len(report.by_severity(severity))}" for severity in FindingSeverity
    )
    typer.echo(f"Findings: {counts}")
    typer.echo(f"Recommended strategy: {report.recommended_strategy.value}")
    if report.volume_starts:
        starts = ", ".join(str(index + 1) for index in report.volume_starts)
        typer.echo(f"Detected volume starts (chapter #): {starts}")


def echo_structure_report(report: VolumeStructureReport) -> None:
    typer.echo(f"Strategy: {report.strategy.value}")
    typer.echo(f"Chapters processed: {report.total_chapters_processed}")
    typer.echo(f"Volumes created: {report.total_volumes_created}")
    for index, count in enumerate(report.chapter_counts_per_volume, start=1):
        typer.echo(f"  Volume {index}: {count} chapter(s)")


def echo_generated_volumes(volumes: Sequence[GeneratedVolume], extension: str = "cbz") -> None:
    """Print one line per written file in volume order."""

    for volume in volumes:
        path = volume.output_directory / f"{volume.file_name_base}.{extension}"
        typer.echo(f"Wrote {path} ({volume.page_count} pages)")
