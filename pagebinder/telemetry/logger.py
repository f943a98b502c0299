"""Structured run logging utilities.

Responsibilities:
- Emit concise, deterministic phase-level runtime logs through `loguru`.
- Summarize analysis findings and written volumes as single-line events.
"""

from __future__ import annotations

import sys
from typing import Mapping, TextIO

from loguru import logger as _loguru_logger


def _sanitize_context_value(value: object) -> str:
    """Convert context values into stable, shell-safe tokens."""

    raw = str(value).strip()
    if not raw:
        return "none"
    return "".join(
        character if character.isalnum() or character in {"-", "_", ".", ":", "/"} else "_"
        for character in raw
    )


def _format_context(context: Mapping[str, object]) -> str:
    """Serialize context key/value pairs in deterministic key order."""

    if not context:
        return ""
    tokens = [
        f"{key}={_sanitize_context_value(context[key])}"
        for key in sorted(context.keys())
    ]
    return " " + " ".join(tokens)


class RunLogger:
    """Emit deterministic phase logs for CLI-observable pipeline activity."""

    def __init__(self, sink: TextIO | None = None) -> None:
        """Route `loguru` output to the sink with message-only formatting."""

        self._sink = sink or sys.stdout
        _loguru_logger.remove()
        _loguru_logger.add(self._sink, format="{message}", level="INFO", colorize=False)

    def _emit(self, level: str, event: str, stage: str, **context: object) -> None:
        """Emit one structured runtime log line."""

        line = f"[phase] level={level} stage={stage} event={event}{_format_context(context)}"
        _loguru_logger.log(level, line)

    def log_stage_start(self, stage: str) -> None:
        self._emit("INFO", "start", stage)

    def log_stage_complete(self, stage: str) -> None:
        self._emit("INFO", "complete", stage)

    def log_stage_failure(self, stage: str, error_type: str) -> None:
        """Emit a stage-failure runtime event without the exception message."""

        self._emit("ERROR", "failure", stage, error_type=error_type)

    def log_finding_summary(self, stage: str, counts: Mapping[str, int]) -> None:
        """Emit per-severity finding counts for an analysis pass."""

        self._emit("INFO", "finding_summary", stage, **dict(counts))

    def log_volume_written(self, index: int, file_name: str, page_count: int) -> None:
        """Emit one event per generated output volume."""

        self._emit(
            "INFO",
            "volume_written",
            "convert",
            index=index,
            file_name=file_name,
            page_count=page_count,
        )
