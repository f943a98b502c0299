"""Domain exceptions for pipeline and CLI diagnostics.

Every hard failure is a `PipelineStageError` so the CLI can render the failing
stage, a detail line, and an optional hint uniformly. Soft problems never use
these types; they are reported as findings instead.
"""

from __future__ import annotations

from pathlib import Path
from typing import Sequence


class PipelineStageError(RuntimeError):
    """Raised when a specific pipeline stage fails."""

    def __init__(
        self,
        *,
        stage: str,
        detail: str,
        hint: str | None = None,
    ) -> None:
        """Initialize a stage-scoped pipeline error."""

        super().__init__(detail)
        self.stage = stage
        self.detail = detail
        self.hint = hint


class ConfigurationError(PipelineStageError):
    """Raised when configuration values are invalid or contradictory.

    Attributes:
        errors: Every individual validation message, in discovery order.
    """

    def __init__(
        self,
        errors: Sequence[str],
        *,
        stage: str = "config",
        hint: str | None = None,
    ) -> None:
        """Initialize with the complete list of configuration problems."""

        self.errors = list(errors)
        detail = "; ".join(self.errors) if self.errors else "Invalid configuration."
        super().__init__(stage=stage, detail=detail, hint=hint)


class ValidationError(ConfigurationError):
    """Raised when grouping inputs contradict the collected chapter data."""


class MissingSourceError(ConfigurationError):
    """Raised when analysis has neither a source path nor pre-supplied chapters."""


class FilesystemError(PipelineStageError):
    """Raised when the source or target location is unusable for a whole stage."""

    def __init__(
        self,
        *,
        stage: str,
        detail: str,
        path: Path | None = None,
        hint: str | None = None,
    ) -> None:
        """Initialize a filesystem error bound to the offending path."""

        super().__init__(stage=stage, detail=detail, hint=hint)
        self.path = path


class StateError(PipelineStageError):
    """Raised when a transition runs without its prerequisites or out of order."""


class GenerationError(PipelineStageError):
    """Raised when a generator fails while writing one output volume."""

    def __init__(
        self,
        *,
        detail: str,
        volume_index: int,
        hint: str | None = None,
    ) -> None:
        """Initialize a generation error for the 1-based volume index."""

        super().__init__(stage="convert", detail=detail, hint=hint)
        self.volume_index = volume_index
