"""Output generator contracts.

A `GeneratorFactory` opens one `Generator` per output volume. The pipeline then
calls, strictly in this order: `append_page` for every page, `write_metadata`
once, and `finalize` once. When any of those calls raises, `abort` is called
instead of the remaining steps.
"""

from __future__ import annotations

from pathlib import Path
from typing import Protocol, Sequence

from ..models.datatypes import SeriesMetadata


class Generator(Protocol):
    """Writer for a single output file."""

    def append_page(self, page: Path, ordinal: int) -> None:
        """Add one page; `ordinal` is 1-based within the file."""

    def write_metadata(
        self,
        file_name_base: str,
        volume_index: int,
        series_metadata: SeriesMetadata,
        total_pages_in_file: int,
        chapter_titles: Sequence[str],
    ) -> None:
        """Record series and volume metadata for the file."""

    def finalize(self) -> None:
        """Flush and close the output file."""

    def abort(self) -> None:
        """Release the output file after a failed write and discard it."""


class GeneratorFactory(Protocol):
    """Create generators bound to an output location."""

    def open(self, output_directory: Path, base_file_name: str) -> Generator:
        """Open a new output file named after `base_file_name`."""
