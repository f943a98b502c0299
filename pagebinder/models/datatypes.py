"""Core datatypes shared across pagebinder modules.

Responsibilities:
- Represent immutable records exchanged between pipeline stages.
- Model diagnostic findings as a closed set of tagged record types.
- Provide coercion helpers for caller-supplied nested path data.

Key types:
- `Chapter`, `Volume`, `SeriesMetadata`, `CollectionResult`, `AnalyzeReport`,
  `VolumeStructureReport`, `GeneratedVolume`, the `AnalyzeFinding` variants,
  and the `GroupingStrategy` / `CollectionDepth` enums.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
import os
from pathlib import Path
from typing import Iterable, Mapping, Sequence, Union


UNTITLED_CHAPTER = "Untitled Chapter"


class GroupingStrategy(str, Enum):
    """Algorithm used to partition an ordered chapter list into volumes."""

    NAME = "name"
    IMAGE_ANALYSIS = "image_analysis"
    MANUAL = "manual"
    FLAT = "flat"


class CollectionDepth(str, Enum):
    """How deep the collector scans the source root.

    `DEEP` expects `source/chapter/page`; `SHALLOW` expects `source/page` and
    treats the root as one virtual chapter.
    """

    DEEP = "deep"
    SHALLOW = "shallow"


class FindingSeverity(str, Enum):
    """Coarse classification used for rendering and summaries."""

    POSITIVE = "positive"
    WARNING = "warning"
    NEGATIVE = "negative"


@dataclass(frozen=True, slots=True)
class Chapter:
    """An ordered run of page images representing one narrative unit.

    Attributes:
        path: Chapter directory, or `None` for synthetic chapters without one.
        pages: Page paths in their final reading order.
    """

    path: Path | None
    pages: tuple[Path, ...]

    @classmethod
    def from_pages(cls, pages: Iterable[Path | str]) -> Chapter:
        """Build a chapter from raw page paths, using the first page's parent as path."""

        normalized = tuple(Path(page) for page in pages)
        return cls(path=normalized[0].parent if normalized else None, pages=normalized)

    @property
    def title(self) -> str:
        """Return the chapter directory name used for tables of contents."""

        if self.path is None or not self.path.name:
            return UNTITLED_CHAPTER
        return self.path.name

    @property
    def page_count(self) -> int:
        return len(self.pages)


@dataclass(frozen=True, slots=True)
class Volume:
    """An ordered run of chapters bundled into a single output file."""

    chapters: tuple[Chapter, ...]

    @property
    def pages(self) -> tuple[Path, ...]:
        """Return every page of the volume in reading order."""

        return flatten_chapters(self.chapters)

    @property
    def page_count(self) -> int:
        return sum(chapter.page_count for chapter in self.chapters)

    @property
    def chapter_titles(self) -> tuple[str, ...]:
        return tuple(chapter.title for chapter in self.chapters)


ChapterSet = tuple[Chapter, ...]
VolumeStructure = tuple[Volume, ...]


@dataclass(frozen=True, slots=True)
class GeneralFinding:
    """Free-text finding with an explicit severity."""

    severity: FindingSeverity
    message: str

    def describe(self) -> str:
        return self.message


@dataclass(frozen=True, slots=True)
class MissingNumericIdentifier:
    """A chapter or page name carries no number usable for natural ordering."""

    path: Path

    @property
    def severity(self) -> FindingSeverity:
        return FindingSeverity.WARNING

    def describe(self) -> str:
        return f"No numeric identifier in `{self.path.name}`; ordered lexically."


@dataclass(frozen=True, slots=True)
class UnsupportedImageFormat:
    """A file is not a supported page image (by extension or signature)."""

    path: Path
    detected_ext: str

    @property
    def severity(self) -> FindingSeverity:
        return FindingSeverity.WARNING

    def describe(self) -> str:
        return f"Unsupported image format `{self.detected_ext}`: {self.path}"


@dataclass(frozen=True, slots=True)
class UnusualFileSize:
    """A page file size falls outside the normal range computed for the set.

    Attributes:
        actual: File size in bytes.
        expected_range: Inclusive `(low, high)` byte bounds considered normal.
    """

    path: Path
    actual: int
    expected_range: tuple[int, int]

    @property
    def severity(self) -> FindingSeverity:
        return FindingSeverity.WARNING

    def describe(self) -> str:
        low, high = self.expected_range
        return f"Unusual file size {self.actual} B (expected {low}-{high} B): {self.path}"


@dataclass(frozen=True, slots=True)
class LongPath:
    """A path is longer than portable filesystem and archive tools accept."""

    path: Path
    length: int

    @property
    def severity(self) -> FindingSeverity:
        return FindingSeverity.WARNING

    def describe(self) -> str:
        return f"Path length {self.length} exceeds the portable limit: {self.path}"


@dataclass(frozen=True, slots=True)
class SpecialCharactersInPath:
    """A path contains characters that break archives or other filesystems."""

    path: Path

    @property
    def severity(self) -> FindingSeverity:
        return FindingSeverity.WARNING

    def describe(self) -> str:
        return f"Path contains special characters: {self.path}"


@dataclass(frozen=True, slots=True)
class PermissionDenied:
    """A chapter directory or page could not be read."""

    path: Path

    @property
    def severity(self) -> FindingSeverity:
        return FindingSeverity.NEGATIVE

    def describe(self) -> str:
        return f"Permission denied: {self.path}"


@dataclass(frozen=True, slots=True)
class InconsistentPageCount:
    """A chapter's page count deviates from the modal count of the set."""

    chapter_path: Path | None
    actual: int
    expected: int

    @property
    def severity(self) -> FindingSeverity:
        return FindingSeverity.WARNING

    def describe(self) -> str:
        label = self.chapter_path.name if self.chapter_path is not None else UNTITLED_CHAPTER
        return f"Chapter `{label}` has {self.actual} pages, expected about {self.expected}."


@dataclass(frozen=True, slots=True)
class InconsistentImageFormat:
    """More than one image format is mixed across the whole set."""

    format_list: tuple[str, ...]

    @property
    def severity(self) -> FindingSeverity:
        return FindingSeverity.WARNING

    def describe(self) -> str:
        return f"Mixed image formats: {', '.join(self.format_list)}"


AnalyzeFinding = Union[
    GeneralFinding,
    MissingNumericIdentifier,
    UnsupportedImageFormat,
    UnusualFileSize,
    LongPath,
    SpecialCharactersInPath,
    PermissionDenied,
    InconsistentPageCount,
    InconsistentImageFormat,
]


def positive(message: str) -> GeneralFinding:
    return GeneralFinding(severity=FindingSeverity.POSITIVE, message=message)


def warning(message: str) -> GeneralFinding:
    return GeneralFinding(severity=FindingSeverity.WARNING, message=message)


def negative(message: str) -> GeneralFinding:
    return GeneralFinding(severity=FindingSeverity.NEGATIVE, message=message)


def merge_findings(*groups: Iterable[AnalyzeFinding]) -> tuple[AnalyzeFinding, ...]:
    """Concatenate finding groups, dropping exact duplicates while keeping first order."""

    merged: dict[AnalyzeFinding, None] = {}
    for group in groups:
        for finding in group:
            merged.setdefault(finding, None)
    return tuple(merged)


@dataclass(frozen=True, slots=True)
class CollectionResult:
    """Ordered chapters collected from disk plus per-file collection findings."""

    chapters: ChapterSet
    findings: tuple[AnalyzeFinding, ...] = field(default_factory=tuple)


@dataclass(frozen=True, slots=True)
class AnalyzeReport:
    """Findings about the source material and the recommended grouping strategy.

    Attributes:
        findings: Ordered, de-duplicated diagnostic findings.
        recommended_strategy: Strategy suggested by the analysis heuristics.
        volume_starts: 0-based chapter indices where cover-like pages were detected.
    """

    findings: tuple[AnalyzeFinding, ...]
    recommended_strategy: GroupingStrategy
    volume_starts: tuple[int, ...] = field(default_factory=tuple)

    def by_severity(self, severity: FindingSeverity) -> tuple[AnalyzeFinding, ...]:
        """Return findings of one severity in report order."""

        return tuple(finding for finding in self.findings if finding.severity == severity)

    @property
    def has_negative(self) -> bool:
        return any(finding.severity == FindingSeverity.NEGATIVE for finding in self.findings)


@dataclass(frozen=True, slots=True)
class VolumeStructureReport:
    """Summary of how chapters were organized into volumes."""

    total_chapters_processed: int
    total_volumes_created: int
    chapter_counts_per_volume: tuple[int, ...]
    strategy: GroupingStrategy


@dataclass(frozen=True, slots=True)
class SeriesMetadata:
    """Series-level metadata embedded into every generated file.

    Attributes:
        title: Human-readable series title, also used for output file names.
        series: Optional series name when it differs from the title.
        authors: Ordered author names.
        language: Language code, defaulting to English (`en`).
        custom_fields: Arbitrary key/value pairs written into archive notes.
    """

    title: str
    series: str | None = None
    authors: tuple[str, ...] = field(default_factory=tuple)
    publisher: str | None = None
    description: str | None = None
    tags: tuple[str, ...] = field(default_factory=tuple)
    language: str = "en"
    rights: str | None = None
    identifier: str | None = None
    genre: str | None = None
    web: str | None = None
    custom_fields: Mapping[str, str] = field(default_factory=dict)

    @classmethod
    def with_title(cls, title: str) -> SeriesMetadata:
        return cls(title=title)


@dataclass(frozen=True, slots=True)
class GeneratedVolume:
    """Record of one output file written during conversion."""

    index: int
    file_name_base: str
    output_directory: Path
    page_count: int
    chapter_titles: tuple[str, ...]


def flatten_chapters(chapters: Iterable[Chapter]) -> tuple[Path, ...]:
    """Return every page of a chapter sequence in reading order."""

    return tuple(page for chapter in chapters for page in chapter.pages)


def flatten_volumes(volumes: Iterable[Volume]) -> tuple[Path, ...]:
    """Return every page of a volume structure in reading order."""

    return tuple(page for volume in volumes for page in volume.pages)


def coerce_chapter_set(data: Sequence[Chapter | Sequence[Path | str]]) -> ChapterSet:
    """Normalize caller-supplied chapter data into a `ChapterSet`.

    Accepts `Chapter` records or raw page-path sequences, which are wrapped with
    `Chapter.from_pages`. Strings are rejected as chapters because they would be
    split into characters.
    """

    chapters: list[Chapter] = []
    for item in data:
        if isinstance(item, Chapter):
            chapters.append(item)
        elif isinstance(item, (str, bytes, os.PathLike)):
            raise TypeError(
                "Chapter data must be a sequence of page paths, not a single path."
            )
        else:
            chapters.append(Chapter.from_pages(item))
    return tuple(chapters)


def coerce_volume_structure(
    data: Sequence[Volume | Sequence[Chapter | Sequence[Path | str]]],
) -> VolumeStructure:
    """Normalize caller-supplied volume data into a `VolumeStructure`."""

    volumes: list[Volume] = []
    for item in data:
        if isinstance(item, Volume):
            volumes.append(item)
        else:
            volumes.append(Volume(chapters=coerce_chapter_set(item)))
    return tuple(volumes)
