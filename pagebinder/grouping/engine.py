"""Partition ordered chapters into volumes.

Responsibilities:
- Implement the Name, ImageAnalysis, Manual, and Flat grouping strategies.
- Precompute cover-based volume boundaries ahead of grouping.
- Summarize every grouping pass as a `VolumeStructureReport`.

`VolumeGroupingEngine.group` is synchronous and pure: pixel work happens earlier in
`detect_volume_starts`, whose result is passed in through `GroupingParams`.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
import re
from typing import Sequence

from ..errors import StateError, ValidationError
from ..io.imaging import DEFAULT_SENSIBILITY, CoverDetector
from ..io.ordering import DEFAULT_VOLUME_CHAPTER_REGEX, parse_volume_chapter
from ..io.paths import common_parent
from ..models.datatypes import (
    AnalyzeFinding,
    Chapter,
    ChapterSet,
    GroupingStrategy,
    Volume,
    VolumeStructure,
    VolumeStructureReport,
    flatten_chapters,
    warning,
)


@dataclass(frozen=True, slots=True)
class GroupingParams:
    """Strategy inputs for one grouping pass.

    Attributes:
        name_regex: Pattern yielding `(volume, chapter)` numbers for Name grouping.
        volume_sizes: Chapter counts per volume for Manual grouping.
        cover_starts: Chapter indices with a probable cover, for ImageAnalysis.
        order_by_chapter_number: Reorder chapters inside each Name volume by their
            parsed chapter number. Disable to keep a caller-defined chapter order.
    """

    name_regex: re.Pattern[str] = DEFAULT_VOLUME_CHAPTER_REGEX
    volume_sizes: tuple[int, ...] | None = None
    cover_starts: tuple[int, ...] | None = None
    order_by_chapter_number: bool = True


def flatten_to_single_volume(chapters: Sequence[Chapter]) -> VolumeStructure:
    """Collapse all pages into one chapter inside one volume, preserving order."""

    pages = flatten_chapters(chapters)
    chapter_paths = [chapter.path for chapter in chapters if chapter.path is not None]
    if len(chapter_paths) == 1:
        path: Path | None = chapter_paths[0]
    else:
        path = common_parent(chapter_paths)
    return (Volume(chapters=(Chapter(path=path, pages=pages),)),)


async def detect_volume_starts(
    chapters: Sequence[Chapter],
    detector: CoverDetector,
    sensibility: int = DEFAULT_SENSIBILITY,
    scan_depth: int = 1,
) -> tuple[tuple[int, ...], tuple[AnalyzeFinding, ...]]:
    """Return chapter indices (never 0) whose leading pages include a probable cover.

    The first `scan_depth` pages of every chapter after the first are classified in a
    single batch. Pages that cannot be decoded count as "not a cover" and are
    reported as warnings.
    """

    depth = max(1, scan_depth)
    owners: list[int] = []
    pages: list[Path] = []
    for index, chapter in enumerate(chapters):
        if index == 0:
            continue
        for page in chapter.pages[:depth]:
            owners.append(index)
            pages.append(page)

    results = await detector.detect(pages, sensibility) if pages else []
    starts: set[int] = set()
    findings: list[AnalyzeFinding] = []
    for owner, page, is_cover in zip(owners, pages, results):
        if is_cover is None:
            findings.append(warning(f"Page could not be decoded for cover detection: {page}"))
        elif is_cover:
            starts.add(owner)
    return tuple(sorted(starts)), tuple(findings)


def _order_by_chapter_number(
    group: list[tuple[Chapter, float | None]],
) -> list[tuple[Chapter, float | None]]:
    """Stably sort numbered chapters among their own slots.

    Chapters without a chapter number keep their position in the run.
    """

    slots = [index for index, (_, number) in enumerate(group) if number is not None]
    numbered = sorted((group[index] for index in slots), key=lambda item: item[1])
    ordered = list(group)
    for index, item in zip(slots, numbered):
        ordered[index] = item
    return ordered


class VolumeGroupingEngine:
    """Apply one grouping strategy to an ordered chapter set."""

    def group(
        self,
        chapter_set: ChapterSet,
        strategy: GroupingStrategy,
        params: GroupingParams | None = None,
    ) -> tuple[VolumeStructure, VolumeStructureReport]:
        """Partition chapters into volumes and report the resulting shape.

        Raises:
            ValidationError: If Manual volume sizes do not fit the chapter count.
            StateError: If ImageAnalysis runs without precomputed cover starts.
        """

        params = params or GroupingParams()
        chapters = tuple(chapter_set)
        if strategy == GroupingStrategy.NAME:
            volumes = self._group_by_name(
                chapters,
                params.name_regex,
                params.order_by_chapter_number,
            )
        elif strategy == GroupingStrategy.IMAGE_ANALYSIS:
            if params.cover_starts is None:
                raise StateError(
                    stage="bundle",
                    detail="Image-analysis grouping requires detected cover positions.",
                    hint="Run cover detection before grouping.",
                )
            volumes = self._group_by_starts(chapters, params.cover_starts)
        elif strategy == GroupingStrategy.MANUAL:
            volumes = self._group_by_sizes(chapters, params.volume_sizes)
        else:
            volumes = flatten_to_single_volume(chapters)
        return volumes, build_structure_report(len(chapters), volumes, strategy)

    @staticmethod
    def _group_by_name(
        chapters: tuple[Chapter, ...],
        regex: re.Pattern[str],
        order_by_chapter_number: bool = True,
    ) -> VolumeStructure:
        volumes: list[list[tuple[Chapter, float | None]]] = []
        current_volume: float | None = None
        for chapter in chapters:
            name = chapter.path.name if chapter.path is not None else ""
            volume_number, chapter_number = parse_volume_chapter(name, regex)
            starts_new = not volumes or (
                volume_number is not None
                and current_volume is not None
                and volume_number != current_volume
            )
            if starts_new:
                volumes.append([])
            volumes[-1].append((chapter, chapter_number))
            if volume_number is not None:
                current_volume = volume_number

        if order_by_chapter_number:
            volumes = [_order_by_chapter_number(group) for group in volumes]
        return tuple(
            Volume(chapters=tuple(chapter for chapter, _ in group)) for group in volumes
        )

    @staticmethod
    def _group_by_starts(
        chapters: tuple[Chapter, ...],
        cover_starts: Sequence[int],
    ) -> VolumeStructure:
        if not chapters:
            return ()
        boundaries = sorted({index for index in cover_starts if 0 < index < len(chapters)})
        edges = [0, *boundaries, len(chapters)]
        return tuple(
            Volume(chapters=chapters[start:end])
            for start, end in zip(edges, edges[1:])
        )

    @staticmethod
    def _group_by_sizes(
        chapters: tuple[Chapter, ...],
        volume_sizes: tuple[int, ...] | None,
    ) -> VolumeStructure:
        if volume_sizes is None:
            return (Volume(chapters=chapters),) if chapters else ()

        problems = [
            f"Volume size #{index} must be a positive integer, got {size}."
            for index, size in enumerate(volume_sizes, start=1)
            if size <= 0
        ]
        total = sum(volume_sizes)
        if total != len(chapters):
            problems.append(
                f"Volume sizes sum to {total} but there are {len(chapters)} chapters."
            )
        if problems:
            raise ValidationError(
                problems,
                stage="bundle",
                hint="Adjust `volume_sizes` so they add up to the chapter count.",
            )

        volumes: list[Volume] = []
        offset = 0
        for size in volume_sizes:
            volumes.append(Volume(chapters=chapters[offset : offset + size]))
            offset += size
        return tuple(volumes)


def build_structure_report(
    chapter_count: int,
    volumes: VolumeStructure,
    strategy: GroupingStrategy,
) -> VolumeStructureReport:
    return VolumeStructureReport(
        total_chapters_processed=chapter_count,
        total_volumes_created=len(volumes),
        chapter_counts_per_volume=tuple(len(volume.chapters) for volume in volumes),
        strategy=strategy,
    )
