"""Structural analysis of collected chapters.

Responsibilities:
- Inspect chapter and page paths, file sizes, and image signatures.
- Emit independent, accumulating diagnostic findings.
- Recommend a grouping strategy from naming and cover-cadence heuristics.
"""

from __future__ import annotations

import asyncio
from collections import Counter
from dataclasses import dataclass
import os
from pathlib import Path
import re
from typing import Iterable, Sequence

from ..grouping.engine import detect_volume_starts
from ..io.imaging import DEFAULT_SENSIBILITY, CoverDetector
from ..io.ordering import (
    DEFAULT_NUMBER_REGEX,
    DEFAULT_VOLUME_CHAPTER_REGEX,
    extract_numeric_key,
)
from ..io.paths import (
    SIGNATURE_SNIFF_BYTES,
    canonical_extension,
    exceeds_path_limit,
    extension_of,
    has_special_characters,
    has_supported_extension,
    path_length,
    sniff_image_format,
)
from ..models.datatypes import (
    AnalyzeFinding,
    AnalyzeReport,
    ChapterSet,
    GroupingStrategy,
    InconsistentImageFormat,
    InconsistentPageCount,
    LongPath,
    MissingNumericIdentifier,
    PermissionDenied,
    SpecialCharactersInPath,
    UnsupportedImageFormat,
    UnusualFileSize,
    merge_findings,
    positive,
    warning,
)


SIZE_DEVIATION_FACTOR = 3
SIZE_LOWER_BOUND_MIN_MEAN = 10 * 1024
PAGE_COUNT_TOLERANCE = 0.3


@dataclass(frozen=True, slots=True)
class _PageFacts:
    path: Path
    size: int | None
    detected_format: str | None
    permission_denied: bool
    error: str | None


def _inspect_page(path: Path) -> _PageFacts:
    try:
        size = path.stat().st_size
        if not os.access(path, os.R_OK):
            return _PageFacts(path, None, None, True, None)
        with path.open("rb") as handle:
            header = handle.read(SIGNATURE_SNIFF_BYTES)
    except PermissionError:
        return _PageFacts(path, None, None, True, None)
    except OSError as exc:
        return _PageFacts(path, None, None, False, exc.strerror or str(exc))
    return _PageFacts(path, size, sniff_image_format(header), False, None)


def _inspect_pages(paths: Sequence[Path]) -> list[_PageFacts]:
    return [_inspect_page(path) for path in paths]


def modal_count(counts: Iterable[int]) -> int:
    """Return the most frequent value, resolving ties to the smallest value."""

    tally = Counter(counts)
    if not tally:
        return 0
    highest = max(tally.values())
    return min(value for value, frequency in tally.items() if frequency == highest)


def has_cadence(volume_starts: Sequence[int]) -> bool:
    """Return whether detected boundaries recur at a roughly regular interval.

    At least two boundaries are needed. Gaps are measured between consecutive
    volume starts, counting chapter 0 as the first start; the largest gap may be at
    most twice the smallest.
    """

    boundaries = sorted(index for index in set(volume_starts) if index > 0)
    if len(boundaries) < 2:
        return False
    edges = [0, *boundaries]
    gaps = [right - left for left, right in zip(edges, edges[1:])]
    return max(gaps) <= 2 * min(gaps)


class ContentAnalyzer:
    """Inspect a chapter set and recommend a grouping strategy.

    Args:
        chapter_regex: Pattern used to find numeric identifiers in chapter names.
        page_regex: Pattern used to find numeric identifiers in page names.
        name_regex: Pattern whose full coverage of chapter names favors Name grouping.
        cover_detector: Optional detector enabling the cover-cadence heuristic.
    """

    def __init__(
        self,
        *,
        chapter_regex: re.Pattern[str] = DEFAULT_NUMBER_REGEX,
        page_regex: re.Pattern[str] = DEFAULT_NUMBER_REGEX,
        name_regex: re.Pattern[str] = DEFAULT_VOLUME_CHAPTER_REGEX,
        cover_detector: CoverDetector | None = None,
        sensibility: int = DEFAULT_SENSIBILITY,
        cover_scan_depth: int = 1,
    ) -> None:
        self._chapter_regex = chapter_regex
        self._page_regex = page_regex
        self._name_regex = name_regex
        self._cover_detector = cover_detector
        self._sensibility = sensibility
        self._cover_scan_depth = cover_scan_depth

    async def analyze(
        self,
        chapter_set: ChapterSet,
        prior_findings: Sequence[AnalyzeFinding] = (),
    ) -> AnalyzeReport:
        """Run every check and return findings plus the recommended strategy."""

        chapters = tuple(chapter_set)
        pages = [page for chapter in chapters for page in chapter.pages]
        facts = await asyncio.to_thread(_inspect_pages, pages)

        findings: list[AnalyzeFinding] = []
        findings.extend(self._check_names(chapter_set))
        findings.extend(self._check_paths(chapter_set))
        findings.extend(self._check_page_facts(facts))
        findings.extend(self._check_file_sizes(facts))
        findings.extend(self._check_page_counts(chapter_set))
        findings.extend(self._check_format_consistency(facts))

        strategy, volume_starts, recommendation_findings = await self._recommend(chapters)
        return AnalyzeReport(
            findings=merge_findings(prior_findings, findings, recommendation_findings),
            recommended_strategy=strategy,
            volume_starts=volume_starts,
        )

    def _check_names(self, chapters: ChapterSet) -> list[AnalyzeFinding]:
        findings: list[AnalyzeFinding] = []
        for chapter in chapters:
            if chapter.path is not None and len(chapters) > 1:
                if extract_numeric_key(chapter.path.name, self._chapter_regex) is None:
                    findings.append(MissingNumericIdentifier(path=chapter.path))
            for page in chapter.pages:
                if extract_numeric_key(page.name, self._page_regex) is None:
                    findings.append(MissingNumericIdentifier(path=page))
        return findings

    @staticmethod
    def _check_paths(chapters: ChapterSet) -> list[AnalyzeFinding]:
        findings: list[AnalyzeFinding] = []
        for chapter in chapters:
            candidates = [chapter.path] if chapter.path is not None else []
            candidates.extend(chapter.pages)
            for path in candidates:
                if exceeds_path_limit(path):
                    findings.append(LongPath(path=path, length=path_length(path)))
                if has_special_characters(path):
                    findings.append(SpecialCharactersInPath(path=path))
        return findings

    @staticmethod
    def _check_page_facts(facts: Sequence[_PageFacts]) -> list[AnalyzeFinding]:
        findings: list[AnalyzeFinding] = []
        for fact in facts:
            if fact.permission_denied:
                findings.append(PermissionDenied(path=fact.path))
                continue
            if fact.error is not None:
                findings.append(warning(f"Page could not be read: {fact.path} ({fact.error})"))
                continue
            if not has_supported_extension(fact.path):
                findings.append(
                    UnsupportedImageFormat(
                        path=fact.path,
                        detected_ext=fact.detected_format or extension_of(fact.path) or "unknown",
                    )
                )
            elif fact.detected_format is None:
                findings.append(UnsupportedImageFormat(path=fact.path, detected_ext="unknown"))
        return findings

    @staticmethod
    def _check_file_sizes(facts: Sequence[_PageFacts]) -> list[AnalyzeFinding]:
        sized = [fact for fact in facts if fact.size is not None]
        if not sized:
            return []
        mean = sum(fact.size for fact in sized) / len(sized)
        upper = mean * SIZE_DEVIATION_FACTOR
        lower = mean / SIZE_DEVIATION_FACTOR if mean > SIZE_LOWER_BOUND_MIN_MEAN else 0.0
        expected_range = (int(lower), int(upper))
        return [
            UnusualFileSize(path=fact.path, actual=fact.size, expected_range=expected_range)
            for fact in sized
            if fact.size > upper or fact.size < lower
        ]

    @staticmethod
    def _check_page_counts(chapters: ChapterSet) -> list[AnalyzeFinding]:
        if len(chapters) <= 1:
            return []
        expected = modal_count(chapter.page_count for chapter in chapters)
        threshold = max(1.0, expected * PAGE_COUNT_TOLERANCE)
        return [
            InconsistentPageCount(
                chapter_path=chapter.path,
                actual=chapter.page_count,
                expected=expected,
            )
            for chapter in chapters
            if abs(chapter.page_count - expected) > threshold
        ]

    @staticmethod
    def _check_format_consistency(facts: Sequence[_PageFacts]) -> list[AnalyzeFinding]:
        formats = sorted(
            {
                canonical_extension(fact.detected_format)
                for fact in facts
                if fact.detected_format is not None
            }
        )
        if len(formats) > 1:
            return [InconsistentImageFormat(format_list=tuple(formats))]
        return []

    async def _recommend(
        self,
        chapters: ChapterSet,
    ) -> tuple[GroupingStrategy, tuple[int, ...], tuple[AnalyzeFinding, ...]]:
        if chapters and all(
            chapter.path is not None and self._name_regex.search(chapter.path.name)
            for chapter in chapters
        ):
            return (
                GroupingStrategy.NAME,
                (),
                (positive("Every chapter name carries a volume-chapter identifier."),),
            )

        if self._cover_detector is not None and len(chapters) > 2:
            starts, detection_findings = await detect_volume_starts(
                chapters,
                self._cover_detector,
                self._sensibility,
                self._cover_scan_depth,
            )
            if has_cadence(starts):
                return (
                    GroupingStrategy.IMAGE_ANALYSIS,
                    starts,
                    (
                        *detection_findings,
                        positive(f"Detected {len(starts)} recurring cover boundaries."),
                    ),
                )
            return (
                GroupingStrategy.MANUAL,
                starts,
                (
                    *detection_findings,
                    warning("No volume structure inferred; manual grouping recommended."),
                ),
            )

        return (
            GroupingStrategy.MANUAL,
            (),
            (warning("No volume structure inferred; manual grouping recommended."),),
        )
