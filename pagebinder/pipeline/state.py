"""Immutable pipeline state and stage enumeration.

Each pipeline transition builds a new `PipelineState` with `dataclasses.replace`;
a state value is never mutated after construction.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from ..config import CompiledPatterns, PagebinderConfig
from ..models.datatypes import (
    AnalyzeFinding,
    AnalyzeReport,
    Chapter,
    ChapterSet,
    GroupingStrategy,
    VolumeStructure,
    VolumeStructureReport,
)


class PipelineStage(str, Enum):
    """Lifecycle position of a pipeline; `converted` is terminal."""

    CREATED = "created"
    ANALYZED = "analyzed"
    BUNDLED = "bundled"
    CONVERTED = "converted"


@dataclass(frozen=True, slots=True)
class PipelineState:
    """Snapshot of everything a pipeline knows at one lifecycle stage.

    Attributes:
        supplied_chapters: Chapter data passed in at construction.
        collected_chapters: Chapter data produced by the collector.
        override_chapters: Chapter data replaced through a manual edit.
        volumes: Supplied or computed volume structure.
        strategy: Active grouping strategy; `None` until one is chosen.
        volume_sizes: Manual grouping override.
        bundle_findings: Soft problems observed while grouping.
    """

    config: PagebinderConfig
    patterns: CompiledPatterns
    stage: PipelineStage = PipelineStage.CREATED
    supplied_chapters: ChapterSet | None = None
    collected_chapters: ChapterSet | None = None
    override_chapters: ChapterSet | None = None
    volumes: VolumeStructure | None = None
    analyze_report: AnalyzeReport | None = None
    structure_report: VolumeStructureReport | None = None
    strategy: GroupingStrategy | None = None
    volume_sizes: tuple[int, ...] | None = None
    bundle_findings: tuple[AnalyzeFinding, ...] = field(default_factory=tuple)

    @property
    def effective_chapters(self) -> ChapterSet | None:
        """Return override, collected, or supplied chapters, in that precedence.

        When only a volume structure was supplied, its chapters are used.
        """

        for candidate in (self.override_chapters, self.collected_chapters, self.supplied_chapters):
            if candidate is not None:
                return candidate
        if self.volumes is not None:
            chapters: list[Chapter] = []
            for volume in self.volumes:
                chapters.extend(volume.chapters)
            return tuple(chapters)
        return None

    @property
    def is_terminal(self) -> bool:
        return self.stage == PipelineStage.CONVERTED
