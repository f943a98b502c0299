"""Pipeline orchestration for pagebinder.

Responsibilities:
- Sequence collection, analysis, grouping, and generation as explicit transitions.
- Accept shortcut entry points for chapter or volume data the caller already has.
- Keep state immutable: every transition swaps in a new `PipelineState`.

Key types:
- `PagebinderPipeline`: stateful facade over one conversion run.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import replace
from pathlib import Path
from typing import Sequence

from ..analysis.analyzer import ContentAnalyzer
from ..config import PagebinderConfig, parse_grouping_strategy
from ..errors import (
    ConfigurationError,
    FilesystemError,
    GenerationError,
    MissingSourceError,
    StateError,
)
from ..generator.base import GeneratorFactory
from ..generator.cbz import CbzGeneratorFactory
from ..grouping.engine import (
    GroupingParams,
    VolumeGroupingEngine,
    build_structure_report,
    detect_volume_starts,
    flatten_to_single_volume,
)
from ..io.collector import PathCollector
from ..io.imaging import CoverDetector
from ..io.paths import sanitize_filename
from ..models.datatypes import (
    AnalyzeFinding,
    AnalyzeReport,
    Chapter,
    ChapterSet,
    GeneratedVolume,
    GroupingStrategy,
    SeriesMetadata,
    Volume,
    VolumeStructure,
    VolumeStructureReport,
    coerce_chapter_set,
    coerce_volume_structure,
)
from ..parsing import parse_volume_sizes
from ..telemetry.logger import RunLogger
from .state import PipelineStage, PipelineState
from .telemetry import PipelineTelemetryMixin


_EDITABLE_STAGES = (PipelineStage.CREATED, PipelineStage.ANALYZED)


def volume_file_name_base(
    title: str,
    separator: str,
    volume_number: int,
    volume_count: int,
) -> str:
    """Return the sanitized output file name (without extension) for one volume."""

    if volume_count > 1:
        return sanitize_filename(f"{title}{separator}Volume {volume_number}")
    return sanitize_filename(title)


def _write_volume(
    factory: GeneratorFactory,
    output_directory: Path,
    file_name_base: str,
    volume_index: int,
    volume: Volume,
    metadata: SeriesMetadata,
) -> None:
    generator = factory.open(output_directory, file_name_base)
    try:
        for ordinal, page in enumerate(volume.pages, start=1):
            generator.append_page(page, ordinal)
        generator.write_metadata(
            file_name_base,
            volume_index,
            metadata,
            volume.page_count,
            volume.chapter_titles,
        )
        generator.finalize()
    except BaseException:
        generator.abort()
        raise


class PagebinderPipeline(PipelineTelemetryMixin):
    """Coordinate collection, analysis, grouping, and generation for one run.

    States advance `created -> analyzed -> bundled -> converted`, with shortcuts
    from `created` when chapter or volume data is supplied up front. `converted`
    is terminal and no state is ever re-entered.
    """

    def __init__(
        self,
        config: PagebinderConfig,
        *,
        chapters: Sequence[Chapter | Sequence[Path | str]] | None = None,
        volumes: Sequence[Volume | Sequence[Chapter | Sequence[Path | str]]] | None = None,
        generator_factory: GeneratorFactory | None = None,
        cover_detector: CoverDetector | None = None,
        run_logger: RunLogger | None = None,
        stage_progress_callback: Callable[[str, int, int], None] | None = None,
    ) -> None:
        """Validate configuration and coerce supplied data into the initial state.

        Raises:
            ConfigurationError: If the config or supplied data is invalid.
        """

        patterns = config.validate()
        try:
            supplied_chapters = coerce_chapter_set(chapters) if chapters is not None else None
            supplied_volumes = coerce_volume_structure(volumes) if volumes is not None else None
        except TypeError as exc:
            raise ConfigurationError([str(exc)]) from exc

        structure_report = None
        if supplied_volumes is not None:
            structure_report = build_structure_report(
                sum(len(volume.chapters) for volume in supplied_volumes),
                supplied_volumes,
                config.grouping_strategy or GroupingStrategy.MANUAL,
            )

        self._state = PipelineState(
            config=config,
            patterns=patterns,
            supplied_chapters=supplied_chapters,
            volumes=supplied_volumes,
            structure_report=structure_report,
            strategy=config.grouping_strategy,
            volume_sizes=config.volume_sizes,
        )
        self._generator_factory = generator_factory or CbzGeneratorFactory()
        self._cover_detector = cover_detector
        self._run_logger = run_logger
        self._stage_progress_callback = stage_progress_callback
        self._engine = VolumeGroupingEngine()
        self._transition_active = False

    @property
    def state(self) -> PipelineState:
        return self._state

    @property
    def stage(self) -> PipelineStage:
        return self._state.stage

    @property
    def strategy(self) -> GroupingStrategy | None:
        return self._state.strategy

    @property
    def analyze_report(self) -> AnalyzeReport | None:
        return self._state.analyze_report

    @property
    def structure_report(self) -> VolumeStructureReport | None:
        return self._state.structure_report

    @property
    def chapters(self) -> ChapterSet | None:
        """Effective chapter data: manual edit, else collected, else supplied."""

        return self._state.effective_chapters

    @property
    def volumes(self) -> VolumeStructure | None:
        return self._state.volumes

    @property
    def bundle_findings(self) -> tuple[AnalyzeFinding, ...]:
        return self._state.bundle_findings

    @contextmanager
    def _exclusive(self, operation: str) -> Iterator[PipelineState]:
        """Hold the single-writer guard for one transition."""

        if self._transition_active:
            raise StateError(
                stage=operation,
                detail=f"Cannot run `{operation}` while another transition is in progress.",
                hint="Await the running transition before starting another.",
            )
        self._transition_active = True
        try:
            yield self._state
        finally:
            self._transition_active = False

    def _require_stage(
        self,
        operation: str,
        allowed: Sequence[PipelineStage] | None = None,
    ) -> None:
        stage = self._state.stage
        if self._state.is_terminal:
            raise StateError(
                stage=operation,
                detail=f"Cannot run `{operation}`; the pipeline has already converted.",
                hint="Create a new pipeline for another run.",
            )
        if allowed is not None and stage not in allowed:
            allowed_list = ", ".join(item.value for item in allowed)
            raise StateError(
                stage=operation,
                detail=f"Cannot run `{operation}` in state `{stage.value}`; expected {allowed_list}.",
            )

    def _effective_strategy(self) -> GroupingStrategy:
        state = self._state
        if state.strategy is not None:
            return state.strategy
        if state.analyze_report is not None:
            return state.analyze_report.recommended_strategy
        return GroupingStrategy.MANUAL

    async def analyze(self) -> AnalyzeReport:
        """Collect (when a source is configured) and analyze chapter data.

        Raises:
            MissingSourceError: If there is neither a source path nor chapter data.
            FilesystemError: If the source root is missing or unreadable.
            StateError: If the pipeline is not in `created`.
        """

        with self._exclusive("analyze") as state:
            self._require_stage("analyze", (PipelineStage.CREATED,))
            config = state.config
            collected: ChapterSet | None = state.collected_chapters
            prior_findings: tuple[AnalyzeFinding, ...] = ()

            if config.source_path is not None:
                collector = PathCollector(
                    chapter_comparator=state.patterns.chapter_comparator,
                    page_comparator=state.patterns.page_comparator,
                    concurrency_limit=config.concurrency_limit,
                )
                collection = await self._run_stage(
                    "collect",
                    lambda: collector.collect(Path(config.source_path), config.collection_depth),
                )
                collected = collection.chapters
                prior_findings = collection.findings
                chapters = collection.chapters
            elif state.effective_chapters is not None:
                chapters = state.effective_chapters
            else:
                raise MissingSourceError(
                    ["Analysis needs a source path or supplied chapter data."],
                    stage="analyze",
                    hint="Configure `source_path` or pass `chapters=` to the pipeline.",
                )

            analyzer = ContentAnalyzer(
                chapter_regex=state.patterns.chapter_regex,
                page_regex=state.patterns.page_regex,
                name_regex=state.patterns.name_regex,
                cover_detector=self._cover_detector,
                sensibility=config.image_analysis_sensibility,
                cover_scan_depth=config.cover_scan_depth,
            )
            report = await self._run_stage(
                "analyze",
                lambda: analyzer.analyze(chapters, prior_findings),
            )
            self._on_findings("analyze", report)

            self._state = replace(
                state,
                stage=PipelineStage.ANALYZED,
                collected_chapters=collected,
                analyze_report=report,
                strategy=state.strategy if state.strategy is not None else report.recommended_strategy,
            )
            return report

    def override_strategy(self, strategy: GroupingStrategy | str) -> None:
        """Pin the grouping strategy; valid in any non-terminal state."""

        with self._exclusive("override_strategy") as state:
            self._require_stage("override_strategy")
            try:
                parsed = parse_grouping_strategy(strategy, "strategy")
            except ValueError as exc:
                raise ConfigurationError([str(exc)], stage="override_strategy") from exc
            if parsed is None:
                raise ConfigurationError(
                    ["`strategy` must name a concrete grouping strategy."],
                    stage="override_strategy",
                )
            self._state = replace(state, strategy=parsed)

    def override_volume_sizes(self, volume_sizes: Sequence[int] | str | None) -> None:
        """Replace the Manual grouping size override; valid before bundling."""

        with self._exclusive("override_volume_sizes") as state:
            self._require_stage("override_volume_sizes", _EDITABLE_STAGES)
            try:
                parsed = parse_volume_sizes(volume_sizes, "volume_sizes")
            except ValueError as exc:
                raise ConfigurationError([str(exc)], stage="override_volume_sizes") from exc
            self._state = replace(state, volume_sizes=parsed)

    def apply_manual_edit(
        self,
        chapter_set: Sequence[Chapter | Sequence[Path | str]],
    ) -> None:
        """Replace the effective chapter data; valid in `created` and `analyzed`."""

        with self._exclusive("apply_manual_edit") as state:
            self._require_stage("apply_manual_edit", _EDITABLE_STAGES)
            try:
                chapters = coerce_chapter_set(chapter_set)
            except TypeError as exc:
                raise ConfigurationError([str(exc)], stage="apply_manual_edit") from exc
            self._state = replace(
                state,
                override_chapters=chapters,
                volumes=None,
                structure_report=None,
            )

    async def bundle(self, sensibility_override: int | None = None) -> VolumeStructure:
        """Group the effective chapters into volumes with the active strategy.

        Raises:
            StateError: If no chapter data exists for a non-Flat strategy.
            ValidationError: If Manual volume sizes do not fit the chapter count.
        """

        with self._exclusive("bundle") as state:
            self._require_stage("bundle", _EDITABLE_STAGES)
            if sensibility_override is not None and not 0 <= sensibility_override <= 100:
                raise ConfigurationError(
                    ["`sensibility_override` must be an integer between 0 and 100."],
                    stage="bundle",
                )
            strategy = self._effective_strategy()
            volumes, report, findings = await self._run_stage(
                "bundle",
                lambda: self._group(state, strategy, sensibility_override),
            )
            self._state = replace(
                state,
                stage=PipelineStage.BUNDLED,
                strategy=strategy,
                volumes=volumes,
                structure_report=report,
                bundle_findings=findings,
            )
            return volumes

    async def _group(
        self,
        state: PipelineState,
        strategy: GroupingStrategy,
        sensibility_override: int | None,
    ) -> tuple[VolumeStructure, VolumeStructureReport, tuple[AnalyzeFinding, ...]]:
        chapters = state.effective_chapters
        if strategy == GroupingStrategy.FLAT:
            chapters = chapters or ()
            volumes = flatten_to_single_volume(chapters) if chapters else ()
            return volumes, build_structure_report(len(chapters), volumes, strategy), ()

        if chapters is None:
            raise StateError(
                stage="bundle",
                detail="No chapter data is available to group.",
                hint="Run `analyze` first or pass `chapters=` to the pipeline.",
            )

        params = GroupingParams(
            name_regex=state.patterns.name_regex,
            volume_sizes=state.volume_sizes,
            order_by_chapter_number=state.config.chapter_comparator is None,
        )
        findings: tuple[AnalyzeFinding, ...] = ()
        if strategy == GroupingStrategy.IMAGE_ANALYSIS:
            sensibility = (
                sensibility_override
                if sensibility_override is not None
                else state.config.image_analysis_sensibility
            )
            starts, findings = await self._detect_starts(state, chapters, sensibility)
            params = replace(params, cover_starts=starts)

        volumes, report = self._engine.group(chapters, strategy, params)
        return volumes, report, findings

    async def _detect_starts(
        self,
        state: PipelineState,
        chapters: ChapterSet,
        sensibility: int,
    ) -> tuple[tuple[int, ...], tuple[AnalyzeFinding, ...]]:
        if self._cover_detector is not None:
            return await detect_volume_starts(
                chapters,
                self._cover_detector,
                sensibility,
                state.config.cover_scan_depth,
            )
        with CoverDetector(
            max_workers=state.config.analysis_workers,
            concurrency_limit=state.config.concurrency_limit,
        ) as detector:
            return await detect_volume_starts(
                chapters,
                detector,
                sensibility,
                state.config.cover_scan_depth,
            )

    async def convert(self) -> tuple[GeneratedVolume, ...]:
        """Write every volume through the generator; terminal transition.

        Raises:
            StateError: If there is no volume structure and none can be synthesized.
            FilesystemError: If the output directory is unusable.
            GenerationError: If the generator fails; later volumes are not written.
        """

        with self._exclusive("convert") as state:
            self._require_stage("convert")
            volumes = self._resolve_volumes(state)
            output_directory = self._resolve_output_directory(state.config)
            generated = await self._run_stage(
                "convert",
                lambda: self._write_all(state, volumes, output_directory),
            )
            self._state = replace(state, stage=PipelineStage.CONVERTED, volumes=volumes)
            return generated

    def _resolve_volumes(self, state: PipelineState) -> VolumeStructure:
        if state.volumes is not None:
            return state.volumes
        chapters = state.effective_chapters
        if self._effective_strategy() == GroupingStrategy.FLAT and chapters is not None:
            return flatten_to_single_volume(chapters) if chapters else ()
        raise StateError(
            stage="convert",
            detail="No volume structure is available to convert.",
            hint="Run `bundle` first, supply `volumes=`, or use the flat strategy with chapter data.",
        )

    @staticmethod
    def _resolve_output_directory(config: PagebinderConfig) -> Path:
        if config.target_path is None:
            raise ConfigurationError(
                ["`target_path` is required for conversion."],
                stage="convert",
                hint="Set `target_path` in the configuration.",
            )
        target = Path(config.target_path)
        if not config.create_output_directory:
            if not target.is_dir():
                raise FilesystemError(
                    stage="convert",
                    detail=f"Target directory does not exist: {target}",
                    path=target,
                    hint="Create the directory or enable `create_output_directory`.",
                )
            return target

        output_directory = target / sanitize_filename(config.resolved_metadata().title)
        try:
            output_directory.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise FilesystemError(
                stage="convert",
                detail=f"Cannot create output directory {output_directory}: {exc.strerror or exc}",
                path=output_directory,
            ) from exc
        return output_directory

    async def _write_all(
        self,
        state: PipelineState,
        volumes: VolumeStructure,
        output_directory: Path,
    ) -> tuple[GeneratedVolume, ...]:
        metadata = state.config.resolved_metadata()
        written: list[GeneratedVolume] = []
        for volume_index, volume in enumerate(volumes, start=1):
            file_name_base = volume_file_name_base(
                metadata.title,
                state.config.volume_separator,
                volume_index,
                len(volumes),
            )
            try:
                await asyncio.to_thread(
                    _write_volume,
                    self._generator_factory,
                    output_directory,
                    file_name_base,
                    volume_index,
                    volume,
                    metadata,
                )
            except Exception as exc:
                raise GenerationError(
                    detail=f"Failed to write volume {volume_index} `{file_name_base}`: {exc}",
                    volume_index=volume_index,
                    hint="Volumes written before the failure are left on disk.",
                ) from exc

            record = GeneratedVolume(
                index=volume_index,
                file_name_base=file_name_base,
                output_directory=output_directory,
                page_count=volume.page_count,
                chapter_titles=volume.chapter_titles,
            )
            written.append(record)
            if self._run_logger is not None:
                self._run_logger.log_volume_written(
                    volume_index, file_name_base, volume.page_count
                )
        return tuple(written)
