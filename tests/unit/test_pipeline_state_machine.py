"""Unit tests for pipeline transitions, shortcuts, and state guards."""

from __future__ import annotations

import asyncio
import io
from pathlib import Path

import pytest

from pagebinder.config import PagebinderConfig
from pagebinder.errors import (
    ConfigurationError,
    FilesystemError,
    GenerationError,
    MissingSourceError,
    StateError,
    ValidationError,
)
from pagebinder.generator.cbz import CbzGenerator, CbzGeneratorFactory
from pagebinder.io import collector as collector_module
from pagebinder.models.datatypes import (
    Chapter,
    GroupingStrategy,
    PermissionDenied,
    SeriesMetadata,
)
from pagebinder.pipeline import PagebinderPipeline, PipelineStage
from pagebinder.pipeline.orchestrator import volume_file_name_base
from pagebinder.telemetry.logger import RunLogger
from tests.fakes import RecordingGeneratorFactory, StubCoverDetector
from tests.fixture_paths import build_source_tree, write_page


def _config(tmp_path: Path, **overrides: object) -> PagebinderConfig:
    values: dict[str, object] = {
        "target_path": tmp_path / "out",
        "metadata": SeriesMetadata(title="Series"),
    }
    values.update(overrides)
    return PagebinderConfig(**values)


def _page_lists(chapter_count: int, pages_per_chapter: int = 2) -> list[list[Path]]:
    return [
        [Path(f"/s/c{chapter}/{page:02d}.png") for page in range(1, pages_per_chapter + 1)]
        for chapter in range(1, chapter_count + 1)
    ]


def test_analyze_without_source_or_chapters_raises_missing_source(tmp_path: Path) -> None:
    pipeline = PagebinderPipeline(_config(tmp_path))

    with pytest.raises(MissingSourceError) as exc_info:
        asyncio.run(pipeline.analyze())

    assert exc_info.value.stage == "analyze"
    assert pipeline.stage == PipelineStage.CREATED


def test_analyze_collects_source_and_adopts_recommendation(
    tmp_path: Path, natural_order_tree: Path
) -> None:
    pipeline = PagebinderPipeline(_config(tmp_path, source_path=natural_order_tree))

    report = asyncio.run(pipeline.analyze())

    assert pipeline.stage == PipelineStage.ANALYZED
    assert pipeline.analyze_report is report
    assert pipeline.strategy == report.recommended_strategy == GroupingStrategy.MANUAL
    assert [chapter.title for chapter in pipeline.chapters] == [
        "Chapter 1",
        "Chapter 2",
        "Chapter 10",
    ]


def test_analyze_keeps_explicit_strategy(tmp_path: Path, volume_named_tree: Path) -> None:
    pipeline = PagebinderPipeline(
        _config(tmp_path, source_path=volume_named_tree, grouping_strategy=GroupingStrategy.FLAT)
    )

    report = asyncio.run(pipeline.analyze())

    assert report.recommended_strategy == GroupingStrategy.NAME
    assert pipeline.strategy == GroupingStrategy.FLAT


def test_analyze_succeeds_with_unreadable_chapter(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path, natural_order_tree: Path
) -> None:
    """Per-chapter permission problems are findings, never fatal errors."""

    locked = natural_order_tree / "Chapter 10"
    real_list_directory = collector_module._list_directory

    def _guarded(path: Path) -> list[Path]:
        if path == locked:
            raise PermissionError(13, "Permission denied", str(path))
        return real_list_directory(path)

    monkeypatch.setattr(collector_module, "_list_directory", _guarded)
    pipeline = PagebinderPipeline(_config(tmp_path, source_path=natural_order_tree))

    report = asyncio.run(pipeline.analyze())

    assert PermissionDenied(path=locked) in report.findings
    assert len(pipeline.chapters) == 2


def test_analyze_with_missing_source_root_raises(tmp_path: Path) -> None:
    pipeline = PagebinderPipeline(_config(tmp_path, source_path=tmp_path / "missing"))

    with pytest.raises(FilesystemError, match="does not exist"):
        asyncio.run(pipeline.analyze())


def test_flat_shortcut_converts_supplied_pages_without_analysis(
    tmp_path: Path, recording_factory: RecordingGeneratorFactory
) -> None:
    pipeline = PagebinderPipeline(
        _config(tmp_path, grouping_strategy=GroupingStrategy.FLAT),
        chapters=_page_lists(2),
        generator_factory=recording_factory,
    )

    generated = asyncio.run(pipeline.convert())

    assert pipeline.stage == PipelineStage.CONVERTED
    assert len(generated) == 1
    assert generated[0].file_name_base == "Series"
    assert generated[0].output_directory == tmp_path / "out" / "Series"
    (generator,) = recording_factory.opened
    assert [call[0] for call in generator.calls] == [
        "append_page",
        "append_page",
        "append_page",
        "append_page",
        "write_metadata",
        "finalize",
    ]
    assert [call[2] for call in generator.calls[:4]] == [1, 2, 3, 4]
    assert generator.calls[4] == ("write_metadata", "Series", 1, "Series", 4, ("s",))


def test_convert_without_any_data_raises_before_opening_generator(
    tmp_path: Path, recording_factory: RecordingGeneratorFactory
) -> None:
    pipeline = PagebinderPipeline(_config(tmp_path), generator_factory=recording_factory)

    with pytest.raises(StateError, match="No volume structure"):
        asyncio.run(pipeline.convert())

    assert recording_factory.opened == []
    assert pipeline.stage == PipelineStage.CREATED


def test_supplied_volumes_convert_directly_with_volume_names(
    tmp_path: Path, recording_factory: RecordingGeneratorFactory
) -> None:
    pages = _page_lists(3)
    pipeline = PagebinderPipeline(
        _config(tmp_path, volume_separator=" ~ "),
        volumes=[[pages[0], pages[1]], [pages[2]]],
        generator_factory=recording_factory,
    )

    assert pipeline.structure_report is not None
    assert pipeline.structure_report.chapter_counts_per_volume == (2, 1)

    generated = asyncio.run(pipeline.convert())

    assert [volume.file_name_base for volume in generated] == [
        "Series ~ Volume 1",
        "Series ~ Volume 2",
    ]
    assert [volume.chapter_titles for volume in generated] == [("c1", "c2"), ("c3",)]
    assert [generator.base_file_name for generator in recording_factory.opened] == [
        "Series ~ Volume 1",
        "Series ~ Volume 2",
    ]


def test_generation_failure_stops_remaining_volumes(tmp_path: Path) -> None:
    factory = RecordingGeneratorFactory(fail_volume=2)
    pages = _page_lists(3)
    pipeline = PagebinderPipeline(
        _config(tmp_path),
        volumes=[[pages[0]], [pages[1]], [pages[2]]],
        generator_factory=factory,
    )

    with pytest.raises(GenerationError) as exc_info:
        asyncio.run(pipeline.convert())

    assert exc_info.value.volume_index == 2
    assert exc_info.value.stage == "convert"
    assert len(factory.opened) == 2
    assert factory.opened[0].calls[-1] == ("finalize",)
    assert factory.opened[1].calls == [("abort",)]
    assert pipeline.stage != PipelineStage.CONVERTED


def test_converted_pipeline_rejects_every_transition(
    tmp_path: Path, recording_factory: RecordingGeneratorFactory
) -> None:
    pipeline = PagebinderPipeline(
        _config(tmp_path, grouping_strategy=GroupingStrategy.FLAT),
        chapters=_page_lists(1),
        generator_factory=recording_factory,
    )
    asyncio.run(pipeline.convert())

    with pytest.raises(StateError, match="already converted"):
        asyncio.run(pipeline.analyze())
    with pytest.raises(StateError, match="already converted"):
        asyncio.run(pipeline.bundle())
    with pytest.raises(StateError, match="already converted"):
        asyncio.run(pipeline.convert())
    with pytest.raises(StateError, match="already converted"):
        pipeline.override_strategy("manual")
    assert len(recording_factory.opened) == 1


def test_transitions_are_not_reentrant(tmp_path: Path) -> None:
    """A transition started from inside another one must be rejected."""

    pipeline: PagebinderPipeline

    def _meddle(stage: str, index: int, total: int) -> None:
        pipeline.override_strategy("flat")

    pipeline = PagebinderPipeline(
        _config(tmp_path),
        chapters=_page_lists(2),
        stage_progress_callback=_meddle,
    )

    with pytest.raises(StateError, match="in progress"):
        asyncio.run(pipeline.analyze())

    assert pipeline.stage == PipelineStage.CREATED
    assert pipeline.strategy is None


def test_manual_flow_with_size_override(tmp_path: Path) -> None:
    pipeline = PagebinderPipeline(_config(tmp_path), chapters=_page_lists(3))

    asyncio.run(pipeline.analyze())
    pipeline.override_volume_sizes("1, 2")
    volumes = asyncio.run(pipeline.bundle())

    assert pipeline.stage == PipelineStage.BUNDLED
    assert [len(volume.chapters) for volume in volumes] == [1, 2]
    assert pipeline.structure_report.strategy == GroupingStrategy.MANUAL

    with pytest.raises(StateError, match="bundled"):
        pipeline.override_volume_sizes("3")


def test_bundle_rejects_sizes_that_do_not_fit(tmp_path: Path) -> None:
    pipeline = PagebinderPipeline(
        _config(tmp_path, volume_sizes=(1, 1)),
        chapters=_page_lists(3),
    )

    with pytest.raises(ValidationError):
        asyncio.run(pipeline.bundle())

    assert pipeline.stage == PipelineStage.CREATED
    assert pipeline.volumes is None


def test_bundle_without_chapters_raises_state_error(tmp_path: Path) -> None:
    pipeline = PagebinderPipeline(_config(tmp_path, grouping_strategy=GroupingStrategy.NAME))

    with pytest.raises(StateError, match="No chapter data"):
        asyncio.run(pipeline.bundle())


def test_bundle_rejects_out_of_range_sensibility(tmp_path: Path) -> None:
    pipeline = PagebinderPipeline(_config(tmp_path), chapters=_page_lists(2))

    with pytest.raises(ConfigurationError, match="sensibility_override"):
        asyncio.run(pipeline.bundle(sensibility_override=101))


def test_manual_edit_replaces_chapters_used_for_bundling(tmp_path: Path) -> None:
    pipeline = PagebinderPipeline(_config(tmp_path), chapters=_page_lists(3))
    asyncio.run(pipeline.analyze())
    edited = [Chapter(path=Path("/s/merged"), pages=tuple(_page_lists(3)[0]))]

    pipeline.apply_manual_edit(edited)
    volumes = asyncio.run(pipeline.bundle())

    assert pipeline.chapters == tuple(edited)
    assert volumes[0].chapter_titles == ("merged",)


def test_image_analysis_bundle_uses_detector_and_sensibility_override(tmp_path: Path) -> None:
    detector = StubCoverDetector(
        cover_names=frozenset({"c3/01.png"}),
        undecodable_names=frozenset({"c4/01.png"}),
    )
    pipeline = PagebinderPipeline(
        _config(tmp_path),
        chapters=_page_lists(4),
        cover_detector=detector,
    )
    pipeline.override_strategy("image-analysis")

    volumes = asyncio.run(pipeline.bundle(sensibility_override=40))

    assert [volume.chapter_titles for volume in volumes] == [("c1", "c2"), ("c3", "c4")]
    assert detector.requests[-1][1] == 40
    assert len(pipeline.bundle_findings) == 1
    assert pipeline.strategy == GroupingStrategy.IMAGE_ANALYSIS


def test_override_strategy_rejects_auto_and_unknown_tokens(tmp_path: Path) -> None:
    pipeline = PagebinderPipeline(_config(tmp_path))

    with pytest.raises(ConfigurationError):
        pipeline.override_strategy("auto")
    with pytest.raises(ConfigurationError, match="supported"):
        pipeline.override_strategy("alphabetical")


def test_string_chapter_data_is_rejected(tmp_path: Path) -> None:
    with pytest.raises(ConfigurationError, match="single path"):
        PagebinderPipeline(_config(tmp_path), chapters=["/s/c1/01.png"])


def test_existing_target_is_required_without_directory_creation(
    tmp_path: Path, recording_factory: RecordingGeneratorFactory
) -> None:
    config = _config(
        tmp_path,
        grouping_strategy=GroupingStrategy.FLAT,
        create_output_directory=False,
    )
    pipeline = PagebinderPipeline(config, chapters=_page_lists(1), generator_factory=recording_factory)

    with pytest.raises(FilesystemError, match="does not exist"):
        asyncio.run(pipeline.convert())

    (tmp_path / "out").mkdir()
    generated = asyncio.run(pipeline.convert())

    assert generated[0].output_directory == tmp_path / "out"


def test_missing_target_path_fails_at_convert(tmp_path: Path) -> None:
    pipeline = PagebinderPipeline(
        PagebinderConfig(grouping_strategy=GroupingStrategy.FLAT),
        chapters=_page_lists(1),
        generator_factory=RecordingGeneratorFactory(),
    )

    with pytest.raises(ConfigurationError, match="target_path"):
        asyncio.run(pipeline.convert())


def test_run_logger_receives_stage_and_finding_events(tmp_path: Path) -> None:
    sink = io.StringIO()
    progress: list[tuple[str, int, int]] = []
    pipeline = PagebinderPipeline(
        _config(tmp_path),
        chapters=_page_lists(2),
        generator_factory=RecordingGeneratorFactory(),
        run_logger=RunLogger(sink=sink),
        stage_progress_callback=lambda stage, index, total: progress.append((stage, index, total)),
    )

    asyncio.run(pipeline.analyze())
    asyncio.run(pipeline.bundle())
    asyncio.run(pipeline.convert())

    output = sink.getvalue()
    assert "[phase] level=INFO stage=analyze event=finding_summary" in output
    assert "stage=convert event=volume_written file_name=Series index=1 page_count=4" in output
    assert progress == [("analyze", 2, 4), ("bundle", 3, 4), ("convert", 4, 4)]


@pytest.mark.parametrize(
    ("title", "separator", "number", "count", "expected"),
    [
        ("Series", " - ", 1, 1, "Series"),
        ("Series", " - ", 2, 3, "Series - Volume 2"),
        ("Fate/Zero", "_", 1, 2, "Fate-Zero_Volume 1"),
        ("Why?", " | ", 3, 4, "Why- - Volume 3"),
    ],
)
def test_volume_file_name_base(
    title: str, separator: str, number: int, count: int, expected: str
) -> None:
    assert volume_file_name_base(title, separator, number, count) == expected


class _TrackingCbzFactory(CbzGeneratorFactory):
    def __init__(self) -> None:
        self.opened: list[CbzGenerator] = []

    def open(self, output_directory: Path, base_file_name: str) -> CbzGenerator:
        generator = super().open(output_directory, base_file_name)
        self.opened.append(generator)
        return generator


def test_name_bundle_orders_unpadded_chapters_by_number(tmp_path: Path) -> None:
    source = build_source_tree(
        tmp_path / "Series",
        {name: ["1.png"] for name in ["1-1", "1-2", "1-10", "2-1"]},
    )
    pipeline = PagebinderPipeline(
        _config(tmp_path, source_path=source, grouping_strategy=GroupingStrategy.NAME)
    )

    asyncio.run(pipeline.analyze())
    volumes = asyncio.run(pipeline.bundle())

    assert [volume.chapter_titles for volume in volumes] == [
        ("1-1", "1-2", "1-10"),
        ("2-1",),
    ]


def test_failed_volume_releases_archive_and_keeps_earlier_volumes(tmp_path: Path) -> None:
    first = write_page(tmp_path / "src" / "1.png")
    second = write_page(tmp_path / "src" / "2.png")
    factory = _TrackingCbzFactory()
    pipeline = PagebinderPipeline(
        _config(tmp_path),
        volumes=[[[first, second]], [[first, tmp_path / "src" / "missing.png"]]],
        generator_factory=factory,
    )

    with pytest.raises(GenerationError) as exc_info:
        asyncio.run(pipeline.convert())

    out_dir = tmp_path / "out" / "Series"
    assert exc_info.value.volume_index == 2
    assert [generator._archive for generator in factory.opened] == [None, None]
    assert (out_dir / "Series - Volume 1.cbz").is_file()
    assert not (out_dir / "Series - Volume 2.cbz").exists()


def test_flat_bundle_without_chapters_yields_no_volumes(
    tmp_path: Path, recording_factory: RecordingGeneratorFactory
) -> None:
    pipeline = PagebinderPipeline(
        _config(tmp_path, grouping_strategy=GroupingStrategy.FLAT),
        chapters=[],
        generator_factory=recording_factory,
    )

    assert asyncio.run(pipeline.bundle()) == ()
    assert pipeline.structure_report.total_volumes_created == 0
    assert asyncio.run(pipeline.convert()) == ()
    assert recording_factory.opened == []
