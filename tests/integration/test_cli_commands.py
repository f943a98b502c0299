"""Integration tests for the `analyze` and `build` commands on real image trees."""

from pathlib import Path
import xml.etree.ElementTree as ET
import zipfile

from typer.testing import CliRunner

from pagebinder.cli import app
from tests.fixture_paths import build_source_tree


def test_analyze_command_prints_counts_findings_and_recommendation(
    volume_named_tree: Path,
) -> None:
    """Analyze should report collection totals and recommend Name grouping."""

    runner = CliRunner()

    result = runner.invoke(app, ["analyze", str(volume_named_tree)])

    assert result.exit_code == 0, result.output
    assert "Chapters: 3" in result.output
    assert "Pages: 6" in result.output
    assert "[OK] Every chapter name carries a volume-chapter identifier." in result.output
    assert "Recommended strategy: name" in result.output
    assert "[progress] command=analyze | 1/4 stage=collect" in result.output
    assert "[phase] level=INFO stage=analyze event=finding_summary" in result.output


def test_build_command_writes_one_archive_per_named_volume(
    tmp_path: Path, volume_named_tree: Path
) -> None:
    runner = CliRunner()
    out_dir = tmp_path / "out"

    result = runner.invoke(app, ["build", str(volume_named_tree), "--out", str(out_dir)])

    assert result.exit_code == 0, result.output
    assert "Strategy: name" in result.output
    assert "Volumes created: 2" in result.output
    archives = sorted((out_dir / "Named").glob("*.cbz"))
    assert [archive.name for archive in archives] == [
        "Named - Volume 1.cbz",
        "Named - Volume 2.cbz",
    ]
    with zipfile.ZipFile(archives[0]) as archive:
        assert archive.namelist() == [
            "page_001.png",
            "page_002.png",
            "page_003.png",
            "page_004.png",
            "ComicInfo.xml",
        ]
        comic_info = ET.fromstring(archive.read("ComicInfo.xml"))
    assert comic_info.findtext("Title") == "Named"
    assert comic_info.findtext("Volume") == "1"
    assert "Chapters: 001-001, 001-002" in comic_info.findtext("Notes")


def test_build_command_flat_strategy_with_title_override(
    tmp_path: Path, natural_order_tree: Path
) -> None:
    runner = CliRunner()
    out_dir = tmp_path / "out"

    result = runner.invoke(
        app,
        [
            "build",
            str(natural_order_tree),
            "--out",
            str(out_dir),
            "--strategy",
            "flat",
            "--title",
            "My: Series",
        ],
    )

    assert result.exit_code == 0, result.output
    archive_path = out_dir / "My- Series" / "My- Series.cbz"
    assert archive_path.is_file()
    with zipfile.ZipFile(archive_path) as archive:
        names = archive.namelist()
        comic_info = ET.fromstring(archive.read("ComicInfo.xml"))
    assert names[:2] == ["page_001.jpg", "page_002.jpg"]
    assert len(names) == 7 + 1
    assert comic_info.findtext("Title") == "My: Series"
    assert f"Wrote {archive_path} (7 pages)" in result.output


def test_build_command_manual_sizes_and_separator(
    tmp_path: Path, natural_order_tree: Path
) -> None:
    runner = CliRunner()
    out_dir = tmp_path / "out"

    result = runner.invoke(
        app,
        [
            "build",
            str(natural_order_tree),
            "--out",
            str(out_dir),
            "--strategy",
            "manual",
            "--volume-sizes",
            "2,1",
            "--separator",
            " _ ",
        ],
    )

    assert result.exit_code == 0, result.output
    assert "  Volume 1: 2 chapter(s)" in result.output
    assert sorted(path.name for path in (out_dir / "Series").glob("*.cbz")) == [
        "Series _ Volume 1.cbz",
        "Series _ Volume 2.cbz",
    ]


def test_build_command_image_analysis_splits_on_gray_covers(tmp_path: Path) -> None:
    """Grayscale leading pages should start new volumes."""

    source = build_source_tree(
        tmp_path / "Covers",
        {
            "Chapter 1": ["1.png", "2.png"],
            "Chapter 2": ["1.png", "2.png"],
            "Chapter 3": ["1.png", "2.png"],
            "Chapter 4": ["1.png", "2.png"],
        },
        gray_pages=["Chapter 1/1.png", "Chapter 3/1.png"],
    )
    runner = CliRunner()

    result = runner.invoke(
        app,
        [
            "build",
            str(source),
            "--out",
            str(tmp_path / "out"),
            "--strategy",
            "image-analysis",
            "--sensibility",
            "75",
        ],
    )

    assert result.exit_code == 0, result.output
    assert "Strategy: image_analysis" in result.output
    assert "  Volume 1: 2 chapter(s)" in result.output
    assert "  Volume 2: 2 chapter(s)" in result.output


def test_build_command_reads_yaml_config(tmp_path: Path, volume_named_tree: Path) -> None:
    config_path = tmp_path / "pagebinder.yaml"
    config_path.write_text(
        "\n".join(
            [
                f"source_path: {volume_named_tree}",
                f"target_path: {tmp_path / 'out'}",
                "title: Configured",
                "grouping_strategy: flat",
                "create_output_directory: false",
            ]
        ),
        encoding="utf-8",
    )
    (tmp_path / "out").mkdir()
    runner = CliRunner()

    result = runner.invoke(app, ["build", "--config", str(config_path)])

    assert result.exit_code == 0, result.output
    assert (tmp_path / "out" / "Configured.cbz").is_file()
