"""Shared pytest fixtures for the full pagebinder test suite."""

from __future__ import annotations

from pathlib import Path

import pytest

from tests.fakes import RecordingGeneratorFactory
from tests.fixture_paths import build_source_tree


@pytest.fixture
def natural_order_tree(tmp_path: Path) -> Path:
    """Three chapters whose names only sort correctly by numeric value."""

    return build_source_tree(
        tmp_path / "Series",
        {
            "Chapter 10": ["page1.png", "page2.png"],
            "Chapter 2": ["page10.png", "page2.png", "page1.png"],
            "Chapter 1": ["page1.jpg", "page2.jpg"],
        },
    )


@pytest.fixture
def volume_named_tree(tmp_path: Path) -> Path:
    """Chapters named `<volume>-<chapter>` spanning two volumes."""

    return build_source_tree(
        tmp_path / "Named",
        {
            "001-001": ["01.png", "02.png"],
            "001-002": ["01.png", "02.png"],
            "002-001": ["01.png", "02.png"],
        },
    )


@pytest.fixture
def recording_factory() -> RecordingGeneratorFactory:
    return RecordingGeneratorFactory()
