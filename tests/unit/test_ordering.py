"""Unit tests for natural-order comparators and identifier parsing."""

from __future__ import annotations

from pathlib import Path
import re

import pytest

from pagebinder.io.ordering import (
    ExternalComparator,
    LexicalOrder,
    NaturalOrder,
    PathComparator,
    VolumeChapterOrder,
    extract_numeric_key,
    missing_identifier_findings,
    parse_volume_chapter,
    sort_paths,
)
from pagebinder.models.datatypes import MissingNumericIdentifier


def _names(paths: list[Path]) -> list[str]:
    return [path.name for path in paths]


def test_natural_order_sorts_numbers_by_value() -> None:
    """`page2` should sort before `page10` under natural ordering."""

    paths = [Path("page10.png"), Path("page2.png"), Path("page1.png")]

    assert _names(sort_paths(paths, NaturalOrder())) == ["page1.png", "page2.png", "page10.png"]


def test_natural_order_handles_decimal_chapter_numbers() -> None:
    paths = [Path("Ch 3"), Path("Ch 2.5"), Path("Ch 2")]

    assert _names(sort_paths(paths, NaturalOrder())) == ["Ch 2", "Ch 2.5", "Ch 3"]


def test_natural_order_places_unmatched_names_last_in_byte_order() -> None:
    paths = [Path("credits.png"), Path("page2.png"), Path("Afterword.png"), Path("page1.png")]

    ordered = sort_paths(paths, NaturalOrder())

    assert _names(ordered) == ["page1.png", "page2.png", "Afterword.png", "credits.png"]


def test_natural_order_breaks_numeric_ties_by_name() -> None:
    paths = [Path("b_01.png"), Path("a_01.png")]

    assert _names(sort_paths(paths, NaturalOrder())) == ["a_01.png", "b_01.png"]


def test_natural_order_is_repeatable() -> None:
    paths = [Path(name) for name in ["x10", "x2", "y", "x1", "x2.5", "z"]]

    first = sort_paths(paths, NaturalOrder())
    second = sort_paths(list(reversed(paths)), NaturalOrder())

    assert first == second


def test_custom_regex_uses_captured_group() -> None:
    """A caller regex should key on its captured group, not the first number."""

    comparator = NaturalOrder(re.compile(r"chapter_(\d+)"))
    paths = [Path("v2_chapter_3"), Path("v1_chapter_10"), Path("v3_chapter_1")]

    assert _names(sort_paths(paths, comparator)) == [
        "v3_chapter_1",
        "v2_chapter_3",
        "v1_chapter_10",
    ]


def test_volume_chapter_order_sorts_by_pair() -> None:
    paths = [Path("002-001"), Path("001-010"), Path("001-002")]

    assert _names(sort_paths(paths, VolumeChapterOrder())) == ["001-002", "001-010", "002-001"]


def test_lexical_order_compares_raw_names() -> None:
    paths = [Path("page10.png"), Path("page2.png"), Path("page1.png")]

    assert _names(sort_paths(paths, LexicalOrder())) == ["page1.png", "page10.png", "page2.png"]


def test_external_comparator_takes_precedence() -> None:
    """A wrapped function should fully control ordering."""

    def reverse_by_name(a: Path, b: Path) -> int:
        return (a.name < b.name) - (a.name > b.name)

    comparator = ExternalComparator(reverse_by_name)
    paths = [Path("1"), Path("3"), Path("2")]

    assert isinstance(comparator, PathComparator)
    assert _names(sort_paths(paths, comparator)) == ["3", "2", "1"]


@pytest.mark.parametrize(
    ("name", "expected"),
    [
        ("001-002", (1.0, 2.0)),
        ("Vol 003-012.5 extra", (3.0, 12.5)),
        ("no numbers", (None, None)),
    ],
)
def test_parse_volume_chapter_extracts_pair(
    name: str, expected: tuple[float | None, float | None]
) -> None:
    assert parse_volume_chapter(name) == expected


def test_parse_volume_chapter_splits_whole_match_without_groups() -> None:
    assert parse_volume_chapter("vol 4-7", re.compile(r"\d+-\d+")) == (4.0, 7.0)


def test_extract_numeric_key_ignores_non_numeric_groups() -> None:
    assert extract_numeric_key("chapter-x", re.compile(r"chapter-(\w)")) is None
    assert extract_numeric_key("no digits", re.compile(r"(\d+)")) is None


def test_missing_identifier_findings_only_for_regex_comparators() -> None:
    paths = [Path("cover.png"), Path("page1.png")]

    assert missing_identifier_findings(paths, NaturalOrder()) == [
        MissingNumericIdentifier(path=Path("cover.png"))
    ]
    assert missing_identifier_findings(paths, LexicalOrder()) == []
