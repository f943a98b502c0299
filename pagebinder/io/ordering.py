"""Deterministic path ordering for chapters and pages.

Responsibilities:
- Define the `PathComparator` protocol and its built-in implementations.
- Extract numeric sort keys from file names with configurable regexes.
- Parse `(volume, chapter)` identifiers from names like `003-012.5`.

Every comparator yields a total order: ties on the numeric key are broken by the
byte representation of the name, then of the full path.
"""

from __future__ import annotations

from dataclasses import dataclass
from functools import cmp_to_key
import os
from pathlib import Path
import re
from typing import Callable, Iterable, Protocol, runtime_checkable

from ..models.datatypes import MissingNumericIdentifier


DEFAULT_NUMBER_PATTERN = r"(\d+(?:\.\d+)?)"
DEFAULT_VOLUME_CHAPTER_PATTERN = r"(\d+)-(\d+(?:\.\d+)?)"

DEFAULT_NUMBER_REGEX = re.compile(DEFAULT_NUMBER_PATTERN)
DEFAULT_VOLUME_CHAPTER_REGEX = re.compile(DEFAULT_VOLUME_CHAPTER_PATTERN)

_NumericKey = tuple[float, ...]


@runtime_checkable
class PathComparator(Protocol):
    """Three-way comparison of two paths: negative, zero, or positive."""

    def compare(self, a: Path, b: Path) -> int:
        """Return `<0` when `a` sorts first, `0` when equal, `>0` otherwise."""


def _name_bytes(path: Path) -> bytes:
    return os.fsencode(path.name)


def _tie_break(a: Path, b: Path) -> int:
    left = (_name_bytes(a), os.fsencode(str(a)))
    right = (_name_bytes(b), os.fsencode(str(b)))
    return (left > right) - (left < right)


def _to_number(token: str | None) -> float | None:
    if token is None:
        return None
    try:
        return float(token)
    except ValueError:
        return None


def extract_numeric_key(name: str, regex: re.Pattern[str]) -> _NumericKey | None:
    """Return the numeric sort key of a name, or `None` when no usable number matches.

    Captured groups are used in order; optional groups that did not participate are
    skipped. A pattern without groups contributes its whole match.
    """

    match = regex.search(name)
    if match is None:
        return None
    tokens = match.groups() if regex.groups else (match.group(0),)
    values: list[float] = []
    for token in tokens:
        if token is None:
            continue
        number = _to_number(token)
        if number is None:
            return None
        values.append(number)
    if not values:
        return None
    return tuple(values)


def parse_volume_chapter(
    name: str,
    regex: re.Pattern[str] = DEFAULT_VOLUME_CHAPTER_REGEX,
) -> tuple[float | None, float | None]:
    """Parse a `(volume_number, chapter_number)` pair from a chapter name.

    The first two captured groups are used. When the pattern captures fewer than
    two groups the whole match is split on `-` instead. Missing or non-numeric
    parts are returned as `None`.
    """

    match = regex.search(name)
    if match is None:
        return None, None
    if regex.groups >= 2:
        volume_token, chapter_token = match.group(1), match.group(2)
    else:
        parts = match.group(0).split("-", 1)
        volume_token = parts[0] if parts else None
        chapter_token = parts[1] if len(parts) > 1 else None
    return _to_number(volume_token), _to_number(chapter_token)


class NaturalOrder:
    """Order paths by the numbers extracted from their names.

    Names with a match sort before names without one; unmatched names compare
    lexically by their filesystem bytes.
    """

    def __init__(self, regex: re.Pattern[str] | str | None = None) -> None:
        if regex is None:
            self.regex = DEFAULT_NUMBER_REGEX
        elif isinstance(regex, str):
            self.regex = re.compile(regex)
        else:
            self.regex = regex

    def key_for(self, path: Path) -> _NumericKey | None:
        return extract_numeric_key(path.name, self.regex)

    def compare(self, a: Path, b: Path) -> int:
        left = self.key_for(a)
        right = self.key_for(b)
        if left is not None and right is None:
            return -1
        if left is None and right is not None:
            return 1
        if left is not None and right is not None and left != right:
            return -1 if left < right else 1
        return _tie_break(a, b)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.regex.pattern!r})"


class VolumeChapterOrder(NaturalOrder):
    """Order chapter paths by their `(volume, chapter)` identifier pair."""

    def __init__(self, regex: re.Pattern[str] | str | None = None) -> None:
        super().__init__(regex if regex is not None else DEFAULT_VOLUME_CHAPTER_REGEX)

    def key_for(self, path: Path) -> _NumericKey | None:
        volume, chapter = parse_volume_chapter(path.name, self.regex)
        if volume is None:
            return None
        return (volume, chapter if chapter is not None else 0.0)


class LexicalOrder:
    """Order paths by the raw bytes of their names."""

    def compare(self, a: Path, b: Path) -> int:
        return _tie_break(a, b)

    def __repr__(self) -> str:
        return "LexicalOrder()"


@dataclass(frozen=True, slots=True)
class ExternalComparator:
    """Adapt a caller-provided `(a, b) -> int` function to `PathComparator`."""

    function: Callable[[Path, Path], int]

    def compare(self, a: Path, b: Path) -> int:
        return int(self.function(a, b))


def sort_paths(paths: Iterable[Path], comparator: PathComparator) -> list[Path]:
    """Return paths sorted with the given comparator."""

    return sorted(paths, key=cmp_to_key(comparator.compare))


def missing_identifier_findings(
    paths: Iterable[Path],
    comparator: PathComparator,
) -> list[MissingNumericIdentifier]:
    """Report names that a regex-based comparator could not key numerically.

    Comparators without numeric keys (lexical or external) never produce findings.
    """

    if not isinstance(comparator, NaturalOrder):
        return []
    return [
        MissingNumericIdentifier(path=path)
        for path in paths
        if comparator.key_for(path) is None
    ]
