"""Unit tests for shared config and CLI parsing helpers."""

import pytest

from pagebinder.parsing import (
    normalize_optional_string,
    parse_permissive_boolean,
    parse_required_boolean,
    parse_volume_sizes,
)


def test_normalize_optional_string_handles_blank_values() -> None:
    """Normalization should return `None` for `None` and blank textual values."""

    assert normalize_optional_string(None) is None
    assert normalize_optional_string("   ") is None
    assert normalize_optional_string("  value  ") == "value"


@pytest.mark.parametrize(
    ("token", "expected"),
    [("TrUe", True), ("  ON ", True), ("FALSE", False), ("nO", False)],
)
def test_parse_permissive_boolean_accepts_mixed_case_tokens(
    token: str, expected: bool
) -> None:
    assert parse_permissive_boolean(token) is expected


@pytest.mark.parametrize("value", ["", "maybe", "2", object()])
def test_parse_permissive_boolean_returns_none_for_invalid_tokens(value: object) -> None:
    assert parse_permissive_boolean(value) is None


def test_parse_required_boolean_raises_for_invalid_token() -> None:
    with pytest.raises(ValueError, match=r"`create_output_directory` must be a boolean value"):
        parse_required_boolean("maybe", "create_output_directory")


def test_parse_volume_sizes_accepts_text_and_sequences() -> None:
    """Manual size overrides should parse from comma text or integer lists."""

    assert parse_volume_sizes(" 10, 8 ,5 ", "volume_sizes") == (10, 8, 5)
    assert parse_volume_sizes([2, "3"], "volume_sizes") == (2, 3)
    assert parse_volume_sizes("   ", "volume_sizes") is None
    assert parse_volume_sizes(None, "volume_sizes") is None


@pytest.mark.parametrize("value", ["1,,2", "1,0", "-2", "a,b", [1, None]])
def test_parse_volume_sizes_rejects_invalid_entries(value: object) -> None:
    with pytest.raises(ValueError, match=r"`volume_sizes`"):
        parse_volume_sizes(value, "volume_sizes")
