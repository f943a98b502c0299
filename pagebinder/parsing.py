"""Shared parsing helpers for config, environment, and CLI value normalization."""

from __future__ import annotations


_TRUE_BOOLEAN_TOKENS = frozenset({"1", "true", "yes", "on"})
_FALSE_BOOLEAN_TOKENS = frozenset({"0", "false", "no", "off"})


def normalize_optional_string(value: object) -> str | None:
    """Normalize an optional value to a stripped non-empty string.

    Args:
        value: Arbitrary input value.

    Returns:
        Stripped string value, or `None` when the value is empty after trimming.
    """

    if value is None:
        return None
    text = str(value).strip()
    if not text:
        return None
    return text


def parse_permissive_boolean(value: object) -> bool | None:
    """Parse a permissive boolean token and return `None` for invalid values."""

    if isinstance(value, bool):
        return value

    normalized = normalize_optional_string(value)
    if normalized is None:
        return None

    token = normalized.lower()
    if token in _TRUE_BOOLEAN_TOKENS:
        return True
    if token in _FALSE_BOOLEAN_TOKENS:
        return False
    return None


def parse_required_boolean(value: str, field_name: str) -> bool:
    """Parse a required boolean value from accepted textual tokens.

    Args:
        value: Text value to parse.
        field_name: Field name for an actionable validation error message.

    Raises:
        ValueError: If the token is not one of the accepted boolean values.
    """

    parsed = parse_permissive_boolean(value)
    if parsed is not None:
        return parsed

    raise ValueError(
        f"`{field_name}` must be a boolean value (`true`/`false`, `1`/`0`, `yes`/`no`)."
    )


def parse_volume_sizes(value: object, field_name: str) -> tuple[int, ...] | None:
    """Parse a manual volume-size override such as `"10,8,5"` or `[10, 8, 5]`.

    Blank input yields `None` (no override). Every size must be a positive integer.

    Raises:
        ValueError: If any entry is not a positive integer.
    """

    if value is None:
        return None
    if isinstance(value, (list, tuple)):
        raw_items = [normalize_optional_string(item) for item in value]
    else:
        normalized = normalize_optional_string(value)
        if normalized is None:
            return None
        raw_items = [normalize_optional_string(item) for item in normalized.split(",")]

    sizes: list[int] = []
    for item in raw_items:
        if item is None:
            raise ValueError(f"`{field_name}` contains a blank entry.")
        try:
            size = int(item)
        except ValueError as exc:
            raise ValueError(
                f"`{field_name}` entries must be positive integers, got `{item}`."
            ) from exc
        if size <= 0:
            raise ValueError(f"`{field_name}` entries must be positive integers, got `{item}`.")
        sizes.append(size)

    if not sizes:
        return None
    return tuple(sizes)
