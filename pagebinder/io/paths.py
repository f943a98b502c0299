"""Path inspection and naming helpers shared by collection, analysis, and output.

Responsibilities:
- Classify files as hidden or as supported page images.
- Detect portability hazards in paths (special characters, excessive length).
- Sanitize titles into file-system-safe file names.
- Sniff image formats from leading file bytes.
"""

from __future__ import annotations

from pathlib import Path


SUPPORTED_IMAGE_EXTENSIONS = frozenset({"jpg", "jpeg", "png", "webp"})
SPECIAL_PATH_CHARACTERS = frozenset('<>"|?*')
MAX_PORTABLE_PATH_LENGTH = 260
SIGNATURE_SNIFF_BYTES = 12

_FILENAME_REPLACED_CHARACTERS = frozenset('<>"|?*:/\\')


def is_hidden(path: Path) -> bool:
    """Return whether the final path component is a dot-file."""

    return path.name.startswith(".")


def extension_of(path: Path) -> str:
    """Return the lowercase extension without the leading dot, or an empty string."""

    return path.suffix[1:].lower() if path.suffix else ""


def has_supported_extension(path: Path) -> bool:
    return extension_of(path) in SUPPORTED_IMAGE_EXTENSIONS


def has_special_characters(path: Path) -> bool:
    """Return whether the path contains characters unsafe for archives and Windows."""

    return any(character in SPECIAL_PATH_CHARACTERS for character in str(path))


def path_length(path: Path) -> int:
    return len(str(path))


def exceeds_path_limit(path: Path) -> bool:
    return path_length(path) > MAX_PORTABLE_PATH_LENGTH


def sanitize_filename(name: str) -> str:
    """Replace reserved file-name characters with `-` and control characters with `_`.

    Example:
        `sanitize_filename("Who? Me: Vol/1")` returns `"Who- Me- Vol-1"`.
    """

    sanitized: list[str] = []
    for character in name:
        if character in _FILENAME_REPLACED_CHARACTERS:
            sanitized.append("-")
        elif ord(character) < 32 or ord(character) == 127:
            sanitized.append("_")
        else:
            sanitized.append(character)
    return "".join(sanitized)


def sniff_image_format(header: bytes) -> str | None:
    """Return the canonical extension for a supported image signature.

    Args:
        header: Leading bytes of the file; at least 12 bytes are needed for WebP.

    Returns:
        `jpg`, `png`, or `webp` when recognized, otherwise `None`.
    """

    if header.startswith(b"\xff\xd8\xff"):
        return "jpg"
    if header.startswith(b"\x89PNG\r\n\x1a\n"):
        return "png"
    if len(header) >= 12 and header[:4] == b"RIFF" and header[8:12] == b"WEBP":
        return "webp"
    return None


def canonical_extension(ext: str) -> str:
    """Fold extension aliases so `jpeg` and `jpg` compare equal."""

    lowered = ext.lower()
    return "jpg" if lowered == "jpeg" else lowered


def common_parent(paths: list[Path]) -> Path | None:
    """Return the deepest shared ancestor of the given paths, if any."""

    if not paths:
        return None
    shared = list(paths[0].parts)
    for path in paths[1:]:
        parts = path.parts
        limit = min(len(shared), len(parts))
        index = 0
        while index < limit and shared[index] == parts[index]:
            index += 1
        shared = shared[:index]
        if not shared:
            return None
    return Path(*shared)
