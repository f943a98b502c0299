"""Filesystem discovery, ordering, and image inspection for pagebinder."""

from .collector import PathCollector
from .imaging import CoverDetector, is_probable_cover
from .ordering import (
    ExternalComparator,
    LexicalOrder,
    NaturalOrder,
    PathComparator,
    VolumeChapterOrder,
)

__all__ = [
    "CoverDetector",
    "ExternalComparator",
    "LexicalOrder",
    "NaturalOrder",
    "PathCollector",
    "PathComparator",
    "VolumeChapterOrder",
    "is_probable_cover",
]
