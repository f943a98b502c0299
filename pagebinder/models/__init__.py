"""Shared typed data models for pagebinder.

This package contains dataclasses and enums used across pipeline modules to avoid
cross-module coupling and circular imports.
"""

from .datatypes import (
    AnalyzeFinding,
    AnalyzeReport,
    Chapter,
    ChapterSet,
    CollectionDepth,
    CollectionResult,
    FindingSeverity,
    GeneralFinding,
    GeneratedVolume,
    GroupingStrategy,
    InconsistentImageFormat,
    InconsistentPageCount,
    LongPath,
    MissingNumericIdentifier,
    PermissionDenied,
    SeriesMetadata,
    SpecialCharactersInPath,
    UnsupportedImageFormat,
    UnusualFileSize,
    Volume,
    VolumeStructure,
    VolumeStructureReport,
)

__all__ = [
    "AnalyzeFinding",
    "AnalyzeReport",
    "Chapter",
    "ChapterSet",
    "CollectionDepth",
    "CollectionResult",
    "FindingSeverity",
    "GeneralFinding",
    "GeneratedVolume",
    "GroupingStrategy",
    "InconsistentImageFormat",
    "InconsistentPageCount",
    "LongPath",
    "MissingNumericIdentifier",
    "PermissionDenied",
    "SeriesMetadata",
    "SpecialCharactersInPath",
    "UnsupportedImageFormat",
    "UnusualFileSize",
    "Volume",
    "VolumeStructure",
    "VolumeStructureReport",
]
