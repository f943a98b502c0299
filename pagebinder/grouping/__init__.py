"""Volume grouping strategies."""

from .engine import (
    GroupingParams,
    VolumeGroupingEngine,
    detect_volume_starts,
    flatten_to_single_volume,
)

__all__ = [
    "GroupingParams",
    "VolumeGroupingEngine",
    "detect_volume_starts",
    "flatten_to_single_volume",
]
