"""pagebinder pipeline package.

This package contains the state machine that sequences collection, analysis,
grouping, and generation.
"""

from .orchestrator import PagebinderPipeline
from .state import PipelineStage, PipelineState

__all__ = ["PagebinderPipeline", "PipelineStage", "PipelineState"]
