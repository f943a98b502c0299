"""Top-level package for pagebinder.

This package turns directories of comic and manga page scans into volume-structured
ebook archives. The main orchestration entry point is `PagebinderPipeline`.
"""

from .pipeline import PagebinderPipeline

__all__ = ["PagebinderPipeline", "__version__"]

__version__ = "0.1.0"
