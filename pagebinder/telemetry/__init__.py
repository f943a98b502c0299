"""Run-event logging for pagebinder pipelines."""

from .logger import RunLogger

__all__ = ["RunLogger"]
