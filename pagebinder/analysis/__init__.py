"""Structural analysis of collected page data."""

from .analyzer import ContentAnalyzer

__all__ = ["ContentAnalyzer"]
