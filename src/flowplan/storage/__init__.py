"""Flowchart persistence."""

from .store import FlowchartStore

__all__ = ["FlowchartStore"]
