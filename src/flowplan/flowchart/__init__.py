"""Flowchart document model and layout."""

from .layout import LayoutDirection, auto_layout, count_edge_crossings
from .model import FlowchartDocument, FlowEdge, FlowNode

__all__ = [
    "FlowchartDocument",
    "FlowEdge",
    "FlowNode",
    "LayoutDirection",
    "auto_layout",
    "count_edge_crossings",
]
