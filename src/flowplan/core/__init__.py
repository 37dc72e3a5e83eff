"""Core types shared across FlowPlan."""

from .exceptions import (
    ConfigurationError,
    FlowchartDecodeError,
    FlowchartNotFoundError,
    FlowchartValidationError,
    FlowplanError,
    LayoutError,
    NodeNotFoundError,
)

__all__ = [
    "ConfigurationError",
    "FlowchartDecodeError",
    "FlowchartNotFoundError",
    "FlowchartValidationError",
    "FlowplanError",
    "LayoutError",
    "NodeNotFoundError",
]
