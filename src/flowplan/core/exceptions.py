"""Custom exception hierarchy for FlowPlan."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional


@dataclass(eq=False)
class FlowplanError(Exception):
    """Base exception type for all FlowPlan errors."""

    message: str
    context: Optional[Dict[str, Any]] = None

    def __str__(self) -> str:
        if not self.context:
            return self.message
        return f"{self.message} | context={self.context}"

    def _context_value(self, key: str) -> Any:
        return (self.context or {}).get(key)


class ConfigurationError(FlowplanError):
    """Raised when configuration is missing or invalid."""


class FlowchartNotFoundError(FlowplanError):
    """Raised when a flowchart document does not exist in the store."""

    @classmethod
    def for_id(cls, flowchart_id: str) -> "FlowchartNotFoundError":
        return cls(f"Flowchart '{flowchart_id}' not found", {"flowchart_id": flowchart_id})

    @property
    def flowchart_id(self) -> Optional[str]:
        return self._context_value("flowchart_id")


class NodeNotFoundError(FlowplanError):
    """Raised when a node id is unknown within an existing flowchart."""

    @classmethod
    def for_ids(cls, flowchart_id: str, node_id: str) -> "NodeNotFoundError":
        return cls(
            f"Node '{node_id}' not found in flowchart '{flowchart_id}'",
            {"flowchart_id": flowchart_id, "node_id": node_id},
        )

    @property
    def flowchart_id(self) -> Optional[str]:
        return self._context_value("flowchart_id")

    @property
    def node_id(self) -> Optional[str]:
        return self._context_value("node_id")


class FlowchartDecodeError(FlowplanError):
    """Raised when on-disk content is not a valid serialized flowchart."""


class FlowchartValidationError(FlowplanError):
    """Raised when a node or edge payload has an invalid shape."""


class LayoutError(FlowplanError):
    """Raised when the layout computation fails. The document is left unmodified."""
