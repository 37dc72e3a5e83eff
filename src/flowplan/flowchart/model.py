"""Flowchart document schema and wire-format normalization."""

from __future__ import annotations

import copy
import math
import random
import re
import string
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

PLANNING_NODE_TYPES = ("task", "decision", "note", "phase_group", "start", "end", "milestone")
ENGINEERING_NODE_TYPES = (
    "file_ref",
    "api_endpoint",
    "db_entity",
    "test_checkpoint",
    "mcp_tool",
    "human_action",
    "parallel_fork",
)
ANNOTATION_NODE_TYPES = ("annotation_note", "annotation_text")
NODE_TYPES = frozenset(PLANNING_NODE_TYPES + ENGINEERING_NODE_TYPES + ANNOTATION_NODE_TYPES)

GROUP_NODE_TYPE = "phase_group"
NODE_STATUSES = frozenset({"pending", "in_progress", "completed", "blocked"})
EDGE_TYPES = frozenset({"default", "success", "failure", "conditional"})

DEFAULT_NODE_TYPE = "task"
DEFAULT_STATUS = "pending"
DEFAULT_EDGE_TYPE = "default"

_SUFFIX_ALPHABET = string.ascii_lowercase + string.digits
_NON_ALNUM = re.compile(r"[^a-z0-9]+")


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


def random_suffix(length: int = 6) -> str:
    """Short non-cryptographic id suffix. Collisions are possible and accepted."""
    return "".join(random.choice(_SUFFIX_ALPHABET) for _ in range(length))


def flowchart_id_from_name(name: str) -> str:
    """Slugify a flowchart name: `"  Spaces & Symbols!  "` -> `"spaces-symbols"`."""
    return _NON_ALNUM.sub("-", (name or "").lower()).strip("-")


def is_annotation_type(node_type: str) -> bool:
    return node_type in ANNOTATION_NODE_TYPES


def _coerce_float(value: Any, default: float = 0.0) -> float:
    if isinstance(value, bool):
        return default
    if isinstance(value, (int, float)):
        return float(value)
    return default


def _coerce_version(value: Any) -> int:
    """Hand-edited files may carry `7.0` or `"7"`; anything unusable counts as 1."""
    if isinstance(value, bool):
        return 1
    if isinstance(value, str):
        try:
            value = float(value.strip())
        except ValueError:
            return 1
    if isinstance(value, float):
        if not math.isfinite(value):
            return 1
        value = int(value)
    if isinstance(value, int):
        return max(1, value)
    return 1


def _coerce_map(value: Any) -> Dict[str, Any]:
    if isinstance(value, dict):
        return dict(value)
    return {}


def _coerce_list(value: Any) -> List[Any]:
    if isinstance(value, list):
        return copy.deepcopy(value)
    return []


@dataclass
class Position:
    x: float = 0.0
    y: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {"x": self.x, "y": self.y}

    @classmethod
    def from_dict(cls, data: Any, default: Optional["Position"] = None) -> "Position":
        fallback = default or cls()
        if not isinstance(data, dict):
            return cls(fallback.x, fallback.y)
        return cls(
            x=_coerce_float(data.get("x"), fallback.x),
            y=_coerce_float(data.get("y"), fallback.y),
        )


@dataclass
class Viewport:
    x: float = 0.0
    y: float = 0.0
    zoom: float = 1.0

    def to_dict(self) -> Dict[str, Any]:
        return {"x": self.x, "y": self.y, "zoom": self.zoom}

    @classmethod
    def from_dict(cls, data: Any) -> "Viewport":
        if not isinstance(data, dict):
            return cls()
        return cls(
            x=_coerce_float(data.get("x")),
            y=_coerce_float(data.get("y")),
            zoom=_coerce_float(data.get("zoom"), 1.0),
        )


@dataclass
class NodeData:
    label: str = ""
    description: str = ""
    status: str = DEFAULT_STATUS
    # Opaque per-node-type payloads; merged key-wise, never interpreted.
    metadata: Dict[str, Any] = field(default_factory=dict)
    style: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "label": self.label,
            "description": self.description,
            "status": self.status,
            "metadata": copy.deepcopy(self.metadata),
            "style": copy.deepcopy(self.style),
        }

    @classmethod
    def from_dict(cls, data: Any) -> "NodeData":
        if not isinstance(data, dict):
            return cls()
        status = str(data.get("status") or DEFAULT_STATUS)
        if status not in NODE_STATUSES:
            status = DEFAULT_STATUS
        return cls(
            label=str(data.get("label") or ""),
            description=str(data.get("description") or ""),
            status=status,
            metadata=copy.deepcopy(_coerce_map(data.get("metadata"))),
            style=copy.deepcopy(_coerce_map(data.get("style"))),
        )


@dataclass
class FlowNode:
    id: str
    type: str = DEFAULT_NODE_TYPE
    position: Position = field(default_factory=Position)
    parent_node: Optional[str] = None
    data: NodeData = field(default_factory=NodeData)

    @property
    def is_group(self) -> bool:
        return self.type == GROUP_NODE_TYPE

    @property
    def is_annotation(self) -> bool:
        return is_annotation_type(self.type)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "position": self.position.to_dict(),
            "parentNode": self.parent_node,
            "data": self.data.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FlowNode":
        node_type = str(data.get("type") or DEFAULT_NODE_TYPE)
        if node_type not in NODE_TYPES:
            node_type = DEFAULT_NODE_TYPE
        parent = data.get("parentNode")
        return cls(
            id=str(data.get("id") or ""),
            type=node_type,
            position=Position.from_dict(data.get("position")),
            parent_node=str(parent) if parent else None,
            data=NodeData.from_dict(data.get("data")),
        )


@dataclass
class EdgeData:
    label: str = ""
    animated: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {"label": self.label, "animated": self.animated}

    @classmethod
    def from_dict(cls, data: Any) -> "EdgeData":
        if not isinstance(data, dict):
            return cls()
        return cls(label=str(data.get("label") or ""), animated=bool(data.get("animated", False)))


@dataclass
class FlowEdge:
    id: str
    source: str
    target: str
    type: str = DEFAULT_EDGE_TYPE
    data: EdgeData = field(default_factory=EdgeData)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "source": self.source,
            "target": self.target,
            "type": self.type,
            "data": self.data.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FlowEdge":
        edge_type = str(data.get("type") or DEFAULT_EDGE_TYPE)
        if edge_type not in EDGE_TYPES:
            edge_type = DEFAULT_EDGE_TYPE
        return cls(
            id=str(data.get("id") or ""),
            source=str(data.get("source") or ""),
            target=str(data.get("target") or ""),
            type=edge_type,
            data=EdgeData.from_dict(data.get("data")),
        )


@dataclass
class Annotations:
    """Freehand strokes and arrows. Passed through untouched."""

    strokes: List[Dict[str, Any]] = field(default_factory=list)
    arrows: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {"strokes": copy.deepcopy(self.strokes), "arrows": copy.deepcopy(self.arrows)}

    @classmethod
    def from_dict(cls, data: Any) -> "Annotations":
        if not isinstance(data, dict):
            return cls()
        return cls(strokes=_coerce_list(data.get("strokes")), arrows=_coerce_list(data.get("arrows")))


@dataclass
class FlowchartDocument:
    id: str
    name: str = ""
    description: str = ""
    version: int = 1
    created_at: str = field(default_factory=utc_now)
    updated_at: str = field(default_factory=utc_now)
    viewport: Viewport = field(default_factory=Viewport)
    engineering_mode: bool = False
    nodes: List[FlowNode] = field(default_factory=list)
    edges: List[FlowEdge] = field(default_factory=list)
    annotations: Annotations = field(default_factory=Annotations)

    def get_node(self, node_id: str) -> Optional[FlowNode]:
        for node in self.nodes:
            if node.id == node_id:
                return node
        return None

    def bump_version(self) -> None:
        self.version += 1
        self.updated_at = utc_now()

    def copy(self) -> "FlowchartDocument":
        return copy.deepcopy(self)

    def summary(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "updatedAt": self.updated_at,
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "version": self.version,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
            "viewport": self.viewport.to_dict(),
            "engineeringMode": self.engineering_mode,
            "nodes": [node.to_dict() for node in self.nodes],
            "edges": [edge.to_dict() for edge in self.edges],
            "annotations": self.annotations.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FlowchartDocument":
        if not isinstance(data, dict):
            raise TypeError(f"Flowchart document must be an object, got {type(data).__name__}")

        now = utc_now()
        version = _coerce_version(data.get("version"))

        nodes = [FlowNode.from_dict(node) for node in data.get("nodes") or [] if isinstance(node, dict)]
        edges = [FlowEdge.from_dict(edge) for edge in data.get("edges") or [] if isinstance(edge, dict)]

        return cls(
            id=str(data.get("id") or ""),
            name=str(data.get("name") or ""),
            description=str(data.get("description") or ""),
            version=version,
            created_at=str(data.get("createdAt") or now),
            updated_at=str(data.get("updatedAt") or now),
            viewport=Viewport.from_dict(data.get("viewport")),
            engineering_mode=bool(data.get("engineeringMode", False)),
            nodes=nodes,
            edges=edges,
            annotations=Annotations.from_dict(data.get("annotations")),
        )
