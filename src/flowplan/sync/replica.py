"""In-memory editable mirror of one flowchart.

A replica applies local edits optimistically, keeps an undo/redo history and
saves itself back through a `saver(flowchart_id, payload)` callable after a
short quiet period. Authoritative pushes from the broadcaster replace local
state wholesale (last writer wins, including over unsaved local edits).
"""

from __future__ import annotations

import copy
import json
import logging
import threading
from typing import Any, Callable, Dict, List, Optional, Union

import requests

from ..flowchart.model import (
    DEFAULT_EDGE_TYPE,
    FlowchartDocument,
    FlowEdge,
    FlowNode,
    Viewport,
    random_suffix,
    utc_now,
)
from .broadcaster import UPDATE_MESSAGE_TYPE
from .history import HistoryEntry, UndoHistory

logger = logging.getLogger("flowplan.sync")

Saver = Callable[[str, Dict[str, Any]], Any]

DEFAULT_AUTOSAVE_DELAY = 1.0


def store_saver(store: Any) -> Saver:
    """Saver that writes straight into an in-process `FlowchartStore`."""

    def save(flowchart_id: str, payload: Dict[str, Any]) -> Any:
        return store.upsert(flowchart_id, payload)

    return save


class RestFlowchartSaver:
    """Saver that PUTs the full document to a running FlowPlan API server."""

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 10.0,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

    def __call__(self, flowchart_id: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        response = self.session.put(
            f"{self.base_url}/api/flowchart/{flowchart_id}",
            json=payload,
            timeout=self.timeout,
        )
        response.raise_for_status()
        return response.json()


class FlowchartReplica:
    def __init__(
        self,
        saver: Optional[Saver] = None,
        *,
        autosave_delay: float = DEFAULT_AUTOSAVE_DELAY,
        history_limit: int = 50,
    ):
        self.saver = saver
        self.autosave_delay = autosave_delay
        self.history = UndoHistory(limit=history_limit)

        self.flowchart_id: Optional[str] = None
        self.name = ""
        self.description = ""
        self.engineering_mode = False
        self.viewport = Viewport()
        self.version = 1
        self.created_at: Optional[str] = None
        self.nodes: List[Dict[str, Any]] = []
        self.edges: List[Dict[str, Any]] = []
        self.strokes: List[Dict[str, Any]] = []
        self.arrows: List[Dict[str, Any]] = []

        self.dirty = False
        self.last_saved_at: Optional[str] = None

        self._lock = threading.RLock()
        self._timer: Optional[threading.Timer] = None
        self._revision = 0
        self._closed = False

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------

    def to_document(self) -> FlowchartDocument:
        with self._lock:
            return FlowchartDocument.from_dict(
                {
                    "id": self.flowchart_id or "",
                    "name": self.name,
                    "description": self.description,
                    "version": self.version,
                    "createdAt": self.created_at,
                    "updatedAt": utc_now(),
                    "viewport": self.viewport.to_dict(),
                    "engineeringMode": self.engineering_mode,
                    "nodes": self.nodes,
                    "edges": self.edges,
                    "annotations": {"strokes": self.strokes, "arrows": self.arrows},
                }
            )

    def from_document(self, document: Union[FlowchartDocument, Dict[str, Any]]) -> None:
        """Replace all local state with `document` and reset history."""
        if isinstance(document, dict):
            document = FlowchartDocument.from_dict(document)
        with self._lock:
            self._cancel_timer()
            self.flowchart_id = document.id
            self.name = document.name
            self.description = document.description
            self.engineering_mode = document.engineering_mode
            self.viewport = copy.deepcopy(document.viewport)
            self.version = document.version
            self.created_at = document.created_at
            self.nodes = [node.to_dict() for node in document.nodes]
            self.edges = [edge.to_dict() for edge in document.edges]
            self.strokes = copy.deepcopy(document.annotations.strokes)
            self.arrows = copy.deepcopy(document.annotations.arrows)
            self.history.clear()
            self.dirty = False

    def apply_update(self, message: Union[str, Dict[str, Any]]) -> bool:
        """Adopt a pushed `flowchart_update` for the open document. Returns True if applied."""
        if isinstance(message, (str, bytes)):
            try:
                message = json.loads(message)
            except json.JSONDecodeError:
                logger.debug("Ignoring non-JSON push message")
                return False
        if not isinstance(message, dict) or message.get("type") != UPDATE_MESSAGE_TYPE:
            return False
        data = message.get("data")
        with self._lock:
            if self.flowchart_id is None or message.get("id") != self.flowchart_id:
                return False
            if not isinstance(data, dict):
                logger.debug("Ignoring push for id=%s without document data", self.flowchart_id)
                return False
            if self.dirty:
                logger.info("Push for id=%s replaced unsaved local edits", self.flowchart_id)
            self.from_document(data)
        return True

    # ------------------------------------------------------------------
    # History
    # ------------------------------------------------------------------

    @property
    def can_undo(self) -> bool:
        return self.history.can_undo

    @property
    def can_redo(self) -> bool:
        return self.history.can_redo

    def undo(self) -> bool:
        with self._lock:
            previous = self.history.undo(self._snapshot())
            if previous is None:
                return False
            self._restore(previous)
            self._mark_dirty()
            return True

    def redo(self) -> bool:
        with self._lock:
            following = self.history.redo(self._snapshot())
            if following is None:
                return False
            self._restore(following)
            self._mark_dirty()
            return True

    def _snapshot(self) -> HistoryEntry:
        return HistoryEntry.capture(self.nodes, self.edges, self.strokes, self.arrows)

    def _restore(self, entry: HistoryEntry) -> None:
        self.nodes = copy.deepcopy(entry.nodes)
        self.edges = copy.deepcopy(entry.edges)
        self.strokes = copy.deepcopy(entry.strokes)
        self.arrows = copy.deepcopy(entry.arrows)

    def _record(self) -> None:
        self.history.record(self._snapshot())

    # ------------------------------------------------------------------
    # Node and edge edits
    # ------------------------------------------------------------------

    def get_node(self, node_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            for node in self.nodes:
                if node.get("id") == node_id:
                    return node
        return None

    def add_node(self, node: Dict[str, Any]) -> str:
        normalized = FlowNode.from_dict(node).to_dict()
        if not normalized["id"]:
            normalized["id"] = f"{normalized['type']}-{random_suffix()}"
        with self._lock:
            self._record()
            self.nodes.append(normalized)
            self._mark_dirty()
        return normalized["id"]

    def remove_node(self, node_id: str) -> None:
        with self._lock:
            self._record()
            self.nodes = [n for n in self.nodes if n.get("id") != node_id]
            self.edges = [
                e for e in self.edges if e.get("source") != node_id and e.get("target") != node_id
            ]
            self._mark_dirty()

    def update_node_data(self, node_id: str, data: Dict[str, Any]) -> None:
        with self._lock:
            node = self.get_node(node_id)
            if node is None:
                return
            self._record()
            node["data"] = {**node.get("data", {}), **(data or {})}
            self._mark_dirty()

    def set_node_position(self, node_id: str, x: float, y: float) -> None:
        """Drag update: persisted, but not an undo step."""
        with self._lock:
            node = self.get_node(node_id)
            if node is None:
                return
            node["position"] = {"x": x, "y": y}
            self._mark_dirty()

    def move_node(self, node_id: str, parent_id: Optional[str]) -> None:
        """Re-parent a node, keeping its on-canvas location fixed.

        Positions are relative to the parent group, so the node's absolute
        position is recomputed and then re-expressed in the new parent's space.
        """
        with self._lock:
            node = self.get_node(node_id)
            if node is None or parent_id == node_id:
                return
            if parent_id is not None and self.get_node(parent_id) is None:
                return

            self._record()
            abs_x, abs_y = self._absolute_position(node_id)
            if parent_id is not None:
                parent_x, parent_y = self._absolute_position(parent_id)
                abs_x -= parent_x
                abs_y -= parent_y
            node["position"] = {"x": abs_x, "y": abs_y}
            node["parentNode"] = parent_id
            self._mark_dirty()

    def _absolute_position(self, node_id: str) -> tuple[float, float]:
        x = y = 0.0
        seen = set()
        current = self.get_node(node_id)
        while current is not None and current.get("id") not in seen:
            seen.add(current.get("id"))
            position = current.get("position") or {}
            x += float(position.get("x", 0))
            y += float(position.get("y", 0))
            parent = current.get("parentNode")
            current = self.get_node(parent) if parent else None
        return x, y

    def add_edge(self, edge: Dict[str, Any]) -> str:
        normalized = FlowEdge.from_dict(edge).to_dict()
        if not normalized["id"]:
            normalized["id"] = f"edge-{random_suffix()}"
        with self._lock:
            self._record()
            self.edges.append(normalized)
            self._mark_dirty()
        return normalized["id"]

    def connect(self, source: str, target: str, edge_type: str = DEFAULT_EDGE_TYPE) -> str:
        return self.add_edge({"source": source, "target": target, "type": edge_type})

    def remove_edge(self, edge_id: str) -> None:
        with self._lock:
            self._record()
            self.edges = [e for e in self.edges if e.get("id") != edge_id]
            self._mark_dirty()

    def update_edge_data(self, edge_id: str, data: Dict[str, Any]) -> None:
        with self._lock:
            edge = next((e for e in self.edges if e.get("id") == edge_id), None)
            if edge is None:
                return
            self._record()
            edge["data"] = {**edge.get("data", {}), **(data or {})}
            self._mark_dirty()

    # ------------------------------------------------------------------
    # Annotations
    # ------------------------------------------------------------------

    def add_stroke(self, stroke: Dict[str, Any]) -> None:
        with self._lock:
            self._record()
            self.strokes.append(copy.deepcopy(stroke))
            self._mark_dirty()

    def remove_stroke(self, stroke_id: str) -> None:
        with self._lock:
            self._record()
            self.strokes = [s for s in self.strokes if s.get("id") != stroke_id]
            self._mark_dirty()

    def add_arrow(self, arrow: Dict[str, Any]) -> None:
        with self._lock:
            self._record()
            self.arrows.append(copy.deepcopy(arrow))
            self._mark_dirty()

    def remove_arrow(self, arrow_id: str) -> None:
        with self._lock:
            self._record()
            self.arrows = [a for a in self.arrows if a.get("id") != arrow_id]
            self._mark_dirty()

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def flush(self) -> bool:
        """Save now if dirty. Returns True when a save succeeded."""
        with self._lock:
            self._cancel_timer()
            if not self.dirty or not self.flowchart_id or self.saver is None:
                return False
            flowchart_id = self.flowchart_id
            payload = self.to_document().to_dict()
            revision = self._revision

        try:
            self.saver(flowchart_id, payload)
        except Exception:
            logger.warning("Autosave failed for flowchart id=%s", flowchart_id, exc_info=True)
            return False

        with self._lock:
            # Edits made while the save was in flight still need saving.
            if self._revision == revision:
                self.dirty = False
            self.last_saved_at = utc_now()
        logger.debug("Saved flowchart id=%s", flowchart_id)
        return True

    def close(self) -> None:
        with self._lock:
            self._closed = True
            self._cancel_timer()

    def _mark_dirty(self) -> None:
        self.dirty = True
        self._revision += 1
        self._schedule_save()

    def _schedule_save(self) -> None:
        if self._closed or self.saver is None:
            return
        self._cancel_timer()
        timer = threading.Timer(self.autosave_delay, self.flush)
        timer.daemon = True
        self._timer = timer
        timer.start()

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
