"""Bounded undo/redo history for a flowchart replica."""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

MAX_HISTORY = 50


@dataclass(frozen=True)
class HistoryEntry:
    """Snapshot of the editable parts of a replica."""

    nodes: List[Dict[str, Any]] = field(default_factory=list)
    edges: List[Dict[str, Any]] = field(default_factory=list)
    strokes: List[Dict[str, Any]] = field(default_factory=list)
    arrows: List[Dict[str, Any]] = field(default_factory=list)

    @classmethod
    def capture(
        cls,
        nodes: List[Dict[str, Any]],
        edges: List[Dict[str, Any]],
        strokes: List[Dict[str, Any]],
        arrows: List[Dict[str, Any]],
    ) -> "HistoryEntry":
        return cls(
            nodes=copy.deepcopy(nodes),
            edges=copy.deepcopy(edges),
            strokes=copy.deepcopy(strokes),
            arrows=copy.deepcopy(arrows),
        )


class UndoHistory:
    def __init__(self, limit: int = MAX_HISTORY):
        self.limit = limit
        self._past: List[HistoryEntry] = []
        self._future: List[HistoryEntry] = []

    @property
    def can_undo(self) -> bool:
        return bool(self._past)

    @property
    def can_redo(self) -> bool:
        return bool(self._future)

    @property
    def undo_depth(self) -> int:
        return len(self._past)

    @property
    def redo_depth(self) -> int:
        return len(self._future)

    def record(self, entry: HistoryEntry) -> None:
        """Push a pre-mutation snapshot and drop the redo stack."""
        self._past.append(entry)
        if len(self._past) > self.limit:
            del self._past[: len(self._past) - self.limit]
        self._future.clear()

    def undo(self, current: HistoryEntry) -> Optional[HistoryEntry]:
        if not self._past:
            return None
        self._future.append(current)
        return self._past.pop()

    def redo(self, current: HistoryEntry) -> Optional[HistoryEntry]:
        if not self._future:
            return None
        self._past.append(current)
        return self._future.pop()

    def clear(self) -> None:
        self._past.clear()
        self._future.clear()
