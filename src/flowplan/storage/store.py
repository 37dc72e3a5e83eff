"""JSON-file backed flowchart store.

One document per file at `{project_dir}/.claude/flowplans/{id}.json`. Every
mutation is a read-modify-write of the whole document under a per-document
lock, persisted with an atomic rename and announced on the change channel.
"""

from __future__ import annotations

import json
import logging
import os
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, List, Optional, Union

from watchdog.events import FileMovedEvent, FileSystemEventHandler
from watchdog.observers import Observer

from ..config.settings import Settings
from ..core.exceptions import (
    FlowchartDecodeError,
    FlowchartNotFoundError,
    FlowchartValidationError,
    NodeNotFoundError,
)
from ..flowchart.layout import LayoutDirection, auto_layout
from ..flowchart.model import (
    DEFAULT_EDGE_TYPE,
    DEFAULT_NODE_TYPE,
    DEFAULT_STATUS,
    EDGE_TYPES,
    NODE_STATUSES,
    NODE_TYPES,
    EdgeData,
    FlowchartDocument,
    FlowEdge,
    FlowNode,
    NodeData,
    Position,
    flowchart_id_from_name,
    random_suffix,
    utc_now,
)

ChangeListener = Callable[[str, FlowchartDocument], None]

DEFAULT_STORAGE_SUBDIR = ".claude/flowplans"
DEFAULT_SUPPRESS_SECONDS = 0.1
DEFAULT_NODE_POSITION = (100.0, 100.0)
DOCUMENT_SUFFIX = ".json"

TEMPLATES = ("basic",)


def _as_map(value: Any) -> Dict[str, Any]:
    return dict(value) if isinstance(value, dict) else {}


def _basic_template_nodes() -> List[FlowNode]:
    return [
        FlowNode(
            id="start-1",
            type="start",
            position=Position(250, 50),
            data=NodeData(label="Start"),
        ),
        FlowNode(
            id="end-1",
            type="end",
            position=Position(250, 350),
            data=NodeData(label="End"),
        ),
    ]


@dataclass
class _DocumentLock:
    lock: threading.RLock = field(default_factory=threading.RLock)
    users: int = 0


class _FlowchartWatchHandler(FileSystemEventHandler):
    """Forwards document file events from the watchdog observer thread to the store."""

    def __init__(self, store: "FlowchartStore") -> None:
        self._store = store

    def on_created(self, event) -> None:
        if event.is_directory:
            return
        self._store.handle_external_change(Path(os.fsdecode(event.src_path)))

    def on_modified(self, event) -> None:
        if event.is_directory:
            return
        self._store.handle_external_change(Path(os.fsdecode(event.src_path)))

    def on_moved(self, event: FileMovedEvent) -> None:
        if event.is_directory:
            return
        # Atomic replaces show up as tmp -> {id}.json moves.
        self._store.handle_external_change(Path(os.fsdecode(event.dest_path)))


class FlowchartStore:
    """Manages flowchart persistence as JSON files in a project directory."""

    def __init__(
        self,
        project_dir: Union[str, Path],
        *,
        storage_subdir: str = DEFAULT_STORAGE_SUBDIR,
        suppress_seconds: float = DEFAULT_SUPPRESS_SECONDS,
        watch: bool = True,
    ):
        self.project_dir = Path(project_dir)
        self.flowplans_dir = self.project_dir / storage_subdir
        self.flowplans_dir.mkdir(parents=True, exist_ok=True)
        self._logger = logging.getLogger("flowplan.store")

        self._listeners: List[ChangeListener] = []
        self._listeners_lock = threading.Lock()

        self._doc_locks: Dict[str, _DocumentLock] = {}
        self._doc_locks_guard = threading.Lock()

        self._suppress_seconds = suppress_seconds
        self._suppressed = False
        self._suppress_lock = threading.Lock()
        self._suppress_timers: set[threading.Timer] = set()

        self._closed = False
        self._observer: Optional[Observer] = None
        if watch:
            self._start_watcher()

    @classmethod
    def from_settings(cls, settings: Settings, *, watch: bool = True) -> "FlowchartStore":
        return cls(
            settings.project_dir,
            storage_subdir=settings.storage_subdir,
            suppress_seconds=settings.watch_suppress_seconds,
            watch=watch,
        )

    def __enter__(self) -> "FlowchartStore":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Change channel
    # ------------------------------------------------------------------

    def on_change(self, listener: ChangeListener) -> Callable[[], None]:
        """Register `listener(flowchart_id, document)`. Returns an unsubscribe callable."""
        with self._listeners_lock:
            self._listeners.append(listener)
        return lambda: self.off_change(listener)

    def off_change(self, listener: ChangeListener) -> None:
        with self._listeners_lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    def _emit(self, flowchart_id: str, document: FlowchartDocument) -> None:
        with self._listeners_lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(flowchart_id, document.copy())
            except Exception:
                self._logger.exception("Change listener failed for flowchart id=%s", flowchart_id)

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------

    def create(
        self,
        name: str,
        description: Optional[str] = None,
        template: Optional[str] = None,
        *,
        flowchart_id: Optional[str] = None,
    ) -> str:
        """Create a document and return its id.

        The id is derived from `name` unless `flowchart_id` is given. An
        existing document with the same id is overwritten.
        """
        if template is not None and template not in TEMPLATES:
            raise FlowchartValidationError(
                f"Unknown template '{template}'", {"template": template, "allowed": list(TEMPLATES)}
            )
        doc_id = flowchart_id if flowchart_id is not None else flowchart_id_from_name(name)
        now = utc_now()
        document = FlowchartDocument(
            id=doc_id,
            name=name,
            description=description or "",
            version=1,
            created_at=now,
            updated_at=now,
            nodes=_basic_template_nodes() if template == "basic" else [],
        )
        with self._locked(doc_id):
            self._write(document)
            self._logger.info("Created flowchart id=%s template=%s", doc_id, template)
            self._emit(doc_id, document)
        return doc_id

    def read(self, flowchart_id: str) -> Optional[FlowchartDocument]:
        """Return the persisted document, or None when no file exists."""
        path = self._path_for(flowchart_id)
        try:
            raw = path.read_bytes()
        except FileNotFoundError:
            return None
        return self._decode(raw, path)

    def update(self, flowchart_id: str, fields: Dict[str, Any]) -> FlowchartDocument:
        """Shallow-merge wire-format `fields` over the stored document."""
        with self._locked(flowchart_id):
            current = self._require(flowchart_id)
            merged = {**current.to_dict(), **(fields or {})}
            merged["id"] = current.id
            merged["version"] = current.version + 1
            merged["updatedAt"] = utc_now()
            document = FlowchartDocument.from_dict(merged)
            self._write(document)
            self._logger.info("Updated flowchart id=%s version=%d", flowchart_id, document.version)
            self._emit(flowchart_id, document)
            return document

    def upsert(self, flowchart_id: str, fields: Dict[str, Any]) -> FlowchartDocument:
        """Update the document, or create it with this exact id when absent."""
        with self._locked(flowchart_id):
            if self.read(flowchart_id) is not None:
                return self.update(flowchart_id, fields)

            now = utc_now()
            payload = {**(fields or {}), "id": flowchart_id, "version": 1, "updatedAt": now}
            payload.setdefault("createdAt", now)
            document = FlowchartDocument.from_dict(payload)
            self._write(document)
            self._logger.info("Created flowchart id=%s via upsert", flowchart_id)
            self._emit(flowchart_id, document)
            return document

    def list(self) -> List[Dict[str, Any]]:
        """Summaries of every readable document. Malformed files are skipped."""
        summaries: List[Dict[str, Any]] = []
        for path in sorted(self.flowplans_dir.glob(f"*{DOCUMENT_SUFFIX}")):
            if not path.is_file() or path.name.startswith("."):
                continue
            try:
                document = self._decode(path.read_bytes(), path)
            except (OSError, FlowchartDecodeError) as exc:
                self._logger.debug("Skipping unreadable flowchart file %s: %s", path.name, exc)
                continue
            summaries.append(document.summary())
        return summaries

    # ------------------------------------------------------------------
    # Structural mutations
    # ------------------------------------------------------------------

    def add_node(self, flowchart_id: str, node: Dict[str, Any]) -> str:
        """Append a node and return its id.

        Accepts wire-format input (`type`, `position`, `parentNode`, `data`).
        Missing fields get defaults: id `{type}-{suffix}`, position (100, 100),
        status `pending`.
        """
        node = node or {}
        node_type = node.get("type") or DEFAULT_NODE_TYPE
        if node_type not in NODE_TYPES:
            raise FlowchartValidationError(
                f"Invalid node type '{node_type}'", {"flowchart_id": flowchart_id, "type": node_type}
            )
        data = node.get("data") or {}
        status = data.get("status") or DEFAULT_STATUS
        self._check_status(flowchart_id, status)

        with self._locked(flowchart_id):
            document = self._require(flowchart_id)
            node_id = node.get("id") or f"{node_type}-{random_suffix()}"
            parent = node.get("parentNode")
            new_node = FlowNode(
                id=str(node_id),
                type=node_type,
                position=Position.from_dict(node.get("position"), Position(*DEFAULT_NODE_POSITION)),
                parent_node=str(parent) if parent else None,
                data=NodeData(
                    label=str(data.get("label") or ""),
                    description=str(data.get("description") or ""),
                    status=status,
                    metadata=_as_map(data.get("metadata")),
                    style=_as_map(data.get("style")),
                ),
            )
            document.nodes.append(new_node)
            self._commit(document, "add_node", node_id=new_node.id)
            return new_node.id

    def remove_node(self, flowchart_id: str, node_id: str) -> None:
        """Remove a node and every edge that references it."""
        with self._locked(flowchart_id):
            document = self._require(flowchart_id)
            if document.get_node(node_id) is None:
                raise NodeNotFoundError.for_ids(flowchart_id, node_id)
            document.nodes = [n for n in document.nodes if n.id != node_id]
            document.edges = [
                e for e in document.edges if e.source != node_id and e.target != node_id
            ]
            self._commit(document, "remove_node", node_id=node_id)

    def update_node(self, flowchart_id: str, node_id: str, updates: Dict[str, Any]) -> FlowNode:
        """Apply `updates` to one node.

        `position` and `parentNode` replace the node's values. Data fields may be
        given under `data` or at the top level: `label`, `description` and
        `status` replace; `metadata` and `style` are merged key-wise.
        """
        updates = updates or {}
        data_updates: Dict[str, Any] = {
            key: updates[key]
            for key in ("label", "description", "status", "metadata", "style")
            if key in updates
        }
        data_updates.update(updates.get("data") or {})
        if "status" in data_updates:
            self._check_status(flowchart_id, data_updates["status"])

        with self._locked(flowchart_id):
            document = self._require(flowchart_id)
            node = document.get_node(node_id)
            if node is None:
                raise NodeNotFoundError.for_ids(flowchart_id, node_id)

            if updates.get("position") is not None:
                node.position = Position.from_dict(updates["position"], node.position)
            if "parentNode" in updates:
                parent = updates["parentNode"]
                node.parent_node = str(parent) if parent else None
            if "label" in data_updates:
                node.data.label = str(data_updates["label"] or "")
            if "description" in data_updates:
                node.data.description = str(data_updates["description"] or "")
            if "status" in data_updates:
                node.data.status = data_updates["status"]
            if isinstance(data_updates.get("metadata"), dict):
                node.data.metadata = {**node.data.metadata, **data_updates["metadata"]}
            if isinstance(data_updates.get("style"), dict):
                node.data.style = {**node.data.style, **data_updates["style"]}

            self._commit(document, "update_node", node_id=node_id)
            return node

    def add_edge(self, flowchart_id: str, edge: Dict[str, Any]) -> str:
        """Append an edge and return its id. Endpoints are not checked for existence."""
        edge = edge or {}
        edge_type = edge.get("type") or DEFAULT_EDGE_TYPE
        if edge_type not in EDGE_TYPES:
            raise FlowchartValidationError(
                f"Invalid edge type '{edge_type}'", {"flowchart_id": flowchart_id, "type": edge_type}
            )
        source, target = edge.get("source"), edge.get("target")
        if not source or not target:
            raise FlowchartValidationError(
                "Edge requires source and target", {"flowchart_id": flowchart_id}
            )

        with self._locked(flowchart_id):
            document = self._require(flowchart_id)
            edge_id = edge.get("id") or f"edge-{random_suffix()}"
            data = edge.get("data") or {}
            document.edges.append(
                FlowEdge(
                    id=str(edge_id),
                    source=str(source),
                    target=str(target),
                    type=edge_type,
                    data=EdgeData(
                        label=str(data.get("label") or ""),
                        animated=bool(data.get("animated", False)),
                    ),
                )
            )
            self._commit(document, "add_edge", edge_id=edge_id)
            return str(edge_id)

    def remove_edge(self, flowchart_id: str, edge_id: str) -> None:
        with self._locked(flowchart_id):
            document = self._require(flowchart_id)
            document.edges = [e for e in document.edges if e.id != edge_id]
            self._commit(document, "remove_edge", edge_id=edge_id)

    def auto_layout(
        self,
        flowchart_id: str,
        direction: Union[str, LayoutDirection] = LayoutDirection.TOP_TO_BOTTOM,
    ) -> FlowchartDocument:
        """Recompute node positions and persist the result as a new version."""
        with self._locked(flowchart_id):
            document = self._require(flowchart_id)
            laid_out = auto_layout(document, direction)
            self._write(laid_out)
            self._logger.info(
                "Auto-layout flowchart id=%s version=%d", flowchart_id, laid_out.version
            )
            self._emit(flowchart_id, laid_out)
            return laid_out

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def close(self) -> None:
        """Stop watching and cancel pending suppression timers. Idempotent."""
        if self._closed:
            return
        self._closed = True
        observer, self._observer = self._observer, None
        if observer is not None:
            observer.stop()
            observer.join(timeout=5)
        with self._suppress_lock:
            timers = list(self._suppress_timers)
            self._suppress_timers.clear()
            self._suppressed = False
        for timer in timers:
            timer.cancel()
        self._logger.debug("Closed flowchart store at %s", self.flowplans_dir)

    @property
    def watch_suppressed(self) -> bool:
        with self._suppress_lock:
            return self._suppressed

    def handle_external_change(self, path: Path) -> None:
        """Emit the document at `path` if it changed outside this store."""
        if not path.name.endswith(DOCUMENT_SUFFIX) or path.name.startswith("."):
            return
        if self._closed or self.watch_suppressed:
            return

        flowchart_id = path.name[: -len(DOCUMENT_SUFFIX)]
        # Runs on the observer thread: nothing may escape or watching stops.
        try:
            with self._locked(flowchart_id):
                document = self.read(flowchart_id)
                if document is None:
                    self._logger.debug("External change to %s vanished before read", path.name)
                    return
                self._logger.info("External change detected for flowchart id=%s", flowchart_id)
                self._emit(flowchart_id, document)
        except (OSError, FlowchartDecodeError, FlowchartValidationError) as exc:
            self._logger.debug("Ignoring external change to %s: %s", path.name, exc)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _start_watcher(self) -> None:
        observer = Observer()
        observer.schedule(_FlowchartWatchHandler(self), str(self.flowplans_dir), recursive=False)
        observer.daemon = True
        observer.start()
        self._observer = observer
        self._logger.debug("Watching %s for external changes", self.flowplans_dir)

    @contextmanager
    def _locked(self, flowchart_id: str) -> Iterator[None]:
        """Hold the document's lock. Entries live only while some thread uses them."""
        self._check_id(flowchart_id)
        with self._doc_locks_guard:
            entry = self._doc_locks.get(flowchart_id)
            if entry is None:
                entry = self._doc_locks[flowchart_id] = _DocumentLock()
            entry.users += 1
        try:
            with entry.lock:
                yield
        finally:
            with self._doc_locks_guard:
                entry.users -= 1
                if entry.users == 0:
                    del self._doc_locks[flowchart_id]

    def _check_id(self, flowchart_id: str) -> None:
        if (
            not flowchart_id
            or flowchart_id.startswith(".")
            or "/" in flowchart_id
            or "\\" in flowchart_id
        ):
            raise FlowchartValidationError(
                f"Invalid flowchart id '{flowchart_id}'", {"flowchart_id": flowchart_id}
            )

    def _path_for(self, flowchart_id: str) -> Path:
        self._check_id(flowchart_id)
        return self.flowplans_dir / f"{flowchart_id}{DOCUMENT_SUFFIX}"

    def _require(self, flowchart_id: str) -> FlowchartDocument:
        document = self.read(flowchart_id)
        if document is None:
            raise FlowchartNotFoundError.for_id(flowchart_id)
        return document

    def _check_status(self, flowchart_id: str, status: Any) -> None:
        if status not in NODE_STATUSES:
            raise FlowchartValidationError(
                f"Invalid node status '{status}'",
                {"flowchart_id": flowchart_id, "status": status, "allowed": sorted(NODE_STATUSES)},
            )

    def _decode(self, raw: bytes, path: Path) -> FlowchartDocument:
        """Parse file content. The document id is always the one its file name carries."""
        try:
            document = FlowchartDocument.from_dict(json.loads(raw.decode("utf-8")))
        except (UnicodeDecodeError, json.JSONDecodeError, TypeError) as exc:
            raise FlowchartDecodeError(
                f"Could not decode flowchart file {path.name}: {exc}", {"path": str(path)}
            ) from exc
        document.id = path.name[: -len(DOCUMENT_SUFFIX)]
        return document

    def _commit(self, document: FlowchartDocument, operation: str, **details: Any) -> None:
        document.bump_version()
        self._write(document)
        self._logger.info(
            "%s flowchart id=%s version=%d %s",
            operation,
            document.id,
            document.version,
            " ".join(f"{key}={value}" for key, value in details.items()),
        )
        self._emit(document.id, document)

    def _write(self, document: FlowchartDocument) -> None:
        path = self._path_for(document.id)
        tmp_path = path.with_name(f"{path.name}.tmp.{os.getpid()}")
        payload = json.dumps(document.to_dict(), indent=2, ensure_ascii=False)

        self._suppress_watch()
        try:
            tmp_path.write_text(payload, encoding="utf-8")
            os.replace(tmp_path, path)
        except OSError:
            tmp_path.unlink(missing_ok=True)
            raise

    def _suppress_watch(self) -> None:
        if self._closed or self._suppress_seconds <= 0:
            return
        timer = threading.Timer(self._suppress_seconds, lambda: self._release_suppression(timer))
        timer.daemon = True
        with self._suppress_lock:
            self._suppressed = True
            self._suppress_timers.add(timer)
        timer.start()

    def _release_suppression(self, timer: threading.Timer) -> None:
        with self._suppress_lock:
            self._suppressed = False
            self._suppress_timers.discard(timer)
