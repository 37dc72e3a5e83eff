"""Flowchart tools.

Each tool maps onto one `FlowchartStore` operation. The store is passed in
through `session_state["flowchart_store"]`; results are plain dicts with a
`success` flag and, on failure, `error` / `error_code`.
"""

from __future__ import annotations

import logging
from typing import Any, Dict

from ..core.exceptions import (
    ConfigurationError,
    FlowchartDecodeError,
    FlowchartNotFoundError,
    FlowchartValidationError,
    LayoutError,
    NodeNotFoundError,
)
from ..flowchart.layout import count_edge_crossings
from ..flowchart.model import NODE_STATUSES
from ..storage.store import FlowchartStore
from .core import (
    DECODE_FAILED,
    FLOWCHART_NOT_FOUND,
    LAYOUT_FAILED,
    MISSING_ARGUMENT,
    NODE_NOT_FOUND,
    VALIDATION_FAILED,
    Tool,
    ToolParameter,
    error_result,
)

logger = logging.getLogger("flowplan.tools")
tool_call_logger = logging.getLogger("flowplan.tool_calls")

STORE_KEY = "flowchart_store"

_ERROR_CODES = (
    (FlowchartNotFoundError, FLOWCHART_NOT_FOUND),
    (NodeNotFoundError, NODE_NOT_FOUND),
    (FlowchartDecodeError, DECODE_FAILED),
    (LayoutError, LAYOUT_FAILED),
    (FlowchartValidationError, VALIDATION_FAILED),
)

FLOWCHART_ID_PARAM = ToolParameter("flowchart_id", "string", "ID of the flowchart")


class FlowchartTool(Tool):
    """Base class: argument checks, store lookup, error mapping and call logging."""

    def run(self, store: FlowchartStore, args: Dict[str, Any]) -> Dict[str, Any]:
        raise NotImplementedError

    def execute(self, args: Dict[str, Any], **kwargs: Any) -> Dict[str, Any]:
        session_state = kwargs.get("session_state") or {}
        store = session_state.get(STORE_KEY)
        if store is None:
            raise ConfigurationError(f"session_state['{STORE_KEY}'] is required", {"tool": self.name})

        args = args or {}
        tool_call_logger.info("tool=%s args=%s", self.name, args)

        missing = self.missing_arguments(args)
        if missing:
            result = error_result(MISSING_ARGUMENT, f"Missing required argument(s): {', '.join(missing)}")
            tool_call_logger.info("tool=%s failed error_code=%s", self.name, MISSING_ARGUMENT)
            return result

        try:
            payload = self.run(store, args)
        except tuple(exc_type for exc_type, _ in _ERROR_CODES) as exc:
            code = next(code for exc_type, code in _ERROR_CODES if isinstance(exc, exc_type))
            logger.warning("Tool %s failed: %s", self.name, exc)
            tool_call_logger.info("tool=%s failed error_code=%s", self.name, code)
            return error_result(code, exc.message)

        tool_call_logger.info("tool=%s success", self.name)
        return {"success": True, **payload}


class CreateFlowchartTool(FlowchartTool):
    name = "create_flowchart"
    description = "Create a new flowchart/plan document."
    parameters = [
        ToolParameter("name", "string", "Name for the flowchart"),
        ToolParameter("description", "string", "Description of the flowchart", required=False),
        ToolParameter(
            "template",
            "string",
            "Optional template; 'basic' seeds a start and an end node",
            required=False,
        ),
    ]

    def run(self, store: FlowchartStore, args: Dict[str, Any]) -> Dict[str, Any]:
        flowchart_id = store.create(args["name"], args.get("description"), args.get("template"))
        path = store.flowplans_dir / f"{flowchart_id}.json"
        return {"id": flowchart_id, "path": str(path)}


class ListFlowchartsTool(FlowchartTool):
    name = "list_flowcharts"
    description = "List all flowcharts in the project."
    parameters: list = []

    def run(self, store: FlowchartStore, args: Dict[str, Any]) -> Dict[str, Any]:
        flowcharts = store.list()
        return {"flowcharts": flowcharts, "count": len(flowcharts)}


class ReadFlowchartTool(FlowchartTool):
    name = "read_flowchart"
    description = "Read the full flowchart document."
    parameters = [FLOWCHART_ID_PARAM]

    def run(self, store: FlowchartStore, args: Dict[str, Any]) -> Dict[str, Any]:
        document = store.read(args["flowchart_id"])
        if document is None:
            raise FlowchartNotFoundError.for_id(args["flowchart_id"])
        return {"flowchart": document.to_dict()}


class AddNodeTool(FlowchartTool):
    """Add a node to a flowchart.

    A valid `status` passed inside `metadata` (e.g. `{"status": "completed"}`)
    becomes the node's status and is removed from the metadata.
    """

    name = "add_node"
    description = "Add a node to a flowchart."
    parameters = [
        FLOWCHART_ID_PARAM,
        ToolParameter(
            "type",
            "string",
            "Node type: start, end, task, decision, note, milestone, phase_group, parallel_fork, "
            "file_ref, api_endpoint, db_entity, test_checkpoint, mcp_tool, human_action",
        ),
        ToolParameter("label", "string", "Display label for the node"),
        ToolParameter("description", "string", "Node description", required=False),
        ToolParameter("position", "object", "Position as {x, y}", required=False),
        ToolParameter("parent_group", "string", "Parent phase_group node ID", required=False),
        ToolParameter("metadata", "object", "Additional metadata", required=False),
    ]

    def run(self, store: FlowchartStore, args: Dict[str, Any]) -> Dict[str, Any]:
        metadata = args.get("metadata") or {}
        if not isinstance(metadata, dict):
            raise FlowchartValidationError("metadata must be an object", {"tool": self.name})
        metadata = dict(metadata)
        status = metadata.get("status")
        if status in NODE_STATUSES:
            metadata.pop("status")
        else:
            status = "pending"

        node: Dict[str, Any] = {
            "type": args["type"],
            "parentNode": args.get("parent_group"),
            "data": {
                "label": args["label"],
                "description": args.get("description") or "",
                "status": status,
                "metadata": metadata,
            },
        }
        if args.get("position") is not None:
            node["position"] = args["position"]
        node_id = store.add_node(args["flowchart_id"], node)
        return {"node_id": node_id}


class UpdateNodeTool(FlowchartTool):
    name = "update_node"
    description = "Update a node's label, description, status, position or parent. Metadata is merged."
    parameters = [
        FLOWCHART_ID_PARAM,
        ToolParameter("node_id", "string", "ID of the node to update"),
        ToolParameter("label", "string", "New label", required=False),
        ToolParameter("description", "string", "New description", required=False),
        ToolParameter(
            "status",
            "string",
            "New status: pending, in_progress, completed or blocked",
            required=False,
        ),
        ToolParameter("metadata", "object", "Metadata to merge", required=False),
        ToolParameter("position", "object", "New position as {x, y}", required=False),
        ToolParameter(
            "parent_group",
            "string",
            "New parent phase_group node ID (empty string to ungroup)",
            required=False,
        ),
    ]

    def run(self, store: FlowchartStore, args: Dict[str, Any]) -> Dict[str, Any]:
        data = {
            key: args[key]
            for key in ("label", "description", "status", "metadata")
            if args.get(key) is not None
        }
        updates: Dict[str, Any] = {"data": data}
        if args.get("position") is not None:
            updates["position"] = args["position"]
        if "parent_group" in args:
            updates["parentNode"] = args["parent_group"] or None
        store.update_node(args["flowchart_id"], args["node_id"], updates)
        return {"node_id": args["node_id"]}


class RemoveNodeTool(FlowchartTool):
    name = "remove_node"
    description = "Remove a node and all edges connected to it."
    parameters = [
        FLOWCHART_ID_PARAM,
        ToolParameter("node_id", "string", "ID of the node to remove"),
    ]

    def run(self, store: FlowchartStore, args: Dict[str, Any]) -> Dict[str, Any]:
        store.remove_node(args["flowchart_id"], args["node_id"])
        return {"node_id": args["node_id"]}


class AddEdgeTool(FlowchartTool):
    name = "add_edge"
    description = "Connect two nodes with an edge."
    parameters = [
        FLOWCHART_ID_PARAM,
        ToolParameter("source", "string", "Source node ID"),
        ToolParameter("target", "string", "Target node ID"),
        ToolParameter("label", "string", "Edge label", required=False),
        ToolParameter(
            "type",
            "string",
            "Edge type: default, success, failure or conditional",
            required=False,
        ),
        ToolParameter("animated", "boolean", "Whether the edge is animated", required=False),
    ]

    def run(self, store: FlowchartStore, args: Dict[str, Any]) -> Dict[str, Any]:
        edge_id = store.add_edge(
            args["flowchart_id"],
            {
                "source": args["source"],
                "target": args["target"],
                "type": args.get("type") or "default",
                "data": {
                    "label": args.get("label") or "",
                    "animated": bool(args.get("animated", False)),
                },
            },
        )
        return {"edge_id": edge_id}


class RemoveEdgeTool(FlowchartTool):
    name = "remove_edge"
    description = "Remove an edge from a flowchart."
    parameters = [
        FLOWCHART_ID_PARAM,
        ToolParameter("edge_id", "string", "ID of the edge to remove"),
    ]

    def run(self, store: FlowchartStore, args: Dict[str, Any]) -> Dict[str, Any]:
        store.remove_edge(args["flowchart_id"], args["edge_id"])
        return {"edge_id": args["edge_id"]}


class AutoLayoutTool(FlowchartTool):
    name = "auto_layout"
    description = "Recompute node positions with a layered layout."
    parameters = [
        FLOWCHART_ID_PARAM,
        ToolParameter(
            "direction",
            "string",
            "Layout direction: TB (top-bottom) or LR (left-right)",
            required=False,
        ),
    ]

    def run(self, store: FlowchartStore, args: Dict[str, Any]) -> Dict[str, Any]:
        direction = args.get("direction") or "TB"
        document = store.auto_layout(args["flowchart_id"], direction)
        return {
            "flowchart_id": document.id,
            "version": document.version,
            "direction": str(direction).upper(),
            "nodes_positioned": sum(1 for node in document.nodes if not node.is_annotation),
            "edge_crossings": count_edge_crossings(document),
        }
