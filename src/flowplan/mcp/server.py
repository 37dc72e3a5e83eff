"""MCP server exposing the flowchart tools.

`main()` runs the REST/Socket.IO server on a background thread and the MCP
server on stdio, both sharing one `FlowchartStore`, so edits made by an agent
reach connected editors immediately.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from mcp.server.fastmcp import FastMCP

from ..config.settings import Settings, get_settings
from ..storage.store import FlowchartStore
from ..tools import build_tool_registry
from ..tools.flowchart import STORE_KEY
from ..utils.logging import setup_logging

logger = logging.getLogger("flowplan.mcp")


def build_mcp_server(
    settings: Optional[Settings] = None,
    *,
    store: Optional[FlowchartStore] = None,
) -> FastMCP:
    settings = settings or get_settings()
    setup_logging(settings)
    store = store or FlowchartStore.from_settings(settings)
    registry = build_tool_registry()
    session_state = {STORE_KEY: store}

    server = FastMCP(
        name="FlowPlan",
        instructions=(
            "Create and edit flowchart plans. Changes are saved to the project and "
            "pushed to any open visual editor."
        ),
    )

    def call(name: str, args: dict[str, Any]) -> dict[str, Any]:
        logger.info("MCP %s start", name)
        result = registry.execute(name, args, session_state=session_state)
        logger.info("MCP %s complete success=%s", name, result.get("success"))
        return result

    @server.tool(name="create_flowchart", description="Create a new flowchart/plan document")
    def create_flowchart(
        name: str,
        description: str | None = None,
        template: str | None = None,
    ) -> dict[str, Any]:
        args: dict[str, Any] = {"name": name}
        if description is not None:
            args["description"] = description
        if template is not None:
            args["template"] = template
        return call("create_flowchart", args)

    @server.tool(name="list_flowcharts", description="List all flowcharts in the project")
    def list_flowcharts() -> dict[str, Any]:
        return call("list_flowcharts", {})

    @server.tool(name="read_flowchart", description="Read the full flowchart document")
    def read_flowchart(flowchart_id: str) -> dict[str, Any]:
        return call("read_flowchart", {"flowchart_id": flowchart_id})

    @server.tool(name="add_node", description="Add a node to a flowchart")
    def add_node(
        flowchart_id: str,
        type: str,
        label: str,
        description: str | None = None,
        position: dict[str, float] | None = None,
        parent_group: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        args: dict[str, Any] = {"flowchart_id": flowchart_id, "type": type, "label": label}
        if description is not None:
            args["description"] = description
        if position is not None:
            args["position"] = position
        if parent_group is not None:
            args["parent_group"] = parent_group
        if metadata is not None:
            args["metadata"] = metadata
        return call("add_node", args)

    @server.tool(name="update_node", description="Update a node; metadata is merged into the existing map")
    def update_node(
        flowchart_id: str,
        node_id: str,
        label: str | None = None,
        description: str | None = None,
        status: str | None = None,
        metadata: dict[str, Any] | None = None,
        position: dict[str, float] | None = None,
        parent_group: str | None = None,
    ) -> dict[str, Any]:
        args: dict[str, Any] = {"flowchart_id": flowchart_id, "node_id": node_id}
        if label is not None:
            args["label"] = label
        if description is not None:
            args["description"] = description
        if status is not None:
            args["status"] = status
        if metadata is not None:
            args["metadata"] = metadata
        if position is not None:
            args["position"] = position
        if parent_group is not None:
            args["parent_group"] = parent_group
        return call("update_node", args)

    @server.tool(name="remove_node", description="Remove a node and its connected edges")
    def remove_node(flowchart_id: str, node_id: str) -> dict[str, Any]:
        return call("remove_node", {"flowchart_id": flowchart_id, "node_id": node_id})

    @server.tool(name="add_edge", description="Connect two nodes with an edge")
    def add_edge(
        flowchart_id: str,
        source: str,
        target: str,
        label: str | None = None,
        type: str | None = None,
        animated: bool | None = None,
    ) -> dict[str, Any]:
        args: dict[str, Any] = {"flowchart_id": flowchart_id, "source": source, "target": target}
        if label is not None:
            args["label"] = label
        if type is not None:
            args["type"] = type
        if animated is not None:
            args["animated"] = animated
        return call("add_edge", args)

    @server.tool(name="remove_edge", description="Remove an edge from a flowchart")
    def remove_edge(flowchart_id: str, edge_id: str) -> dict[str, Any]:
        return call("remove_edge", {"flowchart_id": flowchart_id, "edge_id": edge_id})

    @server.tool(name="auto_layout", description="Auto-layout a flowchart (direction TB or LR)")
    def auto_layout(flowchart_id: str, direction: str | None = None) -> dict[str, Any]:
        args: dict[str, Any] = {"flowchart_id": flowchart_id}
        if direction is not None:
            args["direction"] = direction
        return call("auto_layout", args)

    return server


def main() -> None:
    from ..api.server import create_server

    settings = get_settings()
    setup_logging(settings)
    api = create_server(settings)
    api.start_background()

    server = build_mcp_server(settings, store=api.store)
    logger.info("Starting MCP server transport=stdio project=%s", settings.project_dir)
    try:
        server.run(transport="stdio")
    finally:
        api.close()


if __name__ == "__main__":
    main()
