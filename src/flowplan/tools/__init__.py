"""Tool layer exposing flowchart store operations."""

from .core import Tool, ToolParameter, ToolRegistry
from .flowchart import (
    AddEdgeTool,
    AddNodeTool,
    AutoLayoutTool,
    CreateFlowchartTool,
    ListFlowchartsTool,
    ReadFlowchartTool,
    RemoveEdgeTool,
    RemoveNodeTool,
    UpdateNodeTool,
)

FLOWCHART_TOOLS = (
    CreateFlowchartTool,
    ListFlowchartsTool,
    ReadFlowchartTool,
    AddNodeTool,
    UpdateNodeTool,
    RemoveNodeTool,
    AddEdgeTool,
    RemoveEdgeTool,
    AutoLayoutTool,
)


def build_tool_registry() -> ToolRegistry:
    registry = ToolRegistry()
    for tool_cls in FLOWCHART_TOOLS:
        registry.register(tool_cls())
    return registry


__all__ = [
    "AddEdgeTool",
    "AddNodeTool",
    "AutoLayoutTool",
    "CreateFlowchartTool",
    "FLOWCHART_TOOLS",
    "ListFlowchartsTool",
    "ReadFlowchartTool",
    "RemoveEdgeTool",
    "RemoveNodeTool",
    "Tool",
    "ToolParameter",
    "ToolRegistry",
    "UpdateNodeTool",
    "build_tool_registry",
]
