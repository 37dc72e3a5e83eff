"""Core tool abstractions and registry."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List

FLOWCHART_NOT_FOUND = "FLOWCHART_NOT_FOUND"
NODE_NOT_FOUND = "NODE_NOT_FOUND"
DECODE_FAILED = "DECODE_FAILED"
LAYOUT_FAILED = "LAYOUT_FAILED"
VALIDATION_FAILED = "VALIDATION_FAILED"
MISSING_ARGUMENT = "MISSING_ARGUMENT"


@dataclass
class ToolParameter:
    name: str
    type: str
    description: str
    required: bool = True


def error_result(error_code: str, message: str) -> Dict[str, Any]:
    return {"success": False, "error": message, "error_code": error_code}


class Tool:
    name: str
    description: str
    parameters: List[ToolParameter]

    def execute(self, args: Dict[str, Any], **kwargs: Any) -> Dict[str, Any]:
        raise NotImplementedError

    def missing_arguments(self, args: Dict[str, Any]) -> List[str]:
        return [
            param.name
            for param in self.parameters
            if param.required and args.get(param.name) in (None, "")
        ]


class ToolRegistry:
    def __init__(self) -> None:
        self._tools: Dict[str, Tool] = {}

    def register(self, tool: Tool) -> None:
        self._tools[tool.name] = tool

    def get(self, name: str) -> Tool:
        tool = self._tools.get(name)
        if tool is None:
            raise ValueError(f"Unknown tool: {name}")
        return tool

    def names(self) -> List[str]:
        return sorted(self._tools)

    def __contains__(self, name: str) -> bool:
        return name in self._tools

    def execute(self, name: str, args: Dict[str, Any], **kwargs: Any) -> Dict[str, Any]:
        return self.get(name).execute(args, **kwargs)
