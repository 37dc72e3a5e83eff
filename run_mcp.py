#!/usr/bin/env python3
"""Run the FlowPlan MCP server on stdio, with the API server in the background."""

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent / "src"))

from flowplan.mcp.server import main

if __name__ == "__main__":
    main()
