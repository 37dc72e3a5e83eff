#!/usr/bin/env python3
"""Run the FlowPlan API server (REST + Socket.IO)."""

import sys
from pathlib import Path

# Make `flowplan` importable from a source checkout.
sys.path.insert(0, str(Path(__file__).parent / "src"))

from flowplan.api import create_server

if __name__ == "__main__":
    server = create_server()
    try:
        server.run()
    finally:
        server.close()
