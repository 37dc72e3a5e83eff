"""Shared test fixtures.

Stores are created on a temporary project directory with the directory
watcher disabled, so tests see only self-initiated change events unless they
drive the watch path explicitly.
"""

from pathlib import Path
from typing import Any, Dict, Generator, List, Tuple

import pytest

from flowplan.flowchart.model import FlowchartDocument
from flowplan.storage.store import FlowchartStore


@pytest.fixture
def project_dir(tmp_path: Path) -> Path:
    return tmp_path / "project"


@pytest.fixture
def store(project_dir: Path) -> Generator[FlowchartStore, None, None]:
    """Flowchart store without the filesystem watcher."""
    flowchart_store = FlowchartStore(project_dir, watch=False)
    yield flowchart_store
    flowchart_store.close()


@pytest.fixture
def change_events(store: FlowchartStore) -> List[Tuple[str, FlowchartDocument]]:
    """Collects every `(flowchart_id, document)` emitted by the store."""
    events: List[Tuple[str, FlowchartDocument]] = []
    store.on_change(lambda flowchart_id, document: events.append((flowchart_id, document)))
    return events


@pytest.fixture
def session_state(store: FlowchartStore) -> Dict[str, Any]:
    return {"flowchart_store": store}
