"""Tests for the flowchart tool layer and its MCP bindings."""

import asyncio

import pytest

from flowplan.config.settings import Settings
from flowplan.core.exceptions import ConfigurationError
from flowplan.mcp.server import build_mcp_server
from flowplan.tools import build_tool_registry
from flowplan.tools.core import (
    DECODE_FAILED,
    FLOWCHART_NOT_FOUND,
    LAYOUT_FAILED,
    MISSING_ARGUMENT,
    NODE_NOT_FOUND,
    VALIDATION_FAILED,
)

TOOL_NAMES = [
    "add_edge",
    "add_node",
    "auto_layout",
    "create_flowchart",
    "list_flowcharts",
    "read_flowchart",
    "remove_edge",
    "remove_node",
    "update_node",
]


@pytest.fixture
def registry():
    return build_tool_registry()


@pytest.fixture
def run(registry, session_state):
    def _run(name, /, **args):
        return registry.execute(name, args, session_state=session_state)

    return _run


@pytest.fixture
def plan(run):
    return run("create_flowchart", name="Release Plan", template="basic")["id"]


def test_registry_exposes_all_tools(registry):
    assert registry.names() == TOOL_NAMES
    with pytest.raises(ValueError):
        registry.get("delete_everything")


def test_tools_require_a_store(registry):
    with pytest.raises(ConfigurationError):
        registry.execute("list_flowcharts", {}, session_state={})


class TestDocumentTools:
    def test_create_returns_id_and_path(self, run, store):
        result = run("create_flowchart", name="My Plan", description="Things to do")

        assert result["success"] is True
        assert result["id"] == "my-plan"
        assert result["path"] == str(store.flowplans_dir / "my-plan.json")

    def test_list_counts_documents(self, run, plan):
        run("create_flowchart", name="Second")

        result = run("list_flowcharts")

        assert result["count"] == 2
        assert {f["id"] for f in result["flowcharts"]} == {plan, "second"}

    def test_read_returns_document(self, run, plan):
        result = run("read_flowchart", flowchart_id=plan)

        assert result["flowchart"]["name"] == "Release Plan"
        assert len(result["flowchart"]["nodes"]) == 2

    def test_read_missing_flowchart(self, run):
        result = run("read_flowchart", flowchart_id="nope")

        assert result == {
            "success": False,
            "error": "Flowchart 'nope' not found",
            "error_code": FLOWCHART_NOT_FOUND,
        }

    def test_read_malformed_file(self, run, store):
        (store.flowplans_dir / "bad.json").write_text("[1, 2", encoding="utf-8")

        result = run("read_flowchart", flowchart_id="bad")

        assert result["error_code"] == DECODE_FAILED

    def test_unknown_template_fails_validation(self, run):
        result = run("create_flowchart", name="Plan", template="kanban")

        assert result["error_code"] == VALIDATION_FAILED


class TestNodeTools:
    def test_add_node_lifts_status_out_of_metadata(self, run, store, plan):
        result = run(
            "add_node",
            flowchart_id=plan,
            type="task",
            label="Ship it",
            metadata={"status": "completed", "owner": "ops"},
        )

        node = store.read(plan).get_node(result["node_id"])
        assert node.data.status == "completed"
        assert node.data.metadata == {"owner": "ops"}

    def test_add_node_keeps_unknown_status_in_metadata(self, run, store, plan):
        result = run(
            "add_node",
            flowchart_id=plan,
            type="task",
            label="Maybe",
            metadata={"status": "someday"},
        )

        node = store.read(plan).get_node(result["node_id"])
        assert node.data.status == "pending"
        assert node.data.metadata == {"status": "someday"}

    def test_add_node_into_group_with_position(self, run, store, plan):
        group_id = run("add_node", flowchart_id=plan, type="phase_group", label="Phase 1")["node_id"]

        node_id = run(
            "add_node",
            flowchart_id=plan,
            type="file_ref",
            label="main.py",
            position={"x": 5, "y": 6},
            parent_group=group_id,
        )["node_id"]

        node = store.read(plan).get_node(node_id)
        assert node.parent_node == group_id
        assert (node.position.x, node.position.y) == (5, 6)

    def test_add_node_rejects_unknown_type(self, run, plan):
        result = run("add_node", flowchart_id=plan, type="wizard", label="Nope")

        assert result["error_code"] == VALIDATION_FAILED

    def test_add_node_requires_label(self, run, plan):
        result = run("add_node", flowchart_id=plan, type="task")

        assert result["success"] is False
        assert result["error_code"] == MISSING_ARGUMENT
        assert "label" in result["error"]

    def test_update_node_merges_metadata(self, run, store, plan):
        node_id = run(
            "add_node", flowchart_id=plan, type="task", label="Build", metadata={"a": 1}
        )["node_id"]

        result = run(
            "update_node",
            flowchart_id=plan,
            node_id=node_id,
            status="in_progress",
            metadata={"b": 2},
        )

        assert result == {"success": True, "node_id": node_id}
        node = store.read(plan).get_node(node_id)
        assert node.data.status == "in_progress"
        assert node.data.metadata == {"a": 1, "b": 2}
        assert node.data.label == "Build"

    def test_update_node_with_empty_parent_ungroups(self, run, store, plan):
        group_id = run("add_node", flowchart_id=plan, type="phase_group", label="Phase")["node_id"]
        node_id = run(
            "add_node", flowchart_id=plan, type="task", label="Child", parent_group=group_id
        )["node_id"]

        run("update_node", flowchart_id=plan, node_id=node_id, parent_group="")

        assert store.read(plan).get_node(node_id).parent_node is None

    def test_update_node_rejects_invalid_status(self, run, plan):
        result = run("update_node", flowchart_id=plan, node_id="start-1", status="done-ish")

        assert result["error_code"] == VALIDATION_FAILED

    def test_update_missing_node(self, run, plan):
        result = run("update_node", flowchart_id=plan, node_id="ghost", label="x")

        assert result["error_code"] == NODE_NOT_FOUND

    def test_remove_node_cascades_edges(self, run, store, plan):
        run("add_edge", flowchart_id=plan, source="start-1", target="end-1")

        result = run("remove_node", flowchart_id=plan, node_id="end-1")

        assert result["success"] is True
        document = store.read(plan)
        assert [n.id for n in document.nodes] == ["start-1"]
        assert document.edges == []

    def test_remove_missing_node(self, run, plan):
        result = run("remove_node", flowchart_id=plan, node_id="ghost")

        assert result["error_code"] == NODE_NOT_FOUND


class TestEdgeAndLayoutTools:
    def test_add_and_remove_edge(self, run, store, plan):
        edge_id = run(
            "add_edge",
            flowchart_id=plan,
            source="start-1",
            target="end-1",
            label="go",
            type="success",
            animated=True,
        )["edge_id"]

        edge = store.read(plan).edges[0]
        assert edge.id == edge_id
        assert edge.type == "success"
        assert edge.data.label == "go"
        assert edge.data.animated is True

        assert run("remove_edge", flowchart_id=plan, edge_id=edge_id)["success"] is True
        assert store.read(plan).edges == []

    def test_add_edge_rejects_unknown_type(self, run, plan):
        result = run("add_edge", flowchart_id=plan, source="start-1", target="end-1", type="wormhole")

        assert result["error_code"] == VALIDATION_FAILED

    def test_edge_tools_on_missing_flowchart(self, run):
        result = run("add_edge", flowchart_id="nope", source="a", target="b")

        assert result["error_code"] == FLOWCHART_NOT_FOUND

    def test_auto_layout_reports_result(self, run, store, plan):
        run("add_edge", flowchart_id=plan, source="start-1", target="end-1")
        run("add_node", flowchart_id=plan, type="annotation_note", label="Sticky")
        version_before = store.read(plan).version

        result = run("auto_layout", flowchart_id=plan, direction="lr")

        assert result["success"] is True
        assert result["flowchart_id"] == plan
        assert result["direction"] == "LR"
        assert result["version"] == version_before + 1
        assert result["nodes_positioned"] == 2
        assert result["edge_crossings"] == 0
        document = store.read(plan)
        assert document.get_node("start-1").position.x < document.get_node("end-1").position.x

    def test_auto_layout_rejects_unknown_direction(self, run, plan):
        result = run("auto_layout", flowchart_id=plan, direction="spiral")

        assert result["error_code"] == LAYOUT_FAILED


def test_mcp_server_registers_every_tool(store, tmp_path):
    settings = Settings(project_dir=store.project_dir, log_file=tmp_path / "logs" / "flowplan.log")

    server = build_mcp_server(settings, store=store)
    tools = asyncio.run(server.list_tools())

    assert sorted(tool.name for tool in tools) == TOOL_NAMES
