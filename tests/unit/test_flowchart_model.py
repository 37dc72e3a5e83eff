import pytest

from flowplan.flowchart.model import (
    FlowchartDocument,
    FlowNode,
    flowchart_id_from_name,
    random_suffix,
)


@pytest.mark.parametrize(
    "name, expected",
    [
        ("  Spaces & Symbols!  ", "spaces-symbols"),
        ("My Plan", "my-plan"),
        ("Release v2.0 -- Final", "release-v2-0-final"),
        ("already-slugged", "already-slugged"),
        ("---", ""),
    ],
)
def test_flowchart_id_from_name(name, expected):
    assert flowchart_id_from_name(name) == expected


def test_random_suffix_uses_lowercase_alphanumerics():
    suffix = random_suffix()
    assert len(suffix) == 6
    assert all(ch.islower() or ch.isdigit() for ch in suffix)


def test_from_dict_applies_defaults_for_missing_fields():
    document = FlowchartDocument.from_dict({"id": "plan", "name": "Plan"})

    assert document.version == 1
    assert document.nodes == []
    assert document.edges == []
    assert document.viewport.zoom == 1.0
    assert document.engineering_mode is False
    assert document.annotations.strokes == []


def test_from_dict_normalizes_unknown_enum_values():
    document = FlowchartDocument.from_dict(
        {
            "id": "plan",
            "nodes": [{"id": "n1", "type": "wizard", "data": {"status": "someday"}}],
            "edges": [{"id": "e1", "source": "n1", "target": "n1", "type": "teleport"}],
        }
    )

    assert document.nodes[0].type == "task"
    assert document.nodes[0].data.status == "pending"
    assert document.edges[0].type == "default"


def test_from_dict_rejects_non_object():
    with pytest.raises(TypeError):
        FlowchartDocument.from_dict(["not", "a", "document"])


def test_to_dict_uses_camel_case_wire_format():
    document = FlowchartDocument.from_dict(
        {
            "id": "plan",
            "name": "Plan",
            "engineeringMode": True,
            "nodes": [
                {
                    "id": "child",
                    "type": "task",
                    "position": {"x": 10, "y": 20},
                    "parentNode": "group",
                    "data": {"label": "Child", "metadata": {"file": "a.py"}},
                }
            ],
        }
    )
    payload = document.to_dict()

    assert payload["engineeringMode"] is True
    assert set(payload) >= {"createdAt", "updatedAt", "viewport", "annotations"}
    node_payload = payload["nodes"][0]
    assert node_payload["parentNode"] == "group"
    assert node_payload["position"] == {"x": 10.0, "y": 20.0}
    assert node_payload["data"]["metadata"] == {"file": "a.py"}


def test_annotations_pass_through_unchanged():
    strokes = [{"id": "s1", "points": [[0, 0, 0.5], [1, 1, 0.7]], "color": "#f00", "width": 2}]
    arrows = [{"id": "a1", "start": {"x": 0, "y": 0}, "end": {"x": 5, "y": 5}, "color": "#00f"}]
    document = FlowchartDocument.from_dict(
        {"id": "plan", "annotations": {"strokes": strokes, "arrows": arrows}}
    )

    assert document.to_dict()["annotations"] == {"strokes": strokes, "arrows": arrows}


def test_node_kind_helpers():
    assert FlowNode(id="g", type="phase_group").is_group
    assert FlowNode(id="a", type="annotation_note").is_annotation
    assert not FlowNode(id="t", type="task").is_annotation


def test_copy_is_independent():
    document = FlowchartDocument.from_dict(
        {"id": "plan", "nodes": [{"id": "n1", "data": {"metadata": {"a": 1}}}]}
    )
    clone = document.copy()
    clone.nodes[0].data.metadata["a"] = 2

    assert document.nodes[0].data.metadata == {"a": 1}


def test_bump_version_restamps_updated_at():
    document = FlowchartDocument(id="plan", updated_at="2000-01-01T00:00:00+00:00")
    document.bump_version()

    assert document.version == 2
    assert document.updated_at != "2000-01-01T00:00:00+00:00"


@pytest.mark.parametrize(
    "raw, expected",
    [
        (7, 7),
        (7.0, 7),
        ("7", 7),
        (" 12 ", 12),
        ("7.0", 7),
        (None, 1),
        (True, 1),
        ("seven", 1),
        (0, 1),
        (float("nan"), 1),
    ],
)
def test_from_dict_coerces_hand_edited_version(raw, expected):
    document = FlowchartDocument.from_dict({"id": "plan", "version": raw})

    assert document.version == expected
