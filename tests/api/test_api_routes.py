"""Tests for the HTTP routes and the Socket.IO push channel."""

import json
from pathlib import Path

import pytest

from flowplan.api.server import create_server
from flowplan.config.settings import Settings
from flowplan.storage.store import FlowchartStore


@pytest.fixture
def api(tmp_path: Path):
    settings = Settings(
        project_dir=tmp_path / "project",
        log_file=tmp_path / "logs" / "flowplan.log",
    )
    server = create_server(settings, store=FlowchartStore(settings.project_dir, watch=False))
    yield server
    server.close()


@pytest.fixture
def client(api):
    return api.app.test_client()


class TestHttpRoutes:
    def test_list_is_empty_for_new_project(self, client):
        response = client.get("/api/flowcharts")

        assert response.status_code == 200
        assert response.get_json() == []

    def test_list_returns_summaries(self, api, client):
        api.store.create("Alpha")
        api.store.create("Beta", "Second plan")

        summaries = client.get("/api/flowcharts").get_json()

        assert [s["id"] for s in summaries] == ["alpha", "beta"]
        assert summaries[1]["description"] == "Second plan"

    def test_get_unknown_flowchart_is_404(self, client):
        response = client.get("/api/flowchart/missing")

        assert response.status_code == 404
        assert response.get_json() == {"error": "Not found"}

    def test_get_returns_full_document(self, api, client):
        flowchart_id = api.store.create("Plan", template="basic")

        payload = client.get(f"/api/flowchart/{flowchart_id}").get_json()

        assert payload["id"] == flowchart_id
        assert [n["id"] for n in payload["nodes"]] == ["start-1", "end-1"]

    def test_put_creates_with_exact_id(self, api, client):
        response = client.put(
            "/api/flowchart/Custom_ID",
            json={"name": "Imported", "nodes": [{"id": "n1", "type": "task"}]},
        )

        assert response.status_code == 200
        payload = response.get_json()
        assert payload["id"] == "Custom_ID"
        assert payload["version"] == 1
        assert api.store.read("Custom_ID").get_node("n1") is not None

    def test_put_updates_existing_document(self, api, client):
        flowchart_id = api.store.create("Plan")

        payload = client.put(
            f"/api/flowchart/{flowchart_id}",
            json={"name": "Renamed", "version": 99, "id": "ignored"},
        ).get_json()

        assert payload["id"] == flowchart_id
        assert payload["name"] == "Renamed"
        assert payload["version"] == 2

    def test_put_rejects_non_object_body(self, client):
        response = client.put("/api/flowchart/plan", json=["not", "an", "object"])

        assert response.status_code == 400
        assert "error" in response.get_json()

    def test_put_rejects_invalid_id(self, client):
        response = client.put("/api/flowchart/.hidden", json={"name": "x"})

        assert response.status_code == 400

    def test_get_malformed_file_is_500(self, api, client):
        (api.store.flowplans_dir / "broken.json").write_text("{not json", encoding="utf-8")

        response = client.get("/api/flowchart/broken")

        assert response.status_code == 500
        assert "broken.json" in response.get_json()["error"]

    def test_put_is_broadcast(self, api, client):
        received = []

        class Recorder:
            def send(self, message):
                received.append(json.loads(message))

        api.broadcaster.subscribe(Recorder())
        client.put("/api/flowchart/plan", json={"name": "Plan"})

        assert len(received) == 1
        assert received[0]["type"] == "flowchart_update"
        assert received[0]["id"] == "plan"
        assert received[0]["data"]["name"] == "Plan"


class TestSocketChannel:
    def test_connected_client_receives_updates(self, api):
        socket_client = api.socketio.test_client(api.app)
        assert socket_client.is_connected()
        assert api.broadcaster.subscriber_count == 1

        flowchart_id = api.store.create("Pushed")

        messages = [m for m in socket_client.get_received() if m["name"] == "message"]
        assert len(messages) == 1
        envelope = json.loads(messages[0]["args"])
        assert envelope["id"] == flowchart_id
        assert envelope["data"]["version"] == 1
        socket_client.disconnect()

    def test_disconnect_unsubscribes(self, api):
        socket_client = api.socketio.test_client(api.app)
        socket_client.disconnect()

        assert api.broadcaster.subscriber_count == 0
