"""Tests for the HTTP and WebSocket server."""

import pytest
from fastapi.testclient import TestClient

from magentic_orchestrator.core.models import AgentKind, ExecutionSession
from magentic_orchestrator.core.orchestrator import Orchestrator
from magentic_orchestrator.server.app import create_app

from conftest import FakeProvider, make_agents, text


@pytest.fixture
def claude():
    return FakeProvider([text("All done.")], name="claude")


@pytest.fixture
def client(claude, store):
    orchestrator = Orchestrator(make_agents(claude=claude), store=store)
    with TestClient(create_app(orchestrator=orchestrator, store=store)) as test_client:
        yield test_client


class TestHealth:

    def test_health(self, client):
        response = client.get("/api/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["service"] == "magentic-orchestrator"
        assert data["agents"] == ["claude"]
        assert data["running"] is False


class TestExecute:

    def test_execute_runs_in_background(self, client, store):
        response = client.post("/api/execute", json={"task": "Say hello"})

        assert response.status_code == 200
        assert response.json()["status"] == "started"

        summaries = client.get("/api/executions").json()
        assert len(summaries) == 1
        assert summaries[0]["task"] == "Say hello"
        assert summaries[0]["outcome"] == "completed"

        session = store.load(summaries[0]["id"])
        assert session.step_executions[0].agent is AgentKind.CLAUDE
        assert session.step_executions[0].response == "All done."

    def test_execute_with_file(self, client, pdf_file):
        response = client.post("/api/execute", json={"task": "Read it", "files": [pdf_file.path]})

        assert response.status_code == 200
        assert response.json()["files"][0]["mimeType"] == "application/pdf"

    def test_missing_file_rejected(self, client, tmp_path):
        response = client.post(
            "/api/execute", json={"task": "Read it", "files": [str(tmp_path / "nope.pdf")]}
        )
        assert response.status_code == 400

    def test_empty_task_rejected(self, client):
        assert client.post("/api/execute", json={"task": ""}).status_code == 422

    def test_refused_while_running(self, client):
        client.app.state.app_state.run_pending = True

        response = client.post("/api/execute", json={"task": "Another"})
        assert response.status_code == 409

        client.app.state.app_state.run_pending = False

    def test_abort_when_idle(self, client):
        assert client.post("/api/execute/abort").status_code == 409

    def test_abort_while_running(self, client):
        app_state = client.app.state.app_state
        app_state.run_pending = True

        response = client.post("/api/execute/abort")

        assert response.json() == {"status": "aborting", "message": "Abort requested"}
        assert app_state.orchestrator.token.is_cancelled
        app_state.run_pending = False


class TestExecutions:

    def test_get_execution(self, client, store):
        session = ExecutionSession()
        session.add_message("user", "stored task")
        store.save(session)

        response = client.get(f"/api/executions/{session.id}")
        assert response.status_code == 200
        assert response.json()["messages"][0]["content"] == "stored task"

    def test_unknown_execution(self, client):
        assert client.get("/api/executions/exec-1-missing").status_code == 404

    def test_invalid_execution_id(self, client):
        assert client.get("/api/executions/bad id").status_code == 400


class TestWebSocket:

    def test_connect_and_messages(self, client):
        with client.websocket_connect("/ws") as ws:
            connected = ws.receive_json()
            assert connected["type"] == "connected"
            assert connected["data"]["running"] is False

            ws.send_json({"type": "ping"})
            assert ws.receive_json() == {"type": "pong"}

            ws.send_json({"type": "get_status"})
            assert ws.receive_json()["type"] == "status"

            ws.send_json({"type": "launch"})
            error = ws.receive_json()
            assert error["type"] == "error"
            assert "launch" in error["data"]["message"]

    def test_invalid_json(self, client):
        with client.websocket_connect("/ws") as ws:
            ws.receive_json()
            ws.send_text("not json")
            assert ws.receive_json()["data"]["message"] == "Invalid JSON"


def test_shutdown_closes_providers(claude, store):
    orchestrator = Orchestrator(make_agents(claude=claude), store=store)
    with TestClient(create_app(orchestrator=orchestrator, store=store)):
        pass
    assert claude.closed
