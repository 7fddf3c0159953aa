"""Tests for the HTTP and WebSocket API."""

import time
from pathlib import Path

import httpx
import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from tailwatch.server import TailwatchServer
from tailwatch.settings import AppSettings


@pytest.fixture
def server():
    server = TailwatchServer(
        AppSettings(poll_interval_seconds=60, use_watcher=False), ping_interval=0.2
    )
    yield server
    server.sessions.close_all()


@pytest.fixture
def client(server: TailwatchServer):
    with TestClient(server.app) as client:
        yield client


def _receive_until(ws, message_type: str, limit: int = 50) -> dict:
    """Skip pings and unrelated messages until one of ``message_type`` arrives."""
    for _ in range(limit):
        message = ws.receive_json()
        if message["type"] == message_type:
            return message
    raise AssertionError(f"No {message_type} message received")


class TestHttpApi:
    """Tests for the REST endpoints."""

    def test_health(self, client: TestClient) -> None:
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"
        assert response.json()["sessions"] == {"total": 0, "running": 0}

    def test_open_session(self, client: TestClient, temp_log_file: Path) -> None:
        response = client.post("/sessions", json={"path": str(temp_log_file)})

        assert response.status_code == 201
        body = response.json()
        assert body["state"] == "running"
        assert body["total_lines"] == 3
        assert body["file_name"] == "test.log"

    def test_open_is_deduplicated(self, client: TestClient, temp_log_file: Path) -> None:
        first = client.post("/sessions", json={"path": str(temp_log_file)}).json()
        second = client.post("/sessions", json={"path": str(temp_log_file)}).json()

        assert first["session_id"] == second["session_id"]
        assert len(client.get("/sessions").json()) == 1

    def test_open_missing_file(self, client: TestClient, tmp_path: Path) -> None:
        body = client.post("/sessions", json={"path": str(tmp_path / "later.log")}).json()

        assert body["state"] == "file_missing"
        assert body["last_error"]["kind"] == "file_not_found"

    def test_open_requires_path(self, client: TestClient) -> None:
        assert client.post("/sessions", json={}).status_code == 422

    def test_lines(self, client: TestClient, temp_log_file: Path) -> None:
        session_id = client.post("/sessions", json={"path": str(temp_log_file)}).json()["session_id"]

        body = client.get(f"/sessions/{session_id}/lines", params={"limit": 2}).json()

        assert body["total_lines"] == 3
        assert [line["content"] for line in body["lines"]] == ["Line 2", "Line 3"]
        assert [line["line_number"] for line in body["lines"]] == [2, 3]

    def test_lines_negative_limit(self, client: TestClient, temp_log_file: Path) -> None:
        session_id = client.post("/sessions", json={"path": str(temp_log_file)}).json()["session_id"]

        response = client.get(f"/sessions/{session_id}/lines", params={"limit": -1})

        assert response.status_code == 400

    def test_pause_resume(self, client: TestClient, temp_log_file: Path) -> None:
        session_id = client.post("/sessions", json={"path": str(temp_log_file)}).json()["session_id"]

        paused = client.post(f"/sessions/{session_id}/pause").json()
        assert paused["changed"] is True
        assert paused["state"] == "paused"
        assert paused["status"]["title"] == "Paused"

        assert client.post(f"/sessions/{session_id}/pause").json()["changed"] is False

        resumed = client.post(f"/sessions/{session_id}/resume").json()
        assert resumed["changed"] is True
        assert resumed["state"] == "running"

    def test_start_after_file_appears(self, client: TestClient, tmp_path: Path) -> None:
        log_file = tmp_path / "later.log"
        session_id = client.post("/sessions", json={"path": str(log_file)}).json()["session_id"]

        log_file.write_text("hello\n")
        body = client.post(f"/sessions/{session_id}/start").json()

        assert body["started"] is True
        assert body["state"] == "running"
        assert body["total_lines"] == 1

    def test_clear(self, client: TestClient, temp_log_file: Path) -> None:
        session_id = client.post("/sessions", json={"path": str(temp_log_file)}).json()["session_id"]

        body = client.post(f"/sessions/{session_id}/clear").json()

        assert body["retained_lines"] == 0
        assert body["total_lines"] == 3

    def test_close_session(self, client: TestClient, temp_log_file: Path) -> None:
        session_id = client.post("/sessions", json={"path": str(temp_log_file)}).json()["session_id"]

        assert client.delete(f"/sessions/{session_id}").json() == {
            "session_id": session_id,
            "closed": True,
        }
        assert client.get(f"/sessions/{session_id}").status_code == 404

    @pytest.mark.parametrize(
        "method,path",
        [
            ("get", "/sessions/nope"),
            ("delete", "/sessions/nope"),
            ("post", "/sessions/nope/pause"),
            ("get", "/sessions/nope/lines"),
        ],
    )
    def test_unknown_session(self, client: TestClient, method: str, path: str) -> None:
        response = getattr(client, method)(path)

        assert response.status_code == 404
        assert "Session not found" in response.json()["detail"]


class TestAsyncClient:
    """Drive the app from an event loop, as uvicorn would."""

    @pytest.mark.asyncio
    async def test_open_and_read(self, server: TailwatchServer, temp_log_file: Path, append) -> None:
        transport = httpx.ASGITransport(app=server.app)
        async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
            response = await client.post("/sessions", json={"path": str(temp_log_file)})
            session_id = response.json()["session_id"]

            append(temp_log_file, "Line 4\n")
            server.sessions.get(session_id).engine.poll()

            body = (await client.get(f"/sessions/{session_id}/lines")).json()

        assert [line["line_number"] for line in body["lines"]] == [1, 2, 3, 4]

    @pytest.mark.asyncio
    async def test_health_counts_running(self, server: TailwatchServer, tmp_path: Path) -> None:
        (tmp_path / "a.log").write_text("a\n")
        transport = httpx.ASGITransport(app=server.app)
        async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
            await client.post("/sessions", json={"path": str(tmp_path / "a.log")})
            await client.post("/sessions", json={"path": str(tmp_path / "missing.log")})

            health = (await client.get("/health")).json()

        assert health["sessions"] == {"total": 2, "running": 1}


class TestWebSocket:
    """Tests for the session stream."""

    def test_snapshot_then_new_lines(
        self, client: TestClient, server: TailwatchServer, temp_log_file: Path, append
    ) -> None:
        session_id = client.post("/sessions", json={"path": str(temp_log_file)}).json()["session_id"]
        session = server.sessions.get(session_id)

        with client.websocket_connect(f"/ws/sessions/{session_id}") as ws:
            snapshot = ws.receive_json()
            assert snapshot["type"] == "snapshot"
            assert [line["content"] for line in snapshot["data"]["lines"]] == [
                "Line 1",
                "Line 2",
                "Line 3",
            ]

            append(temp_log_file, "Line 4\n")
            session.engine.poll()

            message = _receive_until(ws, "lines")
            assert message["data"][0]["content"] == "Line 4"
            assert message["data"][0]["line_number"] == 4

    def test_errors_forwarded(
        self, client: TestClient, server: TailwatchServer, temp_log_file: Path
    ) -> None:
        session_id = client.post("/sessions", json={"path": str(temp_log_file)}).json()["session_id"]
        session = server.sessions.get(session_id)

        with client.websocket_connect(f"/ws/sessions/{session_id}") as ws:
            ws.receive_json()
            temp_log_file.write_text("x\n")
            session.engine.poll()

            error = _receive_until(ws, "error")
            assert error["data"]["kind"] == "truncated"
            lines = _receive_until(ws, "lines")
            assert lines["data"] == [
                {
                    "content": "x",
                    "line_number": 4,
                    "observed_at": lines["data"][0]["observed_at"],
                }
            ]

    def test_commands(self, client: TestClient, server: TailwatchServer, temp_log_file: Path) -> None:
        session_id = client.post("/sessions", json={"path": str(temp_log_file)}).json()["session_id"]

        with client.websocket_connect(f"/ws/sessions/{session_id}") as ws:
            ws.receive_json()

            ws.send_text("pause")
            assert _receive_until(ws, "state")["data"] == {"state": "paused"}

            ws.send_text("resume")
            assert _receive_until(ws, "state")["data"] == {"state": "running"}

            ws.send_text("rewind")
            assert "Unknown command" in _receive_until(ws, "error")["data"]["message"]

        assert server.sessions.get(session_id).state.value == "running"

    def test_ping_when_idle(self, client: TestClient, temp_log_file: Path) -> None:
        session_id = client.post("/sessions", json={"path": str(temp_log_file)}).json()["session_id"]

        with client.websocket_connect(f"/ws/sessions/{session_id}") as ws:
            ws.receive_json()
            assert ws.receive_json() == {"type": "ping"}

    def test_disconnect_unsubscribes(
        self, client: TestClient, server: TailwatchServer, temp_log_file: Path
    ) -> None:
        session_id = client.post("/sessions", json={"path": str(temp_log_file)}).json()["session_id"]
        session = server.sessions.get(session_id)
        before = session.engine.events.get_subscriber_count()

        with client.websocket_connect(f"/ws/sessions/{session_id}") as ws:
            ws.receive_json()
            assert session.engine.events.get_subscriber_count() == before + 3

        # Handler cleanup runs after the close frame is processed
        client.get("/health")
        for _ in range(50):
            if session.engine.events.get_subscriber_count() == before:
                break
            time.sleep(0.05)
        assert session.engine.events.get_subscriber_count() == before

    def test_unknown_session_rejected(self, client: TestClient) -> None:
        with pytest.raises(WebSocketDisconnect) as exc_info:
            with client.websocket_connect("/ws/sessions/nope") as ws:
                ws.receive_json()

        assert exc_info.value.code == 4404
