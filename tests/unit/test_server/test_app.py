"""Tests for the FastAPI websocket server."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from helpers import FakeClock, oversized_png_base64
from screenguide.config.settings import Settings
from screenguide.server.app import _sweep_idle_sessions, create_app
from screenguide.session.store import SessionStore


@pytest.fixture
def app_store() -> SessionStore:
    return SessionStore()


@pytest.fixture
def client(mock_gateway: AsyncMock, app_store: SessionStore) -> TestClient:
    """A test client with the mock gateway injected."""
    app = create_app(Settings(), gateway=mock_gateway, store=app_store)
    return TestClient(app)


class TestHealthEndpoint:
    def test_health_returns_ok(self, client: TestClient) -> None:
        resp = client.get("/health")
        assert resp.status_code == 200
        data = resp.json()
        assert data["status"] == "ok"
        assert data["gateway"] == "mock"
        assert data["active_sessions"] == 0


class TestWebSocket:
    def test_connect_sends_session_id(self, client: TestClient, app_store: SessionStore) -> None:
        with client.websocket_connect("/ws") as ws:
            hello = ws.receive_json()
            assert hello["kind"] == "connected"
            assert hello["sessionId"] in app_store

    def test_ping_pong(self, client: TestClient) -> None:
        with client.websocket_connect("/ws") as ws:
            ws.receive_json()
            ws.send_json({"kind": "ping"})
            assert ws.receive_json() == {"kind": "pong"}

    def test_frame_then_skip(self, client: TestClient, blue_frame: str, mock_gateway: AsyncMock) -> None:
        with client.websocket_connect("/ws") as ws:
            ws.receive_json()
            ws.send_json({"kind": "frame", "image": blue_frame})
            guidance = ws.receive_json()
            assert guidance["kind"] == "guidance"
            assert guidance["text"] == "Click the Deploy button in the top right."
            assert guidance["timestamp"].endswith("Z")

            ws.send_json({"kind": "frame", "image": blue_frame})
            status = ws.receive_json()
            assert status["kind"] == "status"
            assert status["text"] == "skipped"
        assert mock_gateway.complete.await_count == 1

    def test_malformed_messages_keep_connection_open(self, client: TestClient) -> None:
        with client.websocket_connect("/ws") as ws:
            ws.receive_json()
            ws.send_text("not json at all")
            error = ws.receive_json()
            assert error["kind"] == "error"
            assert error["reason"] == "unrecognized or malformed message"

            ws.send_json({"nokind": True})
            assert ws.receive_json()["kind"] == "error"

            ws.send_json({"kind": "ping"})
            assert ws.receive_json() == {"kind": "pong"}

    def test_update_metadata_is_silent(self, client: TestClient) -> None:
        with client.websocket_connect("/ws") as ws:
            ws.receive_json()
            ws.send_json({"kind": "update_metadata", "metadata": {"currentStep": 1}})
            ws.send_json({"kind": "ping"})
            assert ws.receive_json() == {"kind": "pong"}

    def test_chat_and_history(self, client: TestClient) -> None:
        with client.websocket_connect("/ws") as ws:
            ws.receive_json()
            ws.send_json({"kind": "chat", "text": "Help me deploy a website"})
            assert ws.receive_json()["kind"] == "guidance"
            ws.send_json({"kind": "get_history"})
            history = ws.receive_json()
            assert history["kind"] == "history"
            assert [t["role"] for t in history["conversationHistory"]] == ["user", "assistant"]
            assert history["screenHistory"] == []

    def test_status_lists_active_sessions(self, client: TestClient) -> None:
        with client.websocket_connect("/ws") as ws:
            session_id = ws.receive_json()["sessionId"]
            ws.send_json({"kind": "set_goal", "goal": "Ship it"})
            assert ws.receive_json()["text"] == "Goal updated"

            data = client.get("/status").json()
            assert data["activeWebSocketConnections"] == 1
            assert data["sessions"][0]["sessionId"] == session_id
            assert data["sessions"][0]["userGoal"] == "Ship it"

    def test_oversized_frame_answered_with_error(self, client: TestClient, mock_gateway: AsyncMock) -> None:
        with client.websocket_connect("/ws") as ws:
            ws.receive_json()
            ws.send_json({"kind": "frame", "image": oversized_png_base64()})
            error = ws.receive_json()
            assert error["kind"] == "error"
            assert error["reason"] == "Invalid frame data"
            ws.send_json({"kind": "ping"})
            assert ws.receive_json() == {"kind": "pong"}
        mock_gateway.complete.assert_not_called()

    def test_evicted_session_closes_connection(self, client: TestClient, app_store: SessionStore) -> None:
        with client.websocket_connect("/ws") as ws:
            session_id = ws.receive_json()["sessionId"]
            app_store.remove(session_id)
            ws.send_json({"kind": "ping"})
            message = ws.receive()
            assert message["type"] == "websocket.close"


class TestSaveEndpoints:
    def test_save_and_fetch(self, client: TestClient, mock_gateway: AsyncMock) -> None:
        resp = client.post(
            "/save-session",
            json={"userId": 1, "messages": [{"role": "user", "content": "deploy"}]},
        )
        assert resp.status_code == 200
        body = resp.json()
        assert body["success"] is True
        assert body["title"] == "Click the Deploy button in the top right."

        saved = client.get(f"/sessions/{body['sessionId']}").json()["session"]
        assert saved["userId"] == 1
        assert saved["messages"][0]["content"] == "deploy"

    def test_save_requires_messages(self, client: TestClient) -> None:
        assert client.post("/save-session", json={"userId": 1}).status_code == 422

    def test_missing_record(self, client: TestClient) -> None:
        assert client.get("/sessions/nope").status_code == 404

    def test_save_live_session(self, client: TestClient) -> None:
        with client.websocket_connect("/ws") as ws:
            session_id = ws.receive_json()["sessionId"]
            ws.send_json({"kind": "chat", "text": "hello"})
            ws.receive_json()
            resp = client.post(f"/live-sessions/{session_id}/save", json={"userId": 9, "title": "Mine"})
            assert resp.status_code == 200
            record_id = resp.json()["sessionId"]

        saved = client.get(f"/sessions/{record_id}").json()["session"]
        assert saved["title"] == "Mine"
        assert len(saved["messages"]) == 2

    def test_save_unknown_live_session(self, client: TestClient) -> None:
        resp = client.post("/live-sessions/session_nope/save", json={"userId": 1})
        assert resp.status_code == 404


class TestLifespan:
    def test_lifespan_closes_gateway(self, mock_gateway: AsyncMock) -> None:
        app = create_app(Settings(), gateway=mock_gateway)
        with TestClient(app) as client:
            assert client.get("/health").status_code == 200
        mock_gateway.aclose.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_sweep_evicts_idle_sessions(self, clock: FakeClock) -> None:
        store = SessionStore(clock=clock)
        idle = store.create()
        clock.advance(10_000)
        task = asyncio.create_task(_sweep_idle_sessions(store, idle_timeout=5.0, interval=0.01))
        await asyncio.sleep(0.05)
        task.cancel()
        await task
        assert idle.session_id not in store

    @pytest.mark.asyncio
    async def test_sweep_reports_evicted_sessions(self, clock: FakeClock) -> None:
        store = SessionStore(clock=clock)
        idle = store.create()
        clock.advance(10_000)
        evicted: list[str] = []

        async def record(session_id: str) -> None:
            evicted.append(session_id)

        task = asyncio.create_task(
            _sweep_idle_sessions(store, idle_timeout=5.0, interval=0.01, on_evict=record)
        )
        await asyncio.sleep(0.05)
        task.cancel()
        await task
        assert evicted == [idle.session_id]

    def test_sweep_closes_evicted_connection(self, mock_gateway: AsyncMock, clock: FakeClock) -> None:
        store = SessionStore(clock=clock)
        settings = Settings(session={"idle_timeout_seconds": 5, "sweep_interval_seconds": 0.01})
        app = create_app(settings, gateway=mock_gateway, store=store)
        with TestClient(app) as client:
            with client.websocket_connect("/ws") as ws:
                session_id = ws.receive_json()["sessionId"]
                clock.advance(10_000)
                message = ws.receive()
                assert message["type"] == "websocket.close"
                assert message["reason"] == "session expired"
            assert session_id not in store

    @pytest.mark.asyncio
    async def test_sweep_disabled(self, clock: FakeClock) -> None:
        store = SessionStore(clock=clock)
        store.create()
        clock.advance(10**7)
        await _sweep_idle_sessions(store, idle_timeout=0, interval=0.01)
        assert len(store) == 1
