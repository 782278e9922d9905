"""FastAPI server exposing the session engine over a websocket.

One websocket connection is one session. Inbound frames are processed
one at a time per connection and replies are written back in the order
the engine produced them. A small HTTP surface provides health and
diagnostics plus the explicit save hand-off.
"""

from __future__ import annotations

import asyncio
import json
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Awaitable, Callable

import uvicorn
from fastapi import FastAPI, HTTPException, WebSocket
from pydantic import BaseModel, Field
from starlette.websockets import WebSocketDisconnect, WebSocketState

from screenguide import __version__
from screenguide.config.settings import Settings
from screenguide.domain.errors import SessionLookupError
from screenguide.domain.models import OutboundMessage
from screenguide.gateway import AIGateway, build_gateway
from screenguide.session.engine import SessionEngine
from screenguide.session.persistence import (
    InMemoryRecordStore,
    SessionRecord,
    SessionRecordStore,
    save_record,
    snapshot_for_save,
)
from screenguide.session.store import SessionStore

logger = logging.getLogger(__name__)


class SaveLiveSessionRequest(BaseModel):
    user_id: int | str = Field(alias="userId")
    title: str | None = None


class ServerStatus(BaseModel):
    status: str = "ok"
    version: str = __version__
    active_sessions: int = 0
    gateway: str = ""
    model: str = ""


def create_app(
    settings: Settings | None = None,
    gateway: AIGateway | None = None,
    store: SessionStore | None = None,
    records: SessionRecordStore | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = settings or Settings()
    gateway = gateway or build_gateway(settings)
    engine = SessionEngine.from_settings(settings, gateway, store=store)
    records = records or InMemoryRecordStore()
    connections: dict[str, WebSocket] = {}

    async def close_evicted(session_id: str) -> None:
        websocket = connections.get(session_id)
        if websocket is not None:
            await _close(websocket, "session expired")

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        # Startup
        app.state.sweep_task = asyncio.create_task(
            _sweep_idle_sessions(
                engine.store,
                settings.session.idle_timeout_seconds,
                settings.session.sweep_interval_seconds,
                on_evict=close_evicted,
            )
        )
        logger.info(
            "Server started (gateway=%s, model=%s, ws=%s)",
            gateway.provider, gateway.model, settings.server.ws_path,
        )
        yield
        # Shutdown
        app.state.sweep_task.cancel()
        try:
            await app.state.sweep_task
        except asyncio.CancelledError:
            pass
        await gateway.aclose()
        logger.info("Server stopped")

    app = FastAPI(
        title="screenguide",
        description="Real-time screen guidance relay",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.engine = engine
    app.state.records = records

    @app.get("/health")
    async def health_check() -> ServerStatus:
        return ServerStatus(
            active_sessions=len(engine.store),
            gateway=gateway.provider,
            model=gateway.model,
        )

    @app.get("/status")
    async def session_status() -> dict[str, Any]:
        sessions = engine.store.list_active()
        return {
            "success": True,
            "server": "running",
            "activeWebSocketConnections": len(sessions),
            "sessions": sessions,
        }

    @app.post("/save-session")
    async def save_session(record: SessionRecord) -> dict[str, Any]:
        record_id, title = await save_record(records, gateway, record)
        return {"success": True, "sessionId": record_id, "title": title}

    @app.post("/live-sessions/{session_id}/save")
    async def save_live_session(session_id: str, request: SaveLiveSessionRequest) -> dict[str, Any]:
        try:
            state = engine.store.get(session_id)
        except SessionLookupError:
            raise HTTPException(status_code=404, detail="Session not found")
        record = snapshot_for_save(state, request.user_id, request.title)
        record_id, title = await save_record(records, gateway, record)
        return {"success": True, "sessionId": record_id, "title": title}

    @app.get("/sessions/{record_id}")
    async def get_saved_session(record_id: str) -> dict[str, Any]:
        try:
            record = await records.get(record_id)
        except KeyError:
            raise HTTPException(status_code=404, detail="Session not found")
        return {"success": True, "session": record.model_dump(mode="json", by_alias=True)}

    @app.websocket(settings.server.ws_path)
    async def session_socket(websocket: WebSocket) -> None:
        await websocket.accept()
        session, connected = engine.connect()
        session_id = session.session_id
        connections[session_id] = websocket
        try:
            await _send(websocket, connected)
            while True:
                message = await websocket.receive()
                if message["type"] == "websocket.disconnect":
                    break
                raw = message.get("text")
                if raw is None:
                    raw = message.get("bytes") or b""
                for reply in await engine.handle(session_id, raw):
                    await _send(websocket, reply)
                if not engine.is_active(session_id):
                    logger.info("Session %s expired, closing connection", session_id)
                    await _close(websocket, "session expired")
                    break
        except WebSocketDisconnect:
            pass
        finally:
            connections.pop(session_id, None)
            engine.disconnect(session_id)
            logger.info("Connection for session %s closed", session_id)

    return app


async def _send(websocket: WebSocket, message: OutboundMessage) -> None:
    if WebSocketState.DISCONNECTED in (websocket.client_state, websocket.application_state):
        return
    await websocket.send_text(json.dumps(message.to_wire()))


async def _close(websocket: WebSocket, reason: str) -> None:
    if WebSocketState.DISCONNECTED in (websocket.client_state, websocket.application_state):
        return
    await websocket.close(code=1000, reason=reason)


async def _sweep_idle_sessions(
    store: SessionStore,
    idle_timeout: float,
    interval: float,
    on_evict: Callable[[str], Awaitable[None]] | None = None,
) -> None:
    """Periodically evict sessions idle longer than ``idle_timeout``.

    ``on_evict`` is awaited once per evicted session id, e.g. to close the
    connection that owned it.
    """
    if idle_timeout <= 0:
        return
    while True:
        try:
            await asyncio.sleep(interval)
            for session_id in store.evict_idle(idle_timeout):
                if on_evict is not None:
                    await on_evict(session_id)
        except asyncio.CancelledError:
            break
        except Exception as e:
            logger.error("Idle session sweep failed: %s", e)


def main(settings: Settings | None = None) -> None:
    """Entry point for running the server standalone."""
    settings = settings or Settings()
    app = create_app(settings)
    uvicorn.run(app, host=settings.server.host, port=settings.server.port)


if __name__ == "__main__":
    main()
