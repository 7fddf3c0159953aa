"""HTTP and WebSocket API for tailwatch sessions."""

import asyncio
import logging
from datetime import datetime
from typing import Any

from fastapi import (  # type: ignore[import-untyped]
    FastAPI,
    HTTPException,
    WebSocket,
    WebSocketDisconnect,
)
from fastapi.middleware.cors import CORSMiddleware  # type: ignore[import-untyped]
from pydantic import BaseModel

from . import __version__
from .engine import TailError, TailLine, TailState
from .logging_manager import LoggingManager
from .session import SessionManager, SessionNotFoundError, TailSession
from .settings import AppSettings, SettingsService

logger = logging.getLogger(__name__)


class OpenSessionRequest(BaseModel):
    """Body of POST /sessions."""

    path: str


class TailwatchServer:
    """FastAPI application exposing tail sessions over HTTP and WebSocket."""

    def __init__(
        self,
        settings: AppSettings | None = None,
        settings_service: SettingsService | None = None,
        logging_manager: LoggingManager | None = None,
        ping_interval: float = 15.0,
    ):
        """Initialize the server.

        Args:
            settings: Settings for new sessions and the listen address
            settings_service: Persists recent files when given
            logging_manager: Supplies per-session loggers when given
            ping_interval: Seconds of silence before a WebSocket ping
        """
        self.settings = settings or AppSettings()
        self.ping_interval = ping_interval
        self.sessions = SessionManager(
            settings=self.settings,
            settings_service=settings_service,
            logging_manager=logging_manager,
        )
        self.server_start_time = datetime.now().isoformat()

        self.app = FastAPI(
            title="tailwatch",
            description="Follow growing text files over HTTP and WebSocket",
            version=__version__,
        )
        self.app.add_middleware(
            CORSMiddleware,
            allow_origins=["*"],
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )
        self._setup_routes()

        logger.info("tailwatch server initialized")

    def _get_session(self, session_id: str) -> TailSession:
        try:
            return self.sessions.get(session_id)
        except SessionNotFoundError as e:
            raise HTTPException(status_code=404, detail=f"Session not found: {session_id}") from e

    def _setup_routes(self):
        """Setup FastAPI routes."""

        @self.app.get("/health")
        async def health_check():
            """Health check endpoint."""
            sessions = self.sessions.list()
            return {
                "status": "healthy",
                "timestamp": datetime.now().isoformat(),
                "started_at": self.server_start_time,
                "version": __version__,
                "sessions": {
                    "total": len(sessions),
                    "running": len([s for s in sessions if s.state == TailState.RUNNING]),
                },
            }

        @self.app.get("/sessions")
        async def list_sessions():
            return [session.to_dict() for session in self.sessions.list()]

        @self.app.post("/sessions", status_code=201)
        async def open_session(request: OpenSessionRequest):
            session = await asyncio.to_thread(self.sessions.open, request.path)
            return session.to_dict()

        @self.app.get("/sessions/{session_id}")
        async def get_session(session_id: str):
            return self._get_session(session_id).to_dict()

        @self.app.delete("/sessions/{session_id}")
        async def close_session(session_id: str):
            self._get_session(session_id)
            await asyncio.to_thread(self.sessions.close, session_id)
            return {"session_id": session_id, "closed": True}

        @self.app.post("/sessions/{session_id}/start")
        async def start_session(session_id: str):
            session = self._get_session(session_id)
            started = await asyncio.to_thread(session.start)
            return {"started": started, **session.to_dict()}

        @self.app.post("/sessions/{session_id}/pause")
        async def pause_session(session_id: str):
            session = self._get_session(session_id)
            return {"changed": session.pause(), **session.to_dict()}

        @self.app.post("/sessions/{session_id}/resume")
        async def resume_session(session_id: str):
            session = self._get_session(session_id)
            return {"changed": session.resume(), **session.to_dict()}

        @self.app.post("/sessions/{session_id}/clear")
        async def clear_session(session_id: str):
            session = self._get_session(session_id)
            session.clear()
            return session.to_dict()

        @self.app.get("/sessions/{session_id}/lines")
        async def get_lines(session_id: str, limit: int = 100):
            session = self._get_session(session_id)
            if limit < 0:
                raise HTTPException(status_code=400, detail="limit must be >= 0")
            return {
                "session_id": session_id,
                "total_lines": session.engine.total_lines_read,
                "lines": [line.to_dict() for line in session.buffer.snapshot(limit)],
            }

        @self.app.websocket("/ws/sessions/{session_id}")
        async def session_websocket(websocket: WebSocket, session_id: str):
            """Stream a session's lines, state changes and errors."""
            try:
                session = self.sessions.get(session_id)
            except SessionNotFoundError:
                await websocket.close(code=4404)
                return

            await websocket.accept()
            logger.info(f"WebSocket client connected to session {session_id}")

            loop = asyncio.get_running_loop()
            queue: asyncio.Queue[dict[str, Any]] = asyncio.Queue()

            def enqueue(message: dict[str, Any]) -> None:
                # Called on the engine's loop thread
                try:
                    loop.call_soon_threadsafe(queue.put_nowait, message)
                except RuntimeError:
                    # Event loop already closed
                    pass

            def on_lines(lines: tuple[TailLine, ...]) -> None:
                enqueue({"type": "lines", "data": [line.to_dict() for line in lines]})

            def on_state(state: TailState) -> None:
                enqueue({"type": "state", "data": {"state": state.value}})

            def on_error(error: TailError) -> None:
                enqueue({"type": "error", "data": error.to_dict()})

            # Subscribe before the snapshot so nothing falls in between;
            # lines already in the snapshot are skipped below
            subscriptions = [
                session.engine.on_lines_added(on_lines),
                session.engine.on_state_changed(on_state),
                session.engine.on_error(on_error),
            ]
            commands = asyncio.create_task(self._read_commands(websocket, session, queue))
            try:
                snapshot = session.buffer.snapshot()
                last_sent = snapshot[-1].line_number if snapshot else 0
                await websocket.send_json(
                    {
                        "type": "snapshot",
                        "data": {
                            **session.to_dict(),
                            "lines": [line.to_dict() for line in snapshot],
                        },
                    }
                )

                while True:
                    try:
                        message = await asyncio.wait_for(queue.get(), timeout=self.ping_interval)
                    except TimeoutError:
                        await websocket.send_json({"type": "ping"})
                        continue

                    if message["type"] == "disconnect":
                        logger.info(f"WebSocket client disconnected from session {session_id}")
                        break
                    if message["type"] == "lines":
                        fresh = [line for line in message["data"] if line["line_number"] > last_sent]
                        if not fresh:
                            continue
                        last_sent = fresh[-1]["line_number"]
                        message = {"type": "lines", "data": fresh}
                    elif message["type"] == "state" and message["data"]["state"] == "idle":
                        # A restarted engine numbers lines from 1 again
                        last_sent = 0
                    await websocket.send_json(message)

            except WebSocketDisconnect:
                logger.info(f"WebSocket client disconnected from session {session_id}")
            except Exception as e:
                logger.error(f"WebSocket error in session {session_id}: {e}")
                try:
                    await websocket.close()
                except Exception:
                    pass
            finally:
                commands.cancel()
                for subscription_id in subscriptions:
                    session.engine.unsubscribe(subscription_id)

    async def _read_commands(
        self,
        websocket: WebSocket,
        session: TailSession,
        queue: "asyncio.Queue[dict[str, Any]]",
    ) -> None:
        """Apply "pause", "resume" and "clear" text commands from a client.

        Queues a disconnect marker when the client goes away so the sender
        loop in session_websocket can finish.
        """
        actions = {"pause": session.pause, "resume": session.resume, "clear": session.clear}
        try:
            while True:
                message = await websocket.receive()
                if message["type"] == "websocket.disconnect":
                    break
                action = actions.get((message.get("text") or "").strip().lower())
                if action is None:
                    await websocket.send_json(
                        {"type": "error", "data": {"message": f"Unknown command: {message.get('text')}"}}
                    )
                    continue
                action()
        except (WebSocketDisconnect, RuntimeError):
            pass
        finally:
            queue.put_nowait({"type": "disconnect"})

    async def start_server(self) -> None:
        """Serve the API with uvicorn until interrupted."""
        import uvicorn  # type: ignore[import-untyped]

        logger.info(
            f"Starting tailwatch server on {self.settings.server_host}:{self.settings.server_port}"
        )
        config = uvicorn.Config(
            self.app,
            host=self.settings.server_host,
            port=self.settings.server_port,
            log_level=self.settings.log_level.lower(),
        )
        server = uvicorn.Server(config)
        try:
            await server.serve()
        finally:
            await asyncio.to_thread(self.sessions.close_all)
