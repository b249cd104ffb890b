"""FastAPI HTTP server exposing tmux state.

All routes sit behind the access gate. Session and pane information is
read through the tmux client, pane contents can be fetched once or
followed as a server-sent event stream, and friendly session names are
kept in a small JSON file.

    GET    /api                                               -> service metadata
    GET    /health                                            -> {"status": "healthy", ...}
    GET    /tmux/sessions                                     -> all sessions
    GET    /tmux/sessions/{session}                           -> one session with windows/panes
    POST   /tmux/create/{session}                             -> new detached session
    DELETE /tmux/kill/{session}                               -> kill a session
    GET    /tmux/sessions/{s}/windows/{w}/panes/{p}/content   -> current pane text
    GET    /tmux/sessions/{s}/windows/{w}/panes/{p}/stream    -> text/event-stream of updates
    GET    /tmux/session-names                                -> friendly name map
    POST   /tmux/session-names/{session}                      <- {"friendly_name": "..."}
    DELETE /tmux/session-names/{session}                      -> remove a friendly name
    POST   /tmux/command                                      <- {"session": "...", "command": "..."}
"""

from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, AsyncIterator

import uvicorn
from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel, Field
from starlette.exceptions import HTTPException as StarletteHTTPException

from tmuxgate import __version__
from tmuxgate.access.classifier import build_policy
from tmuxgate.access.gate import install_access_gate
from tmuxgate.config.settings import Settings
from tmuxgate.domain.models import PaneTarget
from tmuxgate.names.store import PersistenceError, SessionNameStore
from tmuxgate.stream.session import StreamSession
from tmuxgate.tmux.client import SessionNotFoundError, TmuxClient
from tmuxgate.tmux.runner import CommandError, CommandRunner
from tmuxgate.tmux.sampler import PaneSampler

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Request / response models
# ---------------------------------------------------------------------------

class FriendlyNameRequest(BaseModel):
    friendly_name: Any = Field(default=None, description="Label to show for the session")


class CommandRequest(BaseModel):
    session: Any = Field(default=None, description="Session that must exist")
    command: Any = Field(default=None, description="tmux arguments, e.g. 'send-keys -t work ls Enter'")


class HealthResponse(BaseModel):
    status: str = "healthy"
    timestamp: datetime
    uptime_seconds: float


SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",  # Disable nginx buffering if behind nginx
    "Access-Control-Allow-Origin": "*",
}

PANE_PATH = "/tmux/sessions/{session}/windows/{window}/panes/{pane}"

ENDPOINTS = {
    "/api": "This help message",
    "/health": "Health check endpoint",
    "/tmux/sessions": "List all tmux sessions",
    "/tmux/sessions/:session": "Get info about specific tmux session",
    "/tmux/create/:session": "Create a new tmux session",
    "/tmux/kill/:session": "Kill a tmux session",
    "/tmux/sessions/:session/windows/:window/panes/:pane/content": "Get current pane content",
    "/tmux/sessions/:session/windows/:window/panes/:pane/stream": "Stream pane updates (SSE)",
    "/tmux/session-names": "List friendly session names",
    "/tmux/session-names/:session": "Set (POST) or remove (DELETE) a friendly name",
    "/tmux/command": "Run a tmux command against an existing session",
}


# ---------------------------------------------------------------------------
# Application factory
# ---------------------------------------------------------------------------

def create_app(
    settings: Settings | None = None,
    runner: CommandRunner | None = None,
    tmux: TmuxClient | None = None,
    sampler: PaneSampler | None = None,
    names: SessionNameStore | None = None,
) -> FastAPI:
    """Create the tmuxgate application.

    Args:
        settings: Loaded settings. Defaults apply when None.
        runner: Optional pre-configured CommandRunner (for testing).
        tmux: Optional pre-configured TmuxClient (for testing).
        sampler: Optional pre-configured PaneSampler (for testing).
        names: Optional pre-configured SessionNameStore (for testing).
    """
    settings = settings or Settings()
    runner = runner or CommandRunner(timeout=settings.tmux.command_timeout)
    policy = build_policy(settings.access)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        logger.info("tmuxgate %s serving (access control %s)",
                    __version__, "enabled" if policy.enabled else "disabled")
        yield
        logger.info("tmuxgate stopped")

    app = FastAPI(
        title="tmuxgate",
        description="tmux sessions, windows and panes over HTTP",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.policy = policy
    app.state.tmux = tmux or TmuxClient(runner, tmux_binary=settings.tmux.binary)
    app.state.sampler = sampler or PaneSampler(runner, tmux_binary=settings.tmux.binary)
    app.state.names = names or SessionNameStore(settings.storage.session_names_file)
    app.state.started_at = time.monotonic()

    install_access_gate(app, policy, settings.access)

    # -------------------------------------------------------------------
    # Error responses
    # -------------------------------------------------------------------

    @app.exception_handler(CommandError)
    async def command_error_handler(request: Request, exc: CommandError) -> JSONResponse:
        logger.error("Command failed for %s %s: %s %s",
                     request.method, request.url.path, exc.message, exc.stderr.strip())
        return JSONResponse(
            status_code=500,
            content={"success": False, "error": exc.message, "details": exc.stderr},
        )

    @app.exception_handler(SessionNotFoundError)
    async def not_found_handler(request: Request, exc: SessionNotFoundError) -> JSONResponse:
        logger.info("Session %s not found (%s %s)", exc.session, request.method, request.url.path)
        return JSONResponse(status_code=404, content={"success": False, "error": str(exc)})

    @app.exception_handler(PersistenceError)
    async def persistence_error_handler(request: Request, exc: PersistenceError) -> JSONResponse:
        logger.error("Session names not saved: %s", exc)
        return JSONResponse(
            status_code=500,
            content={"success": False, "error": "Failed to save session names", "details": str(exc)},
        )

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        return JSONResponse(
            status_code=400,
            content={"success": False, "error": "Invalid request body", "details": jsonable_encoder(exc.errors())},
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        error = "Endpoint not found" if exc.status_code == 404 else str(exc.detail)
        return JSONResponse(status_code=exc.status_code, content={"success": False, "error": error})

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled error for %s %s", request.method, request.url.path)
        return JSONResponse(status_code=500, content={"success": False, "error": "Something went wrong!"})

    # -------------------------------------------------------------------
    # Service endpoints
    # -------------------------------------------------------------------

    @app.get("/api")
    async def api_info() -> dict[str, Any]:
        return {
            "message": "tmuxgate: tmux sessions over HTTP",
            "version": __version__,
            "endpoints": ENDPOINTS,
        }

    @app.get("/health")
    async def health_check() -> HealthResponse:
        return HealthResponse(
            status="healthy",
            timestamp=datetime.now(),
            uptime_seconds=round(time.monotonic() - app.state.started_at, 3),
        )

    # -------------------------------------------------------------------
    # Session endpoints
    # -------------------------------------------------------------------

    @app.get("/tmux/sessions")
    async def list_sessions() -> dict[str, Any]:
        client: TmuxClient = app.state.tmux
        friendly_names = await app.state.names.load()
        sessions = await client.list_sessions(friendly_names)
        return {
            "success": True,
            "sessions": [s.model_dump(mode="json", exclude={"windows_info"}) for s in sessions],
            "count": len(sessions),
        }

    @app.get("/tmux/sessions/{session}")
    async def get_session(session: str) -> dict[str, Any]:
        client: TmuxClient = app.state.tmux
        friendly_names = await app.state.names.load()
        info = await client.get_session(session, friendly_names)
        return {"success": True, "session": info.model_dump(mode="json", exclude={"active_window"})}

    @app.post("/tmux/create/{session}")
    async def create_session(session: str) -> dict[str, Any]:
        client: TmuxClient = app.state.tmux
        await client.create_session(session)
        return {"success": True, "message": f"Session '{session}' created successfully"}

    @app.delete("/tmux/kill/{session}")
    async def kill_session(session: str) -> dict[str, Any]:
        client: TmuxClient = app.state.tmux
        await client.kill_session(session)
        return {"success": True, "message": f"Session '{session}' killed successfully"}

    # -------------------------------------------------------------------
    # Pane content endpoints
    # -------------------------------------------------------------------

    @app.get(PANE_PATH + "/content")
    async def pane_content(session: str, window: str, pane: str) -> dict[str, Any]:
        s: PaneSampler = app.state.sampler
        content = await s.capture(PaneTarget(session=session, window=window, pane=pane))
        return {"success": True, "content": content, "timestamp": datetime.now().isoformat()}

    @app.get(PANE_PATH + "/stream")
    async def pane_stream(session: str, window: str, pane: str) -> StreamingResponse:
        stream_config = app.state.settings.stream
        stream = StreamSession(
            PaneTarget(session=session, window=window, pane=pane),
            app.state.sampler,
            interval=stream_config.interval,
            max_consecutive_errors=stream_config.max_consecutive_errors,
            max_pending=stream_config.max_pending,
        )
        return StreamingResponse(
            _event_source(stream),
            media_type="text/event-stream",
            headers=SSE_HEADERS,
        )

    # -------------------------------------------------------------------
    # Friendly name endpoints
    # -------------------------------------------------------------------

    @app.get("/tmux/session-names")
    async def list_session_names() -> dict[str, Any]:
        store: SessionNameStore = app.state.names
        return {"success": True, "session_names": await store.load()}

    @app.post("/tmux/session-names/{session}")
    async def set_session_name(session: str, request: FriendlyNameRequest) -> JSONResponse:
        name = request.friendly_name
        if not isinstance(name, str) or not name.strip():
            return JSONResponse(
                status_code=400,
                content={
                    "success": False,
                    "error": "Friendly name is required and must be a non-empty string",
                },
            )
        store: SessionNameStore = app.state.names
        names = await store.set_name(session, name.strip())
        return JSONResponse(content={
            "success": True,
            "message": f"Friendly name '{name.strip()}' set for session '{session}'",
            "session_names": names,
        })

    @app.delete("/tmux/session-names/{session}")
    async def remove_session_name(session: str) -> dict[str, Any]:
        store: SessionNameStore = app.state.names
        names = await store.remove_name(session)
        return {
            "success": True,
            "message": f"Friendly name removed for session '{session}'",
            "session_names": names,
        }

    # -------------------------------------------------------------------
    # Generic command endpoint
    # -------------------------------------------------------------------

    @app.post("/tmux/command")
    async def run_command(request: CommandRequest) -> JSONResponse:
        if not isinstance(request.session, str) or not isinstance(request.command, str) \
                or not request.session or not request.command:
            return JSONResponse(
                status_code=400,
                content={"success": False, "error": "Session and command are required"},
            )
        client: TmuxClient = app.state.tmux
        output = await client.run_command(request.session, request.command)
        return JSONResponse(content={
            "success": True,
            "message": "Command executed successfully",
            "output": output,
        })

    return app


async def _event_source(stream: StreamSession) -> AsyncIterator[str]:
    """Serialize stream messages as server-sent events.

    The ``finally`` block runs when the stream ends or when the client
    goes away and the response is cancelled.
    """
    stream.start()
    try:
        async for message in stream.events():
            yield f"data: {message.model_dump_json()}\n\n"
    finally:
        stream.close()


# ---------------------------------------------------------------------------
# Standalone entry point
# ---------------------------------------------------------------------------

def main(settings: Settings | None = None) -> None:
    """Run the tmuxgate server."""
    settings = settings or Settings()
    app = create_app(settings)
    uvicorn.run(app, host=settings.server.host, port=settings.server.port)


if __name__ == "__main__":
    main()
