"""HTTP surface for Switchboard.

Endpoints:
  POST   /mcp     - Submit JSON-RPC (creates a session on initialize)
  GET    /mcp     - Server-push channel (SSE) for a session
  DELETE /mcp     - Terminate a session
  GET    /health  - Health check

The session id travels in the mcp-session-id header. Requests that cannot
be routed to a session are rejected here, before any session or tool
logic runs; everything else is answered by the session's own MCP
transport.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from mcp import types
from mcp.server.streamable_http import MCP_SESSION_ID_HEADER
from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import JSONResponse, PlainTextResponse
from starlette.routing import Route
from starlette.types import Message, Receive, Scope, Send

from switchboard.api.mcp import error_response
from switchboard.api.sessions import INVALID_SESSION_MESSAGE, InvalidSession, SessionStore
from switchboard.config import Settings
from switchboard.tools.registry import ToolRegistry

logger = logging.getLogger(__name__)

SESSION_HEADER = MCP_SESSION_ID_HEADER

# JSON-RPC server error code used for unroutable session requests
INVALID_SESSION_CODE = -32000


def _replay_receive(body: bytes, receive: Receive) -> Receive:
    """Hand an already-read request body to the next ASGI app."""
    sent = False

    async def replay() -> Message:
        nonlocal sent
        if not sent:
            sent = True
            return {"type": "http.request", "body": body, "more_body": False}
        return await receive()

    return replay


class McpEndpoint:
    """ASGI endpoint for /mcp: routes each request to its session's transport."""

    def __init__(self, store: SessionStore) -> None:
        self._store = store

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        request = Request(scope, receive)
        session_id = request.headers.get(SESSION_HEADER)

        if request.method == "POST":
            body = await request.body()
            try:
                payload = json.loads(body)
            except ValueError:
                response = JSONResponse(
                    error_response(None, types.PARSE_ERROR, "Parse error: Invalid JSON"),
                    status_code=400,
                )
                await response(scope, receive, send)
                return
            try:
                session = await self._store.handle_incoming(session_id, payload)
            except InvalidSession:
                response = JSONResponse(
                    error_response(None, INVALID_SESSION_CODE, INVALID_SESSION_MESSAGE),
                    status_code=400,
                )
                await response(scope, receive, send)
                return
            receive = _replay_receive(body, receive)
        else:
            try:
                session = self._store.get(session_id)
            except InvalidSession:
                response = PlainTextResponse("Invalid or missing session ID", status_code=400)
                await response(scope, receive, send)
                return

        if not session_id:
            status = await _send_and_report_status(session.transport.handle_request, scope, receive, send)
            if status is None or status >= 400:
                # The opening request was refused, so nothing was established
                logger.warning("Session %s not established (HTTP %s)", session.session_id, status)
                await self._store.close_session(session.session_id)
            return

        await session.transport.handle_request(scope, receive, send)
        if session.transport.is_terminated:
            await self._store.close_session(session.session_id)


async def _send_and_report_status(app: Any, scope: Scope, receive: Receive, send: Send) -> int | None:
    """Run app for one request and return the HTTP status it answered with."""
    status: int | None = None

    async def watch_status(message: Message) -> None:
        nonlocal status
        if message["type"] == "http.response.start":
            status = message["status"]
        await send(message)

    await app(scope, receive, watch_status)
    return status


def create_app(
    store: SessionStore,
    registry: ToolRegistry,
    settings: Settings,
    lifespan: Any | None = None,
) -> Starlette:
    """Create the Starlette ASGI app with all routes."""

    async def health(request: Request) -> JSONResponse:
        """GET /health - liveness plus a few counters."""
        return JSONResponse(
            {
                "status": "healthy",
                "sessions": len(store),
                "tools": [spec.name for spec in registry.list()],
                "model": settings.model,
            }
        )

    routes = [
        Route("/mcp", McpEndpoint(store), methods=["GET", "POST", "DELETE"]),
        Route("/health", health, methods=["GET"]),
    ]

    return Starlette(routes=routes, lifespan=lifespan)
