"""Session multiplexing -- one long-lived MCP session per client.

SessionStore owns the mapping from session id to Session. It creates a
session for an initialize request that carries no id, routes every later
request bearing that id to the same session, and retires the mapping when
the session ends (client termination, idle expiry or its server task
stopping, whichever comes first; the rest are no-ops).

Each Session runs its own mcp Server over its own streamable HTTP
transport inside the store's task group, so sessions never share protocol
state. Ids come from uuid4 (OS CSPRNG), never a counter. The mapping is
only touched between awaits, so insert-if-absent and delete-if-present
are atomic with respect to other requests on the event loop.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any
from uuid import uuid4

import anyio
from anyio.abc import TaskGroup, TaskStatus
from mcp import types
from mcp.server.streamable_http import StreamableHTTPServerTransport

from switchboard.api.gateway import ModelGateway
from switchboard.api.loop import AgentLoop, LoopEvent, ToolCallRecord
from switchboard.api.mcp import create_session_server, is_initialize_request
from switchboard.config import Settings
from switchboard.conversation.store import ConversationStore
from switchboard.tools.registry import ToolRegistry
from switchboard.tools.schemas import ToolAction

logger = logging.getLogger(__name__)

INVALID_SESSION_MESSAGE = "Bad Request: No valid session ID provided"

# Severity order of MCP logging levels, lowest first
LOG_LEVELS: tuple[types.LoggingLevel, ...] = (
    "debug",
    "info",
    "notice",
    "warning",
    "error",
    "critical",
    "alert",
    "emergency",
)
AGENT_EVENT_LEVEL: types.LoggingLevel = "info"
AGENT_EVENT_LOGGER = "agent"


class InvalidSession(Exception):
    """No session id, an unknown/closed id, or a non-initialize first message."""

    def __init__(self, message: str = INVALID_SESSION_MESSAGE) -> None:
        super().__init__(message)
        self.message = message


class SessionClosed(RuntimeError):
    """Raised when a chat reaches a session that has already ended."""


@dataclass
class ChatReply:
    text: str
    iterations: int = 0
    action: ToolAction | None = None
    tool_calls: list[ToolCallRecord] = field(default_factory=list)


class Session:
    """A client's conversation, its agent loop and the MCP server bound to it.

    The agent loop for one session never runs concurrently with itself: a
    second chat request waits for the first to finish.
    """

    def __init__(
        self,
        session_id: str,
        settings: Settings,
        gateway: ModelGateway,
        registry: ToolRegistry,
    ) -> None:
        self.session_id = session_id
        self.log_level: types.LoggingLevel = AGENT_EVENT_LEVEL
        self._settings = settings
        self._lock = asyncio.Lock()
        self._closed = False
        self._pending_action: ToolAction | None = None

        self.conversation = ConversationStore(seed_text=settings.seed_message)
        self.loop = AgentLoop(
            self.conversation,
            gateway,
            registry,
            max_iterations=settings.max_iterations,
            observer=self._on_loop_event,
        )
        self.server = create_session_server(self, registry, settings)
        self.transport = StreamableHTTPServerTransport(
            mcp_session_id=session_id,
            is_json_response_enabled=settings.json_response,
            idle_timeout=settings.session_idle_timeout or None,
        )

    @property
    def closed(self) -> bool:
        return self._closed or self.transport.is_terminated

    async def chat(self, message: str) -> ChatReply:
        """Run the agent loop for one user message."""
        async with self._lock:
            if self.closed:
                raise SessionClosed(f"Session {self.session_id} is closed")
            result = await self.loop.run(message)
            if result.action is not None:
                self._pending_action = result.action
            return ChatReply(
                text=result.text,
                iterations=result.iterations,
                action=self.take_action(),
                tool_calls=result.tool_calls,
            )

    def take_action(self) -> ToolAction | None:
        """Hand out the stashed follow-up action once, then forget it."""
        action, self._pending_action = self._pending_action, None
        return action

    async def reset(self) -> str:
        async with self._lock:
            self.conversation.reset(self._settings.reset_message)
            self._pending_action = None
            return self._settings.reset_message

    async def serve(self, *, task_status: TaskStatus[None] = anyio.TASK_STATUS_IGNORED) -> None:
        """Run this session's MCP server until its transport closes."""
        async with self.transport.connect() as (read_stream, write_stream):
            task_status.started()
            async with anyio.create_task_group() as tg:
                if self.transport.idle_scope is not None:
                    tg.start_soon(self._end_when_idle, self.transport.idle_scope)
                await self.server.run(
                    read_stream,
                    write_stream,
                    self.server.create_initialization_options(),
                    stateless=False,
                )
                tg.cancel_scope.cancel()

    async def close(self) -> None:
        """Terminate the transport. Later requests for this id are refused."""
        if self._closed:
            return
        self._closed = True
        self._pending_action = None
        if not self.transport.is_terminated:
            with anyio.CancelScope(shield=True):
                await self.transport.terminate()

    async def _end_when_idle(self, idle_scope: anyio.CancelScope) -> None:
        # The transport cancels idle_scope once no request has been in
        # flight for session_idle_timeout seconds
        with idle_scope:
            await anyio.sleep_forever()
        logger.info("Session %s idle for %gs, closing", self.session_id, self._settings.session_idle_timeout)
        await self.close()

    async def _on_loop_event(self, event: LoopEvent) -> None:
        if LOG_LEVELS.index(AGENT_EVENT_LEVEL) < LOG_LEVELS.index(self.log_level):
            return
        try:
            ctx = self.server.request_context
        except LookupError:
            # chat() called outside an MCP request has nobody to notify
            return
        await ctx.session.send_log_message(
            level=AGENT_EVENT_LEVEL,
            data=event.to_dict(),
            logger=AGENT_EVENT_LOGGER,
            related_request_id=ctx.request_id,
        )


class SessionStore:
    """Owns every live session and demultiplexes requests onto them.

    Session servers run in the task group opened by run(), which must be
    entered before the first session is created.
    """

    def __init__(self, settings: Settings, gateway: ModelGateway, registry: ToolRegistry) -> None:
        self._settings = settings
        self._gateway = gateway
        self._registry = registry
        self._sessions: dict[str, Session] = {}
        self._task_group: TaskGroup | None = None

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions

    @asynccontextmanager
    async def run(self) -> AsyncIterator[None]:
        """Host session servers until exit, then close every session."""
        if self._task_group is not None:
            raise RuntimeError("SessionStore is already running")
        async with anyio.create_task_group() as tg:
            self._task_group = tg
            try:
                yield
            finally:
                with anyio.CancelScope(shield=True):
                    await self.close_all()
                tg.cancel_scope.cancel()
                self._task_group = None

    def get(self, session_id: str | None) -> Session:
        """Return the live session for session_id or raise InvalidSession."""
        session = self._sessions.get(session_id) if session_id else None
        if session is None or session.closed:
            raise InvalidSession()
        return session

    async def handle_incoming(self, session_id: str | None, payload: Any) -> Session:
        """Find the session a payload belongs to, creating one for an initialize request.

        Raises InvalidSession without touching any session state when the
        request cannot be routed. The caller hands the request itself to
        the returned session's transport.
        """
        if session_id:
            return self.get(session_id)
        if is_initialize_request(payload):
            return await self._open()
        raise InvalidSession()

    async def close_session(self, session_id: str) -> bool:
        """Retire a session. Idempotent: returns False if nothing was open."""
        session = self._sessions.pop(session_id, None)
        if session is None:
            return False
        await session.close()
        logger.info("Session closed and transport removed: %s", session_id)
        return True

    async def close_all(self) -> None:
        for session_id in list(self._sessions):
            await self.close_session(session_id)

    async def _open(self) -> Session:
        if self._task_group is None:
            raise RuntimeError("SessionStore is not running -- enter run() first")
        session = self._create()
        try:
            await self._task_group.start(self._serve, session)
        except BaseException:
            with anyio.CancelScope(shield=True):
                await self.close_session(session.session_id)
            raise
        return session

    def _create(self) -> Session:
        session_id = str(uuid4())
        while session_id in self._sessions:
            session_id = str(uuid4())
        session = Session(session_id, self._settings, self._gateway, self._registry)
        self._sessions[session_id] = session
        logger.info("Session created: %s", session_id)
        return session

    async def _serve(self, session: Session, *, task_status: TaskStatus[None] = anyio.TASK_STATUS_IGNORED) -> None:
        try:
            await session.serve(task_status=task_status)
        except Exception:
            logger.exception("Session %s crashed", session.session_id)
        finally:
            with anyio.CancelScope(shield=True):
                await self.close_session(session.session_id)
