"""Remote tools served by another MCP server.

RemoteToolset connects to an MCP server over streamable HTTP, lists its
tools and exposes each one as a Tool record whose execute() forwards the
call. The registry validates arguments against the remote inputSchema
before anything is sent.
"""

from __future__ import annotations

import logging
from contextlib import AsyncExitStack
from typing import Any

from mcp import ClientSession
from mcp.client.streamable_http import streamable_http_client

from switchboard.tools.registry import Tool, ToolRegistry
from switchboard.tools.schemas import ToolSpec

logger = logging.getLogger(__name__)


class RemoteToolset:
    """Long-lived MCP client session whose tools join the local registry."""

    def __init__(self, url: str) -> None:
        self._url = url
        self._stack: AsyncExitStack | None = None
        self._session: ClientSession | None = None

    @property
    def connected(self) -> bool:
        return self._session is not None

    async def connect(self) -> None:
        """Open the transport and run the MCP initialize handshake."""
        stack = AsyncExitStack()
        try:
            read, write, _ = await stack.enter_async_context(streamable_http_client(self._url))
            session = await stack.enter_async_context(ClientSession(read, write))
            await session.initialize()
        except BaseException:
            await stack.aclose()
            raise
        self._stack = stack
        self._session = session
        logger.info("Connected to remote MCP server at %s", self._url)

    async def close(self) -> None:
        if self._stack:
            await self._stack.aclose()
        self._stack = None
        self._session = None

    async def tools(self) -> list[Tool]:
        """List the remote server's tools as Tool records."""
        if not self._session:
            raise RuntimeError("Remote toolset not connected -- call connect() first")
        listing = await self._session.list_tools()
        return [self._as_tool(remote) for remote in listing.tools]

    async def register_all(self, registry: ToolRegistry) -> int:
        """Register every remote tool not already present locally."""
        count = 0
        for tool in await self.tools():
            if tool.name in registry:
                logger.warning("Skipping remote tool '%s': name already registered", tool.name)
                continue
            registry.register(tool)
            count += 1
        logger.info("Loaded %d tools from %s", count, self._url)
        return count

    def _as_tool(self, remote: Any) -> Tool:
        spec = ToolSpec(
            name=remote.name,
            description=remote.description or "",
            input_schema=dict(remote.inputSchema or {"type": "object", "properties": {}}),
        )

        async def execute(args: dict[str, Any]) -> dict[str, Any]:
            if not self._session:
                return {"success": False, "error": f"Remote MCP server {self._url} is not connected"}
            result = await self._session.call_tool(remote.name, args)
            return result.model_dump(mode="json")

        return Tool(spec=spec, execute=execute)
