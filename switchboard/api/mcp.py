"""MCP server for one session -- tools exposed to the connected client.

Each Session owns one low-level mcp Server built here. It lists the
session tools followed by every registry tool:

  chat        - Send a message to the session's agent, get its answer
  reset_chat  - Clear the conversation back to one seed turn
  <registry>  - Any registered tool, invoked directly

The SDK handles the protocol lifecycle (initialize, ping, version
negotiation); this module only supplies the tool handlers.
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any

from mcp import types
from mcp.server import Server
from mcp.types import CallToolResult, TextContent, Tool
from pydantic import ValidationError

from switchboard.config import Settings
from switchboard.tools.registry import ToolRegistry

if TYPE_CHECKING:
    from switchboard.api.sessions import Session

logger = logging.getLogger(__name__)

CHAT_TOOL = "chat"
RESET_TOOL = "reset_chat"
SESSION_TOOL_NAMES = frozenset({CHAT_TOOL, RESET_TOOL})


def is_initialize_request(payload: Any) -> bool:
    """True when the payload is a single, well-formed initialize request."""
    if not isinstance(payload, dict):
        return False
    try:
        request = types.JSONRPCRequest.model_validate(payload)
        if request.method != "initialize":
            return False
        types.InitializeRequestParams.model_validate(request.params or {})
    except ValidationError:
        return False
    return True


def error_response(request_id: Any, code: int, message: str) -> dict[str, Any]:
    return {"jsonrpc": "2.0", "error": {"code": code, "message": message}, "id": request_id}


def session_tools() -> list[Tool]:
    return [
        Tool(
            name=CHAT_TOOL,
            description=(
                "Send a message to the assistant and get its answer. The assistant "
                "may call other tools before answering; the conversation is kept "
                "for the lifetime of this session."
            ),
            inputSchema={
                "type": "object",
                "properties": {
                    "message": {"type": "string", "description": "Your message to the assistant"},
                },
                "required": ["message"],
            },
        ),
        Tool(
            name=RESET_TOOL,
            description="Clear this session's conversation history.",
            inputSchema={"type": "object", "properties": {}},
        ),
    ]


def _error_result(text: str) -> CallToolResult:
    return CallToolResult(content=[TextContent(type="text", text=text)], isError=True)


def create_session_server(session: Session, registry: ToolRegistry, settings: Settings) -> Server:
    """Create the MCP server bound to one session."""
    server = Server(settings.server_name, version=settings.server_version)

    @server.list_tools()
    async def list_tools() -> list[Tool]:
        tools = session_tools()
        for spec in registry.list():
            if spec.name in SESSION_TOOL_NAMES:
                logger.warning("Registry tool '%s' is shadowed by the session tool", spec.name)
                continue
            tools.append(Tool(name=spec.name, description=spec.description, inputSchema=spec.input_schema))
        return tools

    # Registry tools validate their own arguments so the outcome matches
    # what the agent loop sees for the same call
    @server.call_tool(validate_input=False)
    async def call_tool(name: str, arguments: dict[str, Any]) -> list[TextContent] | CallToolResult:
        if name == CHAT_TOOL:
            return await _handle_chat(arguments)
        elif name == RESET_TOOL:
            return await _handle_reset()

        outcome = await registry.invoke(name, arguments)
        return CallToolResult(
            content=[TextContent(type="text", text=outcome.content)],
            isError=not outcome.success,
        )

    @server.set_logging_level()
    async def set_logging_level(level: types.LoggingLevel) -> None:
        session.log_level = level

    async def _handle_chat(args: dict[str, Any]) -> list[TextContent] | CallToolResult:
        message = args.get("message")
        if not isinstance(message, str) or not message.strip():
            return _error_result("message must be a non-empty string")

        reply = await session.chat(message)
        result = {
            "response": reply.text,
            "session_id": session.session_id,
            "action": reply.action.model_dump(exclude_none=True) if reply.action else None,
            "iterations": reply.iterations,
            "tool_calls": [
                {
                    "tool_name": call.tool_name,
                    "success": call.success,
                    "error_kind": call.error_kind,
                    "duration_ms": call.duration_ms,
                }
                for call in reply.tool_calls
            ],
        }
        return [TextContent(type="text", text=json.dumps(result, default=str))]

    async def _handle_reset() -> list[TextContent]:
        seed = await session.reset()
        return [TextContent(type="text", text=json.dumps({"session_id": session.session_id, "response": seed}))]

    return server
