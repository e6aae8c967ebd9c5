"""Tests for the per-session MCP server, driven by an in-memory MCP client."""

import json
from contextlib import asynccontextmanager

import pytest
from mcp import types
from mcp.shared.memory import create_connected_server_and_client_session

from switchboard.api.mcp import CHAT_TOOL, RESET_TOOL, is_initialize_request
from switchboard.api.sessions import Session
from switchboard.conversation.schemas import ModelText, ModelToolRequest
from tests.conftest import ScriptedGateway


def _request(method: str, params: dict | None = None, request_id=2) -> dict:
    message = {"jsonrpc": "2.0", "id": request_id, "method": method}
    if params is not None:
        message["params"] = params
    return message


def _initialize(protocol_version: str = "2025-03-26", request_id=1) -> dict:
    return _request(
        "initialize",
        {
            "protocolVersion": protocol_version,
            "capabilities": {},
            "clientInfo": {"name": "test-client", "version": "0.1"},
        },
        request_id=request_id,
    )


@pytest.fixture
def session(settings, registry, gateway):
    return Session("session-1", settings, gateway, registry)


@asynccontextmanager
async def _connect(session, events: list | None = None):
    """Connect an MCP client to the session's server; log notifications go to events."""

    async def on_log(params: types.LoggingMessageNotificationParams) -> None:
        events.append(params)

    async with create_connected_server_and_client_session(
        session.server,
        logging_callback=on_log if events is not None else None,
    ) as client:
        yield client


def _payload(result: types.CallToolResult) -> dict:
    assert not result.isError, result.content
    return json.loads(result.content[0].text)


# ---------------------------------------------------------------------------
# Initialize detection
# ---------------------------------------------------------------------------


class TestIsInitializeRequest:
    def test_initialize(self):
        assert is_initialize_request(_initialize())

    def test_batches_are_not_initialize(self):
        assert not is_initialize_request([_initialize()])

    def test_other_method(self):
        assert not is_initialize_request(_request("ping"))

    def test_missing_client_info(self):
        assert not is_initialize_request(_request("initialize", {"protocolVersion": "2025-03-26"}))

    def test_notification_is_not_a_request(self):
        assert not is_initialize_request({"jsonrpc": "2.0", "method": "initialize", "params": {}})

    def test_garbage(self):
        assert not is_initialize_request("initialize")
        assert not is_initialize_request(None)


# ---------------------------------------------------------------------------
# Tools
# ---------------------------------------------------------------------------


class TestTools:
    async def test_list(self, session):
        async with _connect(session) as client:
            tools = (await client.list_tools()).tools

        assert [t.name for t in tools] == [CHAT_TOOL, RESET_TOOL, "addTwoNumbers", "webSearch"]
        assert tools[0].inputSchema["required"] == ["message"]
        assert tools[2].inputSchema["required"] == ["a", "b"]

    async def test_call(self, session):
        async with _connect(session) as client:
            result = await client.call_tool("addTwoNumbers", {"a": 2, "b": 3})

        assert result.isError is False
        assert result.content[0].text == "The sum of 2 and 3 is 5."

    async def test_call_with_bad_arguments(self, session):
        async with _connect(session) as client:
            result = await client.call_tool("addTwoNumbers", {"a": "2", "b": 3})

        assert result.isError is True
        assert result.content[0].text.startswith("Invalid arguments for addTwoNumbers")

    async def test_call_unknown_tool(self, session):
        async with _connect(session) as client:
            result = await client.call_tool("nope", {})

        assert result.isError is True
        assert result.content[0].text == "Unknown tool: nope"

    async def test_direct_call_leaves_conversation_alone(self, session):
        async with _connect(session) as client:
            await client.call_tool("addTwoNumbers", {"a": 2, "b": 3})

        assert len(session.conversation) == 1


# ---------------------------------------------------------------------------
# Chat
# ---------------------------------------------------------------------------


class TestChat:
    async def test_chat(self, settings, registry):
        gateway = ScriptedGateway(
            [ModelToolRequest(tool_name="addTwoNumbers", args={"a": 2, "b": 3}), ModelText(text="It is 5.")]
        )
        session = Session("session-1", settings, gateway, registry)

        async with _connect(session) as client:
            result = _payload(await client.call_tool(CHAT_TOOL, {"message": "What is 2 + 3?"}))

        assert result["response"] == "It is 5."
        assert result["session_id"] == "session-1"
        assert result["iterations"] == 2
        assert result["action"] is None
        assert result["tool_calls"][0]["tool_name"] == "addTwoNumbers"
        assert result["tool_calls"][0]["success"] is True

    async def test_chat_surfaces_action_once(self, settings, registry):
        gateway = ScriptedGateway(
            [
                ModelToolRequest(tool_name="webSearch", args={"query": "otters"}),
                ModelText(text="Done."),
                ModelText(text="Anything else?"),
            ]
        )
        session = Session("session-1", settings, gateway, registry)

        async with _connect(session) as client:
            first = _payload(await client.call_tool(CHAT_TOOL, {"message": "search otters"}))
            second = _payload(await client.call_tool(CHAT_TOOL, {"message": "thanks"}))

        assert first["action"]["type"] == "open_url"
        assert first["action"]["url"].endswith("otters")
        assert second["action"] is None

    async def test_empty_message(self, session, gateway):
        async with _connect(session) as client:
            result = await client.call_tool(CHAT_TOOL, {"message": "  "})

        assert result.isError is True
        assert gateway.calls == []

    async def test_missing_message(self, session):
        async with _connect(session) as client:
            result = await client.call_tool(CHAT_TOOL, {})

        assert result.isError is True

    async def test_reset(self, session, gateway, settings):
        gateway.default = ModelText(text="Hi")

        async with _connect(session) as client:
            await client.call_tool(CHAT_TOOL, {"message": "Hello"})
            assert len(session.conversation) == 3
            reset = _payload(await client.call_tool(RESET_TOOL, {}))

        assert reset["response"] == settings.reset_message
        assert session.conversation.snapshot() == (ModelText(text=settings.reset_message),)


# ---------------------------------------------------------------------------
# Agent events
# ---------------------------------------------------------------------------


class TestAgentEvents:
    async def test_loop_events_sent_as_log_messages(self, settings, registry):
        gateway = ScriptedGateway(
            [ModelToolRequest(tool_name="addTwoNumbers", args={"a": 1, "b": 2}), ModelText(text="3")]
        )
        session = Session("session-1", settings, gateway, registry)
        events: list[types.LoggingMessageNotificationParams] = []

        async with _connect(session, events) as client:
            await client.call_tool(CHAT_TOOL, {"message": "1+2"})

        assert [e.data["type"] for e in events] == ["tool_start", "tool_end", "done"]
        assert all(e.logger == "agent" and e.level == "info" for e in events)
        assert events[1].data["tool_name"] == "addTwoNumbers"
        assert events[2].data["text"] == "3"

    async def test_raised_log_level_silences_events(self, session, gateway):
        gateway.default = ModelText(text="Hi")
        events: list[types.LoggingMessageNotificationParams] = []

        async with _connect(session, events) as client:
            await client.set_logging_level("warning")
            await client.call_tool(CHAT_TOOL, {"message": "Hello"})

        assert events == []
        assert session.log_level == "warning"

    async def test_chat_outside_a_request_sends_nothing(self, session, gateway):
        gateway.default = ModelText(text="Hi")
        reply = await session.chat("Hello")
        assert reply.text == "Hi"
