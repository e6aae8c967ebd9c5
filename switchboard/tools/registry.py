"""Tool registry: the closed catalog of named capabilities the model may call.

Provides:
- Tool: a named capability record (spec + async execute callable)
- ToolRegistry: registers tools, lists specs, validates and invokes calls

Tools are records tagged by name, looked up by string key with an explicit
unknown branch. Every invocation is normalized into a ToolOutcome; nothing
a tool raises gets past invoke().
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, ValidationError

from switchboard.tools.schema import model_for_schema, violation_message
from switchboard.tools.schemas import ToolAction, ToolErrorKind, ToolOutcome, ToolSpec

logger = logging.getLogger(__name__)

DEFAULT_SUCCESS_TEXT = "Tool executed successfully."

# execute(args) -> {"success": bool, "content" | "error": ..., "action"?: {...}}
#               | {"content": [{"type": "text", "text": ...}], "isError"?: bool}
#               | str | None
ToolExecutor = Callable[[dict[str, Any]], Awaitable[Any]]


@dataclass(frozen=True)
class Tool:
    """A named, schema-described capability backed by an async callable."""

    spec: ToolSpec
    execute: ToolExecutor

    @property
    def name(self) -> str:
        return self.spec.name


class ToolRegistry:
    """Holds the tool catalog for a server lifetime and dispatches calls.

    Registration order is the listing order. Once frozen, the catalog is
    immutable.
    """

    def __init__(self, timeout: float | None = None) -> None:
        self._tools: dict[str, Tool] = {}
        self._validators: dict[str, type[BaseModel]] = {}
        self._timeout = timeout or None
        self._frozen = False

    def register(self, tool: Tool) -> None:
        """Register a tool. Names are unique across the registry."""
        if self._frozen:
            raise RuntimeError("Tool registry is frozen -- register tools before serving")
        if tool.name in self._tools:
            raise ValueError(f"Tool already registered: {tool.name}")
        self._validators[tool.name] = model_for_schema(tool.name, tool.spec.input_schema)
        self._tools[tool.name] = tool
        logger.debug("Registered tool '%s'", tool.name)

    def add(
        self,
        name: str,
        description: str,
        input_schema: dict[str, Any],
        execute: ToolExecutor,
    ) -> None:
        """Shorthand for register(Tool(ToolSpec(...), execute))."""
        spec = ToolSpec(name=name, description=description, input_schema=input_schema)
        self.register(Tool(spec=spec, execute=execute))

    def freeze(self) -> None:
        self._frozen = True

    @property
    def frozen(self) -> bool:
        return self._frozen

    def list(self) -> list[ToolSpec]:
        """Stable-order snapshot of tool specs."""
        return [tool.spec for tool in self._tools.values()]

    def get(self, name: str) -> Tool | None:
        return self._tools.get(name)

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)

    async def invoke(self, name: str, args: dict[str, Any] | None) -> ToolOutcome:
        """Validate and run a tool call, always returning a ToolOutcome."""
        tool = self._tools.get(name)
        if tool is None:
            logger.warning("Model requested unknown tool '%s'", name)
            return ToolOutcome.failure(ToolErrorKind.UNKNOWN_TOOL, f"Unknown tool: {name}")

        args = {} if args is None else args
        if not isinstance(args, dict):
            return ToolOutcome.failure(
                ToolErrorKind.SCHEMA_VIOLATION,
                f"Invalid arguments for {name}: expected an object, got {type(args).__name__}",
            )
        try:
            self._validators[name].model_validate(args)
        except ValidationError as e:
            return ToolOutcome.failure(
                ToolErrorKind.SCHEMA_VIOLATION,
                f"Invalid arguments for {name}: {violation_message(e)}",
            )

        deadline = asyncio.timeout(self._timeout)
        try:
            async with deadline:
                result = await tool.execute(args)
        except TimeoutError as e:
            if not deadline.expired():
                # Raised by the tool itself, not by our deadline
                logger.exception("Tool execution error for %s", name)
                return ToolOutcome.failure(ToolErrorKind.EXECUTION_FAILURE, f"Tool error: {e}")
            logger.warning("Tool '%s' timed out after %.1fs", name, self._timeout)
            return ToolOutcome.failure(
                ToolErrorKind.EXECUTION_FAILURE,
                f"Tool {name} timed out after {self._timeout:g}s",
            )
        except Exception as e:
            logger.exception("Tool execution error for %s", name)
            return ToolOutcome.failure(ToolErrorKind.EXECUTION_FAILURE, f"Tool error: {e}")

        return normalize_result(name, result)


def normalize_result(name: str, result: Any) -> ToolOutcome:
    """Convert whatever a tool returned into a ToolOutcome.

    Accepts the collaborator shape ({success, content | error, action}),
    the MCP shape ({content: [...], isError}), plain strings and None.
    """
    if result is None:
        return ToolOutcome.ok(DEFAULT_SUCCESS_TEXT)
    if isinstance(result, str):
        return ToolOutcome.ok(result or DEFAULT_SUCCESS_TEXT)
    if not isinstance(result, dict):
        return ToolOutcome.ok(str(result))

    action = _parse_action(result.get("action"))
    failed = result.get("success") is False or bool(result.get("isError"))
    text = _content_text(result.get("content"))

    if failed:
        error = result.get("error")
        message = str(error) if error else text or f"Tool {name} reported a failure"
        return ToolOutcome.failure(ToolErrorKind.EXECUTION_FAILURE, message)

    return ToolOutcome.ok(text or DEFAULT_SUCCESS_TEXT, action=action)


def _content_text(content: Any) -> str:
    """Extract renderable text from a tool's content payload."""
    if content is None:
        return ""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts = []
        for block in content:
            if isinstance(block, dict):
                if block.get("type", "text") == "text" and "text" in block:
                    parts.append(str(block["text"]))
            elif block is not None:
                parts.append(str(block))
        return "\n".join(parts)
    return str(content)


def _parse_action(raw: Any) -> ToolAction | None:
    if not raw:
        return None
    if isinstance(raw, ToolAction):
        return raw
    if isinstance(raw, str):
        return ToolAction(type="open_url", url=raw)
    if isinstance(raw, dict) and raw.get("type"):
        try:
            return ToolAction.model_validate(raw)
        except ValidationError:
            logger.warning("Dropping malformed tool action: %r", raw)
    return None
