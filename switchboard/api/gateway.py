"""Model gateway -- turns a conversation into the model's next Turn.

ModelGateway is the contract the agent loop consumes. AnthropicGateway
implements it with direct httpx calls to the Anthropic Messages API
(no external SDK).
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from typing import Any, Protocol

import httpx

from switchboard.config import Settings
from switchboard.conversation.schemas import ModelText, ModelToolRequest, ToolResult, Turn, UserText
from switchboard.tools.schemas import ToolSpec

logger = logging.getLogger(__name__)

# Anthropic API version header
_API_VERSION = "2023-06-01"

_RETRY_STATUSES = (429, 500, 529)


class GatewayError(RuntimeError):
    """The model could not be reached or answered with an error."""


class ModelGateway(Protocol):
    async def generate(self, conversation: Sequence[Turn], tools: Sequence[ToolSpec]) -> Turn | None:
        """Return the model's next turn, or None when it produced nothing usable."""
        ...


# ---------------------------------------------------------------------------
# Wire format
# ---------------------------------------------------------------------------


def format_messages(conversation: Sequence[Turn]) -> list[dict[str, Any]]:
    """Format turns as alternating user/assistant messages.

    Leading assistant turns (the seed greeting) are dropped because the API
    expects the first message to come from the user. Consecutive turns with
    the same role are merged into one message.
    """
    messages: list[dict[str, Any]] = []
    for turn in conversation:
        if isinstance(turn, UserText):
            role, block = "user", {"type": "text", "text": turn.text}
        elif isinstance(turn, ModelText):
            role, block = "assistant", {"type": "text", "text": turn.text}
        elif isinstance(turn, ModelToolRequest):
            role, block = "assistant", {
                "type": "tool_use",
                "id": turn.call_id,
                "name": turn.tool_name,
                "input": turn.args,
            }
        elif isinstance(turn, ToolResult):
            role, block = "user", {
                "type": "tool_result",
                "tool_use_id": turn.call_id,
                "content": turn.outcome.content,
                "is_error": not turn.outcome.success,
            }
        else:
            continue

        if block["type"] == "text" and not block["text"].strip():
            continue
        if not messages and role == "assistant":
            continue
        if messages and messages[-1]["role"] == role:
            messages[-1]["content"].append(block)
        else:
            messages.append({"role": role, "content": [block]})
    return messages


def tool_definitions(tools: Sequence[ToolSpec]) -> list[dict[str, Any]]:
    """Tool specs in Anthropic API format."""
    return [
        {"name": t.name, "description": t.description, "input_schema": t.input_schema}
        for t in tools
    ]


def parse_response(content: list[dict[str, Any]]) -> Turn | None:
    """Map response content blocks to a Turn.

    A tool_use block wins over text. Only the first tool_use is taken; the
    loop feeds its result back before the model is asked again.
    """
    tool_uses = [b for b in content if b.get("type") == "tool_use"]
    if tool_uses:
        if len(tool_uses) > 1:
            logger.info("Model requested %d tools at once; running '%s' first", len(tool_uses), tool_uses[0].get("name"))
        block = tool_uses[0]
        request: dict[str, Any] = {"tool_name": block.get("name", ""), "args": block.get("input") or {}}
        if block.get("id"):
            request["call_id"] = block["id"]
        return ModelToolRequest(**request)

    text = "\n".join(b["text"] for b in content if b.get("type") == "text" and b.get("text"))
    if not text.strip():
        return None
    return ModelText(text=text)


# ---------------------------------------------------------------------------
# Anthropic gateway
# ---------------------------------------------------------------------------


class AnthropicGateway:
    """ModelGateway backed by the Anthropic Messages API."""

    def __init__(self, settings: Settings, http: httpx.AsyncClient | None = None) -> None:
        self._settings = settings
        self._http = http

    async def start(self) -> None:
        """Initialize the httpx client with auth and timeout settings."""
        if self._http:
            return
        settings = self._settings

        headers: dict[str, str] = {
            "anthropic-version": _API_VERSION,
            "content-type": "application/json",
        }
        if settings.anthropic_auth_token:
            headers["authorization"] = f"Bearer {settings.anthropic_auth_token}"
        elif settings.anthropic_api_key:
            headers["x-api-key"] = settings.anthropic_api_key
        else:
            logger.warning(
                "Neither ANTHROPIC_API_KEY nor ANTHROPIC_AUTH_TOKEN is set -- "
                "model calls will fail"
            )

        timeout = httpx.Timeout(
            connect=settings.api_timeout_connect,
            read=settings.api_timeout_read,
            write=10.0,
            pool=10.0,
        )
        limits = httpx.Limits(max_connections=20, max_keepalive_connections=10)

        self._http = httpx.AsyncClient(
            base_url=settings.api_base_url,
            headers=headers,
            timeout=timeout,
            limits=limits,
        )
        logger.info("httpx client initialized (auth: %s)", "Bearer token" if settings.anthropic_auth_token else "API key")

    async def close(self) -> None:
        if self._http:
            await self._http.aclose()
            self._http = None

    def _build_payload(
        self,
        conversation: Sequence[Turn],
        tools: Sequence[ToolSpec],
    ) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "model": self._settings.model,
            "max_tokens": self._settings.max_tokens,
            "system": self._settings.system_prompt,
            "messages": format_messages(conversation),
        }
        if tools:
            payload["tools"] = tool_definitions(tools)
        return payload

    async def generate(self, conversation: Sequence[Turn], tools: Sequence[ToolSpec]) -> Turn | None:
        data = await self._call_api(self._build_payload(conversation, tools))
        content = data.get("content")
        if not isinstance(content, list):
            logger.warning("Model response had no content blocks (stop_reason=%s)", data.get("stop_reason"))
            return None
        return parse_response(content)

    async def _call_api(self, payload: dict[str, Any]) -> dict[str, Any]:
        """POST /v1/messages with one retry for 429/500/529 and timeouts.

        Raises GatewayError on persistent errors.
        """
        if not self._http:
            raise GatewayError("httpx client not initialized -- call start() first")

        last_error: GatewayError | None = None
        for attempt in range(2):  # initial + 1 retry
            try:
                response = await self._http.post("/v1/messages", json=payload)

                if response.status_code == 200:
                    return response.json()

                try:
                    error_data = response.json()
                    error_type = error_data.get("error", {}).get("type", "unknown")
                    error_msg = error_data.get("error", {}).get("message", "unknown error")
                except ValueError:
                    error_type = "http_error"
                    error_msg = f"HTTP {response.status_code}: {response.text[:500]}"

                if response.status_code in _RETRY_STATUSES and attempt == 0:
                    retry_after = min(float(response.headers.get("retry-after", "1")), 30.0)
                    logger.warning(
                        "API error %d (%s), retrying in %.1fs: %s",
                        response.status_code,
                        error_type,
                        retry_after,
                        error_msg,
                    )
                    await asyncio.sleep(retry_after)
                    continue

                last_error = GatewayError(
                    f"Anthropic API error ({response.status_code}): {error_type} - {error_msg}"
                )
                break

            except httpx.TimeoutException as e:
                last_error = GatewayError(f"API request timed out: {e}")
                if attempt == 0:
                    logger.warning("API timeout, retrying: %s", e)
                    await asyncio.sleep(1)
                    continue
            except httpx.HTTPError as e:
                last_error = GatewayError(f"HTTP error: {e}")
                break  # Don't retry connection errors

        raise last_error or GatewayError("API call failed with unknown error")
