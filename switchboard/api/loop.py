"""Agent loop -- the bounded generate / call tool / feed back cycle.

One AgentLoop drives one conversation. run() appends the user's text,
then alternates model generations and tool invocations until the model
answers in plain text or the iteration bound is hit:

    AwaitingModel --tool request--> ExecutingTool --result--> AwaitingModel
    AwaitingModel --text / nothing / gateway error--> Terminal
    bound exhausted --> Terminal

Every turn is appended to the conversation before the next action, and a
tool request is always answered by a ToolResult before the model is asked
to generate again. Tool failures are conversation events, not loop errors:
the model sees them and decides what to say. run() never raises.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from switchboard.api.gateway import ModelGateway
from switchboard.conversation.schemas import ModelText, ModelToolRequest, ToolResult, UserText
from switchboard.conversation.store import ConversationStore
from switchboard.tools.registry import ToolRegistry
from switchboard.tools.schemas import ToolAction, ToolErrorKind, ToolOutcome

logger = logging.getLogger(__name__)

DEFAULT_MAX_ITERATIONS = 10

NO_RESPONSE_TEXT = "I didn't get a clear response. Can you rephrase?"
ERROR_TEXT = "Oops! Something went wrong while processing your request. Please try again."
BOUND_TEXT = "I reached the maximum number of steps ({limit}) without a final answer."
INTERRUPTED_TEXT = "Tool call was interrupted before it returned a result."


class LoopPhase(StrEnum):
    AWAITING_MODEL = "awaiting_model"
    EXECUTING_TOOL = "executing_tool"
    TERMINAL = "terminal"


@dataclass
class LoopState:
    """Per-run state. pending_input == "" means resume from the last tool result."""

    conversation: ConversationStore
    pending_input: str = ""
    iteration: int = 0
    phase: LoopPhase = LoopPhase.AWAITING_MODEL


@dataclass
class LoopEvent:
    """Progress notification emitted while a run is in flight."""

    type: str  # tool_start, tool_end, done
    iteration: int = 0
    tool_name: str = ""
    text: str = ""
    is_error: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "iteration": self.iteration,
            "tool_name": self.tool_name,
            "text": self.text,
            "is_error": self.is_error,
        }


@dataclass
class ToolCallRecord:
    """What happened to one tool call during a run."""

    tool_name: str
    success: bool
    error_kind: ToolErrorKind | None = None
    duration_ms: int | None = None


@dataclass
class LoopResult:
    text: str
    iterations: int = 0
    action: ToolAction | None = None
    tool_calls: list[ToolCallRecord] = field(default_factory=list)
    bound_exceeded: bool = False
    error: str | None = None


LoopObserver = Callable[[LoopEvent], Awaitable[None]]


class AgentLoop:
    """Drives one conversation forward through model and tool turns."""

    def __init__(
        self,
        conversation: ConversationStore,
        gateway: ModelGateway,
        registry: ToolRegistry,
        max_iterations: int = DEFAULT_MAX_ITERATIONS,
        observer: LoopObserver | None = None,
    ) -> None:
        if max_iterations < 1:
            raise ValueError("max_iterations must be >= 1")
        self._conversation = conversation
        self._gateway = gateway
        self._registry = registry
        self._max_iterations = max_iterations
        self._observer = observer

    @property
    def conversation(self) -> ConversationStore:
        return self._conversation

    @property
    def max_iterations(self) -> int:
        return self._max_iterations

    async def run(self, user_text: str = "") -> LoopResult:
        """Run the loop for one user input and return the final answer."""
        state = LoopState(conversation=self._conversation, pending_input=user_text)
        result = LoopResult(text="")

        self._close_dangling_request()
        if state.pending_input:
            self._conversation.append(UserText(text=state.pending_input))

        while state.iteration < self._max_iterations:
            state.iteration += 1
            state.phase = LoopPhase.AWAITING_MODEL

            try:
                turn = await self._gateway.generate(
                    self._conversation.snapshot(),
                    self._registry.list(),
                )
            except Exception as e:
                logger.error("Model gateway error on iteration %d: %s", state.iteration, e)
                result.error = str(e)
                return await self._finish(state, result, ModelText(text=ERROR_TEXT))

            if isinstance(turn, ModelToolRequest):
                state.phase = LoopPhase.EXECUTING_TOOL
                await self._execute(state, turn, result)
                state.pending_input = ""
                continue

            if isinstance(turn, ModelText) and turn.text.strip():
                return await self._finish(state, result, turn)

            logger.warning("Model returned no usable turn on iteration %d", state.iteration)
            return await self._finish(state, result, ModelText(text=NO_RESPONSE_TEXT))

        logger.warning("Agent loop reached max_iterations=%d", self._max_iterations)
        result.bound_exceeded = True
        return await self._finish(
            state, result, ModelText(text=BOUND_TEXT.format(limit=self._max_iterations))
        )

    async def run_text(self, user_text: str = "") -> str:
        return (await self.run(user_text)).text

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _execute(self, state: LoopState, request: ModelToolRequest, result: LoopResult) -> None:
        """Record the request, invoke the tool, record its outcome."""
        self._conversation.append(request)
        await self._emit(LoopEvent(type="tool_start", iteration=state.iteration, tool_name=request.tool_name))

        start_time = time.monotonic()
        try:
            outcome = await self._registry.invoke(request.tool_name, request.args)
        except Exception as e:
            logger.exception("Tool registry failed for %s", request.tool_name)
            outcome = ToolOutcome.failure(ToolErrorKind.EXECUTION_FAILURE, f"Tool error: {e}")
        duration_ms = int((time.monotonic() - start_time) * 1000)

        # The action hint goes to the caller, never into the model's context
        if outcome.action is not None:
            result.action = outcome.action
            outcome = outcome.model_copy(update={"action": None})

        self._conversation.append(
            ToolResult(tool_name=request.tool_name, call_id=request.call_id, outcome=outcome)
        )
        result.tool_calls.append(
            ToolCallRecord(
                tool_name=request.tool_name,
                success=outcome.success,
                error_kind=outcome.error_kind,
                duration_ms=duration_ms,
            )
        )
        if not outcome.success:
            logger.info("Tool %s failed (%s): %s", request.tool_name, outcome.error_kind, outcome.content)

        await self._emit(
            LoopEvent(
                type="tool_end",
                iteration=state.iteration,
                tool_name=request.tool_name,
                text=outcome.content,
                is_error=not outcome.success,
            )
        )

    def _close_dangling_request(self) -> None:
        """Answer a tool request left unanswered by an interrupted run."""
        dangling = self._conversation.pending_tool_request()
        if dangling is None:
            return
        logger.warning("Closing unanswered tool request %s (%s)", dangling.call_id, dangling.tool_name)
        self._conversation.append(
            ToolResult(
                tool_name=dangling.tool_name,
                call_id=dangling.call_id,
                outcome=ToolOutcome.failure(ToolErrorKind.EXECUTION_FAILURE, INTERRUPTED_TEXT),
            )
        )

    async def _finish(self, state: LoopState, result: LoopResult, final: ModelText) -> LoopResult:
        self._conversation.append(final)
        state.phase = LoopPhase.TERMINAL
        result.text = final.text
        result.iterations = state.iteration
        await self._emit(LoopEvent(type="done", iteration=state.iteration, text=final.text))
        return result

    async def _emit(self, event: LoopEvent) -> None:
        if self._observer is None:
            return
        try:
            await self._observer(event)
        except Exception:
            logger.exception("Loop observer failed on %s event", event.type)
