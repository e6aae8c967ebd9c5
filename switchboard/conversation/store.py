"""Append-only turn log for one conversation."""

from __future__ import annotations

import logging
from collections.abc import Iterator

from switchboard.conversation.schemas import ModelText, ModelToolRequest, ToolResult, Turn

logger = logging.getLogger(__name__)


class ConversationStore:
    """Ordered, append-only log of turns.

    Turn order is what the model has seen. Turns are frozen models and the
    log only grows, except for reset() which replaces everything with a
    single seed turn.
    """

    def __init__(self, seed_text: str | None = None) -> None:
        self._turns: list[Turn] = []
        if seed_text is not None:
            self.reset(seed_text)

    def append(self, turn: Turn) -> None:
        self._turns.append(turn)

    def reset(self, seed_text: str) -> None:
        """Drop all turns and start over from one seed ModelText."""
        dropped = len(self._turns)
        self._turns = [ModelText(text=seed_text)]
        if dropped:
            logger.debug("Conversation reset (%d turns dropped)", dropped)

    def snapshot(self) -> tuple[Turn, ...]:
        """Every turn appended so far, in order."""
        return tuple(self._turns)

    def pending_tool_request(self) -> ModelToolRequest | None:
        """The trailing tool request that has no ToolResult yet, if any."""
        answered: set[str] = set()
        for turn in reversed(self._turns):
            if isinstance(turn, ToolResult):
                answered.add(turn.call_id)
            elif isinstance(turn, ModelToolRequest):
                return None if turn.call_id in answered else turn
            else:
                return None
        return None

    def __len__(self) -> int:
        return len(self._turns)

    def __iter__(self) -> Iterator[Turn]:
        return iter(tuple(self._turns))
