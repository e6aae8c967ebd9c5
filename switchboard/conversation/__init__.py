"""Conversation module -- turn types and the append-only turn log.

Public API:
    ConversationStore - append / reset / snapshot

Schemas:
    Turn, UserText, ModelText, ModelToolRequest, ToolResult
"""

from switchboard.conversation.schemas import (
    ModelText,
    ModelToolRequest,
    ToolResult,
    Turn,
    UserText,
    turn_adapter,
)
from switchboard.conversation.store import ConversationStore

__all__ = [
    "ConversationStore",
    "ModelText",
    "ModelToolRequest",
    "ToolResult",
    "Turn",
    "UserText",
    "turn_adapter",
]
