"""Pydantic models for conversation turns.

A Turn is exactly one of four shapes, discriminated by `kind`. Turns are
frozen: once appended to a conversation they are never modified.
"""

from __future__ import annotations

from typing import Annotated, Any, Literal, Union
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

from switchboard.tools.schemas import ToolOutcome


def _call_id() -> str:
    return f"call_{uuid4().hex[:16]}"


class _TurnBase(BaseModel):
    model_config = ConfigDict(frozen=True)


class UserText(_TurnBase):
    kind: Literal["user_text"] = "user_text"
    text: str


class ModelText(_TurnBase):
    kind: Literal["model_text"] = "model_text"
    text: str


class ModelToolRequest(_TurnBase):
    """The model asked for a tool. call_id pairs it with its ToolResult."""

    kind: Literal["tool_request"] = "tool_request"
    tool_name: str
    args: dict[str, Any] = Field(default_factory=dict)
    call_id: str = Field(default_factory=_call_id)


class ToolResult(_TurnBase):
    kind: Literal["tool_result"] = "tool_result"
    tool_name: str
    call_id: str
    outcome: ToolOutcome


Turn = Annotated[
    Union[UserText, ModelText, ModelToolRequest, ToolResult],
    Field(discriminator="kind"),
]

turn_adapter: TypeAdapter[Turn] = TypeAdapter(Turn)
