"""Pydantic DTOs for tool descriptors and invocation outcomes."""

from __future__ import annotations

from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class ToolErrorKind(StrEnum):
    UNKNOWN_TOOL = "unknown_tool"
    SCHEMA_VIOLATION = "schema_violation"
    EXECUTION_FAILURE = "execution_failure"


class ToolSpec(BaseModel):
    """Declarative description of a tool, advertised verbatim to the model."""

    model_config = ConfigDict(frozen=True)

    name: str
    description: str = ""
    input_schema: dict[str, Any] = Field(
        default_factory=lambda: {"type": "object", "properties": {}}
    )

    @property
    def required(self) -> list[str]:
        return list(self.input_schema.get("required", []))


class ToolAction(BaseModel):
    """Follow-up action suggested by a tool, e.g. a URL to open."""

    model_config = ConfigDict(frozen=True)

    type: str  # "open_url", ...
    url: str | None = None
    label: str | None = None


class ToolOutcome(BaseModel):
    """Normalized success/failure result of a tool invocation.

    `action` is side-channel metadata: the session surfaces it once on
    the next response and then drops it. It is never shown to the model.
    """

    model_config = ConfigDict(frozen=True)

    success: bool
    content: str
    error_kind: ToolErrorKind | None = None
    action: ToolAction | None = None

    @classmethod
    def ok(cls, content: str, action: ToolAction | None = None) -> ToolOutcome:
        return cls(success=True, content=content, action=action)

    @classmethod
    def failure(cls, kind: ToolErrorKind, message: str) -> ToolOutcome:
        return cls(success=False, content=message, error_kind=kind)
