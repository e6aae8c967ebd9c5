"""Tools module -- the closed catalog of capabilities the model can call.

Public API:
    ToolRegistry    - register/list/invoke with schema validation
    Tool            - named capability record (spec + execute)
    register_builtin_tools - addTwoNumbers, webSearch

Schemas:
    ToolSpec, ToolOutcome, ToolAction, ToolErrorKind
"""

from switchboard.tools.builtin import register_builtin_tools
from switchboard.tools.registry import Tool, ToolRegistry
from switchboard.tools.schemas import ToolAction, ToolErrorKind, ToolOutcome, ToolSpec

__all__ = [
    "Tool",
    "ToolAction",
    "ToolErrorKind",
    "ToolOutcome",
    "ToolRegistry",
    "ToolSpec",
    "register_builtin_tools",
]
