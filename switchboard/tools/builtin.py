"""Built-in demonstration tools: addTwoNumbers and webSearch.

Both follow the collaborator contract: an async callable taking the
argument dict and returning {success, content | error, action?}.
"""

from __future__ import annotations

from typing import Any
from urllib.parse import quote_plus

from switchboard.tools.registry import ToolRegistry

SEARCH_URL = "https://duckduckgo.com/?q={query}"


# ---------------------------------------------------------------------------
# Tool handlers
# ---------------------------------------------------------------------------


async def add_two_numbers(args: dict[str, Any]) -> dict[str, Any]:
    a, b = args["a"], args["b"]
    return {"success": True, "content": f"The sum of {a} and {b} is {a + b}."}


async def web_search(args: dict[str, Any]) -> dict[str, Any]:
    """Build a search link and hand it to the caller as an open_url action.

    The assistant gets the link as text; the end user gets it once as a
    suggested action on the next response.
    """
    query = args["query"].strip()
    if not query:
        return {"success": False, "error": "Search query must not be empty"}

    url = SEARCH_URL.format(query=quote_plus(query))
    return {
        "success": True,
        "content": f"Search results for '{query}' are available at {url}",
        "action": {"type": "open_url", "url": url, "label": f"Search: {query}"},
    }


# ---------------------------------------------------------------------------
# Tool schemas
# ---------------------------------------------------------------------------

_ADD_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "a": {"type": "number", "description": "First addend"},
        "b": {"type": "number", "description": "Second addend"},
    },
    "required": ["a", "b"],
}

_SEARCH_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "query": {"type": "string", "description": "What to search the web for"},
    },
    "required": ["query"],
}


# ---------------------------------------------------------------------------
# Registration
# ---------------------------------------------------------------------------


def register_builtin_tools(registry: ToolRegistry) -> None:
    """Register the built-in tools (addTwoNumbers, webSearch)."""
    registry.add("addTwoNumbers", "Add two numbers", _ADD_SCHEMA, add_two_numbers)
    registry.add(
        "webSearch",
        "Search the web and offer the user a link to the results",
        _SEARCH_SCHEMA,
        web_search,
    )
