"""Shared fixtures: settings, a scripted model gateway and a tool registry."""

import asyncio

import pytest

from switchboard.config import Settings
from switchboard.tools.builtin import register_builtin_tools
from switchboard.tools.registry import ToolRegistry

# ---------------------------------------------------------------------------
# Scripted gateway
# ---------------------------------------------------------------------------


class ScriptedGateway:
    """Plays back a script of model turns, one per generate() call.

    A script step may be a Turn, None, an exception instance (raised) or a
    callable taking the conversation snapshot and returning a Turn. Once
    the script runs out, `default` is used for every later call.
    """

    def __init__(self, script=None, default=None) -> None:
        self.script = list(script or [])
        self.default = default
        self.calls: list[tuple] = []

    async def generate(self, conversation, tools):
        self.calls.append((tuple(conversation), tuple(tools)))
        step = self.script.pop(0) if self.script else self.default
        if isinstance(step, BaseException):
            raise step
        if callable(step):
            return step(conversation)
        return step


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


def make_settings(**overrides) -> Settings:
    values = {"ANTHROPIC_API_KEY": "test-key", "_env_file": None}
    values.update(overrides)
    return Settings(**values)


@pytest.fixture
def settings() -> Settings:
    """Plain JSON answers to POST keep HTTP tests to one response body."""
    return make_settings(json_response=True)


@pytest.fixture
def registry() -> ToolRegistry:
    """Registry with the built-in tools, frozen as the server would run it."""
    r = ToolRegistry(timeout=5.0)
    register_builtin_tools(r)
    r.freeze()
    return r


@pytest.fixture
def gateway() -> ScriptedGateway:
    return ScriptedGateway()


async def wait_until(predicate, timeout: float = 2.0) -> None:
    """Poll until predicate() is true; background session tasks finish on their own schedule."""
    async with asyncio.timeout(timeout):
        while not predicate():
            await asyncio.sleep(0.01)
