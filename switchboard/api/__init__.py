"""API module -- agent loop, model gateway, sessions and the HTTP surface.

Public API:
    AgentLoop        - bounded generate / call tool / feed back cycle
    AnthropicGateway - ModelGateway over the Anthropic Messages API
    SessionStore     - session id -> Session multiplexer
    create_app       - Starlette app with the /mcp endpoint
"""

from switchboard.api.gateway import AnthropicGateway, GatewayError, ModelGateway
from switchboard.api.loop import AgentLoop, LoopEvent, LoopPhase, LoopResult, LoopState
from switchboard.api.rest import create_app
from switchboard.api.sessions import InvalidSession, Session, SessionStore

__all__ = [
    "AgentLoop",
    "AnthropicGateway",
    "GatewayError",
    "InvalidSession",
    "LoopEvent",
    "LoopPhase",
    "LoopResult",
    "LoopState",
    "ModelGateway",
    "Session",
    "SessionStore",
    "create_app",
]
