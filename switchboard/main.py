"""Switchboard entry point.

Wires the components and starts the server:
  Settings -> ToolRegistry -> ModelGateway -> SessionStore -> App -> Uvicorn

Uses Starlette lifespan to start and stop the gateway's http client, the
optional remote tool connection and the task group hosting session servers
on the same event loop as uvicorn.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import uvicorn
from starlette.applications import Starlette

from switchboard.api.gateway import AnthropicGateway, ModelGateway
from switchboard.api.rest import create_app
from switchboard.api.sessions import SessionStore
from switchboard.config import Settings
from switchboard.tools.builtin import register_builtin_tools
from switchboard.tools.registry import ToolRegistry
from switchboard.tools.remote import RemoteToolset

logger = logging.getLogger(__name__)


def build_app(
    settings: Settings,
    gateway: ModelGateway | None = None,
    registry: ToolRegistry | None = None,
) -> Starlette:
    """Build the Starlette app with its session store.

    A gateway or registry passed in is used as-is and not closed on
    shutdown; otherwise the Anthropic gateway and the built-in tools are
    created here.
    """
    owned_gateway: AnthropicGateway | None = None
    if gateway is None:
        owned_gateway = AnthropicGateway(settings)
        gateway = owned_gateway

    if registry is None:
        registry = ToolRegistry(timeout=settings.tool_timeout)
        register_builtin_tools(registry)

    store = SessionStore(settings, gateway, registry)

    @asynccontextmanager
    async def lifespan(app: Starlette) -> AsyncIterator[None]:
        # Startup
        if owned_gateway is not None:
            await owned_gateway.start()

        remote: RemoteToolset | None = None
        if settings.remote_tools_url and not registry.frozen:
            remote = RemoteToolset(settings.remote_tools_url)
            try:
                await remote.connect()
                await remote.register_all(registry)
            except Exception as e:
                logger.error("Remote tools unavailable at %s: %s", settings.remote_tools_url, e)
                await remote.close()
                remote = None
        registry.freeze()

        app.state.store = store
        app.state.registry = registry
        logger.info(
            "Switchboard started: %d tools, max_iterations=%d",
            len(registry),
            settings.max_iterations,
        )
        async with store.run():
            yield
            logger.info("Shutting down Switchboard...")

        # Sessions closed on leaving store.run(), the rest in reverse order
        if remote is not None:
            await remote.close()
        if owned_gateway is not None:
            await owned_gateway.close()
        logger.info("Switchboard shutdown complete.")

    return create_app(store, registry, settings, lifespan=lifespan)


def main() -> None:
    """Entry point -- parse settings, build app, run server."""
    settings = Settings()

    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )

    logger.info("Starting %s %s", settings.server_name, settings.server_version)
    logger.info("Model: %s", settings.model)
    if settings.remote_tools_url:
        logger.info("Remote tools: %s", settings.remote_tools_url)

    app = build_app(settings)

    uvicorn.run(
        app,
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level,
    )


if __name__ == "__main__":
    main()
