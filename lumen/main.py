"""Lumen entry point.

Initializes all components and starts the server:
  Settings -> SiteConfig -> ToolRegistry -> BedrockClient -> AgentLoop -> App -> Uvicorn

Uses Starlette lifespan to open and close the model client (and the MCP
session manager) on the same event loop as uvicorn.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import AsyncExitStack, asynccontextmanager
from dataclasses import dataclass

import uvicorn
from starlette.applications import Starlette
from starlette.routing import Mount

from lumen.agent.client import BedrockClient
from lumen.agent.conversations import ConversationStore
from lumen.agent.loop import AgentLoop, LoopConfig
from lumen.agent.prompts import build_system_prompt
from lumen.config import Settings, resolve_llm
from lumen.services.usage_tracker import UsageTracker
from lumen.site import DashboardCatalog, SiteConfig, load_site_config
from lumen.tools import ToolRegistry, register_block_util_tools

logger = logging.getLogger(__name__)


@dataclass
class Components:
    site: SiteConfig
    dashboards: DashboardCatalog
    registry: ToolRegistry
    client: BedrockClient
    loop: AgentLoop
    tracker: UsageTracker
    conversations: ConversationStore


def create_components(settings: Settings) -> Components:
    """Build all components in dependency order. Nothing is opened yet."""
    site = load_site_config(settings.site_config_path or None)
    dashboards = DashboardCatalog(settings.dashboards_dir or None)

    registry = ToolRegistry()
    register_block_util_tools(registry)

    llm = resolve_llm(settings, site)
    client = BedrockClient(settings, region=llm.region, model_id=llm.model_id)
    loop = AgentLoop(
        registry,
        client,
        system_prompt=build_system_prompt(site),
        config=LoopConfig.from_settings(settings, site),
    )

    return Components(
        site=site,
        dashboards=dashboards,
        registry=registry,
        client=client,
        loop=loop,
        tracker=UsageTracker(settings.usage_max_records),
        conversations=ConversationStore(settings.max_conversations),
    )


def build_app(settings: Settings, components: Components | None = None) -> Starlette:
    """Build the combined Starlette app with REST + MCP."""
    components = components or create_components(settings)

    mcp_manager = None
    if settings.mcp_enabled:
        from lumen.api.mcp import create_mcp_server

        mcp_manager = create_mcp_server(components.registry)

    @asynccontextmanager
    async def lifespan(app: Starlette) -> AsyncIterator[None]:
        async with AsyncExitStack() as stack:
            await components.client.start()
            stack.push_async_callback(components.client.close)
            if mcp_manager is not None:
                await stack.enter_async_context(mcp_manager.run())

            app.state.components = components
            logger.info(
                "Lumen started: %s (%s), %d tool(s)",
                components.site.site_name,
                components.site.site_id,
                len(components.registry.names()),
            )
            yield
            logger.info("Shutting down Lumen...")
        logger.info("Lumen shutdown complete.")

    # Import here to keep the REST layer out of the component imports
    from lumen.api.rest import create_app

    app = create_app(
        loop=components.loop,
        registry=components.registry,
        tracker=components.tracker,
        conversations=components.conversations,
        site=components.site,
        dashboards=components.dashboards,
        settings=settings,
        lifespan=lifespan,
    )

    if mcp_manager is not None:
        app.routes.append(Mount("/mcp", app=mcp_manager.handle_request))
        logger.info("MCP server mounted at /mcp")

    return app


def main() -> None:
    """Entry point -- parse settings, build app, run server."""
    settings = Settings()

    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )

    logger.info("Starting Lumen on %s:%d", settings.host, settings.port)
    logger.info("Model: %s (%s)", settings.model_id, settings.aws_region)
    logger.info("MCP: %s", "enabled" if settings.mcp_enabled else "disabled")

    if not settings.bedrock_api_key:
        logger.warning("AWS_BEARER_TOKEN_BEDROCK is not set -- /chat requests will fail")

    app = build_app(settings)

    uvicorn.run(
        app,
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level,
    )


if __name__ == "__main__":
    main()
