"""blogroll - MCP Server with Decorators

This module implements the core MCP server using FastMCP with multi-transport support
(STDIO, SSE, and Streamable HTTP), automatic application of decorators
(exception handling, logging) and a background sync scheduler tied to the
server lifespan.
"""

import asyncio
import os
import sys
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import click
from mcp.server.fastmcp import FastMCP
from mcp.server.transport_security import TransportSecuritySettings

from blogroll.config import ServerConfig, get_config
from blogroll.decorators import exception_handler, tool_logger
from blogroll.log_system import UnifiedLogger, generate_correlation_id
from blogroll.log_system.correlation import (
    clear_initialization_correlation_id,
    set_initialization_correlation_id,
)
from blogroll.storage.database import close_database
from blogroll.sync.engine import get_sync_engine, reset_sync_engine
from blogroll.sync.scheduler import SchedulerHandle
from blogroll.tools.sync_tools import sync_tools


logger = UnifiedLogger.get_logger(__name__)


def build_lifespan(config: ServerConfig):
    """Lifespan that opens the store, runs the scheduler and closes both on shutdown."""

    @asynccontextmanager
    async def lifespan(mcp_server: FastMCP) -> AsyncIterator[None]:
        engine = await get_sync_engine(config)
        scheduler = None
        if config.scheduler_enabled:
            scheduler = SchedulerHandle.from_config(engine, config)
            scheduler.start()
        else:
            logger.info("Background sync disabled")
        try:
            yield
        finally:
            if scheduler is not None:
                scheduler.stop()
            await close_database()
            reset_sync_engine()

    return lifespan


def create_mcp_server(config: Optional[ServerConfig] = None) -> FastMCP:
    """Create and configure the MCP server with decorators.

    Args:
        config: Optional server configuration

    Returns:
        Configured FastMCP server instance
    """
    if config is None:
        config = get_config()

    # Startup correlation id must be set before logging is initialized
    set_initialization_correlation_id(generate_correlation_id("startup"))

    UnifiedLogger.initialize_default(config)

    logger.info(
        f"Unified logging initialized with {len(UnifiedLogger.get_available_destinations())} "
        "available destination types"
    )
    logger.info(f"Server config: {config.name} at log level {config.log_level}")

    # DNS rebinding protection is disabled by default for development
    dns_protection = os.getenv("MCP_DNS_REBINDING_PROTECTION", "false").lower() == "true"
    allowed_hosts_env = os.getenv("MCP_ALLOWED_HOSTS", "")
    allowed_hosts = [h.strip() for h in allowed_hosts_env.split(",") if h.strip()]

    logger.info(f"DNS rebinding protection: {'enabled' if dns_protection else 'disabled'}")
    if dns_protection and allowed_hosts:
        logger.info(f"Allowed hosts: {allowed_hosts}")

    mcp_server = FastMCP(
        config.name or "blogroll",
        lifespan=build_lifespan(config),
        transport_security=TransportSecuritySettings(
            enable_dns_rebinding_protection=dns_protection,
            allowed_hosts=allowed_hosts,
        ),
    )

    register_tools(mcp_server, config)

    logger.info("Server initialization complete")
    clear_initialization_correlation_id()

    return mcp_server


def register_tools(mcp_server: FastMCP, config: ServerConfig) -> None:
    """Register all MCP tools with the server using decorators.

    Registers decorated functions directly with MCP to preserve function signatures
    for proper parameter introspection.
    """
    for tool_func in sync_tools:
        # Decorator chain: exception_handler -> tool_logger
        decorated_func = exception_handler(tool_logger(tool_func, config.__dict__))

        tool_name = tool_func.__name__
        mcp_server.tool(name=tool_name)(decorated_func)

        logger.info(f"Registered tool: {tool_name}")

    logger.info(f"Server '{mcp_server.name}' initialized with {len(sync_tools)} tools")


# Create a server instance that can be imported by the MCP CLI
server = create_mcp_server()


@click.command()
@click.option(
    "--port",
    default=3001,
    help="Port to listen on for SSE or Streamable HTTP transport"
)
@click.option(
    "--host",
    default="127.0.0.1",
    help="Host to bind to (use 0.0.0.0 for Docker)"
)
@click.option(
    "--transport",
    type=click.Choice(["stdio", "sse", "streamable-http"]),
    default="stdio",
    help="Transport type (stdio, sse, or streamable-http)"
)
def main(port: int, host: str, transport: str) -> int:
    """Run the blogroll server with specified transport."""
    async def run_server():
        try:
            if transport == "stdio":
                logger.info("Starting server with STDIO transport")
                await server.run_stdio_async()
            elif transport == "sse":
                logger.info(f"Starting server with SSE transport on {host}:{port}")
                server.settings.host = host
                server.settings.port = port
                await server.run_sse_async()
            elif transport == "streamable-http":
                logger.info(f"Starting server with Streamable HTTP transport on {host}:{port}")
                server.settings.host = host
                server.settings.port = port
                server.settings.streamable_http_path = "/mcp"
                await server.run_streamable_http_async()
            else:
                raise ValueError(f"Unknown transport: {transport}")
        finally:
            UnifiedLogger.close()

    try:
        asyncio.run(run_server())
        return 0
    except KeyboardInterrupt:
        logger.info("Server stopped by user")
        return 0
    except Exception as e:
        logger.error(f"Failed to start server: {e}", exc_info=True)
        return 1


def main_stdio() -> int:
    """Entry point for STDIO transport (convenience wrapper)."""
    return main.callback(port=3001, host="127.0.0.1", transport="stdio")


def main_http() -> int:
    """Entry point for Streamable HTTP transport (convenience wrapper)."""
    return main.callback(port=3001, host="127.0.0.1", transport="streamable-http")


def main_sse() -> int:
    """Entry point for SSE transport (convenience wrapper)."""
    return main.callback(port=3001, host="127.0.0.1", transport="sse")


if __name__ == "__main__":
    sys.exit(main())
