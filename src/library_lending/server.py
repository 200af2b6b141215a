"""Library Lending MCP Server

Exposes the lending engine's operations as MCP tools over FastMCP.
Clients connect via stdio (or streamable HTTP) to borrow, return and renew
loans, manage reservations, and inspect or adjust reader credit.

Startup builds one ``LibraryServices`` (database engine, policy provider,
lock registry) and shutdown disposes it.
"""

import logging
import signal
import sys
from typing import Any

from fastmcp import FastMCP

from .config import ServerConfig, get_config
from .observability import initialize_observability
from .services import LibraryServices
from .tools import LendingTools

logger = logging.getLogger(__name__)

_TRANSPORTS = {"stdio": "stdio", "streamable_http": "streamable-http"}


def configure_logging(config: ServerConfig) -> None:
    """Logs go to stderr; stdout carries the MCP protocol."""
    logging.basicConfig(
        level=logging.DEBUG if config.debug else getattr(logging, config.log_level),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stderr)],
    )
    if not config.debug:
        logging.getLogger("fastmcp").setLevel(logging.WARNING)


def create_server(services: LibraryServices) -> FastMCP:
    """Create the FastMCP server and register every lending tool."""
    config = services.config
    mcp = FastMCP(
        name=config.server_name,
        version=config.server_version,
        instructions=(
            "Library lending service. Borrow, return and renew loans; create, cancel and "
            "fulfill reservations; list a reader's loans and reservations; search all loans and reservations; inspect and "
            "adjust reader credit. Failed calls return an error code; codes marked "
            "retryable may be retried with the same loan_no or reservation_no."
        ),
    )

    tools = LendingTools(services)
    definitions = tools.definitions()
    for tool in definitions:
        logger.debug("Registering tool: %s", tool["name"])
        try:
            mcp.tool(
                name=tool["name"],
                description=tool["description"],
            )(tool["handler"])
        except Exception:
            logger.exception("Failed to register tool %s", tool["name"])
            raise

    logger.info("Registered %d tools", len(definitions))
    return mcp


def run_server(config: ServerConfig) -> None:
    """Run the server until the transport closes or a signal arrives."""
    services = LibraryServices(config)
    services.init_database()

    def signal_handler(signum: int, _frame: Any) -> None:
        logger.info("Received signal %s, initiating shutdown...", signum)
        sys.exit(0)

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    try:
        mcp = create_server(services)
        logger.info(
            "Starting %s v%s on %s transport",
            config.server_name,
            config.server_version,
            config.transport,
        )
        mcp.run(transport=_TRANSPORTS[config.transport])
    finally:
        services.close()
        logger.info("Shutdown complete")


def main() -> None:
    """Entry point for ``library-lending-server``."""
    config = get_config()
    configure_logging(config)
    initialize_observability(config)

    logger.info("=" * 60)
    logger.info("Library Lending MCP Server")
    logger.info("Version: %s", config.server_version)
    logger.info("Transport: %s", config.transport)
    logger.info("Database: %s", config.get_database_url())
    logger.info("Debug Mode: %s", config.debug)
    logger.info("=" * 60)

    try:
        run_server(config)
    except KeyboardInterrupt:
        logger.info("Server stopped by user")
    except Exception:
        logger.exception("Failed to start MCP server")
        sys.exit(1)


if __name__ == "__main__":
    main()
