"""Bridge daemon orchestration.

Main entry point for the daemon that wires the store client, cache, services,
session registry and HTTP transport together.
"""

import asyncio
import logging
import sys
from typing import Any

from mcp.server.lowlevel import Server

import aiohttp

from sbmcp.config import Settings, log_configuration
from sbmcp.daemon.registry import SessionRegistry
from sbmcp.daemon.transports.http import MCP_PATH, HttpTransport
from sbmcp.exceptions import ConfigError
from sbmcp.mcp.server import HandlerContext, build_server
from sbmcp.services.store import NoteStoreClient

logger = logging.getLogger(__name__)


class BridgeDaemon:
    """SilverBullet MCP bridge server.

    Owns the single store client session, the shared content cache and the
    session registry for the lifetime of the process.
    """

    def __init__(self, settings: Settings) -> None:
        """Initialize the daemon.

        Args:
            settings: Validated configuration.
        """
        self._settings = settings

        # Initialized on start
        self._client_session: aiohttp.ClientSession | None = None
        self._store: NoteStoreClient | None = None
        self._context: HandlerContext | None = None
        self._registry: SessionRegistry | None = None
        self._http_transport: HttpTransport | None = None

        self._running = False

    @property
    def is_running(self) -> bool:
        """Check if the daemon is running."""
        return self._running

    @property
    def registry(self) -> SessionRegistry | None:
        return self._registry

    async def start(self) -> None:
        """Start the daemon.

        Builds the store client and services, then starts the HTTP transport.
        """
        if self._running:
            logger.warning("Daemon is already running")
            return

        log_configuration(self._settings)

        self._client_session = aiohttp.ClientSession()
        self._store = NoteStoreClient(
            self._settings.sb_api_base_url,
            self._settings.sb_auth_token,
            session=self._client_session,
        )
        self._context = HandlerContext.create(self._store)
        self._registry = SessionRegistry(self._build_handler)

        self._http_transport = HttpTransport(
            self._settings.host,
            self._settings.port,
            self._registry,
            self.health_check,
            self._settings.mcp_token,
            debug_requests=self._settings.debug_requests,
        )
        await self._http_transport.start()

        self._running = True

        logger.info("SilverBullet MCP bridge started successfully")
        logger.info("  MCP endpoint: http://%s:%d%s", self._settings.host, self._settings.port, MCP_PATH)
        logger.info("  SilverBullet API: %s", self._settings.sb_api_base_url)

    async def stop(self) -> None:
        """Stop the daemon.

        Closes all sessions, stops the HTTP transport and releases the store
        client session.
        """
        if not self._running:
            return

        logger.info("Stopping SilverBullet MCP bridge...")

        if self._http_transport:
            await self._http_transport.stop()
            self._http_transport = None

        if self._client_session:
            await self._client_session.close()
            self._client_session = None

        self._running = False
        logger.info("SilverBullet MCP bridge stopped")

    async def run_forever(self) -> None:
        """Run the daemon until interrupted.

        Blocks until the HTTP server exits on SIGINT or SIGTERM, then
        releases everything else.
        """
        await self.start()
        try:
            if self._http_transport:
                await self._http_transport.wait_closed()
        finally:
            await self.stop()

    def health_check(self) -> dict[str, Any]:
        """Get health status of the daemon.

        Returns:
            Dictionary with health information.
        """
        status: dict[str, Any] = {
            "status": "healthy" if self._running else "stopped",
            "silverbullet": self._settings.sb_api_base_url,
        }

        if self._registry:
            status["sessions"] = self._registry.get_stats()

        if self._context:
            status["cache"] = self._context.cache.get_stats()

        if self._http_transport:
            status["http"] = {
                "url": self._http_transport.url,
                "running": self._http_transport.is_running,
            }

        return status

    def _build_handler(self) -> Server:
        """Create the MCP handler for a new session."""
        if self._context is None:
            raise RuntimeError("Services must be initialized before sessions")
        return build_server(self._context)


def setup_logging(verbose: bool = False) -> None:
    """Configure logging for the daemon."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def run_daemon(settings: Settings) -> None:
    """Run a daemon until SIGINT or SIGTERM.

    uvicorn handles the signals; the daemon cleans up once the server exits.
    """
    daemon = BridgeDaemon(settings)
    try:
        asyncio.run(daemon.run_forever())
    except KeyboardInterrupt:
        logger.info("Interrupted, shutting down")


def main() -> None:
    """Entry point for the sbmcp-server command."""
    import argparse

    parser = argparse.ArgumentParser(description="SilverBullet MCP bridge server")
    parser.add_argument("--host", help="Interface to bind (env: HOST, default: 0.0.0.0)")
    parser.add_argument("--port", "-p", type=int, help="Port to listen on (env: PORT, default: 4000)")
    parser.add_argument(
        "--sb-url",
        help="SilverBullet base URL (env: SB_API_BASE_URL, default: http://silverbullet:3000)",
    )
    parser.add_argument(
        "--debug-requests",
        action="store_true",
        default=None,
        help="Log details of every MCP request (env: DEBUG_REQUESTS)",
    )
    parser.add_argument(
        "--verbose", "-V",
        action="store_true",
        help="Enable verbose logging",
    )
    args = parser.parse_args()

    setup_logging(args.verbose)

    try:
        settings = Settings.from_env(
            host=args.host,
            port=args.port,
            sb_api_base_url=args.sb_url,
            debug_requests=args.debug_requests,
        )
        settings.validate_required()
    except ConfigError as e:
        logger.critical("%s", e)
        sys.exit(1)

    run_daemon(settings)


if __name__ == "__main__":
    main()
