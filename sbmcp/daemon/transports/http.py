"""Streamable HTTP transport for the bridge daemon.

Serves the MCP endpoint to remote clients:
- GET /        -> unauthenticated service banner
- GET /health  -> daemon health check
- POST /mcp    -> JSON-RPC messages (creates a session on initialize)
- GET /mcp     -> server-to-client event stream for a session
- DELETE /mcp  -> terminate a session

Every /mcp route requires the configured token. The session id travels in
the Mcp-Session-Id header.
"""

import asyncio
import json
import logging
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any

import uvicorn
from mcp.server.streamable_http import MCP_SESSION_ID_HEADER
from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import Route
from starlette.types import Message, Receive, Scope, Send

from sbmcp import __version__
from sbmcp.daemon.auth import UNAUTHORIZED_BODY, authenticate
from sbmcp.daemon.registry import SessionRegistry
from sbmcp.exceptions import AuthError
from sbmcp.mcp.protocol import ErrorCode, error_body

logger = logging.getLogger(__name__)

MCP_PATH = "/mcp"
SESSION_HEADER = "Mcp-Session-Id"

# Open event streams get this long to finish once shutdown starts
GRACEFUL_SHUTDOWN_SECONDS = 5


def _replay_body(body: bytes, receive: Receive) -> Receive:
    """Hand an already-read request body to the next reader."""
    replayed = False

    async def replay() -> Message:
        nonlocal replayed
        if not replayed:
            replayed = True
            return {"type": "http.request", "body": body, "more_body": False}
        return await receive()

    return replay


class McpEndpoint:
    """ASGI app for /mcp: checks the token, then routes the request to its session."""

    def __init__(self, registry: SessionRegistry, auth_token: str | None, debug_requests: bool = False) -> None:
        self._registry = registry
        self._auth_token = auth_token
        self._debug_requests = debug_requests

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        request = Request(scope, receive)
        self._log_request(request)

        if not self._auth_token:
            logger.critical("MCP_TOKEN not set, refusing %s %s", request.method, request.url.path)
            response = JSONResponse(
                {"error": "Server misconfiguration: Authentication token not configured"},
                status_code=500,
            )
            await response(scope, receive, send)
            return

        raw = b""
        body: Any = None
        malformed = False
        if request.method == "POST":
            raw = await request.body()
            try:
                body = json.loads(raw)
            except ValueError:
                malformed = True

        try:
            authenticate(request.headers, request.query_params, body, self._auth_token)
        except AuthError as e:
            logger.warning("Authentication failed for %s %s: %s", request.method, request.url.path, e)
            await JSONResponse(UNAUTHORIZED_BODY, status_code=401)(scope, receive, send)
            return

        if malformed:
            response = JSONResponse(error_body(ErrorCode.PARSE_ERROR, "Parse error: Invalid JSON"), status_code=400)
            await response(scope, receive, send)
            return

        if request.method == "POST":
            if isinstance(body, dict) and "token" in body:
                # The credential stops here
                body = {k: v for k, v in body.items() if k != "token"}
                raw = json.dumps(body).encode("utf-8")
            receive = _replay_body(raw, receive)
        await self._registry.handle_request(scope, receive, send, body)

    def _log_request(self, request: Request) -> None:
        if not self._debug_requests:
            return
        details = {
            "method": request.method,
            "url": request.url.path + (f"?{request.url.query}" if request.url.query else ""),
            "ip": request.client.host if request.client else None,
            "userAgent": request.headers.get("User-Agent"),
            "session": request.headers.get(MCP_SESSION_ID_HEADER),
            "timestamp": datetime.now().isoformat(),
        }
        logger.info("[%s %s] Request: %s", request.method, MCP_PATH, json.dumps(details))


class HttpTransport:
    """HTTP transport using Starlette served by uvicorn."""

    def __init__(
        self,
        host: str,
        port: int,
        registry: SessionRegistry,
        health_check: Callable[[], dict[str, Any]],
        auth_token: str | None,
        debug_requests: bool = False,
    ) -> None:
        """Initialize the HTTP transport.

        Args:
            host: Host to bind to.
            port: Port to listen on. 0 picks a free port.
            registry: Live MCP sessions.
            health_check: Function to get health status.
            auth_token: Token clients must present on /mcp routes.
            debug_requests: Log details of every /mcp request.
        """
        self._host = host
        self._port = port
        self._registry = registry
        self._health_check = health_check
        self._auth_token = auth_token
        self._debug_requests = debug_requests
        self._server: uvicorn.Server | None = None
        self._serve_task: asyncio.Task[None] | None = None

    @property
    def port(self) -> int:
        """The port actually bound, once the server has started."""
        if self._server is not None and self._server.started and self._server.servers:
            sockets = self._server.servers[0].sockets
            if sockets:
                return sockets[0].getsockname()[1]
        return self._port

    @property
    def url(self) -> str:
        """Get the base URL of the server."""
        return f"http://{self._host}:{self.port}"

    @property
    def is_running(self) -> bool:
        """Check if the transport is running."""
        return self._server is not None and self._server.started and not self._server.should_exit

    def create_app(self) -> Starlette:
        """Build the Starlette application with all routes."""
        return Starlette(
            routes=[
                Route("/", self._handle_banner, methods=["GET"]),
                Route("/health", self._handle_health, methods=["GET"]),
                Route(
                    MCP_PATH,
                    McpEndpoint(self._registry, self._auth_token, self._debug_requests),
                    methods=["GET", "POST", "DELETE"],
                ),
            ],
            lifespan=self._lifespan,
        )

    @asynccontextmanager
    async def _lifespan(self, app: Starlette) -> AsyncIterator[None]:
        async with self._registry.run():
            yield

    async def start(self) -> None:
        """Start the HTTP server in the background.

        Returns once the server is accepting connections.

        Raises:
            RuntimeError: If the server stopped during startup.
        """
        config = uvicorn.Config(
            self.create_app(),
            host=self._host,
            port=self._port,
            lifespan="on",
            log_config=None,
            access_log=False,
            timeout_graceful_shutdown=GRACEFUL_SHUTDOWN_SECONDS,
        )
        self._server = uvicorn.Server(config)
        self._serve_task = asyncio.create_task(self._server.serve())

        while not self._server.started:
            if self._serve_task.done():
                await self._serve_task
                raise RuntimeError(f"HTTP server failed to start on {self._host}:{self._port}")
            await asyncio.sleep(0.05)

        logger.info("MCP endpoint listening at %s%s", self.url, MCP_PATH)

    async def wait_closed(self) -> None:
        """Block until the server exits, e.g. after SIGINT or SIGTERM."""
        if self._serve_task is not None:
            await self._serve_task

    async def stop(self) -> None:
        """Stop the HTTP server.

        Sessions are closed first so open event streams end promptly.
        """
        if self._server is None:
            return
        await self._registry.close_all()
        self._server.should_exit = True
        if self._serve_task is not None:
            await self._serve_task
        self._server = None
        self._serve_task = None
        logger.info("HTTP server stopped")

    # Route handlers

    async def _handle_banner(self, request: Request) -> JSONResponse:
        """Handle GET /."""
        return JSONResponse(
            {
                "service": "SilverBullet MCP Server",
                "version": __version__,
                "status": "running",
                "authentication": "required for /mcp routes",
                "timestamp": datetime.now().isoformat(),
            }
        )

    async def _handle_health(self, request: Request) -> JSONResponse:
        """Handle GET /health."""
        return JSONResponse(self._health_check())
