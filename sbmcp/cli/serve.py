"""Serve command for the sbmcp CLI."""

import click

from sbmcp.config import Settings
from sbmcp.daemon.server import run_daemon, setup_logging


@click.command()
@click.option("--host", help="Interface to bind (env: HOST)")
@click.option("--port", "-p", type=int, help="Port to listen on (env: PORT)")
@click.option("--debug-requests", is_flag=True, default=None, help="Log every MCP request")
@click.option("--verbose", "-V", is_flag=True, help="Enable verbose logging")
@click.pass_context
def serve(
    ctx: click.Context,
    host: str | None,
    port: int | None,
    debug_requests: bool | None,
    verbose: bool,
) -> None:
    """Run the MCP bridge server.

    Requires MCP_TOKEN in the environment; clients must present it on every
    /mcp request.

    Examples:
        sbmcp serve
        sbmcp --sb-url http://localhost:3000 serve --port 4000
    """
    base: Settings = ctx.obj["settings"]
    settings = base.model_copy(
        update={
            k: v
            for k, v in {"host": host, "port": port, "debug_requests": debug_requests}.items()
            if v is not None
        }
    )
    settings.validate_required()

    setup_logging(verbose)
    run_daemon(settings)
