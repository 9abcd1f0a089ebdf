"""Main CLI entry point for the SilverBullet MCP bridge."""

import sys

import click
from rich.console import Console

from sbmcp import __version__
from sbmcp.cli.notes import list_notes, read_note
from sbmcp.cli.search import search
from sbmcp.cli.serve import serve
from sbmcp.config import Settings
from sbmcp.exceptions import BridgeError

console = Console()


@click.group()
@click.option("--sb-url", help="SilverBullet base URL (env: SB_API_BASE_URL)")
@click.option("--debug/--no-debug", default=False, help="Show debug information")
@click.version_option(__version__, prog_name="sbmcp")
@click.pass_context
def cli(ctx: click.Context, sb_url: str | None, debug: bool) -> None:
    """SilverBullet MCP bridge.

    Serves the notes of a SilverBullet space to MCP clients, and offers a
    few commands to inspect the space from the terminal.
    """
    ctx.ensure_object(dict)
    ctx.obj["settings"] = Settings.from_env(sb_api_base_url=sb_url)
    ctx.obj["debug"] = debug


# Register commands
cli.add_command(serve)
cli.add_command(list_notes, name="notes")
cli.add_command(read_note, name="read")
cli.add_command(search)


def main() -> None:
    """Main entry point with error handling."""
    try:
        cli()
    except BridgeError as e:
        console.print(f"[red]Error:[/red] {e}")
        sys.exit(1)
    except Exception as e:
        if "--debug" in sys.argv:
            raise
        console.print(f"[red]Error:[/red] {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
