"""Note commands for the sbmcp CLI."""

import click
from rich.console import Console
from rich.table import Table

from sbmcp.cli import client
from sbmcp.models.note import NoteListing, Permission
from sbmcp.services.cache import ContentCache
from sbmcp.services.notes import NoteService
from sbmcp.services.store import NoteStore

console = Console()


@click.command("notes")
@click.option("--pattern", "-n", help="Regex filter on note names (case-insensitive)")
@click.option("--permission", type=click.Choice(["rw", "ro"]), help="Filter by permission")
@click.option("--content", "-c", help="Only notes whose content contains this text")
@click.pass_context
def list_notes(
    ctx: click.Context,
    pattern: str | None,
    permission: str | None,
    content: str | None,
) -> None:
    """List notes in the SilverBullet space.

    Examples:
        sbmcp notes                 # All notes
        sbmcp notes -n '^projects/' # Notes under projects/
        sbmcp notes --permission ro # Read-only notes
    """

    async def fetch(store: NoteStore) -> NoteListing:
        service = NoteService(store, ContentCache(store))
        return await service.list_notes(
            name_pattern=pattern,
            permission=Permission(permission) if permission else None,
            content_search=content,
        )

    listing = client.run_with_store(ctx.obj["settings"], fetch)

    if listing.literal_fallback:
        console.print(f"[yellow]Warning:[/yellow] invalid regex {pattern!r} matched literally")

    if not listing.notes:
        console.print("[dim]No notes found.[/dim]")
    else:
        table = Table(title=f"Notes ({len(listing.notes)})")
        table.add_column("Note", style="cyan")
        table.add_column("Permission")
        for note in listing.notes:
            style = "green" if note.permission is Permission.READ_WRITE else "yellow"
            table.add_row(note.name, f"[{style}]{note.permission.label}[/{style}]")
        console.print(table)

    for message in listing.errors:
        console.print(f"[red]Error:[/red] {message}")


@click.command("read")
@click.argument("filename")
@click.pass_context
def read_note(ctx: click.Context, filename: str) -> None:
    """Print the content of a note."""

    async def fetch(store: NoteStore) -> str:
        return await NoteService(store, ContentCache(store)).read(filename)

    click.echo(client.run_with_store(ctx.obj["settings"], fetch))
