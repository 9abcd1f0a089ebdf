"""Search command for the sbmcp CLI."""

import click
from rich.console import Console
from rich.table import Table

from sbmcp.cli import client
from sbmcp.models.search import MatchKind, SearchPage, SearchType
from sbmcp.services.cache import ContentCache
from sbmcp.services.search import SearchService
from sbmcp.services.store import NoteStore

console = Console()


@click.command()
@click.argument("query")
@click.option(
    "--type", "-t", "search_type",
    type=click.Choice([t.value for t in SearchType]),
    default=SearchType.BOTH.value,
    help="Search titles, content or both",
)
@click.option("--case-sensitive", "-s", is_flag=True, help="Case-sensitive matching")
@click.option("--max-results", "-m", type=click.IntRange(min=1), default=10, help="Results per page")
@click.option("--page", type=click.IntRange(min=1), default=1, help="Page number (1-based)")
@click.pass_context
def search(
    ctx: click.Context,
    query: str,
    search_type: str,
    case_sensitive: bool,
    max_results: int,
    page: int,
) -> None:
    """Search notes by title and content.

    QUERY is a regular expression; an invalid one is matched literally.

    Examples:
        sbmcp search meeting
        sbmcp search 'todo|fixme' --type content
        sbmcp search report --page 2
    """

    async def run(store: NoteStore) -> SearchPage:
        service = SearchService(store, ContentCache(store))
        return await service.search(
            query,
            search_type=SearchType(search_type),
            case_sensitive=case_sensitive,
            max_results=max_results,
            page=page,
            context_lines=0,
        )

    result = client.run_with_store(ctx.obj["settings"], run)

    if result.literal_fallback:
        console.print(f"[yellow]Warning:[/yellow] invalid regex {query!r} matched literally")
    if result.total_results == 0:
        console.print(f"[dim]No matches found for {query!r}.[/dim]")
        return

    table = Table(
        title=(
            f"{result.total_results} notes, {result.total_matches} matches "
            f"(page {result.page}/{result.total_pages})"
        )
    )
    table.add_column("#", justify="right", style="dim")
    table.add_column("Note", style="cyan")
    table.add_column("Matches", justify="right")
    table.add_column("Where")
    for offset, item in enumerate(result.results):
        where = ", ".join(
            "title" if m.kind is MatchKind.TITLE else f"L{m.line}" for m in item.matches
        )
        table.add_row(str(result.start_index + offset + 1), item.filename, str(item.score), where)
    console.print(table)

    if result.errors:
        console.print(f"[yellow]Warning:[/yellow] {len(result.errors)} note(s) could not be read")
