"""MCP handler for the SilverBullet bridge.

Exposes SilverBullet notes to MCP clients as resources and tools. Every
session gets its own handler built by ``build_server``; all handlers share
one HandlerContext (store client, content cache and services).
"""

import json
import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any
from urllib.parse import quote, unquote

from mcp.server.lowlevel import Server
from mcp.server.lowlevel.helper_types import ReadResourceContents
from mcp.types import Resource, ResourceTemplate, TextContent, Tool

from sbmcp import __version__
from sbmcp.exceptions import BridgeError, InvalidArgumentError, ToolExecutionError
from sbmcp.mcp.protocol import to_mcp_error
from sbmcp.mcp.tools import TOOL_SCHEMAS
from sbmcp.models.note import BatchReadResult, NoteListing, Permission
from sbmcp.models.search import MatchKind, SearchPage, SearchType
from sbmcp.services.cache import ContentCache
from sbmcp.services.notes import NoteService
from sbmcp.services.search import SearchService
from sbmcp.services.store import NoteStore

logger = logging.getLogger(__name__)

SERVER_NAME = "silverbullet-mcp"
NOTES_URI = "sb-notes://all"
NOTE_URI_PREFIX = "sb-note://"

# Concise search output shows at most this many matches per note
CONCISE_MATCH_LIMIT = 3
CONCISE_LINE_WIDTH = 100

@dataclass
class HandlerContext:
    """Services shared by every session handler."""

    store: NoteStore
    cache: ContentCache
    search: SearchService
    notes: NoteService

    @classmethod
    def create(cls, store: NoteStore) -> "HandlerContext":
        """Wire the cache and services around a store."""
        cache = ContentCache(store)
        return cls(
            store=store,
            cache=cache,
            search=SearchService(store, cache),
            notes=NoteService(store, cache),
        )


def note_uri(name: str) -> str:
    return f"{NOTE_URI_PREFIX}{quote(name, safe='')}"


# ============================================================================
# Argument helpers
# ============================================================================


def _optional_str(args: dict[str, Any], key: str) -> str | None:
    value = args.get(key)
    if value is not None and not isinstance(value, str):
        raise InvalidArgumentError(f"{key} must be a string")
    return value


def _required_str(args: dict[str, Any], key: str, allow_empty: bool = True) -> str:
    value = _optional_str(args, key)
    if value is None:
        raise InvalidArgumentError(f"Missing required argument: {key}")
    if not allow_empty and not value.strip():
        raise InvalidArgumentError(f"{key} must not be empty")
    return value


def _filename_arg(args: dict[str, Any]) -> str:
    return _required_str(args, "filename", allow_empty=False)


def _bool_arg(args: dict[str, Any], key: str, default: bool) -> bool:
    value = args.get(key)
    if value is None:
        return default
    if not isinstance(value, bool):
        raise InvalidArgumentError(f"{key} must be a boolean")
    return value


def _int_arg(args: dict[str, Any], key: str, default: int, minimum: int) -> int:
    value = args.get(key)
    if value is None:
        return default
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidArgumentError(f"{key} must be an integer")
    if value < minimum:
        raise InvalidArgumentError(f"{key} must be at least {minimum}")
    return value


def _choice_arg(args: dict[str, Any], key: str, choices: tuple[str, ...], default: str | None) -> str | None:
    value = args.get(key)
    if value is None:
        return default
    if value not in choices:
        raise InvalidArgumentError(f"{key} must be one of: {', '.join(choices)}")
    return str(value)


def _text(text: str) -> list[TextContent]:
    return [TextContent(type="text", text=text)]


# ============================================================================
# Formatters
# ============================================================================


def format_note_listing(
    listing: NoteListing,
    name_pattern: str | None = None,
    permission: str | None = None,
    content_search: str | None = None,
) -> str:
    """Format a list-notes result as text."""
    filters = []
    if name_pattern:
        filters.append(f'name pattern: "{name_pattern}"')
    if permission:
        filters.append(f"permission: {permission}")
    if content_search:
        filters.append(f'content: "{content_search}"')

    lines = []
    if listing.literal_fallback:
        lines.append(f'Warning: Your regex pattern "{name_pattern}" was invalid and was treated as literal text.')
    lines.append(f"Notes matching filters ({', '.join(filters)}):" if filters else "Available notes:")
    if listing.notes:
        lines.extend(f"- {note.name} ({note.permission.label})" for note in listing.notes)
    else:
        lines.append("No notes found matching the specified criteria.")
    if listing.errors:
        lines.append("")
        lines.append("Errors:")
        lines.extend(f"- {error}" for error in listing.errors)
    return "\n".join(lines)


def _truncate(text: str, width: int = CONCISE_LINE_WIDTH) -> str:
    return text if len(text) <= width else text[:width - 3] + "..."


def format_search_page(page: SearchPage, concise: bool = True) -> str:
    """Format a page of search results as text.

    Args:
        page: The page to format.
        concise: Compact output with at most a few matches per note; the
            verbose form includes every match and its context lines.

    Returns:
        Human-readable result text with a pagination footer when there is
        more than one page.
    """
    if page.total_results == 0:
        where = "titles or content" if page.search_type is SearchType.BOTH else page.search_type.value
        text = f'No matches found for "{page.query}" in {where}.'
        if page.errors:
            text += f"\n{len(page.errors)} note(s) could not be read and were skipped."
        return text

    out = []
    if page.literal_fallback:
        out.append(f'Warning: Your regex query "{page.query}" was invalid and was treated as a literal search.\n')
    if concise:
        out.append(
            f'SEARCH: "{page.query}" | Results: {page.total_results} notes, '
            f"{page.total_matches} matches | Page {page.page}/{page.total_pages}\n"
        )
    else:
        out.append(
            f"Found {page.total_matches} matches in {page.total_results} notes "
            f"(showing page {page.page} of {page.total_pages}):\n"
        )
    if page.errors:
        out.append(f"{len(page.errors)} note(s) could not be read and were skipped.\n")
    out.append("\n")

    for offset, result in enumerate(page.results):
        number = page.start_index + offset + 1
        if concise:
            out.append(f"{number}. {result.filename} ({result.score}x)\n")
            for match in result.matches[:CONCISE_MATCH_LIMIT]:
                if match.kind is MatchKind.TITLE:
                    out.append("  - Title match\n")
                else:
                    out.append(f"  - L{match.line}: {_truncate(match.text)}\n")
            hidden = len(result.matches) - CONCISE_MATCH_LIMIT
            if hidden > 0:
                out.append(f"  - ... {hidden} more matches\n")
        else:
            out.append(f"**{result.filename}** ({result.score} matches, {result.permission.value})\n")
            for match in result.matches:
                if match.kind is MatchKind.TITLE:
                    out.append(f'  Title: "{match.text}"\n')
                    continue
                out.append(f'  Line {match.line}: "{match.text}"\n')
                if match.context and match.start_line is not None:
                    for index, line in enumerate(match.context.split("\n")):
                        line_number = match.start_line + index
                        marker = ">" if line_number == match.line else " "
                        out.append(f"    {marker} {line_number}: {line}\n")
        out.append("\n")

    if page.total_pages > 1:
        if concise:
            out.append(f"---\nPage {page.page}/{page.total_pages}")
            if page.page < page.total_pages:
                out.append(f" | Next: page={page.page + 1}")
            if page.page > 1:
                out.append(f" | Prev: page={page.page - 1}")
        else:
            out.append(f"Page {page.page} of {page.total_pages}")
            if page.page < page.total_pages:
                out.append(f" | Use page={page.page + 1} for next results")
            if page.page > 1:
                out.append(f" | Use page={page.page - 1} for previous results")

    return "".join(out)


def format_batch(result: BatchReadResult, output_format: str = "structured") -> str:
    """Format a multi-note read as structured, concatenated or summary text."""
    if output_format == "concatenated":
        out = [f"# Combined Notes ({result.success_count} notes)\n\n"]
        for note in result.notes:
            if note.error is None and note.content is not None:
                out.append(f"# {note.filename}\n\n{note.content}\n\n---\n\n")
        return "".join(out)

    if output_format == "summary":
        out = [f"**Multi-Note Summary** ({result.total} notes)\n\n"]
        for note in result.notes:
            status = "[error]" if note.error else "[ok]"
            out.append(f"{status} **{note.filename}** ({note.permission.value})")
            if note.preview:
                out.append(f"\n   {note.preview}")
            if note.error:
                out.append(f"\n   {note.error}")
            out.append("\n\n")
        return "".join(out)

    counts = result.permission_counts()
    out = [
        f"**Summary**: {result.success_count}/{result.total} notes read successfully\n",
        f"**Permissions**: {counts['rw']} read-write, {counts['ro']} read-only\n\n",
    ]
    for index, note in enumerate(result.notes, start=1):
        out.append(f"## {index}. {note.filename}\n")
        out.append(f"**Permission**: {note.permission.value}\n")
        if note.size is not None:
            out.append(f"**Size**: {note.size} characters\n")
        if note.error:
            out.append(f"**Error**: {note.error}\n")
        elif note.content is not None:
            out.append(f"**Content**:\n```markdown\n{note.content}\n```\n")
        elif note.preview is not None:
            out.append(f"**Preview**: {note.preview}\n")
        out.append("\n---\n\n")
    if result.errors:
        out.append("## Errors\n")
        out.extend(f"- {error}\n" for error in result.errors)
    return "".join(out)


# ============================================================================
# Tool handlers
# ============================================================================


async def handle_list_notes(ctx: HandlerContext, args: dict[str, Any]) -> list[TextContent]:
    """Handle list-notes."""
    name_pattern = _optional_str(args, "namePattern")
    permission = _choice_arg(args, "permission", ("rw", "ro"), None)
    content_search = _optional_str(args, "contentSearch")

    listing = await ctx.notes.list_notes(
        name_pattern=name_pattern,
        permission=Permission(permission) if permission else None,
        content_search=content_search,
    )
    return _text(format_note_listing(listing, name_pattern, permission, content_search))


async def handle_search_notes(ctx: HandlerContext, args: dict[str, Any]) -> list[TextContent]:
    """Handle search-notes."""
    query = _required_str(args, "query", allow_empty=False)
    search_type = _choice_arg(args, "searchType", tuple(t.value for t in SearchType), "both")

    page = await ctx.search.search(
        query,
        search_type=SearchType(search_type),
        case_sensitive=_bool_arg(args, "caseSensitive", False),
        max_results=_int_arg(args, "maxResults", 10, minimum=1),
        page=_int_arg(args, "page", 1, minimum=1),
        context_lines=_int_arg(args, "contextLines", 1, minimum=0),
        use_cache=_bool_arg(args, "enableCaching", True),
    )
    return _text(format_search_page(page, concise=_bool_arg(args, "concise", True)))


async def handle_read_note(ctx: HandlerContext, args: dict[str, Any]) -> list[TextContent]:
    """Handle read-note."""
    return _text(await ctx.notes.read(_filename_arg(args)))


async def handle_read_multiple_notes(ctx: HandlerContext, args: dict[str, Any]) -> list[TextContent]:
    """Handle read-multiple-notes."""
    filenames = args.get("filenames")
    if filenames is not None and (
        not isinstance(filenames, list) or not all(isinstance(f, str) for f in filenames)
    ):
        raise InvalidArgumentError("filenames must be a list of strings")
    name_pattern = _optional_str(args, "namePattern")
    if not filenames and not name_pattern:
        raise InvalidArgumentError("Provide filenames or namePattern")
    output_format = _choice_arg(args, "format", ("structured", "concatenated", "summary"), "structured")

    names = await ctx.notes.resolve_names(
        filenames, name_pattern, _int_arg(args, "maxResults", 20, minimum=1)
    )
    if not names:
        return _text("No notes matched the request.")

    result = await ctx.notes.read_many(
        names,
        include_content=_bool_arg(args, "includeContent", True),
        use_cache=_bool_arg(args, "enableCaching", True),
        preview_only=output_format == "summary",
    )
    return _text(format_batch(result, output_format))


async def handle_create_note(ctx: HandlerContext, args: dict[str, Any]) -> list[TextContent]:
    """Handle create-note."""
    filename = _filename_arg(args)
    content = _required_str(args, "content")
    existed = await ctx.notes.create(filename, content, _bool_arg(args, "overwrite", False))
    action = "overwrote" if existed else "created"
    return _text(f"Successfully {action} note: {filename}")


async def handle_update_note(ctx: HandlerContext, args: dict[str, Any]) -> list[TextContent]:
    """Handle update-note."""
    filename = _filename_arg(args)
    content = _required_str(args, "content")
    await ctx.notes.update(filename, content)
    return _text(f"Successfully updated note: {filename}")


async def handle_delete_note(ctx: HandlerContext, args: dict[str, Any]) -> list[TextContent]:
    """Handle delete-note."""
    filename = _filename_arg(args)
    await ctx.notes.delete(filename)
    return _text(f"Successfully deleted note: {filename}")


async def handle_search_replace_note(ctx: HandlerContext, args: dict[str, Any]) -> list[TextContent]:
    """Handle search-replace-note."""
    filename = _filename_arg(args)
    search_pattern = _required_str(args, "searchPattern", allow_empty=False)
    replace_text = _required_str(args, "replaceText")

    outcome = await ctx.notes.search_replace(
        filename,
        search_pattern,
        replace_text,
        use_regex=_bool_arg(args, "useRegex", False),
        case_sensitive=_bool_arg(args, "caseSensitive", False),
        replace_all=_bool_arg(args, "replaceAll", True),
    )
    if outcome.replacements == 0:
        return _text(f'No matches found for "{search_pattern}" in {filename}')

    plural = "" if outcome.replacements == 1 else "s"
    text = f'Successfully replaced {outcome.replacements} occurrence{plural} of "{search_pattern}" in {filename}'
    if outcome.literal_fallback:
        text += "\nNote: Invalid regex pattern was treated as literal text."
    return _text(text)


ToolHandler = Callable[[HandlerContext, dict[str, Any]], Any]

TOOL_HANDLERS: dict[str, ToolHandler] = {
    "list-notes": handle_list_notes,
    "search-notes": handle_search_notes,
    "read-note": handle_read_note,
    "read-multiple-notes": handle_read_multiple_notes,
    "create-note": handle_create_note,
    "update-note": handle_update_note,
    "delete-note": handle_delete_note,
    "search-replace-note": handle_search_replace_note,
}

# Tools whose success changes the set of notes
LIST_CHANGING_TOOLS = {"create-note", "delete-note"}

# Verb used in "Failed to ..." messages
_TOOL_ACTIONS = {
    "list-notes": "list notes",
    "search-notes": "search notes",
    "read-note": "read note",
    "read-multiple-notes": "read notes",
    "create-note": "create note",
    "update-note": "update note",
    "delete-note": "delete note",
    "search-replace-note": "modify note",
}


async def dispatch_tool(ctx: HandlerContext, name: str, arguments: dict[str, Any] | None) -> list[TextContent]:
    """Run a tool by name.

    Raises:
        ToolExecutionError: If the tool is unknown or fails. The MCP handler
            reports this to the client as an error result.
    """
    handler = TOOL_HANDLERS.get(name)
    if handler is None:
        raise ToolExecutionError(f"Unknown tool: {name}")
    try:
        return await handler(ctx, arguments or {})
    except BridgeError as e:
        logger.error("Tool %s failed: %s", name, e)
        raise ToolExecutionError(f"Failed to {_TOOL_ACTIONS[name]}: {e}") from e
    except Exception as e:
        logger.exception("Unexpected error in tool %s", name)
        raise ToolExecutionError(f"Failed to {_TOOL_ACTIONS[name]}: {e}") from e


# ============================================================================
# Resources
# ============================================================================


async def read_notes_resource(ctx: HandlerContext) -> str:
    """JSON listing of every note with its resource uri."""
    notes = await ctx.store.list_notes()
    return json.dumps(
        [
            {"name": note.name, "uri": note_uri(note.name), "permissions": note.permission.value}
            for note in notes
        ],
        indent=2,
    )


def parse_note_uri(uri: str) -> str | None:
    """Extract the note name from an sb-note:// uri."""
    if not uri.startswith(NOTE_URI_PREFIX):
        return None
    name = unquote(uri[len(NOTE_URI_PREFIX):].rstrip("/"))
    return name or None


async def _read_resource(ctx: HandlerContext, uri: str) -> list[ReadResourceContents]:
    if uri.rstrip("/") == NOTES_URI:
        return [ReadResourceContents(content=await read_notes_resource(ctx), mime_type="application/json")]

    name = parse_note_uri(uri)
    if name is None:
        raise InvalidArgumentError(f"Unknown resource: {uri}")
    content = await ctx.notes.read(name)
    return [ReadResourceContents(content=content, mime_type="text/markdown")]


def build_server(ctx: HandlerContext) -> Server:
    """Create an MCP handler bound to the shared services.

    Tools that add or remove notes tell the calling session that the
    resource list changed. Resource failures reach the client as JSON-RPC
    errors carrying the matching error code.

    Args:
        ctx: Shared services.

    Returns:
        A configured handler with the full tool and resource set.
    """
    server: Server = Server(SERVER_NAME, version=__version__)

    @server.list_tools()
    async def list_tools() -> list[Tool]:
        return [
            Tool(name=name, description=schema["description"], inputSchema=schema["inputSchema"])
            for name, schema in TOOL_SCHEMAS.items()
        ]

    @server.call_tool()
    async def call_tool(name: str, arguments: dict[str, Any]) -> list[TextContent]:
        content = await dispatch_tool(ctx, name, arguments)
        if name in LIST_CHANGING_TOOLS:
            await server.request_context.session.send_resource_list_changed()
        return content

    @server.list_resources()
    async def list_resources() -> list[Resource]:
        return [
            Resource(
                uri=NOTES_URI,
                name="notes",
                description="All notes in the SilverBullet space",
                mimeType="application/json",
            )
        ]

    @server.list_resource_templates()
    async def list_resource_templates() -> list[ResourceTemplate]:
        return [
            ResourceTemplate(
                uriTemplate=f"{NOTE_URI_PREFIX}{{filename}}",
                name="note",
                description="Content of a single note",
                mimeType="text/markdown",
            )
        ]

    @server.read_resource()
    async def read_resource(uri: Any) -> list[ReadResourceContents]:
        try:
            return await _read_resource(ctx, str(uri))
        except BridgeError as e:
            logger.error("Reading %s failed: %s", uri, e)
            raise to_mcp_error(e) from e
        except Exception as e:
            logger.exception("Unexpected error reading %s", uri)
            raise to_mcp_error(e) from e

    return server
