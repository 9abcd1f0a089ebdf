"""Full-text search over note titles and bodies."""

import logging
from typing import TypeVar

from sbmcp.exceptions import BridgeError
from sbmcp.models.note import NoteInfo
from sbmcp.models.search import MatchKind, SearchMatch, SearchPage, SearchResult, SearchType
from sbmcp.services.cache import ContentCache
from sbmcp.services.store import NoteStore
from sbmcp.utils.patterns import CompiledPattern, PatternMatcher, RegexMatcher

logger = logging.getLogger(__name__)

T = TypeVar("T")


def paginate(items: list[T], page: int, page_size: int) -> list[T]:
    """Slice out a 1-based page.

    Pages past the end are empty rather than an error.
    """
    start = (page - 1) * page_size
    end = min(len(items), page * page_size)
    return items[start:end] if start < end else []


def match_title(note: NoteInfo, pattern: CompiledPattern) -> SearchMatch | None:
    """Aggregate all matches in a note name into one title match."""
    count = pattern.count(note.name)
    if count == 0:
        return None
    return SearchMatch(kind=MatchKind.TITLE, line=0, text=note.name, match_count=count)


def match_lines(content: str, pattern: CompiledPattern, context_lines: int = 0) -> list[SearchMatch]:
    """Find matching lines in a note body.

    Args:
        content: The note body.
        pattern: Compiled query.
        context_lines: Lines of context before and after each match, clipped
            to the body. 0 disables context.

    Returns:
        One match per line with at least one occurrence, in line order.
    """
    lines = content.split("\n")
    matches: list[SearchMatch] = []
    for index, line in enumerate(lines):
        count = pattern.count(line)
        if count == 0:
            continue
        match = SearchMatch(
            kind=MatchKind.CONTENT,
            line=index + 1,
            text=line.strip(),
            match_count=count,
        )
        if context_lines > 0:
            first = max(0, index - context_lines)
            last = min(len(lines) - 1, index + context_lines)
            match.context = "\n".join(lines[first:last + 1])
            match.start_line = first + 1
            match.end_line = last + 1
        matches.append(match)
    return matches


class SearchService:
    """Searches titles and bodies, ranking notes by total match count."""

    def __init__(
        self,
        store: NoteStore,
        cache: ContentCache,
        matcher: PatternMatcher | None = None,
    ) -> None:
        """Initialize the search service.

        Args:
            store: Store used for the note listing.
            cache: Cache used to read note bodies.
            matcher: Pattern capability. Defaults to regex with literal fallback.
        """
        self._store = store
        self._cache = cache
        self._matcher = matcher or RegexMatcher()

    async def search(
        self,
        query: str,
        search_type: SearchType = SearchType.BOTH,
        case_sensitive: bool = False,
        max_results: int = 10,
        page: int = 1,
        context_lines: int = 1,
        use_cache: bool = True,
    ) -> SearchPage:
        """Search all notes and return one page of ranked results.

        Args:
            query: Regex query. Invalid patterns are matched literally.
            search_type: Search titles, contents or both.
            case_sensitive: Whether matching is case-sensitive.
            max_results: Page size.
            page: 1-based page number.
            context_lines: Context lines around content matches.
            use_cache: Read bodies through the content cache.

        Returns:
            The requested page plus totals over all results.

        Raises:
            StoreError: If the note listing itself cannot be fetched.
        """
        pattern = self._matcher.compile(query, case_sensitive)
        if pattern.literal_fallback:
            logger.info("Invalid regex %r treated as literal text", query)

        notes = await self._store.list_notes()
        results: list[SearchResult] = []
        errors: list[str] = []

        for note in notes:
            result = SearchResult(filename=note.name, permission=note.permission)

            if search_type.includes_title:
                title_match = match_title(note, pattern)
                if title_match is not None:
                    result.matches.append(title_match)

            if search_type.includes_content:
                try:
                    content = await self._cache.get_content(note.name, use_cache)
                except BridgeError as e:
                    logger.error("Failed to read note %s during search: %s", note.name, e)
                    errors.append(f"{note.name}: {e}")
                else:
                    result.matches.extend(match_lines(content, pattern, context_lines))

            if result.matches:
                results.append(result)

        # sort() is stable, so listing order breaks ties
        results.sort(key=lambda r: r.score, reverse=True)

        return SearchPage(
            query=query,
            search_type=search_type,
            results=paginate(results, page, max_results),
            total_results=len(results),
            total_matches=sum(r.score for r in results),
            page=page,
            page_size=max_results,
            literal_fallback=pattern.literal_fallback,
            errors=errors,
        )
