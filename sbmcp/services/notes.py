"""Note operations built on the store client and content cache."""

import logging
from dataclasses import dataclass

from sbmcp.exceptions import (
    BridgeError,
    InvalidNoteNameError,
    NoteExistsError,
    NotFoundError,
    StoreError,
)
from sbmcp.models.note import (
    NOTE_SUFFIX,
    BatchNote,
    BatchReadResult,
    NoteInfo,
    NoteListing,
    Permission,
)
from sbmcp.services.cache import ContentCache
from sbmcp.services.store import NoteStore
from sbmcp.utils import ensure_note_suffix
from sbmcp.utils.patterns import LiteralMatcher, RegexMatcher
from sbmcp.utils.similarity import find_similar_names

logger = logging.getLogger(__name__)

PREVIEW_LENGTH = 200


@dataclass
class ReplaceOutcome:
    """Result of a search-and-replace on one note."""

    filename: str
    replacements: int
    literal_fallback: bool = False


def make_preview(content: str, limit: int = PREVIEW_LENGTH) -> str:
    """Truncate content to limit characters, marking the cut with '...'."""
    if len(content) <= limit:
        return content
    return content[:limit - 3] + "..."


class NoteService:
    """Service for single- and multi-note operations."""

    def __init__(self, store: NoteStore, cache: ContentCache) -> None:
        """Initialize the note service.

        Args:
            store: Store for reads, writes and listings.
            cache: Content cache used by multi-note scans.
        """
        self.store = store
        self.cache = cache

    async def suggest(self, name: str, max_suggestions: int = 5) -> list[str]:
        """Suggest existing note names similar to name.

        Suggestions are best effort; a failing listing yields none.
        """
        try:
            notes = await self.store.list_notes()
        except StoreError as e:
            logger.warning("Could not list notes for suggestions: %s", e)
            return []
        return find_similar_names(name, [n.name for n in notes], max_suggestions)

    async def list_notes(
        self,
        name_pattern: str | None = None,
        permission: Permission | None = None,
        content_search: str | None = None,
        use_cache: bool = True,
    ) -> NoteListing:
        """List notes, optionally filtered.

        Args:
            name_pattern: Case-insensitive regex on note names.
            permission: Keep only notes with this permission.
            content_search: Case-insensitive text that must occur in the body.
            use_cache: Read bodies through the cache for the content filter.

        Returns:
            Matching notes, plus errors for notes whose body could not be read.
        """
        notes = await self.store.list_notes()
        listing = NoteListing()

        if name_pattern:
            pattern = RegexMatcher().compile(name_pattern)
            listing.literal_fallback = pattern.literal_fallback
            notes = [n for n in notes if pattern.search(n.name)]

        if permission is not None:
            notes = [n for n in notes if n.permission == permission]

        if content_search:
            needle = LiteralMatcher().compile(content_search)
            kept: list[NoteInfo] = []
            for note in notes:
                try:
                    content = await self.cache.get_content(note.name, use_cache)
                except BridgeError as e:
                    logger.error("Failed to read note %s for content filter: %s", note.name, e)
                    listing.errors.append(f"{note.name}: {e}")
                    continue
                if needle.search(content):
                    kept.append(note)
            notes = kept

        listing.notes = notes
        return listing

    async def read(self, name: str) -> str:
        """Read a note directly from the store.

        Raises:
            NotFoundError: If the store has no such note (with suggestions).
            StoreError: On any other store failure.
        """
        try:
            return await self.store.read(name)
        except StoreError as e:
            if not e.is_not_found:
                raise
            raise NotFoundError(name, await self.suggest(name)) from e

    async def exists(self, name: str) -> bool:
        return any(n.name == name for n in await self.store.list_notes())

    async def create(self, name: str, content: str, overwrite: bool = False) -> bool:
        """Create a note.

        Concurrent creates of the same name are not coordinated; the last
        write wins.

        Returns:
            True if an existing note was replaced.

        Raises:
            InvalidNoteNameError: If name does not end with .md.
            NoteExistsError: If the note exists and overwrite is False.
        """
        if not name.endswith(NOTE_SUFFIX):
            raise InvalidNoteNameError(name)

        existed = await self.exists(name)
        if existed and not overwrite:
            raise NoteExistsError(name)

        await self.store.write(name, content)
        logger.info("%s note %s", "Replaced" if existed else "Created", name)
        return existed

    async def update(self, name: str, content: str) -> None:
        """Replace a note's body."""
        await self.store.write(name, content)
        logger.info("Updated note %s", name)

    async def delete(self, name: str) -> None:
        """Delete a note.

        Raises:
            InvalidNoteNameError: If name does not end with .md.
            NotFoundError: If the store has no such note.
        """
        if not name.endswith(NOTE_SUFFIX):
            raise InvalidNoteNameError(name)
        try:
            await self.store.delete(name)
        except StoreError as e:
            if not e.is_not_found:
                raise
            raise NotFoundError(name, await self.suggest(name)) from e
        logger.info("Deleted note %s", name)

    async def search_replace(
        self,
        name: str,
        search_pattern: str,
        replace_text: str,
        use_regex: bool = False,
        case_sensitive: bool = False,
        replace_all: bool = True,
    ) -> ReplaceOutcome:
        """Replace occurrences of a pattern in one note.

        With use_regex, the replacement may refer to the match with $1..$99,
        $& and friends. The note is only written back when something matched.
        """
        content = await self.read(name)
        matcher = RegexMatcher() if use_regex else LiteralMatcher()
        pattern = matcher.compile(search_pattern, case_sensitive)

        new_content, count = pattern.replace(content, replace_text, replace_all, expand_refs=use_regex)
        if count:
            await self.store.write(name, new_content)
            logger.info("Replaced %d occurrence(s) of %r in %s", count, search_pattern, name)
        return ReplaceOutcome(name, count, pattern.literal_fallback)

    async def resolve_names(
        self,
        filenames: list[str] | None = None,
        name_pattern: str | None = None,
        max_results: int | None = None,
    ) -> list[str]:
        """Resolve explicit names and a name pattern into a list of note names.

        Explicit names get a .md suffix if missing and keep their order;
        pattern matches follow in listing order. Duplicates are dropped.
        """
        resolved: dict[str, None] = {}
        for filename in filenames or []:
            if isinstance(filename, str) and filename.strip():
                resolved[ensure_note_suffix(filename)] = None

        if name_pattern:
            pattern = RegexMatcher().compile(name_pattern)
            for note in await self.store.list_notes():
                if pattern.search(note.name):
                    resolved[note.name] = None

        names = list(resolved)
        return names[:max_results] if max_results else names

    async def read_many(
        self,
        names: list[str],
        include_content: bool = True,
        include_metadata: bool = True,
        use_cache: bool = True,
        preview_only: bool = False,
    ) -> BatchReadResult:
        """Read several notes, collecting per-note failures instead of aborting.

        Args:
            names: Note names to read.
            include_content: Whether to fetch bodies at all.
            include_metadata: Whether to report size and lastModified.
            use_cache: Read through the content cache.
            preview_only: Keep only a short preview of each body.

        Returns:
            One BatchNote per name, plus the list of error messages.
        """
        files = {f.name: f for f in await self.store.list_files()}
        result = BatchReadResult()

        for name in names:
            info = files.get(name)
            note = BatchNote(
                filename=name,
                permission=info.perm if info else Permission.READ_ONLY,
            )
            try:
                if info is None:
                    raise NotFoundError(name, find_similar_names(name, list(files)))
                if include_content:
                    content = await self.cache.get_content(name, use_cache)
                    if preview_only:
                        note.preview = make_preview(content)
                    else:
                        note.content = content
                    if include_metadata:
                        note.size = len(content)
                if include_metadata:
                    note.last_modified = info.last_modified
            except BridgeError as e:
                message = f"Failed to read {name}: {e}"
                logger.warning("%s", message)
                note.error = message
                result.errors.append(message)
            result.notes.append(note)

        return result
