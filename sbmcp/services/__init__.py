"""Core services: store client, content cache, search and note operations."""

from sbmcp.services.cache import ContentCache
from sbmcp.services.notes import NoteService
from sbmcp.services.search import SearchService
from sbmcp.services.store import NoteStore, NoteStoreClient

__all__ = [
    "ContentCache",
    "NoteService",
    "NoteStore",
    "NoteStoreClient",
    "SearchService",
]
