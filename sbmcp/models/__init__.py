"""Pydantic data models."""

from sbmcp.models.note import (
    BatchNote,
    BatchReadResult,
    CacheEntry,
    NoteInfo,
    NoteListing,
    Permission,
    StoreFile,
)
from sbmcp.models.search import MatchKind, SearchMatch, SearchPage, SearchResult, SearchType

__all__ = [
    "BatchNote",
    "BatchReadResult",
    "CacheEntry",
    "MatchKind",
    "NoteInfo",
    "NoteListing",
    "Permission",
    "SearchMatch",
    "SearchPage",
    "SearchResult",
    "SearchType",
    "StoreFile",
]
