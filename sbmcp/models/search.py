"""Search result models."""

import math
from enum import Enum

from pydantic import BaseModel, Field

from sbmcp.models.note import Permission


class SearchType(str, Enum):
    """Where a search looks for matches."""

    TITLE = "title"
    CONTENT = "content"
    BOTH = "both"

    @property
    def includes_title(self) -> bool:
        return self in (SearchType.TITLE, SearchType.BOTH)

    @property
    def includes_content(self) -> bool:
        return self in (SearchType.CONTENT, SearchType.BOTH)


class MatchKind(str, Enum):
    """Kind of a search match."""

    TITLE = "title"
    CONTENT = "content"


class SearchMatch(BaseModel):
    """A title match or one matching line of a note body."""

    kind: MatchKind
    line: int = Field(description="1-based line number, 0 for title matches")
    text: str = Field(description="Matched title or trimmed line")
    match_count: int
    context: str | None = None
    start_line: int | None = None
    end_line: int | None = None


class SearchResult(BaseModel):
    """All matches for one note."""

    filename: str
    permission: Permission
    matches: list[SearchMatch] = Field(default_factory=list)

    @property
    def score(self) -> int:
        return sum(match.match_count for match in self.matches)


class SearchPage(BaseModel):
    """One page of ranked search results."""

    query: str
    search_type: SearchType = SearchType.BOTH
    results: list[SearchResult] = Field(default_factory=list)
    total_results: int = 0
    total_matches: int = 0
    page: int = 1
    page_size: int = 10
    literal_fallback: bool = False
    errors: list[str] = Field(default_factory=list)

    @property
    def total_pages(self) -> int:
        if self.page_size <= 0:
            return 0
        return math.ceil(self.total_results / self.page_size)

    @property
    def start_index(self) -> int:
        """0-based index of the first result on this page."""
        return (self.page - 1) * self.page_size
