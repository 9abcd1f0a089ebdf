"""Unit tests for the search service."""

import asyncio

from sbmcp.models.search import MatchKind, SearchType
from sbmcp.services.cache import ContentCache
from sbmcp.services.search import SearchService, match_lines, paginate
from sbmcp.utils.patterns import RegexMatcher


def make_service(store) -> SearchService:
    return SearchService(store, ContentCache(store))


class TestPaginate:
    """Tests for the paginate helper."""

    def test_first_page(self) -> None:
        assert paginate(list(range(25)), 1, 10) == list(range(10))

    def test_last_partial_page(self) -> None:
        assert paginate(list(range(25)), 3, 10) == list(range(20, 25))

    def test_page_past_end_is_empty(self) -> None:
        """A page beyond the last one should be empty, not an error."""
        assert paginate(list(range(25)), 4, 10) == []


class TestMatchLines:
    """Tests for per-line content matching."""

    def test_counts_per_line(self) -> None:
        """Each matching line should carry its own occurrence count."""
        pattern = RegexMatcher().compile("foo")
        matches = match_lines("Foo bar\nbaz foo foo\nnone", pattern)

        assert [(m.line, m.match_count) for m in matches] == [(1, 1), (2, 2)]
        assert all(m.kind == MatchKind.CONTENT for m in matches)

    def test_text_is_trimmed(self) -> None:
        pattern = RegexMatcher().compile("todo")
        assert match_lines("   TODO: ship it   ", pattern)[0].text == "TODO: ship it"

    def test_context_clipped_to_body(self) -> None:
        """Context should not run past the first or last line."""
        pattern = RegexMatcher().compile("one")
        match = match_lines("one\ntwo\nthree", pattern, context_lines=2)[0]

        assert match.start_line == 1
        assert match.end_line == 3
        assert match.context == "one\ntwo\nthree"

    def test_no_context_by_default(self) -> None:
        pattern = RegexMatcher().compile("two")
        match = match_lines("one\ntwo\nthree", pattern)[0]
        assert match.context is None


class TestSearchService:
    """Tests for SearchService.search."""

    def test_score_sums_line_matches(self, empty_store) -> None:
        """Two occurrences on two lines should score 2."""
        empty_store.put("a.md", "Foo bar\nbaz foo")
        page = asyncio.run(make_service(empty_store).search("foo"))

        assert page.total_results == 1
        assert page.total_matches == 2
        result = page.results[0]
        assert result.filename == "a.md"
        assert result.score == 2
        assert [m.line for m in result.matches] == [1, 2]

    def test_title_match(self, empty_store) -> None:
        """A query found in the note name should produce one title match."""
        empty_store.put("a.md", "nothing relevant")
        page = asyncio.run(make_service(empty_store).search("a", search_type=SearchType.TITLE))

        match = page.results[0].matches[0]
        assert match.kind == MatchKind.TITLE
        assert match.line == 0
        assert match.text == "a.md"
        assert match.match_count == 1

    def test_title_only_reads_no_bodies(self, store) -> None:
        asyncio.run(make_service(store).search("alpha", search_type=SearchType.TITLE))
        assert store.read_calls == 0

    def test_ranking_and_tie_order(self, store) -> None:
        """Higher scores come first; ties keep listing order."""
        page = asyncio.run(make_service(store).search("alpha"))

        assert [r.filename for r in page.results] == [
            "projects/alpha.md",
            "index.md",
            "journal/2024-01-15.md",
            "readonly.md",
        ]
        assert page.results[0].score == 2
        assert page.total_matches == 5

    def test_case_sensitive(self, store) -> None:
        page = asyncio.run(
            make_service(store).search(
                "TODO", search_type=SearchType.CONTENT, case_sensitive=True
            )
        )
        assert [(r.filename, r.score) for r in page.results] == [
            ("projects/beta.md", 2),
            ("projects/alpha.md", 1),
        ]

    def test_pagination_is_exhaustive(self, empty_store) -> None:
        """Concatenated pages should cover every result exactly once."""
        for i in range(25):
            empty_store.put(f"note{i:02d}.md", "x marks the spot")
        service = make_service(empty_store)

        async def run() -> list[list[str]]:
            pages = []
            for number in (1, 2, 3):
                page = await service.search("x", search_type=SearchType.CONTENT, page=number)
                pages.append([r.filename for r in page.results])
            return pages

        pages = asyncio.run(run())

        assert [len(p) for p in pages] == [10, 10, 5]
        flattened = [name for p in pages for name in p]
        assert len(set(flattened)) == 25

    def test_page_beyond_last(self, store) -> None:
        page = asyncio.run(make_service(store).search("alpha", page=5))

        assert page.results == []
        assert page.total_results == 4
        assert page.total_pages == 1

    def test_invalid_regex_falls_back(self, empty_store) -> None:
        """An uncompilable query should be matched literally."""
        empty_store.put("code.md", "call a( b)")
        page = asyncio.run(make_service(empty_store).search("a("))

        assert page.literal_fallback
        assert page.total_matches == 1

    def test_unreadable_note_skipped(self, store) -> None:
        """A note whose body fails to load is reported and skipped."""
        store.failing_reads.add("projects/beta.md")
        page = asyncio.run(
            make_service(store).search("Status", search_type=SearchType.CONTENT)
        )

        assert [r.filename for r in page.results] == ["projects/alpha.md"]
        assert len(page.errors) == 1
        assert page.errors[0].startswith("projects/beta.md:")

    def test_no_matches(self, store) -> None:
        page = asyncio.run(make_service(store).search("zebra"))
        assert page.results == []
        assert page.total_results == 0
        assert page.total_pages == 0
