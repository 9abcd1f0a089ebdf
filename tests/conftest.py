"""Pytest fixtures for SilverBullet MCP bridge tests."""

import pytest

from sbmcp.exceptions import StoreError
from sbmcp.mcp.server import HandlerContext
from sbmcp.models.note import NoteInfo, Permission, StoreFile


class FakeStore:
    """In-memory stand-in for the SilverBullet API.

    Counts every call so tests can assert how many remote round trips an
    operation made. ``put`` and ``touch`` are test setup and are not counted.
    """

    def __init__(self, notes: dict[str, str] | None = None) -> None:
        self.files: dict[str, StoreFile] = {}
        self.contents: dict[str, str] = {}
        self.list_calls = 0
        self.read_calls = 0
        self.write_calls = 0
        self.delete_calls = 0
        self.failing_reads: set[str] = set()
        self.crashing_reads: set[str] = set()
        self.fail_listing = False
        self.closed = False
        self._clock = 1000
        for name, content in (notes or {}).items():
            self.put(name, content)

    def put(
        self,
        name: str,
        content: str,
        perm: Permission = Permission.READ_WRITE,
        last_modified: int | None = None,
    ) -> None:
        """Store a file, advancing its modification time."""
        self._clock += 1
        self.contents[name] = content
        self.files[name] = StoreFile(
            name=name,
            last_modified=self._clock if last_modified is None else last_modified,
            content_type="text/markdown",
            size=len(content),
            perm=perm,
        )

    def touch(self, name: str, content: str | None = None) -> None:
        """Change a file behind the cache's back."""
        self.put(name, self.contents[name] if content is None else content, self.files[name].perm)

    async def list_files(self) -> list[StoreFile]:
        self.list_calls += 1
        if self.fail_listing:
            raise StoreError("list files", cause="connection refused", url="http://fake/index.json")
        return list(self.files.values())

    async def list_notes(self) -> list[NoteInfo]:
        return [f.to_note_info() for f in await self.list_files() if f.is_note]

    async def read(self, name: str) -> str:
        self.read_calls += 1
        if name in self.crashing_reads:
            raise RuntimeError("boom")
        if name in self.failing_reads:
            raise StoreError("read note", name, "500 Internal Server Error", status=500)
        if name not in self.contents:
            raise StoreError("read note", name, "404 Not Found", status=404)
        return self.contents[name]

    async def write(self, name: str, content: str) -> None:
        self.write_calls += 1
        perm = self.files[name].perm if name in self.files else Permission.READ_WRITE
        self.put(name, content, perm)

    async def delete(self, name: str) -> None:
        self.delete_calls += 1
        if name not in self.contents:
            raise StoreError("delete note", name, "404 Not Found", status=404)
        del self.contents[name]
        del self.files[name]

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def store() -> FakeStore:
    """A small space with a few notes and one non-note file.

    Returns:
        FakeStore with sample content.
    """
    fake = FakeStore(
        {
            "index.md": "# Index\nWelcome to the space.\nSee [[projects/alpha]].",
            "projects/alpha.md": "# Alpha\nStatus: active\nTODO: write report\nowner: sam",
            "projects/beta.md": "# Beta\nStatus: paused\nTODO: review TODO list",
            "journal/2024-01-15.md": "Met with the alpha team.\nDiscussed the report.",
            "assets/logo.png": "binary",
        }
    )
    fake.put("readonly.md", "Do not edit.\nalpha appears here too.", perm=Permission.READ_ONLY)
    return fake


@pytest.fixture
def empty_store() -> FakeStore:
    """A space with no files."""
    return FakeStore()


@pytest.fixture
def handler_ctx(store: FakeStore) -> HandlerContext:
    """Services wired around the sample store.

    Returns:
        HandlerContext sharing one cache.
    """
    return HandlerContext.create(store)
