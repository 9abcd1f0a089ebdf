"""Note models for the SilverBullet bridge."""

from enum import Enum

from pydantic import BaseModel, Field

NOTE_SUFFIX = ".md"


class Permission(str, Enum):
    """Store permission flag for a note."""

    READ_WRITE = "rw"
    READ_ONLY = "ro"

    @property
    def label(self) -> str:
        """Human-readable permission name."""
        return "read-write" if self is Permission.READ_WRITE else "read-only"


class StoreFile(BaseModel):
    """One row of the store's index.json listing."""

    name: str
    last_modified: int = Field(default=0, alias="lastModified")
    content_type: str = Field(default="", alias="contentType")
    size: int = 0
    perm: Permission = Permission.READ_WRITE

    class Config:
        populate_by_name = True

    @property
    def is_note(self) -> bool:
        """Only markdown files are treated as notes."""
        return self.name.endswith(NOTE_SUFFIX)

    def to_note_info(self) -> "NoteInfo":
        """Project the listing row onto a NoteInfo."""
        return NoteInfo(name=self.name, permission=self.perm)


class NoteInfo(BaseModel):
    """A note as seen in a listing."""

    name: str
    permission: Permission


class CacheEntry(BaseModel):
    """Cached body of a note with the store timestamp it was read at."""

    content: str
    last_modified: int = Field(alias="lastModified")

    class Config:
        populate_by_name = True
        frozen = True


class BatchNote(BaseModel):
    """Outcome of reading one note as part of a multi-note request."""

    filename: str
    permission: Permission = Permission.READ_ONLY
    size: int | None = None
    last_modified: int | None = None
    content: str | None = None
    preview: str | None = None
    error: str | None = None


class BatchReadResult(BaseModel):
    """Outcome of a multi-note read."""

    notes: list[BatchNote] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.notes)

    @property
    def success_count(self) -> int:
        return sum(1 for note in self.notes if note.error is None)

    @property
    def error_count(self) -> int:
        return self.total - self.success_count

    def permission_counts(self) -> dict[str, int]:
        """Count successful notes by permission."""
        counts = {Permission.READ_WRITE.value: 0, Permission.READ_ONLY.value: 0}
        for note in self.notes:
            if note.error is None:
                counts[note.permission.value] += 1
        return counts


class NoteListing(BaseModel):
    """Filtered note listing plus any per-note failures from a content filter."""

    notes: list[NoteInfo] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)
    literal_fallback: bool = False
