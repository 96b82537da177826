"""Pydantic schemas for repository inspection results."""

from pydantic import BaseModel


class CommitInfo(BaseModel):
    """A commit in the reviewed range."""

    hash: str
    author: str
    email: str
    timestamp: int
    subject: str

    @property
    def short_hash(self) -> str:
        return self.hash[:7]


class FileHistoryEntry(BaseModel):
    """One line of a file's commit history."""

    short_hash: str
    author: str
    relative_date: str
    subject: str


class SearchResult(BaseModel):
    """Capped list of `path:line:content` matches."""

    pattern: str
    matches: list[str] = []
    total: int = 0

    @property
    def remaining(self) -> int:
        return max(self.total - len(self.matches), 0)
