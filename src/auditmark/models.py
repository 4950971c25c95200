"""Data models for the audit store."""

from __future__ import annotations

import enum
import sqlite3
from dataclasses import dataclass, field


class NoteType(enum.Enum):
    NOTE = "NOTE"
    TODO = "TODO"
    FINDING = "FINDING"

    @classmethod
    def classify(cls, text: str) -> NoteType:
        """FINDING if the text mentions it, else TODO, else a plain NOTE."""
        if "FINDING" in text:
            return cls.FINDING
        if "TODO" in text:
            return cls.TODO
        return cls.NOTE


# ---------------------------------------------------------------------------
# Path references
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Raw:
    """A path as typed by the user (absolute, or relative to cwd)."""

    path: str


@dataclass(frozen=True)
class Resolved:
    """A path already resolved to a File row."""

    file_id: int


PathRef = Raw | Resolved


# ---------------------------------------------------------------------------
# Rows
# ---------------------------------------------------------------------------


@dataclass
class File:
    id: int
    path: str                 # POSIX, relative to the store root
    line_count: int

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> File:
        return cls(id=row["id"], path=row["path"], line_count=row["line_count"])


@dataclass
class Scope:
    id: int
    path: str
    include: bool

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> Scope:
        return cls(id=row["id"], path=row["path"], include=bool(row["include"]))

    def matches(self, path: str) -> bool:
        if self.path in (".", ""):
            return True
        return path == self.path or path.startswith(self.path + "/")


@dataclass
class Tag:
    id: int
    name: str

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> Tag:
        return cls(id=row["id"], name=row["name"])


@dataclass
class Review:
    id: int
    file_id: int
    line_start: int
    line_end: int
    created: str = ""

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> Review:
        return cls(
            id=row["id"],
            file_id=row["file"],
            line_start=row["line_start"],
            line_end=row["line_end"],
            created=row["created"] or "",
        )

    def lines(self) -> range:
        return range(self.line_start, self.line_end + 1)


@dataclass
class ThreadNode:
    id: int
    name: str
    desc: str = ""
    file_id: int | None = None     # None for ROOT and unanchored threads
    line: int = 0
    tag_id: int | None = None
    parent_id: int | None = None   # None only for ROOT

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> ThreadNode:
        return cls(
            id=row["id"],
            name=row["name"],
            desc=row["desc"] or "",
            file_id=row["file"],
            line=row["line"] or 0,
            tag_id=row["tag"],
            parent_id=row["parent"],
        )

    @property
    def is_root(self) -> bool:
        return self.parent_id is None


@dataclass(eq=False)
class Note:
    id: int
    file_id: int
    line_start: int
    line_end: int
    text: str
    note_type: NoteType
    thread_id: int
    col_start: int = 0        # 0 = unset
    col_end: int = 0
    tag_id: int | None = None
    created: str = ""

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> Note:
        return cls(
            id=row["id"],
            file_id=row["file"],
            line_start=row["line_start"],
            line_end=row["line_end"],
            col_start=row["col_start"] or 0,
            col_end=row["col_end"] or 0,
            text=row["note"],
            tag_id=row["tag"],
            note_type=NoteType(row["note_type"]),
            thread_id=row["thread_node"],
            created=row["created"] or "",
        )

    # Identity is the row id so notes can live in sets.
    def __eq__(self, other: object) -> bool:
        return isinstance(other, Note) and other.id == self.id

    def __hash__(self) -> int:
        return hash(("note", self.id))

    def overlaps(self, line: int) -> bool:
        return self.line_start <= line <= self.line_end

    def format_line(self) -> str:
        span = f"{self.line_start}" if self.line_start == self.line_end else f"{self.line_start}-{self.line_end}"
        return f"{span:>9}  {self.note_type.value:<7}  {self.text}"


# ---------------------------------------------------------------------------
# Presentation / report values
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SignPlacement:
    """A marker the editor is expected to draw next to a line."""

    id: int
    kind: str                 # reviewed | note | todo | finding
    line: int
    path: str


@dataclass
class FileStatus:
    text: str
    finding_count: int = 0
    todo_count: int = 0
    note_count: int = 0
    coverage: float = 0.0


@dataclass
class ProjectStatus:
    per_file: list[FileStatus] = field(default_factory=list)
    unopened: list[str] = field(default_factory=list)
