"""Annotation store: files, reviewed ranges, notes and tags.

AnnotationStore is the public API:
    store = AnnotationStore(conn, ScopeResolver(conn, root))
    store.add_review("src/app.py", 10, 42)
    store.add_note("src/app.py", 12, 12, "FINDING: unchecked length", ctx)
    store.coverage("src/app.py")            # 0.0 .. 1.0

Paths are PathRefs: a Raw path is normalised against the project root and
checked for eligibility before anything is written; a Resolved id skips the
lookup. Each write commits on its own, there is no multi-row transaction.

Reads repair dangling rows: a note whose file or thread vanished (or a review
whose file vanished) is deleted with a warning instead of failing the read.
"""

from __future__ import annotations

import logging
import re
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from auditmark.db import requires_db
from auditmark.errors import AmbiguousChoice, NotReviewable, OrphanedRecord
from auditmark.files import read_line_count
from auditmark.models import (
    File,
    Note,
    NoteType,
    Raw,
    Resolved,
    Review,
    SignPlacement,
    Tag,
)
from auditmark.threads import ensure_root

if TYPE_CHECKING:
    import sqlite3
    from collections.abc import Sequence

    from auditmark.context import SessionContext
    from auditmark.models import PathRef
    from auditmark.scope import ScopeResolver

logger = logging.getLogger("auditmark.store")

_TAG_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

_NOTE_SELECT = """
    SELECT n.id, n.file, n.line_start, n.line_end, n.col_start, n.col_end, n.note,
           n.tag, n.note_type, n.thread_node, n.created,
           f.id AS file_ok, t.id AS thread_ok
    FROM note n
    LEFT JOIN file f ON f.id = n.file
    LEFT JOIN thread_node t ON t.id = n.thread_node
"""
_REVIEW_SELECT = """
    SELECT r.id, r.file, r.line_start, r.line_end, r.created, f.id AS file_ok
    FROM review r
    LEFT JOIN file f ON f.id = r.file
"""

_SIGN_KINDS = {
    NoteType.NOTE: "note",
    NoteType.TODO: "todo",
    NoteType.FINDING: "finding",
}


def _now() -> str:
    return datetime.now(UTC).isoformat()


def _as_ref(ref: PathRef | str) -> PathRef:
    if isinstance(ref, (Raw, Resolved)):
        return ref
    return Raw(str(ref))


def _check_range(line_start: int, line_end: int) -> None:
    if line_start < 1 or line_end < line_start:
        msg = f"invalid line range {line_start}-{line_end}"
        raise ValueError(msg)


class AnnotationStore:
    """SQLite-backed store of reviews and notes."""

    def __init__(self, conn: sqlite3.Connection | None, scope: ScopeResolver) -> None:
        self.conn = conn
        self.scope = scope

    # ------------------------------------------------------------------
    # Files
    # ------------------------------------------------------------------

    @requires_db()
    def get_or_create_file(self, path: str) -> File:
        """Look up a file by path, creating it (with its line count) if new.

        Raises NotReviewable when the path may not be tracked.
        """
        rel = self.scope.check_reviewable(path)
        existing = self._file_by_path(rel)
        if existing is not None:
            return existing
        line_count = read_line_count(self.scope.root / rel)
        cur = self.conn.execute(
            "INSERT INTO file(path, line_count) VALUES (?, ?)", (rel, line_count),
        )
        self.conn.commit()
        logger.debug("tracking %s (%d lines)", rel, line_count)
        return File(id=cur.lastrowid, path=rel, line_count=line_count)

    @requires_db()
    def resolve(self, ref: PathRef | str) -> File:
        """Turn any PathRef into a File, creating it when needed."""
        ref = _as_ref(ref)
        if isinstance(ref, Resolved):
            file = self._file_by_id(ref.file_id)
            if file is None:
                raise NotReviewable(f"#{ref.file_id}", "unknown file")
            return file
        return self.get_or_create_file(ref.path)

    @requires_db()
    def get_file(self, ref: PathRef | str) -> File | None:
        """Look up an already tracked file without creating it."""
        ref = _as_ref(ref)
        if isinstance(ref, Resolved):
            return self._file_by_id(ref.file_id)
        try:
            rel = self.scope.normalize(ref.path)
        except NotReviewable:
            return None
        return self._file_by_path(rel)

    @requires_db(list)
    def list_files(self) -> list[File]:
        rows = self.conn.execute("SELECT id, path, line_count FROM file ORDER BY path").fetchall()
        return [File.from_row(r) for r in rows]

    def _file_by_path(self, rel: str) -> File | None:
        row = self.conn.execute(
            "SELECT id, path, line_count FROM file WHERE path = ?", (rel,),
        ).fetchone()
        return File.from_row(row) if row is not None else None

    def _file_by_id(self, file_id: int) -> File | None:
        row = self.conn.execute(
            "SELECT id, path, line_count FROM file WHERE id = ?", (file_id,),
        ).fetchone()
        return File.from_row(row) if row is not None else None

    def _writable(self, ref: PathRef | str) -> File:
        file = self.resolve(ref)
        if not self.scope.is_in_scope(file.path):
            raise NotReviewable(file.path, "excluded by scope rules")
        return file

    # ------------------------------------------------------------------
    # Reviews
    # ------------------------------------------------------------------

    @requires_db()
    def add_review(self, ref: PathRef | str, line_start: int, line_end: int) -> Review:
        """Record that lines line_start..line_end were read. Overlaps are kept."""
        _check_range(line_start, line_end)
        file = self._writable(ref)
        created = _now()
        cur = self.conn.execute(
            "INSERT INTO review(file, line_start, line_end, created) VALUES (?, ?, ?, ?)",
            (file.id, line_start, line_end, created),
        )
        self.conn.commit()
        logger.debug("review %s:%d-%d", file.path, line_start, line_end)
        return Review(id=cur.lastrowid, file_id=file.id, line_start=line_start, line_end=line_end, created=created)

    @requires_db(list)
    def reviews_for_file(self, ref: PathRef | str) -> list[Review]:
        file = self.get_file(ref)
        if file is None:
            return []
        return self._read_reviews("WHERE r.file = ? ORDER BY r.line_start, r.id", (file.id,))

    def reviews_overlapping_line(self, ref: PathRef | str, line: int) -> list[Review]:
        return [r for r in self.reviews_for_file(ref) if r.line_start <= line <= r.line_end]

    @requires_db(bool)
    def delete_review(self, review_id: int) -> bool:
        cur = self.conn.execute("DELETE FROM review WHERE id = ?", (review_id,))
        self.conn.commit()
        return cur.rowcount > 0

    def _read_reviews(self, where: str, params: tuple[object, ...]) -> list[Review]:
        rows = self.conn.execute(f"{_REVIEW_SELECT} {where}", params).fetchall()
        reviews: list[Review] = []
        dangling: list[int] = []
        for row in rows:
            if row["file_ok"] is None:
                logger.warning("discarding %s", OrphanedRecord("review", row["id"], "file"))
                dangling.append(row["id"])
                continue
            reviews.append(Review.from_row(row))
        if dangling:
            self._purge("review", dangling)
        return reviews

    # ------------------------------------------------------------------
    # Notes
    # ------------------------------------------------------------------

    @staticmethod
    def classify(text: str) -> NoteType:
        return NoteType.classify(text)

    @requires_db()
    def add_note(
        self,
        ref: PathRef | str,
        line_start: int,
        line_end: int,
        text: str | None,
        ctx: SessionContext,
        *,
        tag: str | None = None,
        col_start: int = 0,
        col_end: int = 0,
        thread_id: int | None = None,
        mark_reviewed: bool = True,
    ) -> Note | None:
        """Attach a note to a line range.

        Empty text means the prompt was cancelled: nothing is written and None
        is returned. The note joins thread_id, else the session's current
        thread, else ROOT. With mark_reviewed the range is also recorded as a
        review.
        """
        if text is None or not text.strip():
            logger.debug("note cancelled: empty text")
            return None
        text = text.strip()
        _check_range(line_start, line_end)
        if col_start < 0 or col_end < 0:
            msg = "columns must be >= 0"
            raise ValueError(msg)
        if tag is not None and not _TAG_RE.match(tag):
            msg = f"invalid tag name: {tag!r}"
            raise ValueError(msg)

        file = self._writable(ref)
        thread = self._thread_for_note(ctx, thread_id)
        tag_id = self.get_or_create_tag(tag).id if tag else None
        note_type = NoteType.classify(text)
        created = _now()

        if mark_reviewed:
            self.add_review(Resolved(file.id), line_start, line_end)
        cur = self.conn.execute(
            """INSERT INTO note(file, line_start, line_end, col_start, col_end, note, tag,
                                note_type, thread_node, created)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            (file.id, line_start, line_end, col_start, col_end, text, tag_id,
             note_type.value, thread, created),
        )
        self.conn.commit()
        logger.debug("%s note on %s:%d-%d", note_type.value, file.path, line_start, line_end)
        return Note(
            id=cur.lastrowid, file_id=file.id, line_start=line_start, line_end=line_end,
            col_start=col_start, col_end=col_end, text=text, tag_id=tag_id,
            note_type=note_type, thread_id=thread, created=created,
        )

    @requires_db(list)
    def notes_for_file(self, ref: PathRef | str) -> list[Note]:
        file = self.get_file(ref)
        if file is None:
            return []
        return self._read_notes("WHERE n.file = ? ORDER BY n.line_start, n.col_start, n.id", (file.id,))

    def notes_overlapping_line(self, ref: PathRef | str, line: int) -> set[Note]:
        return {n for n in self.notes_for_file(ref) if n.overlaps(line)}

    @requires_db(list)
    def notes_with_tag(self, name: str) -> list[Note]:
        return self._read_notes(
            "JOIN tag g ON g.id = n.tag WHERE g.name = ? ORDER BY f.path, n.line_start, n.id", (name,),
        )

    @requires_db(list)
    def notes_for_thread(self, thread_id: int) -> list[Note]:
        return self._read_notes("WHERE n.thread_node = ? ORDER BY n.id", (thread_id,))

    @requires_db(bool)
    def delete_note(self, note_id: int) -> bool:
        """Delete one note; reviews and other notes on the range are kept."""
        cur = self.conn.execute("DELETE FROM note WHERE id = ?", (note_id,))
        self.conn.commit()
        return cur.rowcount > 0

    def _thread_for_note(self, ctx: SessionContext, thread_id: int | None) -> int:
        for candidate in (thread_id, ctx.current):
            if candidate is None:
                continue
            row = self.conn.execute("SELECT id FROM thread_node WHERE id = ?", (candidate,)).fetchone()
            if row is not None:
                return candidate
            if candidate == thread_id:
                msg = f"no thread #{thread_id}"
                raise ValueError(msg)
            logger.warning("current thread #%d no longer exists, using ROOT", candidate)
            ctx.forget(candidate)
        return ensure_root(self.conn).id

    def _read_notes(self, where: str, params: tuple[object, ...]) -> list[Note]:
        rows = self.conn.execute(f"{_NOTE_SELECT} {where}", params).fetchall()
        notes: list[Note] = []
        dangling: list[int] = []
        for row in rows:
            try:
                notes.append(self._note_from_row(row))
            except OrphanedRecord as exc:
                logger.warning("discarding %s", exc)
                dangling.append(row["id"])
        if dangling:
            self._purge("note", dangling)
        return notes

    @staticmethod
    def _note_from_row(row: sqlite3.Row) -> Note:
        if row["file_ok"] is None:
            raise OrphanedRecord("note", row["id"], "file")
        if row["thread_ok"] is None:
            raise OrphanedRecord("note", row["id"], "thread")
        return Note.from_row(row)

    def _purge(self, table: str, ids: list[int]) -> None:
        marks = ",".join("?" * len(ids))
        self.conn.execute(f"DELETE FROM {table} WHERE id IN ({marks})", ids)
        self.conn.commit()

    # ------------------------------------------------------------------
    # Selection
    # ------------------------------------------------------------------

    @staticmethod
    def pick(candidates: Sequence[Note] | Sequence[Review], choice: int | None = None) -> Note | Review | None:
        """Pick one of several records sharing a line (choice is 1-based).

        A single candidate needs no choice. Raises AmbiguousChoice when the
        choice is missing for several candidates or out of range.
        """
        if not candidates:
            return None
        if choice is None:
            if len(candidates) == 1:
                return candidates[0]
            raise AmbiguousChoice(0, len(candidates))
        if not 1 <= choice <= len(candidates):
            raise AmbiguousChoice(choice, len(candidates))
        return candidates[choice - 1]

    # ------------------------------------------------------------------
    # Tags
    # ------------------------------------------------------------------

    @requires_db()
    def get_or_create_tag(self, name: str) -> Tag:
        if not _TAG_RE.match(name):
            msg = f"invalid tag name: {name!r}"
            raise ValueError(msg)
        row = self.conn.execute("SELECT id, name FROM tag WHERE name = ? ORDER BY id LIMIT 1", (name,)).fetchone()
        if row is not None:
            return Tag.from_row(row)
        cur = self.conn.execute("INSERT INTO tag(name) VALUES (?)", (name,))
        self.conn.commit()
        return Tag(id=cur.lastrowid, name=name)

    @requires_db(dict)
    def tag_names(self) -> dict[int, str]:
        return {r["id"]: r["name"] for r in self.conn.execute("SELECT id, name FROM tag").fetchall()}

    # ------------------------------------------------------------------
    # Coverage
    # ------------------------------------------------------------------

    def reviewed_lines(self, ref: PathRef | str) -> set[int]:
        """Union of all reviewed lines, clipped to the file's length."""
        file = self.get_file(ref)
        if file is None:
            return set()
        lines: set[int] = set()
        for review in self.reviews_for_file(Resolved(file.id)):
            lines.update(review.lines())
        return {n for n in lines if 1 <= n <= file.line_count}

    @requires_db(float)
    def coverage(self, ref: PathRef | str) -> float:
        """Fraction of lines covered by at least one review (1.0 for empty files)."""
        file = self.get_file(ref)
        if file is None:
            return 0.0
        if file.line_count == 0:
            return 1.0
        return len(self.reviewed_lines(Resolved(file.id))) / file.line_count

    # ------------------------------------------------------------------
    # Presentation
    # ------------------------------------------------------------------

    def sign_placements(self, ref: PathRef | str) -> list[SignPlacement]:
        """Signs for one file: one per reviewed line, one per note start.

        Reviewed-line ids are odd (2*line+1) and note ids even (2*note.id),
        so they are stable for the same data and never collide.
        """
        file = self.get_file(ref)
        if file is None:
            return []
        signs = [
            SignPlacement(id=2 * line + 1, kind="reviewed", line=line, path=file.path)
            for line in sorted(self.reviewed_lines(Resolved(file.id)))
        ]
        signs.extend(
            SignPlacement(id=2 * note.id, kind=_SIGN_KINDS[note.note_type], line=note.line_start, path=file.path)
            for note in self.notes_for_file(Resolved(file.id))
        )
        return signs

    def format_notes(self, ref: PathRef | str) -> str:
        file = self.get_file(ref)
        if file is None:
            return ""
        notes = self.notes_for_file(Resolved(file.id))
        header = f"{file.path}  ({len(notes)} notes, {self.coverage(Resolved(file.id)):.0%} reviewed)"
        return "\n".join([header, *(n.format_line() for n in notes)])
