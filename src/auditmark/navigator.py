"""Jump to the next / previous note in a file.

Positions compare by a composite key ``line * K + col`` with column 0 counted
as 1. Forward search takes the first note whose start is strictly after the
cursor; backward search takes the first note (scanning from the bottom) whose
end is strictly before it. When nothing qualifies the search wraps once: from
the top of the file going forward, from the end going backward.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from auditmark.models import Resolved

if TYPE_CHECKING:
    from collections.abc import Collection

    from auditmark.models import Note, NoteType, PathRef
    from auditmark.store import AnnotationStore

# Must exceed any real column number.
K = 100000


def position_key(line: int, col: int) -> int:
    return line * K + max(col, 1)


def _start_key(note: Note) -> int:
    return position_key(note.line_start, note.col_start)


def _end_key(note: Note) -> int:
    return position_key(note.line_end, note.col_end)


class NoteNavigator:
    """Stateless queries over the store's notes."""

    def __init__(self, store: AnnotationStore) -> None:
        self.store = store

    def next(
        self,
        ref: PathRef | str,
        line: int,
        col: int,
        forward: bool = True,
        kinds: Collection[NoteType] | None = None,
    ) -> tuple[int, int] | None:
        """Start position of the next note after (or before) the cursor."""
        file = self.store.get_file(ref)
        if file is None:
            return None
        notes = self.store.notes_for_file(Resolved(file.id))
        if kinds:
            notes = [n for n in notes if n.note_type in kinds]
        if not notes:
            return None

        found = self._search(notes, position_key(line, col), forward)
        if found is None:
            if forward:
                wrap = position_key(0, 1)
            else:
                # One past the last line so a note ending on it still qualifies.
                last = max(file.line_count, max(n.line_end for n in notes))
                wrap = position_key(last + 1, 1)
            found = self._search(notes, wrap, forward)
        if found is None:
            return None
        return found.line_start, max(found.col_start, 1)

    @staticmethod
    def _search(notes: list[Note], cursor: int, forward: bool) -> Note | None:
        if forward:
            for note in sorted(notes, key=lambda n: (_start_key(n), n.id)):
                if _start_key(note) > cursor:
                    return note
            return None
        for note in sorted(notes, key=lambda n: (_end_key(n), n.id), reverse=True):
            if _end_key(note) < cursor:
                return note
        return None
