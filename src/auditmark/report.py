"""Project-wide status: per-file note counts and coverage, plus files in
scope that were never opened.

Counts are split by note type, so every note lands in exactly one counter.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from auditmark.config import ReportConfig
from auditmark.db import requires_db
from auditmark.models import FileStatus, NoteType, ProjectStatus, Resolved

if TYPE_CHECKING:
    import sqlite3
    from collections.abc import Callable

    from auditmark.store import AnnotationStore

_BAND_MARKS = {"full": "✔", "high": "●", "medium": "◐", "low": "○"}


def coverage_band(value: float, report: ReportConfig | None = None) -> str:
    """full (100%), high (>= high_threshold), medium (> medium_threshold), else low."""
    report = report or ReportConfig()
    if value >= 1.0:
        return "full"
    if value >= report.high_threshold:
        return "high"
    if value > report.medium_threshold:
        return "medium"
    return "low"


class CoverageReport:
    """Cross-references the store with the project's file listing."""

    def __init__(
        self,
        store: AnnotationStore,
        list_files: Callable[[], list[str]],
        report: ReportConfig | None = None,
    ) -> None:
        self.store = store
        self.list_files = list_files
        self.report = report or ReportConfig()

    def file_status(self, file_id: int) -> FileStatus | None:
        file = self.store.get_file(Resolved(file_id))
        if file is None:
            return None
        status = FileStatus(text=file.path, coverage=self.store.coverage(Resolved(file.id)))
        for note in self.store.notes_for_file(Resolved(file.id)):
            if note.note_type is NoteType.FINDING:
                status.finding_count += 1
            elif note.note_type is NoteType.TODO:
                status.todo_count += 1
            else:
                status.note_count += 1
        return status

    @property
    def conn(self) -> sqlite3.Connection | None:
        return self.store.conn

    @requires_db(list)
    def unopened(self) -> list[str]:
        known = {f.path for f in self.store.list_files()}
        return [
            path for path in self.list_files()
            if path not in known and self.store.scope.is_in_scope(path)
        ]

    @requires_db(ProjectStatus)
    def project_status(self) -> ProjectStatus:
        per_file = [
            status for status in (self.file_status(f.id) for f in self.store.list_files())
            if status is not None
        ]
        return ProjectStatus(per_file=per_file, unopened=self.unopened())

    def format_status(self, status: ProjectStatus) -> str:
        """Text block for a report view."""
        lines: list[str] = []
        if status.per_file:
            lines.append(f"  {'Cover':>6}  {'Find':>4}  {'Todo':>4}  {'Note':>4}  File")
            lines.append("-" * 60)
        for fs in status.per_file:
            mark = _BAND_MARKS[coverage_band(fs.coverage, self.report)]
            lines.append(
                f"{mark} {fs.coverage:>6.0%}  {fs.finding_count:>4}  {fs.todo_count:>4}  {fs.note_count:>4}  {fs.text}"
            )
        if status.per_file:
            total_find = sum(fs.finding_count for fs in status.per_file)
            total_todo = sum(fs.todo_count for fs in status.per_file)
            lines.append(f"{len(status.per_file)} file(s), {total_find} finding(s), {total_todo} todo(s)")
        if status.unopened:
            lines.append("")
            lines.append(f"Not opened yet ({len(status.unopened)}):")
            lines.extend(f"  {path}" for path in status.unopened)
        return "\n".join(lines)
