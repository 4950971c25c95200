"""Error taxonomy for the audit store.

NotReviewable and AmbiguousChoice are precondition failures: raised before any
write and reported by the command that triggered them. OrphanedRecord never
leaves the store; it marks a dangling row found (and deleted) during a read.
DatabaseUnavailable is raised only when a caller explicitly requires a store.
"""

from __future__ import annotations


class AuditError(Exception):
    """Base class for auditmark errors."""


class NotReviewable(AuditError):
    """Path is missing, a directory, outside the store root, or out of scope."""

    def __init__(self, path: str, reason: str) -> None:
        self.path = path
        self.reason = reason
        super().__init__(f"{path}: {reason}")


class AmbiguousChoice(AuditError):
    """Selection among several records on one line is out of range."""

    def __init__(self, choice: int, count: int) -> None:
        self.choice = choice
        self.count = count
        super().__init__(f"choice {choice} out of range (1..{count})")


class OrphanedRecord(AuditError):
    """A row references a related row that no longer exists."""

    def __init__(self, table: str, row_id: int, missing: str) -> None:
        self.table = table
        self.row_id = row_id
        self.missing = missing
        super().__init__(f"{table} #{row_id} references missing {missing}")


class DatabaseUnavailable(AuditError):
    """No audit database has been initialised for this project."""
