"""Personal code-audit tracker: reviewed ranges, notes and investigation threads.

Layout:
    auditmark.toml        # project config
    .audit/
        audit.db          # SQLite store

Tables:
    setting(name, value)                         # default_scope, thread cursor
    scope(path, include)                         # ordered rules, first match wins
    file(path, line_count)                       # created on first reference
    review(file, line_start, line_end)           # "these lines were read"
    note(file, lines, cols, note, tag, note_type, thread_node)
    thread_node(file?, line, tag?, name, desc, parent?)   # forest under ROOT
    tag(name)

Single writer, every row committed on its own. A cancelled prompt writes nothing.
"""

from auditmark.config import AuditConfig, init_config, load_config
from auditmark.context import SessionContext
from auditmark.models import File, Note, NoteType, Raw, Resolved, Review, ThreadNode
from auditmark.navigator import NoteNavigator
from auditmark.report import CoverageReport
from auditmark.scope import ScopeResolver
from auditmark.session import AuditSession, open_session
from auditmark.store import AnnotationStore
from auditmark.threads import ThreadTree

__all__ = [
    "AnnotationStore",
    "AuditConfig",
    "AuditSession",
    "CoverageReport",
    "File",
    "Note",
    "NoteNavigator",
    "NoteType",
    "Raw",
    "Resolved",
    "Review",
    "ScopeResolver",
    "SessionContext",
    "ThreadNode",
    "ThreadTree",
    "init_config",
    "load_config",
    "open_session",
]
