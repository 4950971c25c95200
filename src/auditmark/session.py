"""Wire a project's config, database and components together.

    session = open_session(load_config())
    session.store.add_review("src/app.py", 1, 40)
    session.tree.create_node(session.ctx, "auth bypass")
    session.save()

Without a database every component runs degraded: writes are skipped and
reads come back empty.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from auditmark.context import SessionContext
from auditmark.db import get_conn
from auditmark.errors import DatabaseUnavailable
from auditmark.files import list_project_files
from auditmark.navigator import NoteNavigator
from auditmark.report import CoverageReport
from auditmark.scope import ScopeResolver, Settings
from auditmark.store import AnnotationStore
from auditmark.threads import ThreadTree

if TYPE_CHECKING:
    import sqlite3

    from auditmark.config import AuditConfig


@dataclass
class AuditSession:
    cfg: AuditConfig
    conn: sqlite3.Connection | None
    settings: Settings
    scope: ScopeResolver
    store: AnnotationStore
    tree: ThreadTree
    navigator: NoteNavigator
    report: CoverageReport
    ctx: SessionContext

    @property
    def available(self) -> bool:
        return self.conn is not None

    def require(self) -> sqlite3.Connection:
        if self.conn is None:
            msg = f"no audit database at {self.cfg.db_path}"
            raise DatabaseUnavailable(msg)
        return self.conn

    def save(self) -> None:
        """Persist the thread cursor."""
        if self.conn is not None:
            self.ctx.save(self.settings)


def open_session(cfg: AuditConfig, *, create: bool = False) -> AuditSession:
    conn = get_conn(cfg, create=create)
    settings = Settings(conn)
    if conn is not None and settings.get("default_scope") is None:
        settings.set("default_scope", cfg.default_scope)
    scope = ScopeResolver(conn, cfg.root, settings)
    store = AnnotationStore(conn, scope)
    tree = ThreadTree(store)
    if conn is not None:
        tree.root()
    ctx = SessionContext.load(settings)
    return AuditSession(
        cfg=cfg,
        conn=conn,
        settings=settings,
        scope=scope,
        store=store,
        tree=tree,
        navigator=NoteNavigator(store),
        report=CoverageReport(store, lambda: list_project_files(cfg), cfg.report),
        ctx=ctx,
    )
