"""Scope rules, settings and path eligibility.

A path may be tracked when it exists, is a regular file under the project
root, and the scope rules let it in. Rules are checked in insertion order and
the first rule whose path equals, or is a parent directory of, the candidate
decides. A later, more specific rule never overrides an earlier match:

    add_scope("src", include=False)
    add_scope("src/vendor", include=True)
    is_in_scope("src/vendor/x.go")   # False: "src" matched first

With no matching rule the ``default_scope`` setting decides: ``blacklist``
admits everything, ``whitelist`` admits nothing.
"""

from __future__ import annotations

import logging
import posixpath
from pathlib import Path
from typing import TYPE_CHECKING

from auditmark.config import DEFAULT_SCOPES
from auditmark.db import requires_db
from auditmark.errors import NotReviewable
from auditmark.models import Scope

if TYPE_CHECKING:
    import sqlite3

logger = logging.getLogger("auditmark.scope")

DEFAULT_SCOPE_KEY = "default_scope"


class Settings:
    """Get-or-set access to the setting table."""

    def __init__(self, conn: sqlite3.Connection | None) -> None:
        self.conn = conn

    @requires_db()
    def get(self, name: str, default: str | None = None) -> str | None:
        row = self.conn.execute("SELECT value FROM setting WHERE name = ?", (name,)).fetchone()
        if row is None:
            return default
        return row["value"]

    @requires_db()
    def set(self, name: str, value: str) -> None:
        self.conn.execute(
            "INSERT INTO setting(name, value) VALUES (?, ?) "
            "ON CONFLICT(name) DO UPDATE SET value = excluded.value",
            (name, value),
        )
        self.conn.commit()

    @requires_db(dict)
    def all(self) -> dict[str, str]:
        rows = self.conn.execute("SELECT name, value FROM setting ORDER BY name").fetchall()
        return {r["name"]: r["value"] for r in rows}


class ScopeResolver:
    """Decides whether a project path may be tracked."""

    def __init__(self, conn: sqlite3.Connection | None, root: Path, settings: Settings | None = None) -> None:
        self.conn = conn
        self.root = Path(root).resolve()
        self.settings = settings or Settings(conn)

    # ------------------------------------------------------------------
    # Settings
    # ------------------------------------------------------------------

    @property
    def default_scope(self) -> str:
        value = self.settings.get(DEFAULT_SCOPE_KEY)
        return value if value in DEFAULT_SCOPES else "blacklist"

    def set_default_scope(self, value: str) -> None:
        if value not in DEFAULT_SCOPES:
            msg = f"default scope must be one of {', '.join(DEFAULT_SCOPES)}, got {value!r}"
            raise ValueError(msg)
        self.settings.set(DEFAULT_SCOPE_KEY, value)

    def get_setting(self, name: str, default: str | None = None) -> str | None:
        return self.settings.get(name, default)

    def set_setting(self, name: str, value: str) -> None:
        if name == DEFAULT_SCOPE_KEY:
            self.set_default_scope(value)
            return
        self.settings.set(name, value)

    # ------------------------------------------------------------------
    # Rules
    # ------------------------------------------------------------------

    @requires_db(list)
    def list_scopes(self) -> list[Scope]:
        rows = self.conn.execute("SELECT id, path, include FROM scope ORDER BY id").fetchall()
        return [Scope.from_row(r) for r in rows]

    @requires_db()
    def add_scope(self, path: str, include: bool) -> Scope:
        rule_path = self._rule_path(path)
        cur = self.conn.execute(
            "INSERT INTO scope(path, include) VALUES (?, ?)", (rule_path, int(include)),
        )
        self.conn.commit()
        logger.debug("scope rule added: %s include=%s", rule_path, include)
        return Scope(id=cur.lastrowid, path=rule_path, include=include)

    @requires_db(int)
    def remove_scope(self, path: str) -> int:
        """Delete every rule for path. Returns the number of rules removed."""
        cur = self.conn.execute("DELETE FROM scope WHERE path = ?", (self._rule_path(path),))
        self.conn.commit()
        return cur.rowcount

    def is_in_scope(self, path: str) -> bool:
        """First matching rule wins; otherwise the default scope decides."""
        for rule in self.list_scopes():
            if rule.matches(path):
                return rule.include
        return self.default_scope == "blacklist"

    # ------------------------------------------------------------------
    # Paths
    # ------------------------------------------------------------------

    def _rule_path(self, path: str) -> str:
        p = Path(path)
        if p.is_absolute():
            return self.normalize(path)
        cleaned = posixpath.normpath(path.replace("\\", "/"))
        return cleaned.rstrip("/") or "."

    def normalize(self, path: str | Path) -> str:
        """POSIX path relative to the project root.

        Relative input is taken relative to the root, not the cwd.
        """
        p = Path(path)
        if not p.is_absolute():
            p = self.root / p
        resolved = p.resolve()
        try:
            rel = resolved.relative_to(self.root)
        except ValueError:
            raise NotReviewable(str(path), "outside the audit root") from None
        return rel.as_posix()

    def check_reviewable(self, path: str | Path) -> str:
        """Return the normalised path, or raise NotReviewable."""
        rel = self.normalize(path)
        full = self.root / rel
        if not full.exists():
            raise NotReviewable(rel, "no such file")
        if full.is_dir():
            raise NotReviewable(rel, "is a directory")
        if not self.is_in_scope(rel):
            raise NotReviewable(rel, "excluded by scope rules")
        return rel
