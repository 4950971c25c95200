"""Thread tree: investigation contexts as a forest under a single ROOT.

Nodes live in the thread_node table and are addressed by integer id; a node's
parent is fixed at creation. The parent → children index is rebuilt on demand
from the table, so there are no live back-references to keep in sync.

Which thread is active is not stored here: callers pass a SessionContext and
every creation or switch updates it (the previous current becomes last).
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from auditmark.db import requires_db
from auditmark.errors import OrphanedRecord
from auditmark.models import ThreadNode

if TYPE_CHECKING:
    import sqlite3
    from collections.abc import Iterable

    from auditmark.context import SessionContext
    from auditmark.models import PathRef
    from auditmark.store import AnnotationStore

logger = logging.getLogger("auditmark.threads")

ROOT_NAME = "ROOT"
_COLUMNS = 'id, file, line, tag, name, "desc", parent'
_NODE_SELECT = """
    SELECT t.id, t.file, t.line, t.tag, t.name, t."desc", t.parent, f.id AS file_ok
    FROM thread_node t
    LEFT JOIN file f ON f.id = t.file
    ORDER BY t.id
"""


def ensure_root(conn: sqlite3.Connection) -> ThreadNode:
    """Get or create the ROOT node (the only node without a parent)."""
    row = conn.execute(
        f"SELECT {_COLUMNS} FROM thread_node WHERE parent IS NULL ORDER BY id LIMIT 1"
    ).fetchone()
    if row is not None:
        return ThreadNode.from_row(row)
    cur = conn.execute(
        """INSERT INTO thread_node(file, line, tag, name, "desc", parent) VALUES (NULL, 0, NULL, ?, '', NULL)""",
        (ROOT_NAME,),
    )
    conn.commit()
    logger.debug("created ROOT thread #%d", cur.lastrowid)
    return ThreadNode(id=cur.lastrowid, name=ROOT_NAME)


class ThreadTree:
    """Hierarchy of ThreadNodes plus cursor operations."""

    def __init__(self, store: AnnotationStore) -> None:
        self.store = store

    @property
    def conn(self) -> sqlite3.Connection | None:
        return self.store.conn

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    @requires_db()
    def root(self) -> ThreadNode:
        return ensure_root(self.conn)

    @requires_db(dict)
    def nodes(self) -> dict[int, ThreadNode]:
        """All nodes by id; orphaned subtrees and dangling file anchors are repaired."""
        ensure_root(self.conn)
        rows = self.conn.execute(_NODE_SELECT).fetchall()
        by_id = {r["id"]: ThreadNode.from_row(r) for r in rows}
        unanchored = [r["id"] for r in rows if r["file"] is not None and r["file_ok"] is None]
        if unanchored:
            self._drop_anchors(unanchored)
            for node_id in unanchored:
                by_id[node_id].file_id = None
        orphans = self._find_orphans(by_id)
        if orphans:
            self._delete_orphans(orphans)
            for node_id in orphans:
                del by_id[node_id]
        return by_id

    def get(self, node_id: int) -> ThreadNode | None:
        return self.nodes().get(node_id)

    def children(self, node_id: int) -> list[ThreadNode]:
        """Direct children in creation order."""
        nodes = self.nodes()
        index = self._child_index(nodes.values())
        return [nodes[c] for c in index.get(node_id, [])]

    def ancestors(self, node_id: int) -> list[ThreadNode]:
        """Parent chain of a node, nearest first, excluding ROOT and the node."""
        nodes = self.nodes()
        chain: list[ThreadNode] = []
        seen = {node_id}
        node = nodes.get(node_id)
        while node is not None and node.parent_id is not None:
            parent = nodes.get(node.parent_id)
            if parent is None or parent.is_root or parent.id in seen:
                break
            chain.append(parent)
            seen.add(parent.id)
            node = parent
        return chain

    def is_ancestor(self, candidate: int, of: int) -> bool:
        """True when candidate is on of's parent chain (ROOT and of excluded)."""
        return any(n.id == candidate for n in self.ancestors(of))

    def path_label(self, node_id: int) -> str:
        chain = [n.name for n in reversed(self.ancestors(node_id))]
        node = self.get(node_id)
        if node is not None:
            chain.append(node.name)
        return " > ".join(chain)

    # ------------------------------------------------------------------
    # Write
    # ------------------------------------------------------------------

    @requires_db()
    def create_node(
        self,
        ctx: SessionContext,
        name: str,
        *,
        file: PathRef | str | None = None,
        line: int = 0,
        tag: str | None = None,
        desc: str = "",
        parent: int | None = None,
    ) -> ThreadNode:
        """Create a thread and make it current.

        The parent defaults to the current thread, then ROOT. Raises
        NotReviewable when anchored to a file that may not be tracked.
        """
        name = name.strip()
        if not name:
            msg = "thread name must not be empty"
            raise ValueError(msg)

        nodes = self.nodes()
        if parent is None:
            parent = self._active_id(ctx, nodes)
        elif parent not in nodes:
            msg = f"no thread #{parent}"
            raise ValueError(msg)

        file_id = self.store.resolve(file).id if file is not None else None
        tag_id = self.store.get_or_create_tag(tag).id if tag else None

        cur = self.conn.execute(
            """INSERT INTO thread_node(file, line, tag, name, "desc", parent) VALUES (?, ?, ?, ?, ?, ?)""",
            (file_id, line, tag_id, name, desc, parent),
        )
        self.conn.commit()
        node = ThreadNode(
            id=cur.lastrowid, name=name, desc=desc, file_id=file_id,
            line=line, tag_id=tag_id, parent_id=parent,
        )
        logger.debug("thread #%d %r created under #%d", node.id, name, parent)
        ctx.switch(node.id)
        return node

    @requires_db()
    def switch_current(self, ctx: SessionContext, node_id: int) -> ThreadNode:
        node = self.get(node_id)
        if node is None:
            msg = f"no thread #{node_id}"
            raise ValueError(msg)
        ctx.switch(node.id)
        return node

    def switch_last(self, ctx: SessionContext) -> ThreadNode | None:
        """Jump back to the previously active thread (swaps current and last)."""
        if ctx.last is None or self.get(ctx.last) is None:
            return None
        return self.switch_current(ctx, ctx.last)

    def active(self, ctx: SessionContext) -> ThreadNode | None:
        nodes = self.nodes()
        node_id = self._active_id(ctx, nodes)
        return nodes.get(node_id) if node_id is not None else None

    # ------------------------------------------------------------------
    # Presentation
    # ------------------------------------------------------------------

    def render(self, ctx: SessionContext, collapsed: Iterable[int] = ()) -> str:
        """Indented tree text. Nodes on the way to the current thread are
        expanded even when collapsed; the current thread is marked with '*'."""
        nodes = self.nodes()
        if not nodes:
            return ""
        folded = set(collapsed)
        index = self._child_index(nodes.values())
        current = ctx.current if ctx.current in nodes else None
        on_path = {n.id for n in self.ancestors(current)} if current is not None else set()
        paths = {f.id: f.path for f in self.store.list_files()}

        lines: list[str] = []
        # explicit stack: default creation nests each thread one level deeper
        stack = [(self.root().id, 0)]
        while stack:
            node_id, depth = stack.pop()
            node = nodes[node_id]
            kids = index.get(node_id, [])
            expanded = node.is_root or node_id in on_path or node_id not in folded
            fold = "  " if not kids else ("- " if expanded else "+ ")
            mark = "*" if node_id == current else " "
            anchor = ""
            if node.file_id is not None:
                anchor = f"  ({paths.get(node.file_id, '?')}:{node.line})"
            lines.append(f"{mark} {'  ' * depth}{fold}{node.name}{anchor}  #{node_id}")
            if expanded:
                stack.extend((child, depth + 1) for child in reversed(kids))
        return "\n".join(lines)

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _active_id(self, ctx: SessionContext, nodes: dict[int, ThreadNode]) -> int | None:
        if ctx.current is not None:
            if ctx.current in nodes:
                return ctx.current
            logger.warning("current thread #%d no longer exists, falling back to ROOT", ctx.current)
            ctx.forget(ctx.current)
        root = self.root()
        return root.id if root is not None else None

    @staticmethod
    def _child_index(nodes: Iterable[ThreadNode]) -> dict[int, list[int]]:
        index: dict[int, list[int]] = {}
        for node in sorted(nodes, key=lambda n: n.id):
            if node.parent_id is not None:
                index.setdefault(node.parent_id, []).append(node.id)
        return index

    @staticmethod
    def _find_orphans(by_id: dict[int, ThreadNode]) -> list[int]:
        """Nodes whose parent chain does not reach ROOT."""
        index = ThreadTree._child_index(by_id.values())
        reachable: set[int] = set()
        stack = [n.id for n in by_id.values() if n.parent_id is None][:1]
        while stack:
            node_id = stack.pop()
            if node_id in reachable:
                continue
            reachable.add(node_id)
            stack.extend(index.get(node_id, []))
        return [node_id for node_id in by_id if node_id not in reachable]

    def _delete_orphans(self, orphans: list[int]) -> None:
        for node_id in orphans:
            logger.warning("discarding %s", OrphanedRecord("thread_node", node_id, "parent thread"))
        marks = ",".join("?" * len(orphans))
        dropped = self.conn.execute(f"DELETE FROM note WHERE thread_node IN ({marks})", orphans).rowcount
        if dropped:
            logger.warning("discarded %d note(s) attached to orphaned threads", dropped)
        self.conn.execute(f"DELETE FROM thread_node WHERE id IN ({marks})", orphans)
        self.conn.commit()

    def _drop_anchors(self, node_ids: list[int]) -> None:
        for node_id in node_ids:
            logger.warning("unanchoring %s", OrphanedRecord("thread_node", node_id, "file"))
        marks = ",".join("?" * len(node_ids))
        self.conn.execute(f"UPDATE thread_node SET file = NULL WHERE id IN ({marks})", node_ids)
        self.conn.commit()
