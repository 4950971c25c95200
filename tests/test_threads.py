"""ThreadTree: hierarchy, cursor, ancestry, rendering, repair."""

from __future__ import annotations

import pytest

from auditmark.context import SessionContext
from auditmark.errors import NotReviewable


@pytest.fixture
def chain(tree, ctx):
    """ROOT > A > B > C, with C current."""
    a = tree.create_node(ctx, "A")
    b = tree.create_node(ctx, "B")
    c = tree.create_node(ctx, "C")
    tree.switch_current(ctx, c.id)
    return a, b, c


class TestHierarchy:
    def test_root_is_created_once(self, tree):
        assert tree.root().id == tree.root().id
        assert tree.root().is_root

    def test_new_node_parent_defaults_to_current(self, tree, chain):
        a, b, c = chain
        assert a.parent_id == tree.root().id
        assert b.parent_id == a.id
        assert c.parent_id == b.id

    def test_explicit_parent(self, tree, ctx, chain):
        a, _, _ = chain
        d = tree.create_node(ctx, "D", parent=a.id)
        assert [n.name for n in tree.children(a.id)] == ["B", "D"]
        assert d.parent_id == a.id

    def test_unknown_parent(self, tree, ctx):
        with pytest.raises(ValueError):
            tree.create_node(ctx, "x", parent=404)

    def test_empty_name(self, tree, ctx):
        with pytest.raises(ValueError):
            tree.create_node(ctx, "  ")

    def test_is_ancestor(self, tree, chain):
        a, b, c = chain
        assert tree.is_ancestor(a.id, c.id)
        assert tree.is_ancestor(b.id, c.id)
        assert not tree.is_ancestor(c.id, c.id)
        assert not tree.is_ancestor(c.id, a.id)
        assert not tree.is_ancestor(tree.root().id, c.id)

    def test_ancestors_nearest_first(self, tree, chain):
        a, b, c = chain
        assert [n.id for n in tree.ancestors(c.id)] == [b.id, a.id]
        assert tree.path_label(c.id) == "A > B > C"

    def test_anchored_thread(self, tree, ctx, store):
        node = tree.create_node(ctx, "entry", file="src/app.py", line=4, tag="main", desc="start here")
        assert node.file_id == store.get_file("src/app.py").id
        assert node.line == 4
        assert tree.get(node.id).desc == "start here"

    def test_anchor_must_be_reviewable(self, tree, ctx, session):
        with pytest.raises(NotReviewable):
            tree.create_node(ctx, "bad", file="src/missing.py")
        assert ctx.current is None
        assert len(tree.nodes()) == 1


class TestCursor:
    def test_create_sets_current_and_last(self, tree, ctx):
        a = tree.create_node(ctx, "A")
        b = tree.create_node(ctx, "B")
        assert (ctx.current, ctx.last) == (b.id, a.id)

    def test_switch_does_not_change_shape(self, tree, ctx, chain):
        a, b, c = chain
        before = {n.id: n.parent_id for n in tree.nodes().values()}
        tree.switch_current(ctx, a.id)
        assert ctx.current == a.id
        assert ctx.last == c.id
        assert {n.id: n.parent_id for n in tree.nodes().values()} == before

    def test_switch_last_toggles(self, tree, ctx, chain):
        a, _, c = chain
        tree.switch_current(ctx, a.id)
        assert tree.switch_last(ctx).id == c.id
        assert tree.switch_last(ctx).id == a.id

    def test_switch_unknown(self, tree, ctx):
        with pytest.raises(ValueError):
            tree.switch_current(ctx, 12345)

    def test_cursor_persists_through_settings(self, session, tree, chain):
        ctx = SessionContext()
        tree.switch_current(ctx, chain[0].id)
        ctx.save(session.settings)
        loaded = SessionContext.load(session.settings)
        assert loaded == ctx

    def test_switch_to_current_makes_it_last(self, tree, ctx):
        tree.create_node(ctx, "A")
        b = tree.create_node(ctx, "B")
        tree.switch_current(ctx, b.id)
        assert (ctx.current, ctx.last) == (b.id, b.id)

    def test_stale_current_falls_back_to_root(self, tree):
        ctx = SessionContext(current=999)
        node = tree.create_node(ctx, "fresh")
        assert node.parent_id == tree.root().id


class TestRender:
    def test_collapsed_nodes_hide_children(self, tree, ctx, chain):
        a, b, c = chain
        other = tree.create_node(ctx, "other", parent=tree.root().id)
        tree.create_node(ctx, "hidden", parent=other.id)
        tree.switch_current(ctx, c.id)

        text = tree.render(ctx, collapsed={other.id})
        assert "other" in text
        assert "hidden" not in text

    def test_path_to_current_is_forced_open(self, tree, ctx, chain):
        a, b, c = chain
        text = tree.render(ctx, collapsed={a.id, b.id})
        lines = text.splitlines()
        assert any(line.startswith("*") and "C" in line for line in lines)
        assert any("B" in line for line in lines)

    def test_deep_chain(self, tree, ctx, session):
        conn = session.conn
        parent = tree.root().id
        for i in range(1200):
            parent = conn.execute(
                "INSERT INTO thread_node(name, parent) VALUES (?, ?)", (f"t{i}", parent),
            ).lastrowid
        conn.commit()
        ctx.switch(parent)

        lines = tree.render(ctx).splitlines()
        assert len(lines) == 1201
        assert lines[1].strip().startswith("- t0")
        assert lines[-1].startswith("*")
        assert lines[-1].split()[1] == "t1199"


class TestRepair:
    def test_orphaned_subtree_is_discarded(self, tree, ctx, session, store):
        a = tree.create_node(ctx, "A")
        conn = session.conn
        conn.execute("PRAGMA foreign_keys=OFF")
        cur = conn.execute("INSERT INTO thread_node(name, parent) VALUES ('lost', 9999)")
        lost = cur.lastrowid
        conn.execute("INSERT INTO thread_node(name, parent) VALUES ('lost-child', ?)", (lost,))
        conn.commit()
        conn.execute("PRAGMA foreign_keys=ON")
        store.add_note("src/app.py", 1, 1, "under lost", ctx, thread_id=lost)

        names = {n.name for n in tree.nodes().values()}
        assert names == {"ROOT", "A"}
        assert a.id in tree.nodes()
        assert store.notes_for_file("src/app.py") == []

    def test_anchor_to_vanished_file_is_dropped(self, tree, ctx, session, store):
        node = tree.create_node(ctx, "entry", file="src/util.py", line=2)
        conn = session.conn
        conn.execute("PRAGMA foreign_keys=OFF")
        conn.execute("DELETE FROM file WHERE id = ?", (node.file_id,))
        conn.commit()
        conn.execute("PRAGMA foreign_keys=ON")

        assert tree.get(node.id).file_id is None
        row = conn.execute("SELECT file FROM thread_node WHERE id = ?", (node.id,)).fetchone()
        assert row["file"] is None
        assert "entry" in tree.render(ctx)
