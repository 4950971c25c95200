"""Pytest configuration and fixtures."""

from __future__ import annotations

from pathlib import Path

import pytest

from auditmark.config import init_config, load_config
from auditmark.context import SessionContext
from auditmark.session import open_session


def _write(root: Path, rel: str, text: str) -> Path:
    path = root / rel
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text)
    return path


@pytest.fixture
def project(tmp_path: Path) -> Path:
    """A small project tree with an auditmark.toml (no database yet)."""
    _write(tmp_path, "src/app.py", "".join(f"line {i}\n" for i in range(1, 11)))
    _write(tmp_path, "src/util.py", "a = 1\nb = 2\nc = 3\nd = 4\n")
    _write(tmp_path, "src/vendor/x.go", "package x\n")
    _write(tmp_path, "docs/empty.txt", "")
    init_config(tmp_path, name="demo")
    return tmp_path


@pytest.fixture
def session(project: Path):
    """Open session with a fresh database."""
    s = open_session(load_config(project), create=True)
    yield s
    s.conn.close()


@pytest.fixture
def store(session):
    return session.store


@pytest.fixture
def tree(session):
    return session.tree


@pytest.fixture
def ctx() -> SessionContext:
    return SessionContext()
