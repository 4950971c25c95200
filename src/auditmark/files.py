"""File content access and project enumeration.

Line counts are captured once, when a file is first tracked. Enumeration feeds
the "unopened files" part of the project report: git ls-files when the source
is a git checkout, glob patterns otherwise.
"""

from __future__ import annotations

import subprocess
from fnmatch import fnmatch
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from auditmark.config import AuditConfig, SourceConfig


# ---------------------------------------------------------------------------
# Content
# ---------------------------------------------------------------------------

def count_lines(text: str) -> int:
    """Number of lines, not counting the empty line after a trailing newline."""
    if not text:
        return 0
    n = text.count("\n") + 1
    if text.endswith("\n"):
        n -= 1
    return n


def read_line_count(path: Path) -> int:
    text = path.read_text(encoding="utf-8", errors="replace")
    return count_lines(text)


# ---------------------------------------------------------------------------
# File discovery
# ---------------------------------------------------------------------------

def _git_files(source_path: Path) -> list[Path] | None:
    """Return git-tracked files in source_path. Returns None if not a git repo."""
    try:
        result = subprocess.run(
            ["git", "ls-files", "--cached", "--others", "--exclude-standard"],
            cwd=source_path,
            capture_output=True,
            text=True,
            check=True,
            timeout=10,
        )
        return [source_path / p for p in result.stdout.splitlines() if p]
    except (subprocess.CalledProcessError, subprocess.TimeoutExpired, FileNotFoundError):
        return None


def _matches(rel: str, patterns: list[str]) -> bool:
    for pat in patterns:
        pat = pat.lstrip("/")
        if fnmatch(rel, pat):
            return True
        # "**/x" should also match "x" at the top level
        if pat.startswith("**/") and fnmatch(rel, pat[3:]):
            return True
    return False


def _glob_files(source_path: Path) -> list[Path]:
    return [p for p in source_path.rglob("*") if p.is_file()]


def collect_files(source: SourceConfig, root: Path) -> list[Path]:
    """Return all files of a source that pass its include/exclude patterns."""
    source_path = (root / source.path).resolve()
    if not source_path.exists():
        return []

    candidates: list[Path] | None = None
    if source.use_git:
        candidates = _git_files(source_path)
    if candidates is None:
        candidates = _glob_files(source_path)

    result: list[Path] = []
    for p in candidates:
        if not p.is_file():
            continue
        rel = p.relative_to(source_path).as_posix()
        if _matches(rel, source.include) and not _matches(rel, source.exclude):
            result.append(p)
    return result


def list_project_files(cfg: AuditConfig) -> list[str]:
    """All enumerated files as sorted POSIX paths relative to the project root."""
    root = cfg.root.resolve()
    seen: dict[str, None] = {}
    for source in cfg.source_list():
        for p in collect_files(source, root):
            try:
                rel = p.resolve().relative_to(root).as_posix()
            except ValueError:
                continue
            seen.setdefault(rel, None)
    return sorted(seen)
