"""AuditConfig: project-local config for the audit tracker.

Default layout (all relative to the project root):

    auditmark.toml        # project config
    .audit/
        audit.db          # SQLite store (reviews, notes, threads)
        .gitignore        # auto-written: ignores audit.db

auditmark.toml example:

    [audit]
    name = "my-project"
    # data_dir = ".audit"          # default
    default_scope = "blacklist"     # or "whitelist"

    [[sources]]
    path = "."
    include = ["**/*"]
    exclude = [".audit/**", "**/.git/**"]
    use_git = true          # use git ls-files (respects .gitignore)

    [report]
    high_threshold = 0.9
    medium_threshold = 0.4

    [log]
    level = "WARNING"
"""

from __future__ import annotations

import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

_CONFIG_FILENAME = "auditmark.toml"
_DEFAULT_DATA_DIR = ".audit"
_DB_FILENAME = "audit.db"
_GITIGNORE_CONTENT = "audit.db*\n"

DEFAULT_SCOPES = ("blacklist", "whitelist")

_DEFAULT_INCLUDE = ["**/*"]
_DEFAULT_EXCLUDE = [
    ".audit/**", "**/.git/**", "**/__pycache__/**",
    "**/node_modules/**", "**/*.pyc", "auditmark.toml",
]


@dataclass
class SourceConfig:
    """A [[sources]] entry in auditmark.toml."""
    path: str                               # relative to project root
    include: list[str] = field(default_factory=lambda: list(_DEFAULT_INCLUDE))
    exclude: list[str] = field(default_factory=lambda: list(_DEFAULT_EXCLUDE))
    use_git: bool = True


@dataclass
class ReportConfig:
    high_threshold: float = 0.9     # coverage at or above is "high"
    medium_threshold: float = 0.4   # coverage strictly above is "medium"


@dataclass
class LogConfig:
    level: str = "WARNING"


@dataclass
class AuditConfig:
    """Resolved configuration for an audited project."""

    root: Path                      # directory that contains auditmark.toml
    name: str = ""
    data_dir: Path = field(default_factory=Path)
    default_scope: str = "blacklist"
    sources: list[SourceConfig] = field(default_factory=list)
    report: ReportConfig = field(default_factory=ReportConfig)
    log: LogConfig = field(default_factory=LogConfig)

    @property
    def db_path(self) -> Path:
        return self.data_dir / _DB_FILENAME

    @property
    def has_db(self) -> bool:
        return self.db_path.exists()

    def source_list(self) -> list[SourceConfig]:
        """Configured sources, or the whole project root when none are set."""
        return self.sources or [SourceConfig(path=".")]

    def ensure_dirs(self) -> None:
        """Create data_dir if it doesn't exist."""
        self.data_dir.mkdir(parents=True, exist_ok=True)
        gitignore = self.data_dir / ".gitignore"
        if not gitignore.exists():
            gitignore.write_text(_GITIGNORE_CONTENT)


def load_config(root: Path | str | None = None) -> AuditConfig:
    """Load auditmark.toml from root (or search upward from cwd if root is None)."""
    root_path = _find_root(Path(root).resolve() if root else Path.cwd())
    config_path = root_path / _CONFIG_FILENAME

    raw: dict[str, Any] = {}
    if config_path.exists():
        with config_path.open("rb") as f:
            raw = tomllib.load(f)

    audit_section = raw.get("audit", {})
    report_section = raw.get("report", {})
    log_section = raw.get("log", {})

    default_scope = str(audit_section.get("default_scope", "blacklist"))
    if default_scope not in DEFAULT_SCOPES:
        msg = f"default_scope must be one of {', '.join(DEFAULT_SCOPES)}, got {default_scope!r}"
        raise ValueError(msg)

    sources = [
        SourceConfig(
            path=s.get("path", "."),
            include=list(s.get("include", _DEFAULT_INCLUDE)),
            exclude=list(s.get("exclude", _DEFAULT_EXCLUDE)),
            use_git=bool(s.get("use_git", True)),
        )
        for s in raw.get("sources", [])
    ]

    return AuditConfig(
        root=root_path,
        name=audit_section.get("name", root_path.name),
        data_dir=root_path / audit_section.get("data_dir", _DEFAULT_DATA_DIR),
        default_scope=default_scope,
        sources=sources,
        report=ReportConfig(
            high_threshold=float(report_section.get("high_threshold", 0.9)),
            medium_threshold=float(report_section.get("medium_threshold", 0.4)),
        ),
        log=LogConfig(level=str(log_section.get("level", "WARNING")).upper()),
    )


def _find_root(start: Path) -> Path:
    """Walk upward from start looking for auditmark.toml."""
    for directory in (start, *start.parents):
        if (directory / _CONFIG_FILENAME).exists():
            return directory
    return start


def init_config(root: Path, name: str | None = None, default_scope: str = "blacklist") -> Path:
    """Write a default auditmark.toml at root. Raises if already exists."""
    config_path = root / _CONFIG_FILENAME
    if config_path.exists():
        msg = f"auditmark.toml already exists at {config_path}"
        raise FileExistsError(msg)

    project_name = name or root.name
    content = f"""\
[audit]
name = "{project_name}"
# data_dir = ".audit"   # default
default_scope = "{default_scope}"   # blacklist: everything in scope; whitelist: nothing

# Files listed by `auditmark status` as not yet opened
# [[sources]]
# path = "."
# include = ["**/*"]
# exclude = [".audit/**", "**/.git/**", "auditmark.toml"]
# use_git = true      # use git ls-files to respect .gitignore

# [report]
# high_threshold = 0.9
# medium_threshold = 0.4

# [log]
# level = "WARNING"
"""
    config_path.write_text(content)
    return config_path
