"""Config loading, line counting, project enumeration, degraded mode."""

from __future__ import annotations

from pathlib import Path

import pytest

from auditmark.config import SourceConfig, init_config, load_config
from auditmark.errors import DatabaseUnavailable
from auditmark.files import collect_files, count_lines, list_project_files
from auditmark.session import open_session


class TestConfig:
    def test_defaults(self, project):
        cfg = load_config(project)
        assert cfg.name == "demo"
        assert cfg.db_path == project.resolve() / ".audit" / "audit.db"
        assert cfg.default_scope == "blacklist"
        assert cfg.report.high_threshold == 0.9
        assert cfg.log.level == "WARNING"

    def test_found_from_subdirectory(self, project, monkeypatch):
        monkeypatch.chdir(project / "src" / "vendor")
        assert load_config().root == project.resolve()

    def test_init_refuses_overwrite(self, project):
        with pytest.raises(FileExistsError):
            init_config(project)

    def test_custom_values(self, tmp_path):
        (tmp_path / "auditmark.toml").write_text(
            '[audit]\nname = "x"\ndata_dir = "state"\ndefault_scope = "whitelist"\n'
            '[[sources]]\npath = "lib"\ninclude = ["**/*.c"]\nuse_git = false\n'
            '[report]\nhigh_threshold = 0.75\n'
            '[log]\nlevel = "debug"\n'
        )
        cfg = load_config(tmp_path)
        assert cfg.db_path == tmp_path.resolve() / "state" / "audit.db"
        assert cfg.default_scope == "whitelist"
        assert cfg.sources[0].include == ["**/*.c"]
        assert cfg.sources[0].use_git is False
        assert cfg.report.high_threshold == 0.75
        assert cfg.log.level == "DEBUG"

    def test_bad_default_scope(self, tmp_path):
        (tmp_path / "auditmark.toml").write_text('[audit]\ndefault_scope = "maybe"\n')
        with pytest.raises(ValueError):
            load_config(tmp_path)

    def test_whitelist_seeded_into_settings(self, tmp_path):
        (tmp_path / "a.py").write_text("x\n")
        init_config(tmp_path, default_scope="whitelist")
        session = open_session(load_config(tmp_path), create=True)
        assert session.scope.default_scope == "whitelist"
        assert not session.scope.is_in_scope("a.py")


@pytest.mark.parametrize(
    ("text", "expected"),
    [("", 0), ("a", 1), ("a\n", 1), ("a\nb\n", 2), ("a\nb", 2), ("\n", 1), ("a\n\n", 2)],
)
def test_count_lines(text, expected):
    assert count_lines(text) == expected


class TestEnumeration:
    def test_glob_with_patterns(self, project):
        src = SourceConfig(path="src", include=["**/*.py"], exclude=["vendor/**"], use_git=False)
        found = sorted(p.name for p in collect_files(src, project))
        assert found == ["app.py", "util.py"]

    def test_project_listing_excludes_data_dir(self, project):
        cfg = load_config(project)
        cfg.ensure_dirs()
        (cfg.db_path).write_text("")
        files = list_project_files(cfg)
        assert "src/app.py" in files
        assert "src/vendor/x.go" in files
        assert not any(f.startswith(".audit/") for f in files)
        assert "auditmark.toml" not in files

    def test_missing_source(self, project):
        assert collect_files(SourceConfig(path="nope", use_git=False), project) == []


class TestDegraded:
    def test_no_database_means_no_writes_and_empty_reads(self, project):
        session = open_session(load_config(project))
        assert not session.available
        assert session.store.add_review("src/app.py", 1, 2) is None
        assert session.store.add_note("src/app.py", 1, 1, "FINDING", session.ctx) is None
        assert session.tree.create_node(session.ctx, "t") is None
        assert session.store.notes_for_file("src/app.py") == []
        assert session.store.coverage("src/app.py") == 0.0
        assert session.navigator.next("src/app.py", 1, 1) is None
        assert session.report.project_status().per_file == []
        assert session.report.unopened() == []
        assert session.tree.render(session.ctx) == ""
        assert not Path(project / ".audit" / "audit.db").exists()

    def test_require_raises(self, project):
        session = open_session(load_config(project))
        with pytest.raises(DatabaseUnavailable, match="no audit database"):
            session.require()
