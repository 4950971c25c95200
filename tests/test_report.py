"""CoverageReport: per-file counts, unopened files, bands."""

from __future__ import annotations

import pytest

from auditmark.config import ReportConfig
from auditmark.report import CoverageReport, coverage_band


class TestProjectStatus:
    def test_counts_are_exclusive_by_type(self, session, store, ctx):
        store.add_note("src/app.py", 1, 1, "TODO: maybe a FINDING", ctx)
        store.add_note("src/app.py", 2, 2, "FINDING: real", ctx)
        store.add_note("src/app.py", 3, 3, "TODO later", ctx)
        store.add_note("src/app.py", 4, 4, "plain", ctx)

        status = session.report.project_status()
        (fs,) = status.per_file
        assert fs.text == "src/app.py"
        assert (fs.finding_count, fs.todo_count, fs.note_count) == (2, 1, 1)
        assert fs.coverage == pytest.approx(0.4)

    def test_unopened_lists_in_scope_files_without_record(self, session, store):
        store.add_review("src/app.py", 1, 1)
        session.scope.add_scope("src/vendor", include=False)

        unopened = session.report.project_status().unopened
        assert "src/util.py" in unopened
        assert "docs/empty.txt" in unopened
        assert "src/app.py" not in unopened
        assert "src/vendor/x.go" not in unopened
        assert not any(p.startswith(".audit/") for p in unopened)

    def test_injected_file_listing(self, session, store):
        store.get_or_create_file("src/util.py")
        report = CoverageReport(store, lambda: ["src/util.py", "src/new.py"])
        assert report.unopened() == ["src/new.py"]

    def test_format_status(self, session, store, ctx):
        store.add_note("src/util.py", 1, 4, "FINDING: all of it", ctx)
        text = session.report.format_status(session.report.project_status())
        assert "src/util.py" in text
        assert "100%" in text
        assert "Not opened yet" in text


@pytest.mark.parametrize(
    ("value", "band"),
    [(1.0, "full"), (0.95, "high"), (0.9, "high"), (0.5, "medium"), (0.4, "low"), (0.0, "low")],
)
def test_coverage_band(value, band):
    assert coverage_band(value) == band


def test_coverage_band_thresholds_configurable():
    cfg = ReportConfig(high_threshold=0.8, medium_threshold=0.1)
    assert coverage_band(0.85, cfg) == "high"
    assert coverage_band(0.2, cfg) == "medium"
