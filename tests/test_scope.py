"""ScopeResolver: rule precedence, default scope, reviewability."""

from __future__ import annotations

import pytest

from auditmark.errors import NotReviewable


class TestRules:
    def test_first_matching_rule_wins(self, session):
        scope = session.scope
        scope.add_scope("src", include=False)
        scope.add_scope("src/vendor", include=True)

        assert scope.is_in_scope("src/vendor/x.go") is False

    def test_reverse_order_lets_specific_rule_win(self, session):
        scope = session.scope
        scope.add_scope("src/vendor", include=True)
        scope.add_scope("src", include=False)

        assert scope.is_in_scope("src/vendor/x.go") is True
        assert scope.is_in_scope("src/app.py") is False

    def test_rule_matches_exact_path_and_directory_only(self, session):
        scope = session.scope
        scope.set_default_scope("whitelist")
        scope.add_scope("src/app.py", include=True)
        scope.add_scope("docs", include=True)

        assert scope.is_in_scope("src/app.py")
        assert scope.is_in_scope("docs/empty.txt")
        assert not scope.is_in_scope("src/app.pyc")
        assert not scope.is_in_scope("docsite/index.md")

    def test_trailing_slash_is_normalised(self, session):
        rule = session.scope.add_scope("src/", include=False)

        assert rule.path == "src"
        assert session.scope.is_in_scope("src/app.py") is False

    def test_dot_segments_are_collapsed(self, session):
        rule = session.scope.add_scope("src/../src/./vendor", include=False)

        assert rule.path == "src/vendor"
        assert session.scope.is_in_scope("src/vendor/x.go") is False
        assert session.scope.remove_scope("src/vendor/") == 1

    def test_rules_keep_insertion_order(self, session):
        session.scope.add_scope("b", include=True)
        session.scope.add_scope("a", include=False)

        assert [r.path for r in session.scope.list_scopes()] == ["b", "a"]

    def test_remove_scope(self, session):
        session.scope.add_scope("src", include=False)
        assert session.scope.remove_scope("src") == 1
        assert session.scope.is_in_scope("src/app.py")


class TestDefaultScope:
    def test_blacklist_admits_unmatched(self, session):
        assert session.scope.default_scope == "blacklist"
        assert session.scope.is_in_scope("anything/at/all.c")

    def test_whitelist_rejects_unmatched(self, session):
        session.scope.set_default_scope("whitelist")
        assert not session.scope.is_in_scope("src/app.py")

    def test_invalid_default_scope_rejected(self, session):
        with pytest.raises(ValueError):
            session.scope.set_default_scope("greylist")
        assert session.scope.default_scope == "blacklist"


class TestReviewable:
    def test_normalises_absolute_path(self, session, project):
        assert session.scope.check_reviewable(str(project / "src" / "app.py")) == "src/app.py"

    def test_relative_path_is_root_relative(self, session):
        assert session.scope.check_reviewable("src/../src/util.py") == "src/util.py"

    def test_missing_file(self, session):
        with pytest.raises(NotReviewable, match="no such file"):
            session.scope.check_reviewable("src/nope.py")

    def test_directory(self, session):
        with pytest.raises(NotReviewable, match="directory"):
            session.scope.check_reviewable("src")

    def test_outside_root(self, session, tmp_path_factory):
        outside = tmp_path_factory.mktemp("elsewhere") / "x.py"
        outside.write_text("x\n")
        with pytest.raises(NotReviewable, match="outside"):
            session.scope.check_reviewable(str(outside))

    def test_excluded_by_scope(self, session):
        session.scope.add_scope("src/vendor", include=False)
        with pytest.raises(NotReviewable, match="scope"):
            session.scope.check_reviewable("src/vendor/x.go")


class TestSettings:
    def test_get_or_set(self, session):
        assert session.settings.get("theme") is None
        assert session.settings.get("theme", "dark") == "dark"
        session.settings.set("theme", "light")
        session.settings.set("theme", "solarized")
        assert session.settings.get("theme") == "solarized"
        assert session.settings.all()["theme"] == "solarized"

    def test_default_scope_through_set_setting(self, session):
        with pytest.raises(ValueError):
            session.scope.set_setting("default_scope", "greylist")
        session.scope.set_setting("default_scope", "whitelist")
        assert session.scope.get_setting("default_scope") == "whitelist"
        assert not session.scope.is_in_scope("src/app.py")
