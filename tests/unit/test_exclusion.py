"""
Unit tests for exclusion matching (stateguard/backup/exclusion.py).
"""

import pytest

from stateguard.backup.exclusion import ExclusionMatcher, matches_pattern


class TestMatchesPattern:
    """Test the single-pattern match rules."""

    @pytest.mark.parametrize("pattern,name,path,expected", [
        ("*.log", "agent.log", "/var/lib/node/agent.log", True),
        ("*.log", "agent.log.1", "/var/lib/node/agent.log.1", False),
        ("*.log", "catalog", "/var/lib/node/catalog", False),
        ("/var/lib/node/backups", "a.tar.gz", "/var/lib/node/backups/a.tar.gz", True),
        ("/var/lib/node/backups", "backups", "/var/lib/node/backups", True),
        ("cache", "blob", "/var/lib/node/cache/blob", True),
        ("token", "token", "/var/lib/node/credentials/token", True),
        ("token", "config.yaml", "/var/lib/node/config.yaml", False),
        ("", "anything", "/anything", False),
    ])
    def test_pattern_forms(self, pattern, name, path, expected):
        """Test substring, suffix-glob and bare-name patterns."""
        assert matches_pattern(pattern, name, path) is expected

    def test_suffix_glob_only_checks_base_name(self):
        """A suffix glob ignores matching directory names higher up the path."""
        assert matches_pattern("*.d", "file.txt", "/etc/conf.d/file.txt") is False
        assert matches_pattern("*.d", "conf.d", "/etc/conf.d") is True

    def test_no_recursive_glob_support(self):
        """'**' is not special: it only matches literally."""
        assert matches_pattern("**/cache", "cache", "/var/lib/node/cache") is False


class TestExclusionMatcher:
    """Test ExclusionMatcher evaluation over several patterns."""

    def test_any_pattern_excludes(self):
        """An entry is excluded when any pattern matches."""
        matcher = ExclusionMatcher(["*.tmp", "*.log", "/state/backups"])

        assert matcher.is_excluded("/state/agent.log")
        assert matcher.is_excluded("/state/work.tmp")
        assert matcher.is_excluded("/state/backups/x.tar.gz")
        assert not matcher.is_excluded("/state/config.yaml")

    def test_match_returns_first_matching_pattern(self):
        """match() reports the first pattern in configured order."""
        matcher = ExclusionMatcher(["/state", "*.log"])

        assert matcher.match("/state/agent.log") == "/state"

    def test_order_does_not_change_result(self):
        """Evaluation is an OR, so pattern order does not change inclusion."""
        paths = ["/state/a.log", "/state/b.txt", "/state/cache/c.bin"]
        forward = ExclusionMatcher(["*.log", "/state/cache"])
        backward = ExclusionMatcher(["/state/cache", "*.log"])

        for path in paths:
            assert forward.is_excluded(path) == backward.is_excluded(path)

    def test_name_derived_from_path(self):
        """The base name is derived when not supplied."""
        matcher = ExclusionMatcher(["*.pyc"])

        assert matcher.is_excluded("/src/module.pyc")
        assert matcher.is_excluded("/src/module.pyc", name="module.pyc")

    def test_empty_matcher_excludes_nothing(self):
        """No patterns means every entry is included."""
        matcher = ExclusionMatcher()

        assert matcher.patterns == []
        assert matcher.match("/any/path") is None

    def test_blank_patterns_are_ignored(self):
        """Empty strings would match everything as substrings and are dropped."""
        matcher = ExclusionMatcher(["", "*.log", None])

        assert matcher.patterns == ["*.log"]
        assert not matcher.is_excluded("/state/config.yaml")
