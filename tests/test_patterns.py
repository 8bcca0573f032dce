"""Tests for branch pattern matching."""

import pytest

from fork_syncer.patterns import matches, split_patterns


@pytest.mark.parametrize(
    ("branch", "expected"),
    [
        ("feature/x", True),
        ("feature/", True),
        ("feature/deep/nested", True),
        ("featurex", False),
        ("my-feature/x", False),
    ],
)
def test_wildcard_suffix_is_anchored(branch: str, expected: bool) -> None:
    """Verifies that 'feature/*' is a full-string match, not a substring search."""
    assert matches(branch, "feature/*") is expected


def test_literal_pattern_requires_exact_match() -> None:
    """Verifies that patterns without '*' only match the identical name."""
    assert matches("main", "main")
    assert not matches("main2", "main")
    assert not matches("mai", "main")
    assert not matches("origin/main", "main")


def test_empty_pattern_set_matches_nothing() -> None:
    """Verifies that an empty or blank pattern set never matches."""
    assert not matches("main", "")
    assert not matches("main", None)
    assert not matches("main", " , ,")
    assert not matches("main", [])


def test_patterns_are_trimmed_and_comma_separated() -> None:
    """Verifies that surrounding whitespace in each entry is ignored."""
    patterns = " main , develop ,  release/* "
    assert matches("develop", patterns)
    assert matches("release/2.0", patterns)
    assert not matches("hotfix/1", patterns)


def test_trailing_newline_does_not_match() -> None:
    """Verifies that a wildcard pattern must cover the whole name, newline included."""
    assert not matches("feature/x\n", "feature/*")
    assert not matches("team/hotfix\n", "*hotfix")


def test_infix_and_prefix_wildcards() -> None:
    """Verifies wildcards in the middle and at the start of a pattern."""
    assert matches("release/1.0-rc", "release/*-rc")
    assert not matches("release/1.0", "release/*-rc")
    assert matches("team/hotfix", "*hotfix")


def test_regex_metacharacters_are_literal() -> None:
    """Verifies that characters like '.' and '+' are not treated as regex syntax."""
    assert matches("v1.0", "v1.0")
    assert matches("v1.x0", "v1.*0")
    assert not matches("v1x0", "v1.*0")
    assert matches("c++/x", "c++/*")


def test_split_patterns() -> None:
    """Verifies the splitting helper used by the matcher."""
    assert split_patterns("a, b ,,c") == ["a", "b", "c"]
    assert split_patterns(["a ", " "]) == ["a"]
    assert split_patterns(None) == []
