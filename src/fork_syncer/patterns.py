"""Branch-name matching against comma-separated glob-like pattern sets."""

import re


def split_patterns(patterns: str | list[str] | None) -> list[str]:
    """Splits a comma-separated pattern string into trimmed, non-empty entries."""
    if not patterns:
        return []
    if isinstance(patterns, str):
        patterns = patterns.split(",")
    return [p.strip() for p in patterns if p and p.strip()]


def _to_regex(pattern: str) -> re.Pattern[str]:
    # Every '*' becomes '.*'; everything else is matched literally.
    body = ".*".join(re.escape(part) for part in pattern.split("*"))
    return re.compile(body)


def matches(branch: str, patterns: str | list[str] | None) -> bool:
    """Checks whether a branch name satisfies any pattern in the set.

    Patterns containing `*` match any run of characters at each `*` and must
    match the whole branch name. Patterns without `*` require an exact match.

    Args:
        branch (str): The branch name to test (e.g. 'release/1.0').
        patterns (str | list[str] | None): Comma-separated patterns or a list.

    Returns:
        bool: True on the first matching pattern, False if none match
              (including an empty pattern set).
    """
    for pattern in split_patterns(patterns):
        if "*" in pattern:
            if _to_regex(pattern).fullmatch(branch):
                return True
        elif branch == pattern:
            return True
    return False
