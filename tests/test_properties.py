"""Property-based tests for the field matcher and the pattern matcher."""

import datetime
import re

from hypothesis import given
from hypothesis import strategies as st

from fork_syncer.patterns import matches as pattern_matches
from fork_syncer.schedule import ScheduleSpec, matches

minutes = st.integers(min_value=0, max_value=59)
branch_names = st.text(
    alphabet=st.characters(
        categories=("Ll", "Lu", "Nd"), include_characters="/-._"
    ),
    min_size=0,
    max_size=20,
)


@given(value=minutes)
def test_wildcard_matches_every_value(value: int) -> None:
    """Property: '*' matches every value in range."""
    assert matches("*", value, 0, 59)


@given(value=minutes, step=st.integers(min_value=1, max_value=59))
def test_step_matches_iff_divisible(value: int, step: int) -> None:
    """Property: '*/n' matches exactly when value mod n == 0."""
    assert matches(f"*/{step}", value, 0, 59) == (value % step == 0)


@given(value=minutes, lo=minutes, hi=minutes)
def test_range_matches_iff_within_bounds(value: int, lo: int, hi: int) -> None:
    """Property: 'lo-hi' matches exactly the inclusive interval."""
    lo, hi = min(lo, hi), max(lo, hi)
    assert matches(f"{lo}-{hi}", value, 0, 59) == (lo <= value <= hi)


@given(value=minutes, values=st.lists(minutes, min_size=2, max_size=6))
def test_list_membership_is_exact(value: int, values: list[int]) -> None:
    """Property: 'a,b,c' matches exactly the listed values."""
    expression = ",".join(str(v) for v in values)
    assert matches(expression, value, 0, 59) == (value in values)


@given(value=minutes, literal=minutes, pad=st.integers(min_value=0, max_value=3))
def test_leading_zeros_never_change_the_result(value: int, literal: int, pad: int) -> None:
    """Property: zero-padding either side does not affect a literal comparison."""
    plain = matches(str(literal), value, 0, 59)
    padded = matches("0" * pad + str(literal), str(value).zfill(2), 0, 59)
    assert plain == padded == (literal == value)


@given(
    moment=st.datetimes(
        min_value=datetime.datetime(2000, 1, 1), max_value=datetime.datetime(2100, 1, 1)
    )
)
def test_weekday_seven_and_zero_are_interchangeable(moment: datetime.datetime) -> None:
    """Property: a schedule using 7 for Sunday agrees with one using 0."""
    with_zero = ScheduleSpec.parse("* * * * 0")
    with_seven = ScheduleSpec.parse("* * * * 7")
    assert with_zero.is_due(moment) == with_seven.is_due(moment)
    assert with_zero.is_due(moment) == (moment.isoweekday() == 7)


@given(name=branch_names)
def test_literal_pattern_only_matches_itself(name: str) -> None:
    """Property: a pattern without '*' matches a branch iff they are identical."""
    assert pattern_matches(name, "main") == (name == "main")


@given(prefix=branch_names, suffix=branch_names)
def test_prefix_pattern_matches_any_suffix(prefix: str, suffix: str) -> None:
    """Property: 'prefix*' matches every name starting with prefix, and only those."""
    if "*" in prefix or "," in prefix or prefix.strip() != prefix or not prefix:
        return
    assert pattern_matches(prefix + suffix, f"{prefix}*")
    other = "x" + prefix + suffix
    expected = bool(re.match(re.escape(prefix), other))
    assert pattern_matches(other, f"{prefix}*") == expected
