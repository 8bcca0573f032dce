"""Tests for the cron-style field matcher and schedule evaluator."""

import datetime
import logging

import pytest

from fork_syncer.schedule import (
    Literal,
    Range,
    ScheduleError,
    ScheduleSpec,
    Step,
    ValueList,
    Wildcard,
    is_due,
    matches,
    next_fire_times,
    parse_field,
)

# 2024-01-01 is a Monday, 2024-01-07 a Sunday.
MONDAY = datetime.datetime(2024, 1, 1, 0, 0)
SUNDAY = datetime.datetime(2024, 1, 7, 0, 0)


@pytest.mark.parametrize(
    ("text", "expected"),
    [
        ("*", Wildcard()),
        ("*/15", Step(15)),
        ("1-5", Range(1, 5)),
        ("0,15,30", ValueList((0, 15, 30))),
        ("7", Literal(7)),
        ("07", Literal(7)),
        ("00,05", ValueList((0, 5))),
    ],
)
def test_parse_field_variants(text: str, expected: object) -> None:
    """Verifies that each supported form parses to its expression variant."""
    assert parse_field(text, 0, 59) == expected


@pytest.mark.parametrize("text", ["", "abc", "*/0", "*/x", "60", "5-2", "1-3,5", "-1", "1/2"])
def test_parse_field_rejects_malformed_text(text: str) -> None:
    """Verifies that invalid field text is an error rather than a wildcard."""
    with pytest.raises(ScheduleError):
        parse_field(text, 0, 59, "minute")


def test_parse_field_checks_bounds() -> None:
    """Verifies per-field bounds (day-of-month starts at 1, weekday allows 7)."""
    with pytest.raises(ScheduleError, match="outside 1-31"):
        parse_field("0", 1, 31, "day-of-month")
    assert parse_field("7", 0, 7, "day-of-week") == Literal(7)


def test_matches_each_variant() -> None:
    """Verifies the evaluation rule of every expression variant."""
    assert matches(Wildcard(), 42, 0, 59)
    assert matches(Step(15), 30, 0, 59)
    assert not matches(Step(15), 31, 0, 59)
    assert matches(Range(1, 5), 1, 0, 6)
    assert matches(Range(1, 5), 5, 0, 6)
    assert not matches(Range(1, 5), 6, 0, 6)
    assert matches(ValueList((1, 3)), 3, 0, 59)
    assert not matches(ValueList((1, 3)), 2, 0, 59)
    assert matches(Literal(9), 9, 0, 59)
    assert not matches(Literal(9), 10, 0, 59)


def test_matches_normalizes_leading_zeros() -> None:
    """Verifies that '05' and 5 are interchangeable on both sides."""
    assert matches("05", 5, 0, 59)
    assert matches("5", "05", 0, 59)
    assert matches("00", "0", 0, 59)
    assert matches("1,05", "05", 0, 59)
    assert matches("0", "00", 0, 59)


def test_matches_fails_closed_on_malformed_text(
    caplog: pytest.LogCaptureFixture,
) -> None:
    """Verifies that a bad raw field never matches and is logged, without raising."""
    caplog.set_level(logging.WARNING)

    assert matches("every-five", 5, 0, 59) is False
    assert "Schedule field never matches" in caplog.text


def test_schedule_parse_requires_five_fields() -> None:
    """Verifies that the field count is validated."""
    with pytest.raises(ScheduleError, match="Expected 5 fields"):
        ScheduleSpec.parse("0 0 * *")
    with pytest.raises(ScheduleError):
        ScheduleSpec.parse("0 0 * * * *")


def test_schedule_text_is_normalized() -> None:
    """Verifies that extra whitespace is collapsed in the stored text."""
    spec = ScheduleSpec.parse("  0   0 * *  * ")
    assert str(spec) == "0 0 * * *"


def test_midnight_schedule_only_due_at_midnight() -> None:
    """Verifies that '0 0 * * *' fires at 00:00 and at no other minute of a day."""
    spec = ScheduleSpec.parse("0 0 * * *")
    due = [
        (h, m)
        for h in range(24)
        for m in range(60)
        if spec.is_due(MONDAY.replace(hour=h, minute=m))
    ]
    assert due == [(0, 0)]

    # Day, month and weekday do not matter.
    assert spec.is_due(datetime.datetime(2025, 7, 19, 0, 0))


def test_every_fifteen_minutes() -> None:
    """Verifies that '*/15 * * * *' fires exactly at minutes 0, 15, 30, 45."""
    spec = ScheduleSpec.parse("*/15 * * * *")
    due = [m for m in range(60) if is_due(spec, MONDAY.replace(hour=13, minute=m))]
    assert due == [0, 15, 30, 45]


@pytest.mark.parametrize("weekday", ["0", "7", "5-7", "0,3", "6,7"])
def test_sunday_is_both_zero_and_seven(weekday: str) -> None:
    """Verifies that weekday 7 and 0 both select Sunday."""
    spec = ScheduleSpec.parse(f"0 0 * * {weekday}")
    assert spec.is_due(SUNDAY)


def test_weekday_range_excludes_other_days() -> None:
    """Verifies that a Friday-to-Sunday range does not select Monday."""
    spec = ScheduleSpec.parse("0 0 * * 5-7")
    assert not spec.is_due(MONDAY)


def test_day_of_month_and_weekday_must_both_match() -> None:
    """Verifies the AND rule (no cron OR special case for restricted fields)."""
    spec = ScheduleSpec.parse("0 0 1 * 1")

    assert spec.is_due(MONDAY)  # the 1st and a Monday
    assert not spec.is_due(datetime.datetime(2024, 2, 1, 0, 0))  # 1st, Thursday
    assert not spec.is_due(datetime.datetime(2024, 1, 8, 0, 0))  # Monday, 8th


def test_step_counts_from_zero() -> None:
    """Verifies that steps use 'value % n == 0' even when the field starts at 1."""
    spec = ScheduleSpec.parse("0 0 */2 * *")
    assert spec.is_due(datetime.datetime(2024, 1, 2, 0, 0))
    assert not spec.is_due(datetime.datetime(2024, 1, 1, 0, 0))


def test_next_fire_times_lists_upcoming_minutes() -> None:
    """Verifies the preview of upcoming fire times."""
    spec = ScheduleSpec.parse("*/15 * * * *")
    start = datetime.datetime(2024, 1, 1, 10, 7, 42)

    assert next_fire_times(spec, start, count=4) == [
        datetime.datetime(2024, 1, 1, 10, 15),
        datetime.datetime(2024, 1, 1, 10, 30),
        datetime.datetime(2024, 1, 1, 10, 45),
        datetime.datetime(2024, 1, 1, 11, 0),
    ]


def test_next_fire_times_includes_current_minute() -> None:
    """Verifies that a due start minute is part of the preview."""
    spec = ScheduleSpec.parse("0 0 * * *")
    assert next_fire_times(spec, MONDAY.replace(second=30), count=1) == [MONDAY]


def test_next_fire_times_crosses_days() -> None:
    """Verifies that the preview moves on to later days."""
    spec = ScheduleSpec.parse("30 2 * * 0")
    assert next_fire_times(spec, MONDAY, count=1) == [
        datetime.datetime(2024, 1, 7, 2, 30)
    ]


def test_next_fire_times_empty_when_never_due() -> None:
    """Verifies that an impossible date yields no fire times."""
    spec = ScheduleSpec.parse("0 0 31 2 *")
    assert next_fire_times(spec, MONDAY, count=3) == []
