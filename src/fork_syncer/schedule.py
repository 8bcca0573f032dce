"""Cron-style schedule parsing and evaluation.

A schedule is five whitespace-separated fields (minute, hour, day-of-month,
month, day-of-week). Each field is parsed into one of a small set of
expression variants, and each variant knows how to test a single time
component. No external cron implementation is involved.

Two behaviours differ from classic cron and are kept on purpose:

* `*/n` matches when `value % n == 0`, counted from zero rather than from the
  field's minimum (so `*/2` in day-of-month fires on even days).
* Day-of-month and day-of-week must BOTH match; cron's "either one, when both
  are restricted" rule is not applied.
"""

import datetime
import logging
import re
from dataclasses import dataclass

from .constants import APP_NAME

logger = logging.getLogger(APP_NAME)


class ScheduleError(ValueError):
    """Raised when a schedule expression cannot be parsed."""


@dataclass(frozen=True)
class Wildcard:
    """`*`: matches every value."""

    def matches(self, value: int) -> bool:
        return True


@dataclass(frozen=True)
class Step:
    """`*/n`: matches values divisible by n."""

    n: int

    def matches(self, value: int) -> bool:
        return value % self.n == 0


@dataclass(frozen=True)
class Range:
    """`lo-hi`: matches values in the inclusive interval."""

    lo: int
    hi: int

    def matches(self, value: int) -> bool:
        return self.lo <= value <= self.hi


@dataclass(frozen=True)
class ValueList:
    """`a,b,c`: matches any listed value."""

    values: tuple[int, ...]

    def matches(self, value: int) -> bool:
        return value in self.values


@dataclass(frozen=True)
class Literal:
    """`v`: matches exactly one value."""

    value: int

    def matches(self, value: int) -> bool:
        return value == self.value


FieldExpression = Wildcard | Step | Range | ValueList | Literal

FIELDS: tuple[tuple[str, int, int], ...] = (
    ("minute", 0, 59),
    ("hour", 0, 23),
    ("day-of-month", 1, 31),
    ("month", 1, 12),
    ("day-of-week", 0, 7),
)
"""tuple: (name, min, max) for each schedule field, in expression order."""

_NUMBER = re.compile(r"^\d+$")
_STEP = re.compile(r"^\*/(\d+)$")
_RANGE = re.compile(r"^(\d+)-(\d+)$")


def _parse_number(text: str, name: str, lo: int, hi: int) -> int:
    text = text.strip()
    if not _NUMBER.match(text):
        raise ScheduleError(f"Invalid {name} value '{text}'")
    # int() drops leading zeros ("05" -> 5).
    value = int(text)
    if not lo <= value <= hi:
        raise ScheduleError(f"{name} value {value} is outside {lo}-{hi}")
    return value


def parse_field(
    text: str, lo: int, hi: int, name: str = "field"
) -> FieldExpression:
    """Parses one schedule field into an expression variant.

    Args:
        text (str): The raw field text (e.g. '*/15', '1-5', '0,30', '05').
        lo (int): The smallest legal value for this field.
        hi (int): The largest legal value for this field.
        name (str, optional): Field name used in error messages.

    Returns:
        FieldExpression: The parsed expression.

    Raises:
        ScheduleError: If the text is not a recognised form, a number is out
                       of bounds, a step is zero, or a range is inverted.
    """
    text = text.strip()
    if text == "*":
        return Wildcard()

    if match := _STEP.match(text):
        n = int(match.group(1))
        if n == 0:
            raise ScheduleError(f"Step of zero in {name} field '{text}'")
        return Step(n)

    if match := _RANGE.match(text):
        start = _parse_number(match.group(1), name, lo, hi)
        end = _parse_number(match.group(2), name, lo, hi)
        if start > end:
            raise ScheduleError(f"Inverted range in {name} field '{text}'")
        return Range(start, end)

    if "," in text:
        return ValueList(
            tuple(_parse_number(part, name, lo, hi) for part in text.split(","))
        )

    return Literal(_parse_number(text, name, lo, hi))


def matches(
    expression: FieldExpression | str, value: int | str, lo: int, hi: int
) -> bool:
    """Evaluates one field expression against a time component.

    Raw text is parsed first. A malformed expression never raises here: it is
    logged and treated as "no match", so a bad field stops a schedule from
    firing instead of crashing the loop.

    Args:
        expression (FieldExpression | str): A parsed expression or raw text.
        value (int | str): The current time component ('07' and 7 are equal).
        lo (int): The field's minimum legal value.
        hi (int): The field's maximum legal value.

    Returns:
        bool: True if the value satisfies the expression.
    """
    if isinstance(expression, str):
        try:
            expression = parse_field(expression, lo, hi)
        except ScheduleError as e:
            logger.warning(f"Schedule field never matches: {e}")
            return False

    try:
        current = int(str(value).strip() or "0")
    except ValueError:
        logger.warning(f"Cannot compare non-numeric time value '{value}'")
        return False

    return expression.matches(current)


def _weekday_matches(expression: FieldExpression, weekday: int) -> bool:
    # Sunday is both 0 and 7.
    if matches(expression, weekday, 0, 7):
        return True
    return weekday == 0 and matches(expression, 7, 0, 7)


@dataclass(frozen=True)
class ScheduleSpec:
    """A parsed five-field schedule.

    Attributes:
        minute (FieldExpression): Minute field (0-59).
        hour (FieldExpression): Hour field (0-23).
        day_of_month (FieldExpression): Day-of-month field (1-31).
        month (FieldExpression): Month field (1-12).
        day_of_week (FieldExpression): Day-of-week field (0-7, Sunday = 0 or 7).
        text (str): The normalized source expression.
    """

    minute: FieldExpression
    hour: FieldExpression
    day_of_month: FieldExpression
    month: FieldExpression
    day_of_week: FieldExpression
    text: str = ""

    @classmethod
    def parse(cls, text: str) -> "ScheduleSpec":
        """Parses a five-field expression such as '0 0 * * *'.

        Raises:
            ScheduleError: If the field count is wrong or any field is invalid.
        """
        parts = text.split()
        if len(parts) != len(FIELDS):
            raise ScheduleError(
                f"Expected {len(FIELDS)} fields in schedule '{text}', "
                f"got {len(parts)}"
            )
        expressions = [
            parse_field(part, lo, hi, name)
            for part, (name, lo, hi) in zip(parts, FIELDS)
        ]
        return cls(*expressions, text=" ".join(parts))

    def date_matches(self, day: datetime.date) -> bool:
        """Checks the day-of-month, month and day-of-week fields for a date."""
        return (
            matches(self.day_of_month, day.day, 1, 31)
            and matches(self.month, day.month, 1, 12)
            and _weekday_matches(self.day_of_week, day.isoweekday() % 7)
        )

    def is_due(self, now: datetime.datetime) -> bool:
        """Checks whether every field matches the given moment."""
        return (
            matches(self.minute, now.minute, 0, 59)
            and matches(self.hour, now.hour, 0, 23)
            and self.date_matches(now.date())
        )

    def __str__(self) -> str:
        return self.text


def is_due(spec: ScheduleSpec, now: datetime.datetime) -> bool:
    """Module-level alias for `ScheduleSpec.is_due`."""
    return spec.is_due(now)


def next_fire_times(
    spec: ScheduleSpec,
    start: datetime.datetime,
    count: int = 5,
    horizon_days: int = 366,
) -> list[datetime.datetime]:
    """Lists the next minutes at which the schedule is due.

    Dates are filtered first and hours second, so schedules that rarely fire
    are still scanned quickly.

    Args:
        spec (ScheduleSpec): The schedule to preview.
        start (datetime.datetime): The first minute considered (inclusive).
        count (int, optional): Maximum number of results. Defaults to 5.
        horizon_days (int, optional): How many days ahead to search.

    Returns:
        list[datetime.datetime]: Up to `count` due minutes, in order. An empty
                                 list means the schedule never fires within
                                 the horizon.
    """
    start = start.replace(second=0, microsecond=0)
    results: list[datetime.datetime] = []
    if count <= 0:
        return results

    for offset in range(horizon_days + 1):
        day = start.date() + datetime.timedelta(days=offset)
        if not spec.date_matches(day):
            continue
        for hour in range(24):
            if not matches(spec.hour, hour, 0, 23):
                continue
            for minute in range(60):
                if not matches(spec.minute, minute, 0, 59):
                    continue
                candidate = datetime.datetime.combine(
                    day, datetime.time(hour, minute), tzinfo=start.tzinfo
                )
                if candidate < start:
                    continue
                results.append(candidate)
                if len(results) >= count:
                    return results
    return results
