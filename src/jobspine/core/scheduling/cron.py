"""Five-field cron evaluator.

Format::

    ┌───────────── minute        (0-59)
    │ ┌─────────── hour          (0-23)
    │ │ ┌───────── day of month  (1-31)
    │ │ │ ┌─────── month         (1-12)
    │ │ │ │ ┌───── day of week   (0-6, 0 = Sunday)
    │ │ │ │ │
    * * * * *

Each field accepts ``*``, ``n``, ``a,b``, ``a-b``, ``*/n`` and ``a-b/n``.

Day-of-month and day-of-week are combined with AND: ``0 0 13 * 5`` fires
only on a Friday the 13th.  This differs from classic cron, which ORs the
two fields when both are restricted.

All arithmetic is UTC.  The search is bounded to 370 days of minutes, so
an unsatisfiable expression such as ``0 0 30 2 *`` returns ``None`` instead
of looping forever.

Tags:
    cron, scheduling, calendar, jobspine
"""

from __future__ import annotations

import calendar
from collections.abc import Iterator
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from jobspine.core.errors import CronExpressionError

MAX_SCAN_MINUTES = 370 * 24 * 60

_MINUTES_PER_DAY = 24 * 60
_MINUTES_PER_HOUR = 60

# (name, min, max) in expression order
_FIELD_SPECS = (
    ("minute", 0, 59),
    ("hour", 0, 23),
    ("day-of-month", 1, 31),
    ("month", 1, 12),
    ("day-of-week", 0, 6),
)


@dataclass(frozen=True)
class CronFields:
    """Allowed values for each of the five cron fields."""

    minutes: frozenset[int]
    hours: frozenset[int]
    days_of_month: frozenset[int]
    months: frozenset[int]
    days_of_week: frozenset[int]

    def matches(self, dt: datetime) -> bool:
        """True if ``dt`` (UTC, minute precision) satisfies every field."""
        return (
            dt.minute in self.minutes
            and dt.hour in self.hours
            and dt.day in self.days_of_month
            and dt.month in self.months
            and cron_weekday(dt.year, dt.month, dt.day) in self.days_of_week
        )


def cron_weekday(year: int, month: int, day: int) -> int:
    """Day of week with 0 = Sunday."""
    # datetime.weekday(): Monday = 0 ... Sunday = 6
    return (calendar.weekday(year, month, day) + 1) % 7


def days_in_month(year: int, month: int) -> int:
    """Number of days in a month, Gregorian leap-year rule."""
    return calendar.monthrange(year, month)[1]


def _parse_int(token: str, expression: str, name: str, what: str) -> int:
    if not (token.isascii() and token.isdigit()):
        raise CronExpressionError(expression, f"invalid {what} in {name} field: '{token}'")
    return int(token)


def _parse_part(part: str, low: int, high: int, name: str, expression: str) -> set[int]:
    if part == "*":
        return set(range(low, high + 1))

    range_part, slash, step_part = part.partition("/")
    step = 1
    if slash:
        step = _parse_int(step_part, expression, name, "step")
        if step <= 0:
            raise CronExpressionError(expression, f"step must be > 0 in {name} field: '{part}'")

    if range_part == "*":
        start, end = low, high
    elif "-" in range_part:
        bounds = range_part.split("-")
        if len(bounds) != 2:
            raise CronExpressionError(expression, f"invalid range in {name} field: '{part}'")
        start = _parse_int(bounds[0], expression, name, "range start")
        end = _parse_int(bounds[1], expression, name, "range end")
        if not (low <= start <= high and low <= end <= high):
            raise CronExpressionError(
                expression, f"range out of bounds ({low}-{high}) in {name} field: '{part}'"
            )
        if start > end:
            raise CronExpressionError(expression, f"range start > end in {name} field: '{part}'")
    else:
        if slash:
            # "5/10" is not supported; steps need "*" or a range
            raise CronExpressionError(expression, f"step requires '*' or a range in {name} field: '{part}'")
        value = _parse_int(range_part, expression, name, "value")
        if not low <= value <= high:
            raise CronExpressionError(
                expression, f"value {value} out of bounds ({low}-{high}) in {name} field"
            )
        return {value}

    return set(range(start, end + 1, step))


def _parse_field(field: str, low: int, high: int, name: str, expression: str) -> frozenset[int]:
    values: set[int] = set()
    for part in field.split(","):
        part = part.strip()
        if not part:
            raise CronExpressionError(expression, f"empty list element in {name} field: '{field}'")
        values |= _parse_part(part, low, high, name, expression)
    if not values:
        raise CronExpressionError(expression, f"{name} field resolved to an empty set: '{field}'")
    return frozenset(values)


def parse_cron(expression: str) -> CronFields:
    """Parse a 5-field cron expression.

    Raises:
        CronExpressionError: on any malformed field
    """
    if not isinstance(expression, str):
        raise CronExpressionError(str(expression), "expression must be a string")
    parts = expression.split()
    if len(parts) != 5:
        raise CronExpressionError(expression, f"expected 5 fields, got {len(parts)}")

    parsed = [
        _parse_field(part, low, high, name, expression)
        for part, (name, low, high) in zip(parts, _FIELD_SPECS)
    ]
    return CronFields(
        minutes=parsed[0],
        hours=parsed[1],
        days_of_month=parsed[2],
        months=parsed[3],
        days_of_week=parsed[4],
    )


def validate_cron(expression: str) -> None:
    """Validate a cron expression, raising CronExpressionError if malformed."""
    parse_cron(expression)


def _as_utc(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


def next_fire_time(expression: str | CronFields, after: datetime) -> datetime | None:
    """Compute the first fire time strictly after ``after``.

    Args:
        expression: Cron expression or pre-parsed fields
        after: Reference time; naive values are treated as UTC

    Returns:
        Aware UTC datetime with zero seconds, or None if nothing matches
        within the bounded scan.
    """
    fields = expression if isinstance(expression, CronFields) else parse_cron(expression)
    start = _as_utc(after).replace(second=0, microsecond=0) + timedelta(minutes=1)

    year, month, day = start.year, start.month, start.day
    hour, minute = start.hour, start.minute

    scanned = 0
    while scanned < MAX_SCAN_MINUTES:
        if day > days_in_month(year, month):
            day, hour, minute = 1, 0, 0
            month += 1
            if month > 12:
                month, year = 1, year + 1
            continue

        if month not in fields.months:
            # credit the skipped remainder of the month
            scanned += (days_in_month(year, month) - day + 1) * _MINUTES_PER_DAY
            day, hour, minute = 1, 0, 0
            month += 1
            if month > 12:
                month, year = 1, year + 1
            continue

        if day not in fields.days_of_month or cron_weekday(year, month, day) not in fields.days_of_week:
            day += 1
            hour = minute = 0
            scanned += _MINUTES_PER_DAY
            continue

        if hour not in fields.hours:
            hour += 1
            minute = 0
            if hour >= 24:
                hour = 0
                day += 1
            scanned += _MINUTES_PER_HOUR
            continue

        if minute not in fields.minutes:
            minute += 1
            if minute >= 60:
                minute = 0
                hour += 1
                if hour >= 24:
                    hour = 0
                    day += 1
            scanned += 1
            continue

        return datetime(year, month, day, hour, minute, tzinfo=UTC)

    return None


def iter_fire_times(expression: str, after: datetime, count: int) -> Iterator[datetime]:
    """Yield up to ``count`` successive fire times after ``after``."""
    fields = parse_cron(expression)
    current = after
    for _ in range(count):
        fire = next_fire_time(fields, current)
        if fire is None:
            return
        yield fire
        current = fire
