"""
Five-field cron expressions for schedule configs.

Fields: minute hour day-of-month month day-of-week. Each field accepts
``*``, ``*/n``, ``a``, ``a,b``, ``a-b`` and ``a-b/n``; months and weekdays
also accept three-letter names (``JAN``, ``MON``). Weekdays run 0=Sunday
to 6=Saturday, with 7 accepted as Sunday.

When both day fields are restricted a date matches if either does, as in
classic cron.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from functools import lru_cache

from mapsync.exceptions import CronParseError
from mapsync.rules.types import cron_weekday
from mapsync.utils.timeutils import resolve_timezone

_MONTH_NAMES = {
    name: i
    for i, name in enumerate(("JAN", "FEB", "MAR", "APR", "MAY", "JUN", "JUL", "AUG", "SEP", "OCT", "NOV", "DEC"), 1)
}
_DAY_NAMES = {name: i for i, name in enumerate(("SUN", "MON", "TUE", "WED", "THU", "FRI", "SAT"))}

# Feb 29 on a restricted weekday can be years away
_SEARCH_DAYS = 366 * 8


@dataclass(frozen=True)
class CronExpression:
    expression: str
    minutes: tuple[int, ...]
    hours: tuple[int, ...]
    monthdays: frozenset[int]
    months: frozenset[int]
    weekdays: frozenset[int]
    monthday_any: bool
    weekday_any: bool

    def matches_day(self, day: date) -> bool:
        if day.month not in self.months:
            return False
        in_month = day.day in self.monthdays
        in_week = cron_weekday(day) in self.weekdays
        if self.monthday_any and self.weekday_any:
            return True
        if self.monthday_any:
            return in_week
        if self.weekday_any:
            return in_month
        return in_month or in_week

    def matches(self, moment: datetime) -> bool:
        return self.matches_day(moment.date()) and moment.hour in self.hours and moment.minute in self.minutes

    def next_after(self, now: datetime, timezone: str | None = None) -> datetime:
        """
        First matching minute strictly after ``now``.

        Naive ``now`` values are taken to be in ``timezone`` (default UTC).
        The result is timezone-aware.
        """
        tz = resolve_timezone(timezone)
        local = now.replace(tzinfo=tz) if now.tzinfo is None else now.astimezone(tz)
        start = local.replace(second=0, microsecond=0, tzinfo=None) + timedelta(minutes=1)

        day = start.date()
        for _ in range(_SEARCH_DAYS):
            if self.matches_day(day):
                first_day = day == start.date()
                for hour in self.hours:
                    if first_day and hour < start.hour:
                        continue
                    for minute in self.minutes:
                        if first_day and hour == start.hour and minute < start.minute:
                            continue
                        return datetime.combine(day, time(hour, minute), tzinfo=tz)
            day += timedelta(days=1)
        raise CronParseError(self.expression, "no matching time found")


def _value(raw: str, names: dict[str, int] | None, field: str, expression: str) -> int:
    raw = raw.strip().upper()
    if names and raw in names:
        return names[raw]
    if not raw.isdigit():
        raise CronParseError(expression, f"invalid {field} value '{raw}'")
    return int(raw)


def _parse_field(
    token: str,
    *,
    field: str,
    low: int,
    high: int,
    expression: str,
    names: dict[str, int] | None = None,
    sunday_seven: bool = False,
) -> set[int]:
    values: set[int] = set()
    for part in token.split(","):
        part = part.strip()
        if not part:
            raise CronParseError(expression, f"empty entry in {field} field")

        step = 1
        if "/" in part:
            part, step_raw = part.split("/", 1)
            if not step_raw.strip().isdigit() or int(step_raw) == 0:
                raise CronParseError(expression, f"invalid step '{step_raw}' in {field} field")
            step = int(step_raw)

        if part == "*":
            start, end = low, high
        elif "-" in part:
            a, b = part.split("-", 1)
            start = _value(a, names, field, expression)
            end = _value(b, names, field, expression)
        else:
            start = end = _value(part, names, field, expression)
            if step != 1:
                end = high

        upper = high + 1 if sunday_seven else high
        if start < low or end > upper:
            raise CronParseError(expression, f"{field} value out of range {low}-{high}")
        if start > end:
            raise CronParseError(expression, f"{field} range {start}-{end} is reversed")

        for v in range(start, end + 1, step):
            values.add(0 if sunday_seven and v == 7 else v)
    return values


@lru_cache(maxsize=256)
def parse_cron(expression: str) -> CronExpression:
    """Parse and cache a cron expression.

    Raises:
        CronParseError: Wrong field count, bad token or out-of-range value
    """
    fields = expression.split()
    if len(fields) != 5:
        raise CronParseError(expression, f"expected 5 fields, got {len(fields)}")
    minute, hour, monthday, month, weekday = fields

    return CronExpression(
        expression=expression,
        minutes=tuple(sorted(_parse_field(minute, field="minute", low=0, high=59, expression=expression))),
        hours=tuple(sorted(_parse_field(hour, field="hour", low=0, high=23, expression=expression))),
        monthdays=frozenset(_parse_field(monthday, field="day-of-month", low=1, high=31, expression=expression)),
        months=frozenset(
            _parse_field(month, field="month", low=1, high=12, expression=expression, names=_MONTH_NAMES)
        ),
        weekdays=frozenset(
            _parse_field(
                weekday,
                field="day-of-week",
                low=0,
                high=6,
                expression=expression,
                names=_DAY_NAMES,
                sunday_seven=True,
            )
        ),
        monthday_any=monthday == "*",
        weekday_any=weekday == "*",
    )


def next_run_time(expression: str, now: datetime, timezone: str | None = None) -> datetime:
    """Next fire time for ``expression`` after ``now``."""
    return parse_cron(expression).next_after(now, timezone)
