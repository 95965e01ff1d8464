#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Civil-calendar adapter for the recur engine.

Every recurrence computation goes through the functions here instead of
extending ``datetime.date``:

 - field accessors (day of week, day of month, week of month, ISO week, month)
 - period arithmetic (add / diff in days, weeks, months, years)
 - period boundaries (start_of / end_of day, week, month, year, ...)
 - weekday / month name resolution
 - coercion of loose input (strings, datetimes) to plain dates

Conventions: weekdays are numbered Sunday=0 .. Saturday=6 and calendar weeks
start on Sunday; months are numbered January=0 .. December=11; weeks of the
year follow ISO-8601.
"""
from __future__ import annotations
import calendar
from datetime import date, datetime, timedelta

from dateutil import parser as date_parser
from dateutil.relativedelta import relativedelta

from recur_core import InvalidDate


# ------------------------------------------------------------------------------
# Names
# ------------------------------------------------------------------------------
_DAY_NAMES = ["sunday", "monday", "tuesday", "wednesday", "thursday", "friday", "saturday"]
_MONTH_NAMES = [m.lower() for m in calendar.month_name[1:]]

DAY_NAMES = [d.capitalize() for d in _DAY_NAMES]
MONTH_NAMES = list(calendar.month_name[1:])

# Date input formats tried before falling back to dateutil
DATE_FORMATS = ("%Y-%m-%d", "%Y%m%d", "%Y-%m-%dT%H:%M:%S", "%Y%m%dT%H%M%SZ")


def name_to_number(token, kind: str) -> int | None:
    """
    Resolve a weekday ('days') or month ('months') name to its number.

    Full names and 3-letter prefixes resolve ('Thurs', 'Sept', 'Februray');
    two-letter weekday minima ('Su', 'Th') resolve too. Returns None when the
    token names nothing.
    """
    s = str(token or "").strip().lower()
    if not s:
        return None
    names = _DAY_NAMES if kind == "days" else _MONTH_NAMES
    if s in names:
        return names.index(s)
    if len(s) >= 3:
        for i, n in enumerate(names):
            if s.startswith(n[:3]):
                return i
    elif kind == "days" and len(s) == 2:
        for i, n in enumerate(names):
            if n.startswith(s):
                return i
    return None


# ------------------------------------------------------------------------------
# Coercion
# ------------------------------------------------------------------------------
def is_valid(value) -> bool:
    return isinstance(value, date)


def to_date(value, fmt: str | None = None) -> date:
    """Coerce date, datetime or string input to a timezone-free date."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or not value.strip():
        raise InvalidDate(f"Invalid date: {value!r}")
    s = value.strip()
    if fmt:
        try:
            return datetime.strptime(s, fmt).date()
        except ValueError:
            raise InvalidDate(f"Invalid date: {value!r} (format {fmt})")
    for f in DATE_FORMATS:
        try:
            return datetime.strptime(s, f).date()
        except ValueError:
            pass
    try:
        return date_parser.parse(s).date()
    except (ValueError, OverflowError):
        raise InvalidDate(f"Invalid date: {value!r}")


def compare(a: date, b: date) -> int:
    return (a > b) - (a < b)


# ------------------------------------------------------------------------------
# Field accessors
# ------------------------------------------------------------------------------
def days_in_month(y: int, m: int) -> int:
    return calendar.monthrange(y, m)[1]


def day_of_week(d: date) -> int:
    return (d.weekday() + 1) % 7


def day_of_month(d: date) -> int:
    return d.day


def month_of_year(d: date) -> int:
    return d.month - 1


def week_of_year(d: date) -> int:
    return d.isocalendar()[1]


def iso_weeks_in_year(iso_year: int) -> int:
    # Dec 28 always sits in the last ISO week of its ISO year
    return date(iso_year, 12, 28).isocalendar()[1]


def month_week(d: date) -> int:
    """0-based index of d's Sunday-week within its month."""
    return (d.day - 1 + day_of_week(d.replace(day=1))) // 7


def month_week_by_day(d: date) -> int:
    """Which occurrence of d's weekday within the month, 0-based."""
    return (d.day - 1) // 7


# field name -> (getter, period, range, step unit)
FIELDS = {
    "day_of_week":       (day_of_week, "day", "week", "days"),
    "day_of_month":      (day_of_month, "day", "month", "days"),
    "month_week":        (month_week, "week", "month", "weeks"),
    "month_week_by_day": (month_week_by_day, "monthweek", "month", "weeks"),
    "week_of_year":      (week_of_year, "isoweek", "isoyear", "weeks"),
    "month_of_year":     (month_of_year, "month", "year", "months"),
}


def field_get(d: date, field: str) -> int:
    return FIELDS[field][0](d)


def field_set(d: date, field: str, value: int) -> date | None:
    """
    First day (clipped to the range) of the period whose field equals value,
    inside the range that contains d. None when that range has no such period.
    """
    getter, period, rng, step = FIELDS[field]
    r0 = start_of(d, rng)
    try:
        shifted = add(r0, value - getter(r0), step)
    except (OverflowError, ValueError):
        return None
    # step from the start of r0's period: a month rarely opens on a Sunday
    cand = date.fromordinal(max(shifted.toordinal() - _lead(r0, period), r0.toordinal()))
    if cand > end_of(d, rng) or getter(cand) != value:
        return None
    return max(start_of(cand, period), r0)


# ------------------------------------------------------------------------------
# Period boundaries
# ------------------------------------------------------------------------------
def _lead(d: date, unit: str) -> int:
    """Days from the start of d's unit to d."""
    if unit == "day":
        return 0
    if unit == "week":
        return day_of_week(d)
    if unit == "isoweek":
        return d.weekday()
    if unit == "monthweek":
        return (d.day - 1) % 7
    if unit == "month":
        return d.day - 1
    if unit == "year":
        return d.toordinal() - date(d.year, 1, 1).toordinal()
    if unit == "isoyear":
        return d.toordinal() - date.fromisocalendar(d.isocalendar()[0], 1, 1).toordinal()
    raise ValueError(f"Unknown calendar unit: {unit}")


def _clamped(ordinal: int) -> date:
    return date.fromordinal(min(max(ordinal, 1), MAX_DATE.toordinal()))


def start_of(d: date, unit: str) -> date:
    """First day of d's unit; weeks straddling 0001-01-01 clamp to it."""
    return _clamped(d.toordinal() - _lead(d, unit))


def end_of(d: date, unit: str) -> date:
    """Last day of d's unit; periods running past 9999-12-31 clamp to it."""
    if unit == "day":
        return d
    if unit == "week":
        return _clamped(d.toordinal() + 6 - day_of_week(d))
    if unit == "isoweek":
        return _clamped(d.toordinal() + 6 - d.weekday())
    if unit == "monthweek":
        return min(_clamped(start_of(d, unit).toordinal() + 6), end_of(d, "month"))
    if unit == "month":
        return d.replace(day=days_in_month(d.year, d.month))
    if unit == "year":
        return date(d.year, 12, 31)
    if unit == "isoyear":
        iso_year = d.isocalendar()[0]
        try:
            return date.fromisocalendar(iso_year, iso_weeks_in_year(iso_year), 7)
        except (OverflowError, ValueError):
            return MAX_DATE
    raise ValueError(f"Unknown calendar unit: {unit}")


# ------------------------------------------------------------------------------
# Period arithmetic
# ------------------------------------------------------------------------------
_UNIT_ALIASES = {
    "day": "days", "days": "days",
    "week": "weeks", "weeks": "weeks",
    "month": "months", "months": "months",
    "year": "years", "years": "years",
}


def _norm_unit(unit: str) -> str:
    try:
        return _UNIT_ALIASES[unit]
    except KeyError:
        raise ValueError(f"Unknown period unit: {unit}")


def add(d: date, n: int, unit: str) -> date:
    """Add n units; months and years clamp to the end of a shorter month."""
    unit = _norm_unit(unit)
    if unit == "days":
        return d + timedelta(days=n)
    if unit == "weeks":
        return d + timedelta(weeks=n)
    if unit == "months":
        return d + relativedelta(months=n)
    return d + relativedelta(years=n)


def subtract(d: date, n: int, unit: str) -> date:
    return add(d, -n, unit)


MIN_DATE = date.min
MAX_DATE = date.max


def horizon(origin: date, years: int, forward: bool = True) -> date:
    """Search limit `years` away from origin, clamped to MIN_DATE..MAX_DATE."""
    try:
        out = add(origin, years if forward else -years, "years")
    except (OverflowError, ValueError):
        out = MAX_DATE if forward else MIN_DATE
    return min(out, MAX_DATE) if forward else max(out, MIN_DATE)


def _month_diff(a: date, b: date) -> float:
    # whole months from a to b, then the fraction of the surrounding month
    whole = (b.year - a.year) * 12 + (b.month - a.month)
    anchor = a + relativedelta(months=whole)
    side = -1 if b < anchor else 1
    try:
        span = abs((a + relativedelta(months=whole + side) - anchor).days)
    except (OverflowError, ValueError):
        # neighbouring month lies outside date.min..date.max
        span = days_in_month(anchor.year, anchor.month)
    adjust = (b - anchor).days / span
    return -(whole + adjust) + 0.0


def diff(a: date, b: date, unit: str, exact: bool = False):
    """
    Elapsed a - b in unit. Days are whole days; weeks, months and years are
    fractional when exact, otherwise truncated toward zero.
    """
    unit = _norm_unit(unit)
    if unit == "days":
        return (a - b).days
    if unit == "weeks":
        out = (a - b).days / 7
    elif unit == "months":
        out = _month_diff(a, b)
    else:
        out = _month_diff(a, b) / 12
    return out if exact else int(out)
