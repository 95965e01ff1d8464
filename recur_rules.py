#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Recurrence rules.

Two rule families share one structural contract (units, measure, matches,
next, previous, to_dict, describe):

 - IntervalRule: every N days/weeks/months/years counted from an anchor date
 - CalendarRule: calendar positions (weekday, day of month, week of month,
   nth weekday of month, ISO week of year, month of year)
"""
from __future__ import annotations
import math
import re
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Union

import recur_calendar as cal
import recur_core as core
from recur_core import InvalidMeasure, InvalidUnit, MissingAnchor, OutOfRange, SearchExhausted


# ------------------------------------------------------------------------------
# Measures
# ------------------------------------------------------------------------------
INTERVAL_MEASURES = ("days", "weeks", "months", "years")
CALENDAR_MEASURES = (
    "daysOfWeek",
    "daysOfMonth",
    "weeksOfMonth",
    "weeksOfMonthByDay",
    "weeksOfYear",
    "monthsOfYear",
)
MEASURES = INTERVAL_MEASURES + CALENDAR_MEASURES

_SINGULAR = {
    "day": "days",
    "week": "weeks",
    "month": "months",
    "year": "years",
    "dayOfWeek": "daysOfWeek",
    "dayOfMonth": "daysOfMonth",
    "weekOfMonth": "weeksOfMonth",
    "weekOfMonthByDay": "weeksOfMonthByDay",
    "weekOfYear": "weeksOfYear",
    "monthOfYear": "monthsOfYear",
}


def _snake(name: str) -> str:
    return re.sub(r"(?<!^)(?=[A-Z])", "_", name).lower()


_MEASURE_ALIASES: dict[str, str] = {}
for _m in MEASURES:
    _MEASURE_ALIASES[_m] = _m
    _MEASURE_ALIASES[_snake(_m)] = _m
for _s, _p in _SINGULAR.items():
    _MEASURE_ALIASES[_s] = _p
    _MEASURE_ALIASES[_snake(_s)] = _p


def is_measure(value) -> bool:
    return isinstance(value, str) and value.strip() in _MEASURE_ALIASES


def normalize_measure(measure) -> str:
    """Plural camelCase measure name for any singular/plural/snake spelling."""
    if isinstance(measure, str):
        m = _MEASURE_ALIASES.get(measure.strip())
        if m:
            return m
    raise InvalidMeasure(f"Invalid Measure for recurrence: {measure}")


def units_to_list(units) -> list:
    if units is None:
        raise InvalidUnit("Units not defined for recurrence rule.")
    if isinstance(units, bool):
        raise InvalidUnit("Provide a list, dict, string or number when passing units!")
    if isinstance(units, (list, tuple, set, frozenset)):
        return list(units)
    if isinstance(units, dict):
        # legacy {unit: True} form
        return [k for k, v in units.items() if v]
    if isinstance(units, (int, float, str)):
        return [units]
    raise InvalidUnit("Provide a list, dict, string or number when passing units!")


def _as_int(unit) -> int | None:
    """Integral value of a unit, or None when it is not a whole number."""
    if isinstance(unit, bool):
        return None
    if isinstance(unit, int):
        return unit
    if isinstance(unit, float):
        return int(unit) if math.isfinite(unit) and unit.is_integer() else None
    s = str(unit).strip()
    if re.fullmatch(r"[+-]?\d+", s):
        return int(s)
    if re.fullmatch(r"[+-]?\d+\.0*", s):
        return int(float(s))
    return None


# ------------------------------------------------------------------------------
# Interval rule
# ------------------------------------------------------------------------------
@dataclass
class IntervalRule:
    """Every N units of a length measure, counted from the anchor date."""

    units: tuple
    measure: str
    anchor: date

    def __init__(self, units, measure: str, anchor: date | None):
        if anchor is None:
            raise MissingAnchor("Must have a start date set to set an interval!")
        if measure not in INTERVAL_MEASURES:
            raise InvalidMeasure(f"Invalid interval measure: {measure}")
        self.anchor = cal.to_date(anchor)
        self.measure = measure
        self.units = self._normalize_units(units_to_list(units))

    @staticmethod
    def _normalize_units(raw: list) -> tuple:
        out = set()
        for unit in raw:
            n = _as_int(unit)
            if n is None:
                raise InvalidUnit(f"Intervals must be integers. Got {unit!r}.")
            if n <= 0:
                raise InvalidUnit(f"Intervals must be greater than zero. Got {unit!r}.")
            out.add(n)
        if not out:
            raise InvalidUnit("Units not defined for recurrence rule.")
        return tuple(sorted(out))

    def _at(self, k: int) -> date:
        # always from the anchor, so month-end clamping never drifts
        return cal.add(self.anchor, k, self.measure)

    def _try_at(self, k: int) -> date | None:
        """_at(k), or None when it falls outside date.min..date.max."""
        try:
            return self._at(k)
        except (OverflowError, ValueError):
            return None

    def matches(self, d: date) -> bool:
        precise = self.measure != "days"
        elapsed = abs(cal.diff(self.anchor, d, self.measure, exact=precise))
        return any(elapsed % unit == 0 for unit in self.units)

    def next(self, current: date, limit: date | None = None) -> date:
        elapsed = cal.diff(current, self.anchor, self.measure)
        best = None
        for unit in self.units:
            k = (elapsed // unit) * unit
            cand = self._try_at(k)
            while cand is None or cand <= current:
                if cand is None and k > 0:
                    break
                k += unit
                cand = self._try_at(k)
            if cand is None:
                continue
            while True:
                earlier = self._try_at(k - unit)
                if earlier is None or earlier <= current:
                    break
                k -= unit
                cand = earlier
            if best is None or cand < best:
                best = cand
        if best is None or (limit is not None and best > limit):
            raise SearchExhausted(f"{self.measure}: no match before {limit or cal.MAX_DATE}")
        return best

    def previous(self, current: date, limit: date | None = None) -> date:
        elapsed = cal.diff(current, self.anchor, self.measure)
        best = None
        for unit in self.units:
            k = -((-elapsed) // unit) * unit
            cand = self._try_at(k)
            while cand is None or cand >= current:
                if cand is None and k < 0:
                    break
                k -= unit
                cand = self._try_at(k)
            if cand is None:
                continue
            while True:
                later = self._try_at(k + unit)
                if later is None or later >= current:
                    break
                k += unit
                cand = later
            if best is None or cand > best:
                best = cand
        if best is None or (limit is not None and best < limit):
            raise SearchExhausted(f"{self.measure}: no match after {limit or cal.MIN_DATE}")
        return best

    def reanchor(self, anchor: date) -> "IntervalRule":
        return IntervalRule(list(self.units), self.measure, anchor)

    def to_dict(self) -> dict:
        return {"units": list(self.units), "measure": self.measure}

    def describe(self) -> str:
        singular = self.measure[:-1]
        if self.units == (1,):
            return f"every {singular}"
        nums = ", ".join(str(u) for u in self.units[:-1])
        nums = f"{nums} or {self.units[-1]}" if nums else str(self.units[0])
        return f"every {nums} {self.measure}"


# ------------------------------------------------------------------------------
# Calendar rule
# ------------------------------------------------------------------------------
LAST = -1


@dataclass(frozen=True)
class CalendarMeasure:
    name: str
    field: str          # recur_calendar.FIELDS key
    low: int
    high: int
    names: str | None = None    # 'days' | 'months' when names resolve

    @property
    def period(self) -> str:
        return cal.FIELDS[self.field][1]

    @property
    def range(self) -> str:
        return cal.FIELDS[self.field][2]


CALENDAR_TABLE = {
    "daysOfWeek":        CalendarMeasure("daysOfWeek", "day_of_week", 0, 6, "days"),
    "daysOfMonth":       CalendarMeasure("daysOfMonth", "day_of_month", 1, 31),
    "weeksOfMonth":      CalendarMeasure("weeksOfMonth", "month_week", 0, 5),
    "weeksOfMonthByDay": CalendarMeasure("weeksOfMonthByDay", "month_week_by_day", 0, 4),
    "weeksOfYear":       CalendarMeasure("weeksOfYear", "week_of_year", 1, 53),
    "monthsOfYear":      CalendarMeasure("monthsOfYear", "month_of_year", 0, 11, "months"),
}


@dataclass
class CalendarRule:
    """Matches dates whose calendar field (period within range) is in units."""

    units: tuple
    measure: str
    spec: CalendarMeasure = field(repr=False, compare=False)

    def __init__(self, units, measure: str):
        if measure not in CALENDAR_TABLE:
            raise InvalidMeasure(f"Invalid calendar measure: {measure}")
        self.measure = measure
        self.spec = CALENDAR_TABLE[measure]
        self.units = self._normalize_units(units_to_list(units))

    def _normalize_units(self, raw: list) -> tuple:
        out = set()
        for unit in raw:
            n = _as_int(unit)
            if n is None and isinstance(unit, str):
                if unit.strip().lower() == "last":
                    n = LAST
                elif self.spec.names:
                    n = cal.name_to_number(unit, self.spec.names)
            if n is None:
                raise InvalidUnit(f"Invalid calendar unit in recurrence: {unit!r}")
            if n != LAST and not (self.spec.low <= n <= self.spec.high):
                raise OutOfRange(
                    f"Value should be in range {self.spec.low} to {self.spec.high} for {self.measure}. Got {unit!r}."
                )
            out.add(n)
        if not out:
            raise InvalidUnit("Units not defined for recurrence rule.")
        return tuple(sorted(out))

    # --- windows -------------------------------------------------------------
    def _last_window(self, d: date) -> tuple[date, date]:
        e = cal.end_of(d, self.spec.range)
        if self.measure == "weeksOfMonthByDay":
            # final seven days: the last occurrence of each weekday
            return e - timedelta(days=6), e
        return max(cal.start_of(e, self.spec.period), cal.start_of(d, self.spec.range)), e

    def _windows(self, d: date) -> list[tuple[date, date]]:
        """(first, last) day spans inside d's range where the rule holds."""
        r0 = cal.start_of(d, self.spec.range)
        r1 = cal.end_of(d, self.spec.range)
        out = []
        for unit in self.units:
            if unit == LAST:
                out.append(self._last_window(d))
                continue
            s = cal.field_set(r0, self.spec.field, unit)
            if s is None:
                continue
            out.append((s, min(cal.end_of(s, self.spec.period), r1)))
        return out

    # --- contract ------------------------------------------------------------
    def matches(self, d: date) -> bool:
        if cal.field_get(d, self.spec.field) in self.units:
            return True
        if LAST in self.units:
            s, e = self._last_window(d)
            return s <= d <= e
        return False

    def next(self, current: date, limit: date | None = None) -> date:
        if limit is None:
            limit = cal.horizon(current, core.MAX_YEARS, forward=True)
        if current >= limit:
            raise SearchExhausted(f"{self.measure}: no match before {limit}")
        cursor = current
        nxt = current + timedelta(days=1)
        if self.matches(nxt):
            return nxt
        while True:
            starts = [s for s, _e in self._windows(cursor) if s > cursor]
            if starts:
                found = min(starts)
                if found > limit:
                    break
                return found
            edge = cal.end_of(cursor, self.spec.range)
            if edge >= limit:
                break
            cursor = edge + timedelta(days=1)
            if self.matches(cursor):
                return cursor
        raise SearchExhausted(f"{self.measure}: no match before {limit}")

    def previous(self, current: date, limit: date | None = None) -> date:
        if limit is None:
            limit = cal.horizon(current, core.MAX_YEARS, forward=False)
        if current <= limit:
            raise SearchExhausted(f"{self.measure}: no match after {limit}")
        cursor = current
        prv = current - timedelta(days=1)
        if self.matches(prv):
            return prv
        while True:
            ends = [e for _s, e in self._windows(cursor) if e < cursor]
            if ends:
                found = max(ends)
                if found < limit:
                    break
                return found
            edge = cal.start_of(cursor, self.spec.range)
            if edge <= limit:
                break
            cursor = edge - timedelta(days=1)
            if self.matches(cursor):
                return cursor
        raise SearchExhausted(f"{self.measure}: no match after {limit}")

    def to_dict(self) -> dict:
        return {"units": list(self.units), "measure": self.measure}

    def describe(self) -> str:
        m = self.measure
        vals = [u for u in self.units if u != LAST]
        has_last = LAST in self.units

        def _join(parts: list[str]) -> str:
            if has_last:
                parts = ["last"] + parts
            return ", ".join(parts)

        if m == "daysOfWeek":
            return "on " + _join([cal.DAY_NAMES[v] for v in vals])
        if m == "monthsOfYear":
            return "in " + _join([cal.MONTH_NAMES[v] for v in vals])
        if m == "daysOfMonth":
            return f"on the {_join([core.ordinal(v) for v in vals])} day of the month"
        if m == "weeksOfYear":
            return f"in week {_join([str(v) for v in vals])} of the year"
        if m == "weeksOfMonth":
            return f"in the {_join([core.ordinal(v + 1) for v in vals])} week of the month"
        return f"in the {_join([core.ordinal(v + 1) for v in vals])} week of the month (by day)"


Rule = Union[IntervalRule, CalendarRule]


def make_rule(units, measure, anchor: date | None = None) -> Rule:
    """Build the rule variant that owns measure."""
    m = normalize_measure(measure)
    if m in INTERVAL_MEASURES:
        return IntervalRule(units, m, anchor)
    return CalendarRule(units, m)
