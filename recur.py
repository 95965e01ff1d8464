#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Recurrence: combine rules, exceptions and an optional start/end window, and
enumerate the dates where everything matches.

    r = recur("2014-01-01").every(2).days()
    r.next(3)            # [2014-01-03, 2014-01-05, 2014-01-07]
    r.previous(3)        # [2013-12-30, 2013-12-28, 2013-12-26]

    r = recur().every("Sunday").days_of_week().every([0, 2]).weeks_of_month_by_day()
    r.matches("2013-01-06")   # first Sunday of the month -> True
"""
from __future__ import annotations
from datetime import date, timedelta

import recur_calendar as cal
import recur_core as core
from recur_core import (
    DateNotSet,
    InvalidDate,
    InvalidForgetTarget,
    InvalidMeasure,
    MissingEnd,
    NoOrigin,
    RangeInverted,
    RecurError,
    RuleDependencyUnmet,
    SearchExhausted,
)
from recur_rules import (
    CalendarRule,
    IntervalRule,
    Rule,
    is_measure,
    make_rule,
    normalize_measure,
)

_MISSING = object()


def _opt_date(value) -> date | None:
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    return cal.to_date(value)


# ------------------------------------------------------------------------------
# Enumeration driver
# ------------------------------------------------------------------------------
class RecurrenceCursor:
    """
    Walks a recurrence one matching date at a time.

    advance() / retreat() move forward / backward from the current position
    and return the next matching date in that direction, or None once the
    rules are exhausted within the search horizon. step() follows the
    `reversed` flag. Iterating the cursor yields the origin first (when it
    matches) and then keeps stepping.
    """

    def __init__(self, recurrence: "Recurrence", origin: date, reversed: bool = False, bounded: bool = False):
        self.recurrence = recurrence
        self.origin = origin
        self.position = origin
        self.reversed = reversed
        self.bounded = bounded
        self._origin_pending = True

        end = recurrence.end
        self._upper = end if end is not None else cal.horizon(origin, recurrence.max_years, forward=True)
        self._lower = cal.horizon(origin, recurrence.max_years, forward=False)
        if bounded and recurrence.start is not None:
            self._lower = max(self._lower, recurrence.start)

    def advance(self) -> date | None:
        return self._move(forward=True)

    def retreat(self) -> date | None:
        return self._move(forward=False)

    def step(self) -> date | None:
        return self._move(forward=not self.reversed)

    def __iter__(self):
        return self

    def __next__(self) -> date:
        if self._origin_pending:
            self._origin_pending = False
            if self.recurrence.matches(self.origin, ignore_bounds=not self.bounded):
                return self.origin
        d = self.step()
        if d is None:
            raise StopIteration
        return d

    def _move(self, forward: bool) -> date | None:
        rec = self.recurrence
        limit = self._upper if forward else self._lower
        cursor = self.position
        while True:
            try:
                cursor = self._converge(rec.rules, cursor, forward, limit)
            except SearchExhausted as e:
                core.diag(f"enumeration ended at {cursor}: {e}")
                return None
            if rec.is_exception(cursor):
                continue
            if self.bounded and not rec.in_range(cursor):
                continue
            self.position = cursor
            return cursor

    @staticmethod
    def _converge(rules: tuple, cursor: date, forward: bool, limit: date) -> date:
        """Nearest date strictly past cursor where every rule matches."""
        if not rules:
            if (forward and cursor >= limit) or (not forward and cursor <= limit):
                raise SearchExhausted(f"no dates within horizon {limit}")
            return cursor + timedelta(days=1 if forward else -1)

        if forward:
            seek, pick = (lambda r, d: r.next(d, limit)), max
        else:
            seek, pick = (lambda r, d: r.previous(d, limit)), min

        target = pick(seek(r, cursor) for r in rules)
        while True:
            lagging = [r for r in rules if not r.matches(target)]
            if not lagging:
                return target
            target = pick(seek(r, target) for r in lagging)


# ------------------------------------------------------------------------------
# Recurrence
# ------------------------------------------------------------------------------
class Recurrence:
    """Rules (AND-combined), exception dates and an optional start/end window."""

    def __init__(self, start=None, end=None, rules=None, exceptions=None, max_years: int | None = None):
        self._start = _opt_date(start)
        self._end = _opt_date(end)
        # transient, never exported
        self._from: date | None = None
        self._units = None
        self._measure = None

        self.reversed = False
        self.max_years = int(max_years) if max_years else core.MAX_YEARS

        self._rules: dict[str, Rule] = {}
        for spec in rules or []:
            if isinstance(spec, (IntervalRule, CalendarRule)):
                rule = spec
            elif isinstance(spec, dict):
                rule = make_rule(spec.get("units"), spec.get("measure"), self._start)
            else:
                raise InvalidMeasure(f"Rule entries must be {{units, measure}} mappings. Got {spec!r}.")
            self._add_rule(rule)
        if "weeksOfMonthByDay" in self._rules and "daysOfWeek" not in self._rules:
            raise RuleDependencyUnmet("weeksOfMonthByDay must be combined with daysOfWeek")

        self._exceptions: set[date] = {cal.to_date(x) for x in exceptions or []}

    @classmethod
    def from_options(cls, options: dict) -> "Recurrence":
        options = options or {}
        return cls(
            start=options.get("start"),
            end=options.get("end"),
            rules=options.get("rules"),
            exceptions=options.get("exceptions"),
            max_years=options.get("max_years"),
        )

    def __repr__(self) -> str:
        return (
            f"Recurrence(start={self._start}, end={self._end}, "
            f"rules={list(self._rules.values())}, exceptions={len(self._exceptions)})"
        )

    # --- state ---------------------------------------------------------------
    @property
    def start(self) -> date | None:
        return self._start

    @property
    def end(self) -> date | None:
        return self._end

    @property
    def from_(self) -> date | None:
        return self._from

    @property
    def rules(self) -> tuple:
        return tuple(self._rules.values())

    @property
    def exceptions(self) -> tuple:
        return tuple(sorted(self._exceptions))

    def start_date(self, value=_MISSING):
        """Set the start date (None clears it) or, with no argument, return it."""
        if value is _MISSING:
            if self._start is None:
                raise DateNotSet("No start date defined for recurrence.")
            return self._start
        self._start = _opt_date(value)
        if self._start is not None:
            for m, rule in list(self._rules.items()):
                if isinstance(rule, IntervalRule):
                    self._rules[m] = rule.reanchor(self._start)
        return self

    def end_date(self, value=_MISSING):
        if value is _MISSING:
            if self._end is None:
                raise DateNotSet("No end date defined for recurrence.")
            return self._end
        self._end = _opt_date(value)
        return self

    def from_date(self, value=_MISSING):
        if value is _MISSING:
            if self._from is None:
                raise DateNotSet("No from date defined for recurrence.")
            return self._from
        self._from = _opt_date(value)
        return self

    def reverse(self, flag: bool = True) -> "Recurrence":
        self.reversed = bool(flag)
        return self

    def save(self) -> dict:
        """Plain-data export; Recurrence.from_options(r.save()) rebuilds it."""
        data: dict = {}
        if self._start is not None:
            data["start"] = self._start.isoformat()
        if self._end is not None:
            data["end"] = self._end.isoformat()
        data["exceptions"] = [d.isoformat() for d in self.exceptions]
        data["rules"] = [rule.to_dict() for rule in self._rules.values()]
        return data

    def repeats(self) -> bool:
        return bool(self._rules)

    def has_rule(self, measure) -> bool:
        return normalize_measure(measure) in self._rules

    def describe(self) -> str:
        if not self._rules:
            return "does not repeat"
        return " and ".join(rule.describe() for rule in self._rules.values())

    # --- builder -------------------------------------------------------------
    def every(self, units=None, measure=None) -> "Recurrence":
        """Stage units and/or measure; the rule is created once both are known."""
        if units is not None:
            self._units = units
        if measure is not None:
            self._measure = measure
        return self._trigger()

    def _trigger(self) -> "Recurrence":
        if self._measure is None:
            return self
        # staged units/measure survive a failure so the caller can fix and retry
        rule = make_rule(self._units, self._measure, self._start)
        if rule.measure == "weeksOfMonthByDay" and "daysOfWeek" not in self._rules:
            raise RuleDependencyUnmet("weeksOfMonthByDay must be combined with daysOfWeek")
        self._units = None
        self._measure = None
        self._add_rule(rule)
        return self

    def _add_rule(self, rule: Rule) -> None:
        # replacing a measure moves it to the end, like a fresh insert
        self._rules.pop(rule.measure, None)
        self._rules[rule.measure] = rule

    def except_(self, value) -> "Recurrence":
        """Exclude a date: matching always fails on it."""
        self._exceptions.add(cal.to_date(value))
        return self

    def forget(self, target, fmt: str | None = None) -> "Recurrence":
        """Drop a rule (by measure name) or an exception (by date)."""
        if target is None or (isinstance(target, str) and not target.strip()):
            raise InvalidForgetTarget(f"Invalid input for recurrence forget: {target!r}")
        if is_measure(target):
            self._rules.pop(normalize_measure(target), None)
            return self
        try:
            d = cal.to_date(target, fmt)
        except InvalidDate:
            raise InvalidForgetTarget(f"Invalid input for recurrence forget: {target!r}") from None
        self._exceptions.discard(d)
        return self

    def day(self, units=None):
        return self.every(units, "days")

    def days(self, units=None):
        return self.every(units, "days")

    def week(self, units=None):
        return self.every(units, "weeks")

    def weeks(self, units=None):
        return self.every(units, "weeks")

    def month(self, units=None):
        return self.every(units, "months")

    def months(self, units=None):
        return self.every(units, "months")

    def year(self, units=None):
        return self.every(units, "years")

    def years(self, units=None):
        return self.every(units, "years")

    def day_of_week(self, units=None):
        return self.every(units, "daysOfWeek")

    def days_of_week(self, units=None):
        return self.every(units, "daysOfWeek")

    def day_of_month(self, units=None):
        return self.every(units, "daysOfMonth")

    def days_of_month(self, units=None):
        return self.every(units, "daysOfMonth")

    def week_of_month(self, units=None):
        return self.every(units, "weeksOfMonth")

    def weeks_of_month(self, units=None):
        return self.every(units, "weeksOfMonth")

    def weeks_of_month_by_day(self, units=None):
        return self.every(units, "weeksOfMonthByDay")

    def week_of_year(self, units=None):
        return self.every(units, "weeksOfYear")

    def weeks_of_year(self, units=None):
        return self.every(units, "weeksOfYear")

    def month_of_year(self, units=None):
        return self.every(units, "monthsOfYear")

    def months_of_year(self, units=None):
        return self.every(units, "monthsOfYear")

    # --- matching ------------------------------------------------------------
    def in_range(self, d: date) -> bool:
        if self._start is not None and d < self._start:
            return False
        if self._end is not None and d > self._end:
            return False
        return True

    def is_exception(self, d: date) -> bool:
        return d in self._exceptions

    def matches(self, value, ignore_bounds: bool = False) -> bool:
        try:
            d = cal.to_date(value)
        except InvalidDate:
            raise InvalidDate(f"Invalid date supplied to match method: {value!r}") from None
        if not ignore_bounds and not self.in_range(d):
            return False
        if self.is_exception(d):
            return False
        return all(rule.matches(d) for rule in self._rules.values())

    # --- enumeration ---------------------------------------------------------
    def _origin(self) -> date:
        origin = self._from or self._start
        if origin is None:
            raise NoOrigin("Cannot get occurrences without start or from date.")
        return origin

    def cursor(self, reverse: bool | None = None, bounded: bool = False) -> RecurrenceCursor:
        """Enumeration cursor from the from/start date; checks preconditions."""
        origin = self._origin()
        if self._end is not None and (
            origin > self._end or (self._start is not None and self._start > self._end)
        ):
            raise RangeInverted("Start date cannot be later than end date.")
        direction = self.reversed if reverse is None else reverse
        return RecurrenceCursor(self, origin, reversed=direction, bounded=bounded)

    def __iter__(self):
        return self.cursor()

    def _occurrences(self, kind: str, num: int | None, fmt: str | None) -> list:
        self._origin()
        if kind == "all" and self._end is None:
            raise MissingEnd("Cannot get all occurrences without an end date.")
        cur = self.cursor(reverse=(kind == "previous"), bounded=(kind == "all"))

        if kind == "all":
            return core.fmt_dates(cur, fmt)
        if not num:
            return []

        dates: list[date] = []
        while len(dates) < num:
            d = cur.step()
            if d is None:
                break
            dates.append(d)
        return core.fmt_dates(dates, fmt)

    def next(self, num: int, fmt: str | None = None) -> list:
        """Next num matching dates after the from/start date."""
        return self._occurrences("next", num, fmt)

    def previous(self, num: int, fmt: str | None = None) -> list:
        """Previous num matching dates before the from/start date."""
        return self._occurrences("previous", num, fmt)

    def all(self, fmt: str | None = None) -> list:
        """Every matching date between the from/start date and the end date."""
        return self._occurrences("all", None, fmt)


def recur(start=None, end=None, **kwargs) -> Recurrence:
    """
    recur()                 -> empty recurrence
    recur(start)            -> with a start date
    recur(start, end)       -> with a start and end date
    recur({options})        -> from a saved options dict
    """
    if isinstance(start, dict):
        return Recurrence.from_options(start)
    return Recurrence(start=start, end=end, **kwargs)


# ------------------------------------------------------------------------------
# Options linting
# ------------------------------------------------------------------------------
def lint_options(options) -> tuple[str | None, list[str]]:
    """Validate a saved options dict without raising: (fatal, warnings)."""
    if not isinstance(options, dict):
        return ("Options must be a mapping with start/end/rules/exceptions.", [])
    try:
        rec = Recurrence.from_options(options)
    except RecurError as e:
        return (str(e), [])

    warnings: list[str] = []

    seen = set()
    for spec in options.get("rules") or []:
        m = normalize_measure(spec.get("measure")) if isinstance(spec, dict) else None
        if m in seen:
            warnings.append(f"Measure '{m}' appears more than once; the last rule wins.")
        seen.add(m)

    if rec.start is not None and rec.end is not None and rec.start > rec.end:
        warnings.append(f"Start {rec.start} is later than end {rec.end}; enumeration will fail.")

    outside = [d for d in rec.exceptions if not rec.in_range(d)]
    if outside:
        warnings.append(
            f"{len(outside)} exception date(s) fall outside the start/end window: "
            + ", ".join(d.isoformat() for d in outside[:5])
        )

    return None, warnings
