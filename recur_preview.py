#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
recur-preview: build a recurrence from the command line (or a saved options
file) and show its dates.

    recur-preview --start 2014-01-01 --every 2:days --next 5
    recur-preview --start 2017-01-01 --every Wednesday:daysOfWeek --every 3:weeksOfMonthByDay --next 4
    recur-preview --options saved.json --all --json
    recur-preview --start 2014-01-01 --interactive --explain
"""
from __future__ import annotations

import argparse
import json
import sys
from datetime import date

from rich.console import Console
from rich.table import Table
from rich.panel import Panel
from rich import box

from prompt_toolkit import prompt
from prompt_toolkit.completion import FuzzyCompleter, WordCompleter

import recur_calendar as cal
import recur_core as core
from recur import Recurrence, lint_options
from recur_core import RecurError
from recur_rules import MEASURES


# ──────────────────────────────────────────────────────────────────────────────
# Constants / styling
# ──────────────────────────────────────────────────────────────────────────────
console = Console()

COLORS = {
    'primary': 'bright_cyan',
    'secondary': 'bright_blue',
    'success': 'green',
    'warning': 'bright_yellow',
    'error': 'bright_red',
    'muted': 'grey58',
    'accent': 'bright_magenta',
}


# ──────────────────────────────────────────────────────────────────────────────
# Building
# ──────────────────────────────────────────────────────────────────────────────
def parse_every(text: str) -> tuple[list, str]:
    """'2:days' / 'Sunday,Monday:daysOfWeek' / 'last:daysOfMonth' -> (units, measure)."""
    units, sep, measure = str(text).rpartition(":")
    if not sep or not units.strip() or not measure.strip():
        raise argparse.ArgumentTypeError(f"expected UNITS:MEASURE, got {text!r}")
    return [u.strip() for u in units.split(",") if u.strip()], measure.strip()


def _read_options(path: str) -> dict:
    if path == "-":
        return json.load(sys.stdin)
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)


def build_recurrence(args) -> Recurrence:
    if args.options:
        options = _read_options(args.options)
        fatal, warnings = lint_options(options)
        for w in warnings:
            core.diag(f"options: {w}", source="recur-preview")
        if fatal:
            raise RecurError(fatal)
        rec = Recurrence.from_options(options)
    else:
        rec = Recurrence()

    if args.max_years:
        rec.max_years = args.max_years
    if args.start:
        rec.start_date(args.start)
    if args.end:
        rec.end_date(args.end)
    if args.from_:
        rec.from_date(args.from_)
    for units, measure in args.every or []:
        rec.every(units, measure)
    for d in args.except_ or []:
        rec.except_(d)
    return rec


def build_interactively(rec: Recurrence) -> Recurrence:
    """Add rules one by one: pick a measure (fuzzy), then type its units."""
    completer = FuzzyCompleter(WordCompleter(list(MEASURES), match_middle=True))
    console.print(Panel("🔁 Pick a measure (fuzzy search), empty line to finish.",
                        title="Rule Builder", border_style=COLORS['primary']))
    while True:
        try:
            measure = prompt("measure ❯ ", completer=completer).strip()
            if not measure:
                return rec
            raw = prompt("units ❯ ").strip()
            units = [u.strip() for u in raw.split(",") if u.strip()]
            rec.every(units, measure)
            console.print(f"[{COLORS['success']}]Added[/] {rec.rules[-1].describe()}")
        except RecurError as e:
            console.print(f"[{COLORS['error']}]{e}[/]")
        except KeyboardInterrupt:
            console.print(f"\n[{COLORS['warning']}]Cancelled by user[/]")
            return rec


# ──────────────────────────────────────────────────────────────────────────────
# Rendering
# ──────────────────────────────────────────────────────────────────────────────
def _plain(args) -> bool:
    return bool(args.plain) or core.PANEL_MODE == "plain"


def _render_dates(title: str, dates: list[date], args) -> None:
    fmt = args.format or core.DATE_FORMAT
    if args.json:
        print(json.dumps([core.fmt_date(d, fmt) for d in dates]))
        return
    if _plain(args):
        for d in dates:
            print(core.fmt_date(d, fmt))
        return
    if not dates:
        console.print(Panel(f"[{COLORS['muted']}]No matching dates.[/]", title=title,
                            border_style=COLORS['warning'], expand=False))
        return
    table = Table(box=box.SIMPLE, show_header=True, header_style="bold", padding=(0, 1))
    table.add_column("#", justify="right", style=COLORS['muted'])
    table.add_column("Date", style=COLORS['primary'])
    table.add_column("Day", style=COLORS['secondary'])
    for i, d in enumerate(dates, 1):
        table.add_row(str(i), core.fmt_date(d, fmt), cal.DAY_NAMES[cal.day_of_week(d)])
    console.print(Panel(table, title=title, border_style=COLORS['secondary'], expand=False))


def _render_match(rec: Recurrence, value: str, args) -> None:
    d = cal.to_date(value)
    ok = rec.matches(d)
    if args.json:
        print(json.dumps({"date": d.isoformat(), "matches": ok}))
    elif _plain(args):
        print(f"{d.isoformat()} {'matches' if ok else 'does not match'}")
    elif ok:
        console.print(f"[{COLORS['success']}]MATCH[/] {d.isoformat()}")
    else:
        console.print(f"[{COLORS['error']}]NO MATCH[/] {d.isoformat()}")


def _explain(rec: Recurrence, args) -> None:
    fmt = args.format or core.DATE_FORMAT
    upcoming: list[date] = []
    if rec.start is not None or rec.from_ is not None:
        upcoming = rec.next(core.PREVIEW_COUNT)

    info = {
        "description": rec.describe(),
        "start": rec.start.isoformat() if rec.start else None,
        "end": rec.end.isoformat() if rec.end else None,
        "exceptions": [d.isoformat() for d in rec.exceptions],
        "next": [core.fmt_date(d, fmt) for d in upcoming],
    }
    if args.json:
        print(json.dumps(info))
        return
    if _plain(args):
        for key, val in info.items():
            if isinstance(val, list):
                val = ", ".join(val)
            print(f"{key}: {val or '-'}")
        return

    table = Table(box=box.SIMPLE, show_header=False, padding=(0, 1))
    table.add_row("Rules", info["description"])
    table.add_row("Start", info["start"] or "—")
    table.add_row("End", info["end"] or "—")
    if info["exceptions"]:
        table.add_row("Except", ", ".join(info["exceptions"]))
    if info["next"]:
        table.add_row("Next", "\n".join(f"{i}. {d}" for i, d in enumerate(info["next"], 1)))
    console.print(Panel(table, title="Recurrence explain", border_style=COLORS['secondary'], expand=False))


# ──────────────────────────────────────────────────────────────────────────────
# CLI
# ──────────────────────────────────────────────────────────────────────────────
def _parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="recur-preview",
        description="Preview the dates of a recurrence",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--options", metavar="FILE", help="Load a saved recurrence (JSON); '-' reads stdin")
    parser.add_argument("--start", metavar="DATE", help="Start date")
    parser.add_argument("--end", metavar="DATE", help="End date")
    parser.add_argument("--from", dest="from_", metavar="DATE", help="Enumerate from this date instead of start")
    parser.add_argument("--every", action="append", type=parse_every, metavar="UNITS:MEASURE",
                        help="Add a rule, e.g. 2:days or Sunday,Monday:daysOfWeek (repeatable)")
    parser.add_argument("--except", dest="except_", action="append", metavar="DATE",
                        help="Exclude a date (repeatable)")
    parser.add_argument("--max-years", type=int, default=None, help="Search horizon in years")

    action = parser.add_mutually_exclusive_group(required=True)
    action.add_argument("--next", type=int, metavar="N", help="Show the next N dates")
    action.add_argument("--previous", type=int, metavar="N", help="Show the previous N dates")
    action.add_argument("--all", action="store_true", help="Show every date up to the end date")
    action.add_argument("--matches", metavar="DATE", help="Check whether a date matches")
    action.add_argument("--save", action="store_true", help="Print the recurrence as JSON options")
    action.add_argument("--explain", action="store_true", help="Describe the rules and upcoming dates")

    parser.add_argument("--format", metavar="FMT", help="strftime pattern for dates")
    parser.add_argument("--json", action="store_true", help="JSON output")
    parser.add_argument("--plain", action="store_true", help="Plain text output (no panels)")
    parser.add_argument("--interactive", action="store_true", help="Add rules interactively")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = _parser().parse_args(argv)

    try:
        rec = build_recurrence(args)
        if args.interactive:
            rec = build_interactively(rec)

        if args.save:
            print(json.dumps(rec.save(), indent=2))
        elif args.explain:
            _explain(rec, args)
        elif args.matches:
            _render_match(rec, args.matches, args)
        elif args.all:
            _render_dates("All dates", rec.all(), args)
        elif args.previous is not None:
            _render_dates(f"Previous {args.previous}", rec.previous(args.previous), args)
        else:
            _render_dates(f"Next {args.next}", rec.next(args.next), args)
    except RecurError as e:
        core.diag(f"{type(e).__name__}: {e}", source="recur-preview")
        console.print(f"[{COLORS['error']}]Error:[/] {e}")
        return 1
    except (OSError, json.JSONDecodeError) as e:
        console.print(f"[{COLORS['error']}]Failed to read options: {e}[/]")
        return 1
    return 0


if __name__ == '__main__':
    sys.exit(main())
