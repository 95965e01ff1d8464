#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Recur Preview Tests
 - Drives recur_preview.main() with argument lists
 - Checks JSON / plain output, options files, exit codes

Run:
  python3 recur_preview_tests.py
Optional:
  python3 recur_preview_tests.py --only json --verbose
"""

import importlib
import io
import json
import sys, os
import tempfile
from contextlib import redirect_stdout

ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, ROOT)

preview = importlib.import_module("recur_preview")
core = importlib.import_module("recur_core")

# -------- Helpers -------------------------------------------------------------

def expect(cond, msg):
    if not cond:
        raise AssertionError(msg)

def run(*argv):
    buf = io.StringIO()
    with redirect_stdout(buf):
        code = preview.main(list(argv))
    return code, buf.getvalue()

def usage_exit(*argv):
    buf = io.StringIO()
    try:
        with redirect_stdout(buf):
            preview.main(list(argv))
    except SystemExit as e:
        return e.code
    raise AssertionError(f"expected a usage error for {argv}")

# -------- Test cases ----------------------------------------------------------

def test_parse_every():
    expect(preview.parse_every("2:days") == (["2"], "days"), "2:days")
    got = preview.parse_every("Sunday,Monday:daysOfWeek")
    expect(got == (["Sunday", "Monday"], "daysOfWeek"), f"names: {got}")
    try:
        preview.parse_every("2days")
        raise AssertionError("missing ':' must be rejected")
    except preview.argparse.ArgumentTypeError:
        pass

def test_next_json():
    code, out = run("--start", "2014-01-01", "--every", "2:days", "--next", "3", "--json")
    expect(code == 0, f"exit {code}")
    expect(json.loads(out) == ["2014-01-03", "2014-01-05", "2014-01-07"], out)

def test_previous_plain():
    code, out = run("--start", "2014-01-01", "--every", "2:days", "--previous", "2", "--plain")
    expect(code == 0, f"exit {code}")
    expect(out.split() == ["2013-12-30", "2013-12-28"], out)

def test_all_with_format():
    code, out = run("--start", "2014-01-01", "--end", "2014-01-07", "--every", "2:days",
                    "--all", "--json", "--format", "%d.%m.%Y")
    expect(code == 0, f"exit {code}")
    expect(json.loads(out) == ["01.01.2014", "03.01.2014", "05.01.2014", "07.01.2014"], out)

def test_calendar_rules_and_except():
    code, out = run("--start", "2013-01-01", "--every", "Sunday:daysOfWeek", "--every", "0,2:weeksOfMonthByDay",
                    "--except", "2013-01-20", "--next", "2", "--json")
    expect(code == 0, f"exit {code}")
    expect(json.loads(out) == ["2013-01-06", "2013-02-03"], out)

def test_matches_json():
    code, out = run("--start", "2014-01-01", "--every", "2:days", "--matches", "2014-01-03", "--json")
    expect(code == 0 and json.loads(out) == {"date": "2014-01-03", "matches": True}, out)
    code, out = run("--start", "2014-01-01", "--every", "2:days", "--matches", "2014-01-04", "--json")
    expect(code == 0 and json.loads(out)["matches"] is False, out)

def test_save_then_load_options():
    code, out = run("--start", "2014-01-01", "--end", "2014-01-10", "--every", "3:days",
                    "--except", "2014-01-04", "--save")
    expect(code == 0, f"exit {code}")
    saved = json.loads(out)
    expect(saved["rules"] == [{"units": [3], "measure": "days"}], f"saved rules: {saved}")

    fd, path = tempfile.mkstemp(suffix=".json")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(saved, f)
        code, out = run("--options", path, "--all", "--json")
        expect(code == 0, f"exit {code}")
        expect(json.loads(out) == ["2014-01-01", "2014-01-07", "2014-01-10"], out)
    finally:
        os.unlink(path)

def test_explain_json():
    code, out = run("--start", "2014-01-01", "--every", "2:days", "--explain", "--json")
    expect(code == 0, f"exit {code}")
    info = json.loads(out)
    expect(info["description"] == "every 2 days", info)
    expect(len(info["next"]) == core.PREVIEW_COUNT, info)
    expect(info["next"][0] == "2014-01-03", info)

def test_rich_table():
    old = core.PANEL_MODE
    core.PANEL_MODE = "rich"
    try:
        with preview.console.capture() as capture:
            code = preview.main(["--start", "2014-01-01", "--every", "2:days", "--next", "2"])
    finally:
        core.PANEL_MODE = old
    out = capture.get()
    expect(code == 0, f"exit {code}")
    expect("2014-01-03" in out and "Friday" in out, out)

def test_recur_error_exit_code():
    code, _ = run("--every", "2:days", "--next", "3", "--plain")
    expect(code == 1, "interval without start must exit 1")
    code, _ = run("--start", "2014-01-01", "--every", "2:days", "--all", "--plain")
    expect(code == 1, "all without end must exit 1")

def test_bad_options_file():
    fd, path = tempfile.mkstemp(suffix=".json")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump({"rules": [{"units": 1, "measure": "fortnights"}]}, f)
        code, _ = run("--options", path, "--next", "1")
        expect(code == 1, f"invalid options must exit 1, got {code}")
    finally:
        os.unlink(path)

def test_usage_errors():
    expect(usage_exit("--start", "2014-01-01") == 2, "an action is required")
    expect(usage_exit("--every", "2days", "--next", "1") == 2, "bad --every")
    expect(usage_exit("--next", "1", "--all") == 2, "actions are exclusive")


TESTS = [
    test_parse_every,
    test_next_json,
    test_previous_plain,
    test_all_with_format,
    test_calendar_rules_and_except,
    test_matches_json,
    test_save_then_load_options,
    test_explain_json,
    test_rich_table,
    test_recur_error_exit_code,
    test_bad_options_file,
    test_usage_errors,
]

def main():
    import argparse
    ap = argparse.ArgumentParser()
    ap.add_argument("--only", help="substring filter for test names")
    ap.add_argument("--verbose", action="store_true")
    args = ap.parse_args()

    selected = TESTS
    if args.only:
        selected = [fn for fn in TESTS if args.only.lower() in fn.__name__.lower()]

    fails = 0
    for fn in selected:
        try:
            fn()
            if args.verbose:
                print(f"✓ {fn.__name__}")
        except AssertionError as e:
            fails += 1
            print(f"✗ {fn.__name__}: {e}")
        except Exception as e:
            fails += 1
            print(f"✗ {fn.__name__}: unexpected error {e}")

    total = len(selected)
    print(f"\nDone: {total - fails}/{total} passing")
    sys.exit(1 if fails else 0)

if __name__ == "__main__":
    main()
