#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Shared core for the recur rules engine: config, diagnostics, errors.

"""
from __future__ import annotations
import os, sys
import json, time
from datetime import date


# ==============================================================================
# TABLE OF CONTENTS (major sections)
# 1) Config & defaults
# 2) Diagnostics (diag, JSONL log)
# 3) Errors
# 4) Formatting helpers
# ==============================================================================


# ==============================================================================
# SECTION: Config & defaults
# ==============================================================================
# --- TOML loading helpers ---


try:
    import tomllib  # Python 3.11+
except ImportError:
    import tomli as tomllib  # Python 3.10 and earlier (pip install tomli)


# --- Defaults ---
_DEFAULTS = {
    "max_years": 1000,          # search horizon for unbounded rule searches
    "date_format": "%Y-%m-%d",
    "preview_count": 5,
    "panel_mode": "rich",       # rich | plain
}

# --- Config cache ---
_CONF_CACHE = None

_CONFIG_NAMES = ("config-recur.toml", "recur.toml")


def _read_toml(path: str) -> dict:
    # Fast path: missing file => no config here
    if not path or not os.path.isfile(path):
        return {}

    env_path = os.environ.get("RECUR_CONFIG") or ""
    env_abs = os.path.abspath(os.path.expanduser(env_path)) if env_path else ""
    is_env_path = bool(env_abs and path == env_abs)

    try:
        with open(path, "rb") as f:
            return tomllib.load(f) or {}
    except (OSError, tomllib.TOMLDecodeError) as e:
        if is_env_path:
            raise RuntimeError(f"RECUR_CONFIG parse failed for {path}: {e}")
        diag(f"Failed to parse TOML: {path}: {e}")
        return {}


def _config_paths() -> list[str]:
    env_path = os.environ.get("RECUR_CONFIG")
    if env_path:
        ap = os.path.abspath(os.path.expanduser(env_path))
        if (not os.path.exists(ap)) or os.path.isdir(ap):
            diag(f"RECUR_CONFIG path missing; using defaults. RECUR_CONFIG={env_path}")
        return [ap]

    def _candidates_in_dir(d: str) -> list[str]:
        d = os.path.abspath(os.path.expanduser(d))
        return [os.path.join(d, name) for name in _CONFIG_NAMES]

    paths: list[str] = []

    # module-adjacent
    moddir = os.path.dirname(os.path.abspath(__file__))
    paths.extend(_candidates_in_dir(moddir))

    # XDG config (explicit, then default)
    xdg = os.environ.get("XDG_CONFIG_HOME")
    if xdg:
        paths.extend(_candidates_in_dir(os.path.join(xdg, "recur")))
    paths.extend(_candidates_in_dir("~/.config/recur"))

    seen = set()
    out = []
    for p in paths:
        if p in seen:
            continue
        seen.add(p)
        out.append(p)

    if os.environ.get("RECUR_DIAG") == "1":
        diag("Config search order:\n" + "\n".join(f"  - {p}" for p in out))

    return out


def _normalize_keys(d: dict) -> dict:
    # allow users to write keys in any case
    return {str(k).strip().lower(): v for k, v in (d or {}).items()}


def _load_config() -> dict:
    cfg = dict(_DEFAULTS)
    for path in _config_paths():
        data = _read_toml(path)
        if data:
            cfg.update(_normalize_keys(data))
            diag(f"Loaded config: {path}")
            break
    return cfg


def _get_config() -> dict:
    global _CONF_CACHE
    if _CONF_CACHE is None:
        _CONF_CACHE = _load_config()
    return _CONF_CACHE


def reload_config() -> dict:
    """Drop the cached config and re-read it (tests, long-lived processes)."""
    global _CONF_CACHE, _CONF
    _CONF_CACHE = None
    _CONF = _get_config()
    _apply_config()
    return _CONF


def _conf_raw(key: str):
    return _CONF.get(key)


def _conf_str(key: str, default: str) -> str:
    v = _conf_raw(key)
    if v is None:
        return str(default)
    s = str(v).strip()
    return s if s else str(default)


def _conf_int(
    key: str,
    default: int,
    min_value: int | None = None,
    max_value: int | None = None,
) -> int:
    v = _conf_raw(key)
    try:
        out = int(str(v).strip())
    except (TypeError, ValueError):
        out = int(default)
    if min_value is not None and out < min_value:
        out = int(min_value)
    if max_value is not None and out > max_value:
        out = int(max_value)
    return out


def _apply_config() -> None:
    global MAX_YEARS, DATE_FORMAT, PREVIEW_COUNT, PANEL_MODE
    MAX_YEARS = _conf_int("max_years", _DEFAULTS["max_years"], min_value=1, max_value=5000)
    DATE_FORMAT = _conf_str("date_format", _DEFAULTS["date_format"])
    PREVIEW_COUNT = _conf_int("preview_count", _DEFAULTS["preview_count"], min_value=1, max_value=10000)
    PANEL_MODE = _conf_str("panel_mode", _DEFAULTS["panel_mode"]).lower()
    if PANEL_MODE not in ("rich", "plain"):
        PANEL_MODE = "rich"


# ==============================================================================
# SECTION: Diagnostics (diag, JSONL log)
# ==============================================================================
def _diag_log_path() -> str:
    p = os.environ.get("RECUR_DIAG_LOG_PATH")
    if p:
        return os.path.abspath(os.path.expanduser(p))
    return os.path.join(os.path.expanduser("~/.cache/recur"), "diag.jsonl")


def diag_log(msg, source: str = "recur") -> None:
    """Append a JSONL diagnostic log entry (when RECUR_DIAG_LOG=1)."""
    if os.environ.get("RECUR_DIAG_LOG") != "1":
        return
    path = _diag_log_path()
    try:
        max_bytes = int(os.environ.get("RECUR_DIAG_LOG_MAX_BYTES") or 262144)
    except ValueError:
        max_bytes = 262144
    try:
        parent = os.path.dirname(path)
        if parent:
            os.makedirs(parent, exist_ok=True)
        if max_bytes > 0 and os.path.exists(path) and os.stat(path).st_size > max_bytes:
            os.replace(path, path.replace(".jsonl", f".overflow.{int(time.time())}.jsonl"))
        payload = {
            "ts": time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime()),
            "source": source,
            "pid": os.getpid(),
        }
        if isinstance(msg, dict):
            payload["msg"] = str(msg.get("msg") or msg.get("message") or "")
            payload["data"] = msg
        else:
            payload["msg"] = str(msg)
        with open(path, "a", encoding="utf-8") as f:
            f.write(json.dumps(payload, ensure_ascii=False, separators=(",", ":"), default=str) + "\n")
    except OSError:
        pass


def diag(msg, source: str = "recur") -> None:
    """Write diagnostics to stderr when RECUR_DIAG=1 and append to diag log when RECUR_DIAG_LOG=1."""
    if os.environ.get("RECUR_DIAG") == "1":
        try:
            sys.stderr.write(f"[{source}] {msg}\n")
        except (OSError, ValueError):
            pass
    diag_log(msg, source)


# ==============================================================================
# SECTION: Errors
# ==============================================================================
class RecurError(Exception):
    pass


class InvalidUnit(RecurError):
    """Malformed rule unit (non-integral, unknown name, missing)."""


class OutOfRange(RecurError):
    """Calendar unit outside the measure's domain."""


class InvalidMeasure(RecurError):
    pass


class MissingAnchor(RecurError):
    """Interval rule requested without a start date."""


class RuleDependencyUnmet(RecurError):
    """weeksOfMonthByDay requested without a daysOfWeek rule."""


class InvalidDate(RecurError):
    pass


class DateNotSet(RecurError):
    pass


class NoOrigin(RecurError):
    pass


class MissingEnd(RecurError):
    pass


class RangeInverted(RecurError):
    pass


class SearchExhausted(RecurError):
    """A rule found no match before the search horizon. Ends enumeration."""


class InvalidForgetTarget(RecurError):
    pass


# ==============================================================================
# SECTION: Formatting helpers
# ==============================================================================
def fmt_date(d: date, fmt: str | None = None) -> str:
    """Format a date with strftime; ISO when no pattern is given."""
    if fmt:
        return d.strftime(fmt)
    return d.isoformat()


def fmt_dates(dates, fmt: str | None = None) -> list:
    if not fmt:
        return list(dates)
    return [d.strftime(fmt) for d in dates]


def ordinal(n: int) -> str:
    if 10 <= (n % 100) <= 20:
        suf = "th"
    else:
        suf = {1: "st", 2: "nd", 3: "rd"}.get(n % 10, "th")
    return f"{n}{suf}"


_CONF = _get_config()
MAX_YEARS = _DEFAULTS["max_years"]
DATE_FORMAT = _DEFAULTS["date_format"]
PREVIEW_COUNT = _DEFAULTS["preview_count"]
PANEL_MODE = _DEFAULTS["panel_mode"]
_apply_config()
