"""Due-date handling for extracted tasks.

The completion model is given the literal dates for today, tomorrow and the
day after tomorrow, but its arithmetic still drifts. ``correct_due_date``
re-anchors "tomorrow" / "day after tomorrow" from the user's own words and
hands everything else to the best-effort ``parse_due_date``.

All datetimes here are naive local time.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta

logger = logging.getLogger(__name__)

FLAG_AFTER_DAYS = 730

_ISO_RE = re.compile(
    r"^(\d{4})-(\d{2})-(\d{2})"
    r"(?:[T ](\d{2}):(\d{2})(?::(\d{2})(?:\.(\d+))?)?)?"
    r"(?:Z|[+-]\d{2}:?\d{2})?$"
)
_ISO_TIME_RE = re.compile(r"T(\d{2}):(\d{2})(?::(\d{2}))?")
_TIME_12H_RE = re.compile(r"(\d{1,2})(?::(\d{2}))?\s*(am|pm)")
_TIME_24H_RE = re.compile(r"(\d{1,2}):(\d{2})")
_DAYS_RE = re.compile(r"(\d+)\s*days?")

END_OF_DAY = time(23, 59, 59, 999_000)


@dataclass
class CorrectedDate:
    value: datetime | None
    corrected: bool = False
    flagged: bool = False


def extract_time_of_day(raw: str) -> time | None:
    """Return the time of day in *raw* (ISO ``THH:MM[:SS]``, ``3pm``, ``10:30am``, ``14:30``)."""
    iso = _ISO_TIME_RE.search(raw)
    if iso:
        return _safe_time(int(iso.group(1)), int(iso.group(2)), int(iso.group(3) or 0))

    lower = raw.lower()
    m12 = _TIME_12H_RE.search(lower)
    if m12:
        hours = int(m12.group(1))
        minutes = int(m12.group(2) or 0)
        if m12.group(3) == "pm" and hours != 12:
            hours += 12
        elif m12.group(3) == "am" and hours == 12:
            hours = 0
        return _safe_time(hours, minutes, 0)

    m24 = _TIME_24H_RE.search(lower)
    if m24:
        return _safe_time(int(m24.group(1)), int(m24.group(2)), 0)
    return None


def parse_due_date(raw: str | None, now: datetime | None = None) -> datetime | None:
    """Best-effort parse of a model-supplied due date.

    ISO strings first (accepted within ±2 years of *now*; a trailing ``Z`` is
    read as local time), then a relative keyword scan. Relative dates without
    an explicit time fall at the end of the day. Returns None when nothing
    matches.
    """
    if not raw or not raw.strip():
        return None
    now = now or datetime.now()
    text = raw.strip()

    m = _ISO_RE.match(text)
    if m:
        year = int(m.group(1))
        if abs(year - now.year) <= 2:
            try:
                day = date(year, int(m.group(2)), int(m.group(3)))
            except ValueError:
                day = None
            if day is not None:
                if m.group(4) is None:
                    return datetime.combine(day, END_OF_DAY)
                frac = (m.group(7) or "0")[:6].ljust(6, "0")
                t = _safe_time(int(m.group(4)), int(m.group(5)), int(m.group(6) or 0), int(frac))
                if t is not None:
                    return datetime.combine(day, t)

    lower = text.lower()
    explicit = extract_time_of_day(lower) if not m else None
    at = explicit or END_OF_DAY
    today = now.date()

    if "today" in lower:
        return datetime.combine(today, at)
    if "day after tomorrow" in lower:
        return datetime.combine(today + timedelta(days=2), at)
    if "tomorrow" in lower:
        return datetime.combine(today + timedelta(days=1), at)
    if "next week" in lower:
        return datetime.combine(today + timedelta(days=7), at)
    days = _DAYS_RE.search(lower)
    if days:
        return datetime.combine(today + timedelta(days=int(days.group(1))), at)

    logger.warning("Could not parse due date %r", raw)
    return None


def correct_due_date(
    raw: str | None,
    source_text: str,
    now: datetime | None = None,
) -> CorrectedDate:
    """Resolve the model's *raw* due date against the user's *source_text*.

    "day after tomorrow" (checked first) pins the date to today + 2 and
    "tomorrow" to today + 1, keeping the time of day from *raw* (midnight
    when it has none). Anything else goes through ``parse_due_date``.
    """
    if not raw or not raw.strip():
        return CorrectedDate(value=None)
    now = now or datetime.now()
    today = now.date()
    spoken = source_text.lower()

    anchor: date | None = None
    if "day after tomorrow" in spoken:
        anchor = today + timedelta(days=2)
    elif "tomorrow" in spoken:
        anchor = today + timedelta(days=1)

    if anchor is not None:
        value = datetime.combine(anchor, extract_time_of_day(raw) or time(0, 0, 0))
        if not raw.startswith(anchor.isoformat()):
            logger.info("Correcting due date %r to %s", raw, value.isoformat())
        return CorrectedDate(value=value, corrected=True, flagged=False)

    value = parse_due_date(raw, now)
    flagged = False
    if value is not None and abs((value.date() - today).days) > FLAG_AFTER_DAYS:
        flagged = True
        logger.warning(
            "Unusual due date %r parsed to %s (%d days from today)",
            raw,
            value.isoformat(),
            (value.date() - today).days,
        )
    return CorrectedDate(value=value, flagged=flagged)


def _safe_time(h: int, m: int, s: int, us: int = 0) -> time | None:
    try:
        return time(h, m, s, us)
    except ValueError:
        return None
