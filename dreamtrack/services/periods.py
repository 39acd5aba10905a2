"""
Period identifiers and calendar arithmetic.

Weeks are ISO weeks, identified as "YYYY-Www" (e.g. "2025-W43"), Monday to
Sunday. Months are identified as "YYYY-MM". A week belongs to the month of
its Monday; that is the month a monthly goal instance is counted against.

Template start dates may be given as a week id, a month id or an ISO date.
Ids are explicit period starts. A date that is not on a period boundary
starts at the NEXT boundary (a template created on a Wednesday begins the
following Monday), so nothing is ever expanded retroactively.
"""
from __future__ import annotations

import math
import re
from datetime import date, datetime, timedelta, timezone
from typing import Optional, Union

from dreamtrack.core.errors import ValidationError

_WEEK_RE = re.compile(r"^(\d{4})-W(\d{2})$")
_MONTH_RE = re.compile(r"^(\d{4})-(\d{2})$")

WEEKS_PER_MONTH = 4.33

DateLike = Union[date, datetime, str]


def utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)


def isoformat(moment: datetime) -> str:
    return moment.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------

def is_week_id(value: str) -> bool:
    return bool(_WEEK_RE.match(value or ""))


def is_month_id(value: str) -> bool:
    return bool(_MONTH_RE.match(value or ""))


def parse_week_id(week_id: str) -> date:
    """Return the Monday of an ISO week id."""
    m = _WEEK_RE.match(week_id or "")
    if not m:
        raise ValidationError(
            message=f"Invalid week id {week_id!r}; expected YYYY-Www.",
            details={"week_id": week_id},
        )
    try:
        return date.fromisocalendar(int(m.group(1)), int(m.group(2)), 1)
    except ValueError as exc:
        raise ValidationError(
            message=f"Week id {week_id!r} does not exist.",
            details={"week_id": week_id},
        ) from exc


def parse_month_id(month_id: str) -> tuple[int, int]:
    m = _MONTH_RE.match(month_id or "")
    if not m or not 1 <= int(m.group(2)) <= 12:
        raise ValidationError(
            message=f"Invalid month id {month_id!r}; expected YYYY-MM.",
            details={"month_id": month_id},
        )
    return int(m.group(1)), int(m.group(2))


def _to_date(value: DateLike) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00")).date()
    except (AttributeError, ValueError) as exc:
        raise ValidationError(
            message=f"Invalid date {value!r}.",
            details={"value": str(value)},
        ) from exc


# ---------------------------------------------------------------------------
# Weeks
# ---------------------------------------------------------------------------

def week_id_for(moment: DateLike) -> str:
    iso = _to_date(moment).isocalendar()
    return f"{iso[0]}-W{iso[1]:02d}"


def current_week_id(now: Optional[datetime] = None) -> str:
    return week_id_for(now or utcnow())


def week_range(week_id: str) -> tuple[date, date]:
    """(Monday, Sunday) of the week."""
    start = parse_week_id(week_id)
    return start, start + timedelta(days=6)


def next_week_id(week_id: str) -> str:
    return week_id_for(parse_week_id(week_id) + timedelta(days=7))


def weeks_between(start_week_id: str, end_week_id: str) -> int:
    """Whole weeks from start to end; negative when end precedes start."""
    delta = parse_week_id(end_week_id) - parse_week_id(start_week_id)
    return delta.days // 7


def weeks_in_range(start_week_id: str, end_week_id: str) -> list[str]:
    """Week ids from start (inclusive) up to end (exclusive)."""
    weeks = []
    current = parse_week_id(start_week_id)
    end = parse_week_id(end_week_id)
    while current < end:
        weeks.append(week_id_for(current))
        current += timedelta(days=7)
    return weeks


# ---------------------------------------------------------------------------
# Months
# ---------------------------------------------------------------------------

def month_id_for(moment: DateLike) -> str:
    d = _to_date(moment)
    return f"{d.year}-{d.month:02d}"


def month_id_of_week(week_id: str) -> str:
    return month_id_for(parse_week_id(week_id))


def months_between(start_month_id: str, end_month_id: str) -> int:
    sy, sm = parse_month_id(start_month_id)
    ey, em = parse_month_id(end_month_id)
    return (ey - sy) * 12 + (em - sm)


def months_to_weeks(months: int) -> int:
    return math.ceil(months * WEEKS_PER_MONTH)


# ---------------------------------------------------------------------------
# Template start boundaries
# ---------------------------------------------------------------------------

def first_week_of(start: DateLike) -> str:
    """First week a template starting at `start` is due in."""
    if isinstance(start, str) and is_week_id(start):
        parse_week_id(start)
        return start
    if isinstance(start, str) and is_month_id(start):
        year, month = parse_month_id(start)
        start = date(year, month, 1)
    d = _to_date(start)
    if d.weekday() != 0:
        d += timedelta(days=7 - d.weekday())
    return week_id_for(d)


def first_month_of(start: DateLike) -> str:
    """First month a monthly template starting at `start` is due in."""
    if isinstance(start, str) and is_month_id(start):
        parse_month_id(start)
        return start
    if isinstance(start, str) and is_week_id(start):
        return month_id_of_week(start)
    d = _to_date(start)
    if d.day != 1:
        d = (d.replace(day=1) + timedelta(days=32)).replace(day=1)
    return month_id_for(d)
