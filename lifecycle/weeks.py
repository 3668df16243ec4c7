# Copyright (c) 2026 Nenad Vasic. All rights reserved.
# Licensed under the Business Source License 1.1 (BSL-1.1)
# See LICENSE file in the project root for full license text.

"""
Week window calculator — ISO-8601 week ids and week arithmetic.

Weeks start on Monday; week 1 is the week holding the year's first
Thursday. Week ids look like "2025-W47". Everything here is pure.
"""

import math
import re
from datetime import date, datetime, time, timedelta
from typing import List, Optional, Tuple, Union

from lifecycle.schemas import InvalidWeekId, LifecycleValidationError

WEEK_ID_RE = re.compile(r"^(\d{4})-W(\d{2})$")

# 52 weeks / 12 months
WEEKS_PER_MONTH = 4.33

DateLike = Union[date, datetime, str]


def format_week_id(year: int, week: int) -> str:
    return f"{year}-W{week:02d}"


def parse_week_id(week_id: str) -> Tuple[int, int]:
    """Split "YYYY-Www" into (year, week). Raises InvalidWeekId."""
    if not isinstance(week_id, str):
        raise InvalidWeekId(f"Week id must be a string, got {type(week_id).__name__}")
    match = WEEK_ID_RE.match(week_id)
    if not match:
        raise InvalidWeekId(f"Malformed week id {week_id!r} (expected YYYY-Www)")
    year, week = int(match.group(1)), int(match.group(2))
    try:
        date.fromisocalendar(year, week, 1)
    except ValueError:
        raise InvalidWeekId(f"Week {week} does not exist in ISO year {year}") from None
    return year, week


def iso_week_of(day: DateLike) -> str:
    """Week id containing the given day."""
    d = _to_date(day)
    year, week, _ = d.isocalendar()
    return format_week_id(year, week)


def current_iso_week(now: Optional[DateLike] = None) -> str:
    """Week id for `now` (default: local today)."""
    return iso_week_of(now if now is not None else date.today())


def week_monday(week_id: str) -> date:
    year, week = parse_week_id(week_id)
    return date.fromisocalendar(year, week, 1)


def week_bounds(week_id: str) -> Tuple[datetime, datetime]:
    """(Monday 00:00:00, Sunday 23:59:59) of the week."""
    monday = week_monday(week_id)
    sunday = monday + timedelta(days=6)
    return (
        datetime.combine(monday, time.min),
        datetime.combine(sunday, time(23, 59, 59)),
    )


def week_dates(week_id: str) -> Tuple[str, str]:
    """ISO dates of Monday and Sunday, as stored on week documents."""
    start, end = week_bounds(week_id)
    return start.date().isoformat(), end.date().isoformat()


def next_week_id(week_id: str) -> str:
    return iso_week_of(week_monday(week_id) + timedelta(days=7))


def weeks_between(start_week_id: str, end_week_id: str) -> List[str]:
    """Week ids from start (inclusive) up to end (exclusive)."""
    current = week_monday(start_week_id)
    end = week_monday(end_week_id)
    weeks = []
    while current < end:
        weeks.append(iso_week_of(current))
        current += timedelta(days=7)
    return weeks


def month_id(week_id: str) -> str:
    """Month id ("YYYY-MM") of the week's Monday."""
    monday = week_monday(week_id)
    return f"{monday.year}-{monday.month:02d}"


def months_to_weeks(months: int) -> int:
    return math.ceil(months * WEEKS_PER_MONTH)


def weeks_until(target_date: DateLike, from_week_id: str) -> int:
    """
    Whole weeks from the start of `from_week_id` to `target_date`.

    Rounded up while the target lies ahead (a deadline later this week
    counts as one week away, on Monday itself as 0) and down once it has
    passed, so any date before the week's Monday is negative.
    """
    target = _to_date(target_date)
    days = (target - week_monday(from_week_id)).days
    if days >= 0:
        return math.ceil(days / 7)
    return math.floor(days / 7)


def _to_date(value: DateLike) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value.replace("Z", "+00:00")).date()
        except ValueError:
            raise LifecycleValidationError(f"Unparseable date {value!r}") from None
    raise LifecycleValidationError(f"Expected a date, got {type(value).__name__}")
