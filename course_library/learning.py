from __future__ import annotations

from datetime import date, datetime, timedelta


WEEK_DAYS = 7


def day_key(moment: datetime) -> str:
    """Calendar-day key (YYYY-MM-DD) used to bucket learning time."""
    return moment.date().isoformat()


def week_start_key(moment: datetime) -> str:
    start: date = moment.date() - timedelta(days=WEEK_DAYS)
    return start.isoformat()
