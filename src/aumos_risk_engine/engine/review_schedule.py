"""Review cadence arithmetic for risk management systems."""

import calendar
from datetime import datetime

from aumos_risk_engine.core.models import ReviewCycle

REVIEW_CYCLE_MONTHS: dict[ReviewCycle, int] = {
    ReviewCycle.MONTHLY: 1,
    ReviewCycle.QUARTERLY: 3,
    ReviewCycle.SEMI_ANNUAL: 6,
    ReviewCycle.ANNUAL: 12,
}


def add_months(moment: datetime, months: int) -> datetime:
    """Shift a timestamp by whole calendar months, clamping the day to the month's end."""
    month_index = moment.month - 1 + months
    year = moment.year + month_index // 12
    month = month_index % 12 + 1
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


def next_review_date(from_date: datetime, cycle: ReviewCycle) -> datetime:
    """Return the date the next review is due for a cycle starting at ``from_date``."""
    return add_months(from_date, REVIEW_CYCLE_MONTHS[cycle])


def is_review_overdue(next_review: datetime | None, now: datetime) -> bool:
    return next_review is not None and next_review < now
