from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from typing import TYPE_CHECKING, Optional
from zoneinfo import ZoneInfo

from apscheduler.triggers.cron import CronTrigger

from config import get_settings

if TYPE_CHECKING:  # pragma: no cover
    from frequency import Frequency


def local_today() -> date:
    settings = get_settings()
    tz = ZoneInfo(settings.timezone)
    return datetime.now(tz).date()


def days_in_month(year: int, month: int) -> int:
    if month == 12:
        next_month = date(year + 1, 1, 1)
    else:
        next_month = date(year, month + 1, 1)
    return (next_month - date(year, month, 1)).days


def add_months(base: date, months: int) -> date:
    """Advance by calendar months, snapping to the month end when the day
    does not exist in the target month (Jan 31 + 1 month -> Feb 28/29)."""
    total_months = base.month - 1 + months
    year = base.year + total_months // 12
    month = total_months % 12 + 1
    return date(year, month, min(base.day, days_in_month(year, month)))


@dataclass(frozen=True)
class RecurrencePattern:
    frequency: "Frequency"
    start_date: date
    end_date: Optional[date] = None
    max_occurrences: Optional[int] = None
    custom_cron: Optional[str] = None


@dataclass(frozen=True)
class NextOccurrence:
    date: date
    occurrence_number: int
    is_last: bool


def validate_cron_expression(expression: str) -> bool:
    if len(expression.split()) != 5:
        return False
    try:
        CronTrigger.from_crontab(expression)
    except ValueError:
        return False
    return True


def validate_pattern(pattern: RecurrencePattern, today: Optional[date] = None) -> bool:
    today = today or local_today()
    if pattern.frequency is None or pattern.start_date is None:
        return False
    if pattern.start_date < today:
        return False
    if pattern.end_date and pattern.end_date <= pattern.start_date:
        return False
    if pattern.max_occurrences is not None and pattern.max_occurrences <= 0:
        return False
    if pattern.custom_cron and not validate_cron_expression(pattern.custom_cron):
        return False
    return True


def occurrence_count(pattern: RecurrencePattern, up_to: date) -> int:
    if up_to < pattern.start_date:
        return 0
    if pattern.end_date and up_to > pattern.end_date:
        up_to = pattern.end_date

    count = 0
    current = pattern.start_date
    while current <= up_to:
        count += 1
        if pattern.max_occurrences and count >= pattern.max_occurrences:
            break
        current = pattern.frequency.next_occurrence(current)
    return count


def _is_last(pattern: RecurrencePattern, on: date, occurrence_number: int) -> bool:
    if pattern.max_occurrences and occurrence_number >= pattern.max_occurrences:
        return True
    if pattern.end_date:
        return pattern.frequency.next_occurrence(on) > pattern.end_date
    return False


def next_occurrence(
    pattern: RecurrencePattern, current: date, today: Optional[date] = None
) -> Optional[NextOccurrence]:
    if not validate_pattern(pattern, today):
        raise ValueError("Invalid recurrence pattern")

    count = occurrence_count(pattern, current)
    if pattern.max_occurrences and count >= pattern.max_occurrences:
        return None
    if pattern.end_date and current >= pattern.end_date:
        return None

    occurrence_number = count + 1
    if occurrence_number == 1:
        next_date = pattern.start_date
    else:
        next_date = pattern.frequency.next_occurrence(current)

    if pattern.end_date and next_date > pattern.end_date:
        return None

    return NextOccurrence(
        date=next_date,
        occurrence_number=occurrence_number,
        is_last=_is_last(pattern, next_date, occurrence_number),
    )


def future_occurrences(
    pattern: RecurrencePattern, limit: int = 12, today: Optional[date] = None
) -> list[date]:
    if not validate_pattern(pattern, today):
        raise ValueError("Invalid recurrence pattern")

    occurrences: list[date] = []
    current = pattern.start_date
    while len(occurrences) < limit:
        if pattern.max_occurrences and len(occurrences) >= pattern.max_occurrences:
            break
        if pattern.end_date and current > pattern.end_date:
            break
        occurrences.append(current)
        current = pattern.frequency.next_occurrence(current)
    return occurrences


def total_amount(
    frequency: "Frequency", amount: float, start_date: date, end_date: date
) -> float:
    pattern = RecurrencePattern(
        frequency=frequency, start_date=start_date, end_date=end_date
    )
    return amount * occurrence_count(pattern, end_date)
