from __future__ import annotations

from datetime import date, timedelta
from enum import Enum
from typing import Optional, Union

from apscheduler.triggers.cron import CronTrigger

from recurrence import add_months


class InvalidFrequencyError(ValueError):
    pass


class Frequency(str, Enum):
    daily = "daily"
    week = "week"
    fortnight = "fortnight"
    month = "month"
    two_month = "2-month"
    three_month = "3-month"
    quarter = "quarter"
    half = "half"
    year = "year"
    two_year = "2-year"

    @classmethod
    def from_string(cls, value: str) -> "Frequency":
        try:
            return cls(value)
        except ValueError:
            raise InvalidFrequencyError(f"Invalid frequency: {value}") from None

    @classmethod
    def labels(cls) -> list[dict[str, str]]:
        return [{"value": member.value, "label": member.display_label} for member in cls]

    @property
    def display_label(self) -> str:
        return _DISPLAY_LABELS[self]

    @property
    def cron_expression(self) -> str:
        return _CRON_EXPRESSIONS[self]

    def cron_trigger(self, timezone: Optional[str] = None) -> CronTrigger:
        minute, hour, day, month, day_of_week = self.cron_expression.split()
        return CronTrigger(
            year=_CRON_YEARS.get(self),
            month=month,
            day=day,
            day_of_week=day_of_week,
            hour=hour,
            minute=minute,
            timezone=timezone,
        )

    def normalized_amount(self, amount: float) -> float:
        """Monthly equivalent of ``amount``; the sign is kept as given."""
        multiplier, divisor = _MONTHLY_FACTORS[self]
        if divisor is not None:
            return amount / divisor
        return amount * multiplier

    def normalized_amount_display(self, amount: Union[float, str, None]) -> str:
        try:
            numeric = float(amount)
        except (TypeError, ValueError):
            return "0.00 per month"
        if numeric != numeric:
            return "0.00 per month"
        return f"{self.normalized_amount(numeric):.2f} per month"

    def next_occurrence(self, from_date: date) -> date:
        days, months = _ADVANCE[self]
        if days:
            return from_date + timedelta(days=days)
        return add_months(from_date, months)


# (multiplier, divisor): exactly one applies. The ratios are fixed
# approximations and must stay as they are.
_MONTHLY_FACTORS: dict[Frequency, tuple[float, Optional[int]]] = {
    Frequency.daily: (30, None),
    Frequency.week: (4.33, None),
    Frequency.fortnight: (2.17, None),
    Frequency.month: (1, None),
    Frequency.two_month: (1, 2),
    Frequency.three_month: (1, 3),
    Frequency.quarter: (1, 3),
    Frequency.half: (1, 6),
    Frequency.year: (1, 12),
    Frequency.two_year: (1, 24),
}

# (days, months) added per occurrence
_ADVANCE: dict[Frequency, tuple[int, int]] = {
    Frequency.daily: (1, 0),
    Frequency.week: (7, 0),
    Frequency.fortnight: (14, 0),
    Frequency.month: (0, 1),
    Frequency.two_month: (0, 2),
    Frequency.three_month: (0, 3),
    Frequency.quarter: (0, 3),
    Frequency.half: (0, 6),
    Frequency.year: (0, 12),
    Frequency.two_year: (0, 24),
}

_DISPLAY_LABELS: dict[Frequency, str] = {
    Frequency.daily: "Daily",
    Frequency.week: "Week",
    Frequency.fortnight: "Fortnight",
    Frequency.month: "Month",
    Frequency.two_month: "2-Month",
    Frequency.three_month: "3-Month",
    Frequency.quarter: "Quarter",
    Frequency.half: "Half",
    Frequency.year: "Year",
    Frequency.two_year: "2-Year",
}

_CRON_EXPRESSIONS: dict[Frequency, str] = {
    Frequency.daily: "0 0 * * *",
    Frequency.week: "0 0 * * mon",
    Frequency.fortnight: "0 0 1,15 * *",
    Frequency.month: "0 0 1 * *",
    Frequency.two_month: "0 0 1 */2 *",
    Frequency.three_month: "0 0 1 */3 *",
    Frequency.quarter: "0 0 1 */3 *",
    Frequency.half: "0 0 1 */6 *",
    Frequency.year: "0 0 1 1 *",
    Frequency.two_year: "0 0 1 1 *",
}

# Five-field crontab has no year column
_CRON_YEARS: dict[Frequency, str] = {
    Frequency.two_year: "*/2",
}
