from datetime import date

import pytest

from frequency import Frequency
from recurrence import (
    RecurrencePattern,
    add_months,
    days_in_month,
    future_occurrences,
    next_occurrence,
    occurrence_count,
    total_amount,
    validate_cron_expression,
    validate_pattern,
)

TODAY = date(2025, 1, 1)


def _pattern(**overrides) -> RecurrencePattern:
    values = {"frequency": Frequency.month, "start_date": date(2025, 1, 31)}
    values.update(overrides)
    return RecurrencePattern(**values)


def test_days_in_month():
    assert days_in_month(2024, 2) == 29
    assert days_in_month(2023, 2) == 28
    assert days_in_month(2024, 12) == 31


def test_add_months_snaps_to_end():
    assert add_months(date(2024, 1, 31), 1) == date(2024, 2, 29)
    assert add_months(date(2024, 11, 30), 3) == date(2025, 2, 28)
    assert add_months(date(2024, 5, 15), 24) == date(2026, 5, 15)


def test_validate_cron_expression():
    assert validate_cron_expression("0 0 1 * *")
    assert validate_cron_expression("*/15 9-17 * * mon-fri")
    assert not validate_cron_expression("0 0 1 *")
    assert not validate_cron_expression("61 0 1 * *")
    assert not validate_cron_expression("not a cron at all")


def test_validate_pattern():
    assert validate_pattern(_pattern(), today=TODAY)
    assert not validate_pattern(_pattern(start_date=date(2024, 12, 31)), today=TODAY)
    assert not validate_pattern(_pattern(end_date=date(2025, 1, 31)), today=TODAY)
    assert not validate_pattern(_pattern(max_occurrences=0), today=TODAY)
    assert not validate_pattern(_pattern(custom_cron="bad"), today=TODAY)
    assert validate_pattern(_pattern(custom_cron="0 0 1 * *"), today=TODAY)


def test_occurrence_count_respects_bounds():
    pattern = _pattern(end_date=date(2025, 6, 1))
    assert occurrence_count(pattern, date(2025, 1, 30)) == 0
    # Jan 31, Feb 28, Mar 28, Apr 28, May 28
    assert occurrence_count(pattern, date(2025, 12, 31)) == 5
    assert occurrence_count(_pattern(max_occurrences=2), date(2026, 1, 1)) == 2


def test_next_occurrence_sequence():
    pattern = _pattern(frequency=Frequency.week, start_date=date(2025, 1, 6), max_occurrences=3)

    first = next_occurrence(pattern, date(2025, 1, 1), today=TODAY)
    assert first.date == date(2025, 1, 6)
    assert first.occurrence_number == 1
    assert not first.is_last

    second = next_occurrence(pattern, first.date, today=TODAY)
    assert second.date == date(2025, 1, 13)
    assert second.occurrence_number == 2

    third = next_occurrence(pattern, second.date, today=TODAY)
    assert third.date == date(2025, 1, 20)
    assert third.is_last

    assert next_occurrence(pattern, third.date, today=TODAY) is None


def test_next_occurrence_stops_at_end_date():
    pattern = _pattern(start_date=date(2025, 1, 15), end_date=date(2025, 3, 1))
    following = next_occurrence(pattern, date(2025, 1, 15), today=TODAY)
    assert following.date == date(2025, 2, 15)
    assert following.is_last
    assert next_occurrence(pattern, date(2025, 2, 15), today=TODAY) is None


def test_next_occurrence_rejects_invalid_pattern():
    with pytest.raises(ValueError, match="Invalid recurrence pattern"):
        next_occurrence(_pattern(max_occurrences=-1), date(2025, 2, 1), today=TODAY)


def test_future_occurrences():
    dates = future_occurrences(_pattern(), limit=4, today=TODAY)
    assert dates == [
        date(2025, 1, 31),
        date(2025, 2, 28),
        date(2025, 3, 28),
        date(2025, 4, 28),
    ]
    limited = future_occurrences(_pattern(max_occurrences=2), today=TODAY)
    assert len(limited) == 2


def test_total_amount():
    assert total_amount(Frequency.month, 100, date(2025, 1, 1), date(2025, 12, 31)) == 1200
    assert total_amount(Frequency.quarter, -50, date(2025, 1, 1), date(2025, 12, 31)) == -200
    assert total_amount(Frequency.year, 10, date(2025, 6, 1), date(2025, 1, 1)) == 0
