from datetime import date, datetime, timezone

import pytest

from frequency import Frequency, InvalidFrequencyError


@pytest.mark.parametrize(
    "frequency, amount, expected",
    [
        (Frequency.daily, 10, 300),
        (Frequency.week, 100, 433.0),
        (Frequency.fortnight, 100, 217.0),
        (Frequency.month, 250, 250),
        (Frequency.two_month, 100, 50),
        (Frequency.three_month, 90, 30),
        (Frequency.quarter, 90, 30),
        (Frequency.half, 600, 100),
        (Frequency.year, 12000, 1000),
        (Frequency.two_year, 2400, 100),
    ],
)
def test_normalized_amount(frequency: Frequency, amount: float, expected: float) -> None:
    assert frequency.normalized_amount(amount) == pytest.approx(expected)


def test_normalized_amount_preserves_sign() -> None:
    assert Frequency.month.normalized_amount(-500) == -500
    assert Frequency.year.normalized_amount(-1200) == -100
    assert Frequency.daily.normalized_amount(-5) == -150


def test_from_string() -> None:
    assert Frequency.from_string("2-month") is Frequency.two_month
    assert Frequency.from_string("week") is Frequency.week
    with pytest.raises(InvalidFrequencyError, match="Invalid frequency: weekly"):
        Frequency.from_string("weekly")
    with pytest.raises(InvalidFrequencyError):
        Frequency.from_string("Month")


def test_display_labels() -> None:
    assert Frequency.month.display_label == "Month"
    assert Frequency.two_month.display_label == "2-Month"
    assert Frequency.two_year.display_label == "2-Year"
    labels = Frequency.labels()
    assert len(labels) == 10
    assert labels[0] == {"value": "daily", "label": "Daily"}
    assert {"value": "3-month", "label": "3-Month"} in labels


def test_normalized_amount_display() -> None:
    assert Frequency.year.normalized_amount_display(1200) == "100.00 per month"
    assert Frequency.week.normalized_amount_display("10") == "43.30 per month"
    assert Frequency.month.normalized_amount_display("abc") == "0.00 per month"
    assert Frequency.month.normalized_amount_display(None) == "0.00 per month"


@pytest.mark.parametrize(
    "frequency, start, expected",
    [
        (Frequency.daily, date(2024, 12, 31), date(2025, 1, 1)),
        (Frequency.week, date(2024, 1, 29), date(2024, 2, 5)),
        (Frequency.fortnight, date(2024, 2, 20), date(2024, 3, 5)),
        (Frequency.month, date(2024, 1, 31), date(2024, 2, 29)),
        (Frequency.month, date(2023, 1, 31), date(2023, 2, 28)),
        (Frequency.month, date(2024, 1, 15), date(2024, 2, 15)),
        (Frequency.two_month, date(2024, 12, 31), date(2025, 2, 28)),
        (Frequency.quarter, date(2024, 11, 30), date(2025, 2, 28)),
        (Frequency.half, date(2024, 8, 31), date(2025, 2, 28)),
        (Frequency.year, date(2024, 2, 29), date(2025, 2, 28)),
        (Frequency.two_year, date(2024, 6, 1), date(2026, 6, 1)),
    ],
)
def test_next_occurrence(frequency: Frequency, start: date, expected: date) -> None:
    assert frequency.next_occurrence(start) == expected


def test_cron_expressions() -> None:
    assert Frequency.month.cron_expression == "0 0 1 * *"
    assert Frequency.quarter.cron_expression == Frequency.three_month.cron_expression


def test_cron_trigger_fires_on_schedule() -> None:
    now = datetime(2024, 1, 10, 12, 0, tzinfo=timezone.utc)

    monthly = Frequency.month.cron_trigger(timezone="UTC")
    assert monthly.get_next_fire_time(None, now) == datetime(
        2024, 2, 1, 0, 0, tzinfo=timezone.utc
    )

    two_year = Frequency.two_year.cron_trigger(timezone="UTC")
    fire = two_year.get_next_fire_time(None, now)
    assert (fire.year, fire.month, fire.day) == (2026, 1, 1)
