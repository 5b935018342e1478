from datetime import date, datetime, timezone

import pytest

from planpm.services import recurrence


@pytest.mark.parametrize(
    "frequency,expected",
    [
        ("Daily", date(2024, 1, 16)),
        ("Weekly", date(2024, 1, 22)),
        ("Monthly", date(2024, 2, 15)),
        ("3 Months", date(2024, 4, 15)),
        ("6 Months", date(2024, 7, 15)),
        ("1 Year", date(2025, 1, 15)),
        ("Quarterly", date(2024, 4, 15)),
        ("Semi-Annual", date(2024, 7, 15)),
        ("Annual", date(2025, 1, 15)),
    ],
)
def test_next_schedule_date_steps(frequency, expected):
    assert recurrence.next_schedule_date(date(2024, 1, 15), frequency) == expected


def test_month_end_clamps_to_last_valid_day():
    assert recurrence.next_schedule_date(date(2024, 1, 31), "Monthly") == date(2024, 2, 29)
    assert recurrence.next_schedule_date(date(2023, 1, 31), "Monthly") == date(2023, 2, 28)
    assert recurrence.next_schedule_date(date(2024, 2, 29), "1 Year") == date(2025, 2, 28)
    assert recurrence.next_schedule_date(date(2024, 8, 31), "6 Months") == date(2025, 2, 28)


def test_unknown_frequency_falls_back_to_monthly(caplog):
    with caplog.at_level("WARNING"):
        assert recurrence.next_schedule_date(date(2024, 3, 10), "Fortnightly") == date(2024, 4, 10)
        assert recurrence.next_schedule_date(date(2024, 3, 10), None) == date(2024, 4, 10)
    assert "Fortnightly" in caplog.text
    assert recurrence.occurrences_per_year("Fortnightly") == 12


@pytest.mark.parametrize(
    "frequency,count",
    [("Daily", 365), ("Weekly", 52), ("Monthly", 12), ("3 Months", 4), ("6 Months", 2), ("1 Year", 1), ("Annual", 1)],
)
def test_occurrences_per_year(frequency, count):
    assert recurrence.occurrences_per_year(frequency) == count


@pytest.mark.parametrize("frequency", ["Daily", "Weekly", "Monthly", "3 Months", "6 Months", "1 Year"])
def test_two_steps_strictly_increase(frequency):
    start = datetime(2024, 1, 31, 8, 30, tzinfo=timezone.utc)
    once = recurrence.next_schedule_date(start, frequency)
    twice = recurrence.next_schedule_date(once, frequency)
    assert start < once < twice
    assert once.tzinfo is timezone.utc
    assert (twice.hour, twice.minute) == (8, 30)


def test_utc_day_and_naive_values():
    naive = datetime(2024, 5, 1, 23, 30)
    assert recurrence.as_utc(naive).tzinfo is timezone.utc
    assert recurrence.utc_day(naive) == date(2024, 5, 1)
    assert recurrence.utc_day(date(2024, 5, 1)) == date(2024, 5, 1)
    assert recurrence.normalize_frequency("Quarterly") == "3 Months"
    assert recurrence.normalize_frequency("bogus") is None
