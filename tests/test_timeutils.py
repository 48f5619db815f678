from datetime import date, time

import pytest

from app.core.timeutils import from_minutes, iter_dates, overlaps, parse_clock, format_clock, sunday_weekday


@pytest.mark.parametrize(
    "raw, expected",
    [("09:00", time(9, 0)), ("9:05", time(9, 5)), ("00:00", time(0, 0)), ("23:59", time(23, 59))],
)
def test_parse_clock_accepts_24_hour_values(raw, expected):
    assert parse_clock(raw) == expected


@pytest.mark.parametrize("raw", ["24:00", "09:60", "0900", "9am", "", "09:00:00"])
def test_parse_clock_rejects_malformed_values(raw):
    with pytest.raises(ValueError):
        parse_clock(raw)


def test_format_clock_pads():
    assert format_clock(time(9, 5)) == "09:05"


def test_overlap_is_half_open():
    assert overlaps(time(9, 0), time(9, 30), time(9, 15), time(9, 45))
    assert not overlaps(time(9, 0), time(9, 30), time(9, 30), time(10, 0))
    assert overlaps(time(9, 0), time(12, 0), time(10, 0), time(10, 30))


def test_sunday_weekday():
    assert sunday_weekday(date(2025, 1, 5)) == 0
    assert sunday_weekday(date(2025, 1, 6)) == 1
    assert sunday_weekday(date(2025, 1, 11)) == 6


def test_iter_dates_is_inclusive():
    assert list(iter_dates(date(2025, 1, 30), date(2025, 2, 1))) == [
        date(2025, 1, 30),
        date(2025, 1, 31),
        date(2025, 2, 1),
    ]


def test_from_minutes_rejects_next_day():
    with pytest.raises(ValueError):
        from_minutes(24 * 60)
