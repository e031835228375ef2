from datetime import date

import pytest

from studio.shared.validators import normalize_phone, parse_iso_date, validate_booking_time


@pytest.mark.parametrize(
    "value,expected",
    [("8:00", "08:00"), ("09:30", "09:30"), ("19:59", "19:59"), (" 12:05 ", "12:05")],
)
def test_valid_booking_times(value, expected):
    assert validate_booking_time(value) == expected


@pytest.mark.parametrize("value", ["", "24:00", "12:60", "12", "noon", "7:59", "20:00", "23:30"])
def test_invalid_booking_times(value):
    with pytest.raises(ValueError):
        validate_booking_time(value)


def test_parse_iso_date():
    assert parse_iso_date("2026-03-03") == date(2026, 3, 3)
    assert parse_iso_date("2026-03-03T00:00:00.000Z") == date(2026, 3, 3)
    with pytest.raises(ValueError):
        parse_iso_date("2026-02-30")
    with pytest.raises(ValueError):
        parse_iso_date("")


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("+39 333 123 4567", "+393331234567"),
        ("0039 333 1234567", "+393331234567"),
        ("333-123-4567", "+393331234567"),
        ("393331234567", "+393331234567"),
        ("0612345678", "+39612345678"),
        ("", None),
        (None, None),
    ],
)
def test_normalize_phone(raw, expected):
    assert normalize_phone(raw, "39") == expected
