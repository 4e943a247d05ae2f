import pytest

from app.portal.utils import clean, format_phone_number, is_valid_email, is_valid_phone_number, parse_count, phone_digits


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("", ""),
        (None, ""),
        ("55", "55"),
        ("5551", "(555) 1"),
        ("555123", "(555) 123"),
        ("5551234567", "(555) 123-4567"),
        ("(555) 123-4567 ext 9", "(555) 123-4567"),
    ],
)
def test_format_phone_number(raw, expected):
    assert format_phone_number(raw) == expected


def test_phone_validation():
    assert phone_digits("(555) 123-4567") == "5551234567"
    assert is_valid_phone_number("555.123.4567")
    assert not is_valid_phone_number("555-1234")
    assert not is_valid_phone_number("")


def test_email_validation():
    assert is_valid_email("first.last+tag@agency.co")
    assert not is_valid_email("no-at-sign.com")
    assert not is_valid_email("a@b")
    assert not is_valid_email("")


def test_clean():
    assert clean("  x ") == "x"
    assert clean("   ") is None
    assert clean(None) is None


def test_parse_count():
    assert parse_count("") == 0
    assert parse_count(None) == 0
    assert parse_count("7") == 7
    assert parse_count("3.0") == 3
    assert parse_count("abc") == 0
    assert parse_count("12abc") == 12
    assert parse_count("inf") == 0
    assert parse_count("1e20") == 1
    assert parse_count("-2") == -2
