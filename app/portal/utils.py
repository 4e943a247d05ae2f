from __future__ import annotations

import re

_NON_DIGIT = re.compile(r"\D")
_LEADING_INT = re.compile(r"[+-]?\d+")
_EMAIL = re.compile(r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$")


def phone_digits(value: str | None) -> str:
    return _NON_DIGIT.sub("", value or "")


def format_phone_number(value: str | None) -> str:
    """
    Format US phone input as (XXX) XXX-XXXX while typing.

    Shorter input is formatted as far as it goes; digits past ten are dropped.
    """
    digits = phone_digits(value)
    if len(digits) <= 3:
        return digits
    if len(digits) <= 6:
        return f"({digits[:3]}) {digits[3:]}"
    return f"({digits[:3]}) {digits[3:6]}-{digits[6:10]}"


def is_valid_phone_number(value: str | None) -> bool:
    return len(phone_digits(value)) == 10


def is_valid_email(email: str) -> bool:
    return bool(_EMAIL.match(email or ""))


def clean(value: str | None) -> str | None:
    """Strip form input; blank becomes None."""
    v = (value or "").strip()
    return v or None


def parse_count(value: str | None) -> int:
    """Leading integer of a counter field (``"12abc"`` -> 12); blank or garbage counts as 0."""
    m = _LEADING_INT.match((value or "").strip())
    return int(m.group(0)) if m else 0
