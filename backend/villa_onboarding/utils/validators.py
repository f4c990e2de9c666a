"""
Validators — Regex and rule-based checks for onboarding field values.

Form inputs arrive loosely typed (numbers as strings, blanks as ""), so the
helpers here accept both shapes and report failure explicitly instead of
guessing.
"""
import math
import re
from datetime import date, datetime
from typing import Any, Optional, Tuple, Union

Number = Union[int, float]


def has_value(value: Any) -> bool:
    """True when a field value counts as supplied.

    None, blank strings and empty collections are empty. False and 0 are values.
    """
    if value is None:
        return False
    if isinstance(value, str):
        return bool(value.strip())
    if isinstance(value, (list, tuple, dict, set)):
        return len(value) > 0
    return True


def parse_number(value: Any, integer: bool = False) -> Tuple[bool, Optional[Number]]:
    """Parse a loosely typed numeric input.

    Returns (ok, number). Accepts int, float and numeric strings such as
    "3", " 4.5 ". Booleans, non-numeric strings, infinities and NaN are
    rejected, never coerced to zero.
    """
    if isinstance(value, bool) or value is None:
        return False, None
    if isinstance(value, (int, float)):
        number = value
    elif isinstance(value, str):
        text = value.strip().replace(",", "")
        if not re.match(r"^[+-]?(\d+(\.\d*)?|\.\d+)$", text):
            return False, None
        number = float(text)
    else:
        return False, None

    if isinstance(number, float):
        if not math.isfinite(number):
            return False, None
        if integer:
            if not number.is_integer():
                return False, None
            return True, int(number)
    return True, number


def parse_date(value: Any) -> Optional[date]:
    """Parse ISO dates (YYYY-MM-DD, optionally with a time part) or date objects."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or not value.strip():
        return None
    text = value.strip()
    try:
        return date.fromisoformat(text[:10])
    except ValueError:
        return None


def validate_email(email: Optional[str]) -> bool:
    """Validate email format: local@domain.tld."""
    if not email or not isinstance(email, str):
        return False
    return bool(re.match(r"^[\w.+-]+@[\w-]+(\.[\w-]+)+$", email.strip()))


def validate_phone(phone: Optional[str]) -> bool:
    """Validate international phone numbers: optional +, 7 to 15 digits, common separators."""
    if not phone or not isinstance(phone, str):
        return False
    cleaned = re.sub(r"[\s().-]", "", phone)
    return bool(re.match(r"^\+?\d{7,15}$", cleaned))


def validate_iban(iban: Optional[str]) -> bool:
    """Validate IBAN structure: 2 letters + 2 check digits + up to 30 alphanumerics."""
    if not iban or not isinstance(iban, str):
        return False
    cleaned = re.sub(r"\s", "", iban).upper()
    return bool(re.match(r"^[A-Z]{2}\d{2}[A-Z0-9]{10,30}$", cleaned))

