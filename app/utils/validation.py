"""
Validation utilities for spreadsheet/CSV cell values
"""
import re
from decimal import Decimal, InvalidOperation
from typing import Any

from openpyxl.cell.cell import ILLEGAL_CHARACTERS_RE

# whole cell must be an integer; "3.0" and a trailing 월 are tolerated
_WHOLE_INT = re.compile(r"^\s*([+-]?\d+)(?:\.0*)?\s*월?\s*$")


def normalize_decimal_input(value: str) -> str:
    """
    Normalize an amount typed with thousands separators.

    Example:
        >>> normalize_decimal_input("1,000,000")
        "1000000"
        >>> normalize_decimal_input(" 2 500 000 ")
        "2500000"
    """
    return re.sub(r"[,\s_]", "", value)


def parse_decimal(value: Any) -> Decimal | None:
    """
    Parse a cell value into Decimal.

    Returns:
        Decimal, or None when the value is empty or not a finite number
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        return value if value.is_finite() else None
    if isinstance(value, int):
        return Decimal(value)
    if isinstance(value, float):
        value = str(value)

    normalized = normalize_decimal_input(str(value))
    if not normalized:
        return None
    try:
        parsed = Decimal(normalized)
    except (InvalidOperation, ValueError):
        return None
    return parsed if parsed.is_finite() else None


def parse_int(value: Any) -> int | None:
    """
    Parse a month/year cell.

    Accepts 3, 3.0, "3", "03", "3.0", "3월". Returns None for empty values
    and for anything else, such as "1.5" or "12abc".
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, (float, Decimal)):
        if value != int(value):
            return None
        return int(value)
    match = _WHOLE_INT.match(str(value))
    if not match:
        return None
    return int(match.group(1))


def has_illegal_characters(value: Any) -> bool:
    """True when text holds control characters that xlsx cells cannot store."""
    return isinstance(value, str) and ILLEGAL_CHARACTERS_RE.search(value) is not None


def clean_text(value: Any) -> str:
    """Cell value as trimmed text ('' for empty cells)."""
    if value is None:
        return ""
    if isinstance(value, float) and value == int(value):
        value = int(value)
    return str(value).strip()
