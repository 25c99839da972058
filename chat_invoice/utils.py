"""Utility functions shared across the chat invoice engine."""
from __future__ import annotations

import re
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Optional
from zoneinfo import ZoneInfo

from dateutil import parser

MULTIPLIERS = {
    "rb": 1_000,
    "ribu": 1_000,
    "k": 1_000,
    "jt": 1_000_000,
    "juta": 1_000_000,
}

AMOUNT_PATTERN = r"\d[\d.,]*(?:\s*(?:ribu|rb|k|juta|jt)\b)?"
DATE_PATTERN = r"\d{4}-\d{1,2}-\d{1,2}|\d{1,2}[/\-.]\d{1,2}[/\-.]\d{2,4}"

_AMOUNT_RE = re.compile(r"^(?:rp\.?\s*)?(\d[\d.,]*)\s*(ribu|rb|k|juta|jt)?$", re.IGNORECASE)


def round_half_up(value: Decimal | int | float) -> int:
    """Round to the nearest whole currency unit, halves away from zero."""
    return int(Decimal(str(value)).quantize(Decimal(1), rounding=ROUND_HALF_UP))


def parse_amount(value: Optional[str]) -> Optional[int]:
    """Parse an amount such as ``50000``, ``50.000``, ``Rp 50.000,00``, ``25rb`` or ``1,5jt``.

    Returns the amount in whole currency units, or None when the text is not
    an amount.
    """
    if not value:
        return None
    m = _AMOUNT_RE.match(value.strip())
    if not m:
        return None
    digits, suffix = m.group(1), (m.group(2) or "").lower()
    number = _to_decimal(digits, allow_fraction=bool(suffix))
    if number is None:
        return None
    return round_half_up(number * MULTIPLIERS.get(suffix, 1))


def _to_decimal(value: str, allow_fraction: bool) -> Optional[Decimal]:
    cleaned = value.strip().rstrip(".,")
    if not cleaned:
        return None

    # Both separators present: rightmost one is the decimal mark (1.234,56 / 1,234.56)
    if "," in cleaned and "." in cleaned:
        decimal_mark = "," if cleaned.rindex(",") > cleaned.rindex(".") else "."
        thousands = "." if decimal_mark == "," else ","
        whole, _, fraction = cleaned.replace(thousands, "").partition(decimal_mark)
        cleaned = f"{whole}.{fraction}" if fraction else whole
    else:
        separator = "," if "," in cleaned else "." if "." in cleaned else None
        if separator:
            groups = cleaned.split(separator)
            # 50.000 is fifty thousand; 1,5jt and 12,50 carry a fraction
            if len(groups) == 2 and (allow_fraction or len(groups[1]) != 3):
                cleaned = ".".join(groups)
            else:
                cleaned = "".join(groups)
    try:
        return Decimal(cleaned)
    except (InvalidOperation, ValueError):
        return None


def parse_date(value: Optional[str]) -> Optional[date]:
    """Parse a calendar date written day-first (``20/08/2025``) or ISO (``2025-08-20``)."""
    if not value:
        return None
    value = value.strip()
    try:
        if re.match(r"^\d{4}-", value):
            return parser.isoparse(value).date()
        return parser.parse(value, dayfirst=True).date()
    except (ValueError, TypeError, OverflowError):
        return None


def normalize_name(value: str) -> str:
    """Case- and whitespace-insensitive key for product name lookups."""
    return " ".join(value.split()).casefold()


def today_in(timezone: str) -> date:
    """Calendar date right now in the given IANA timezone."""
    return datetime.now(ZoneInfo(timezone)).date()
