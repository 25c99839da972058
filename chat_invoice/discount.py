"""Discount directive interpretation (English and Indonesian)."""
from __future__ import annotations

import logging
import re
from typing import List, Optional, Tuple

from .errors import FlagKind
from .schemas import DiscountSpec, FixedDiscount, NoDiscount, PercentageDiscount, ProcessingFlag
from .utils import parse_amount

logger = logging.getLogger(__name__)

KEYWORD_PATTERN = r"^\s*(?:discount|diskon|disc|potongan|potong)\b\s*:?\s*"
PERCENT_PATTERN = r"^(?P<value>\d+(?:[.,]\d+)?)\s*(?:%|persen\b|percent\b)"


class DiscountInterpreter:
    """Turn ``discount 10%``, ``diskon 15 persen`` or ``potongan 25rb`` into a ``DiscountSpec``."""

    def __init__(self) -> None:
        self._keyword_re = re.compile(KEYWORD_PATTERN, re.IGNORECASE)
        self._percent_re = re.compile(PERCENT_PATTERN, re.IGNORECASE)

    def parse(self, directive: Optional[str], subtotal: int = 0) -> DiscountSpec:
        spec, _ = self.parse_with_flags(directive, subtotal)
        return spec

    def parse_with_flags(
        self, directive: Optional[str], subtotal: int = 0
    ) -> Tuple[DiscountSpec, List[ProcessingFlag]]:
        if not directive or not directive.strip():
            return NoDiscount(), []

        expression = self._keyword_re.sub("", directive, count=1).strip()

        percent = self._percent_re.match(expression)
        if percent:
            value = float(percent.group("value").replace(",", "."))
            if 0 <= value <= 100:
                return PercentageDiscount(value=value), []
            return self._unparseable(directive, "percentage outside 0-100")

        amount = parse_amount(expression)
        if amount is None:
            return self._unparseable(directive, "no amount")
        if subtotal and amount > subtotal:
            logger.info(f"Fixed discount {amount} exceeds subtotal {subtotal}; it will be capped")
        return FixedDiscount(amount=amount), []

    def _unparseable(self, directive: str, reason: str) -> Tuple[DiscountSpec, List[ProcessingFlag]]:
        logger.warning(f"Ignoring discount directive {directive!r}: {reason}")
        flag = ProcessingFlag(
            kind=FlagKind.DISCOUNT_UNPARSEABLE,
            message=f"discount ignored ({reason})",
            line=directive,
        )
        return NoDiscount(), [flag]
