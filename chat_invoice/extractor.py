"""Chat message to structured order fields extraction module."""
from __future__ import annotations

import logging
import re
from typing import List, NamedTuple, Optional, Tuple

from .errors import FlagKind
from .schemas import Customer, DirectiveKind, ExtractedFields, ParsedLineItem, ProcessingFlag
from .utils import AMOUNT_PATTERN, parse_amount

logger = logging.getLogger(__name__)

NOTES_PATTERN = r"\b(?:catatan|notes?)\s*:"
UNIT_PATTERN = r"pcs|pc|psc|buah|bh|biji|units|unit|pack|pak|box|botol|lembar|porsi|x"
# an amount that is really a quantity ("potongan 3pcs") is not a directive value
NOT_QUANTITY = rf"(?!\s*(?:{UNIT_PATTERN})\b)"
DISCOUNT_PATTERN = (
    r"\b(?:discount|diskon|disc|potongan|potong)\b\s*:?\s*"
    r"(?:rp\.?\s*)?\d[\d.,]*(?![\d.,])\s*(?:%|persen\b|percent\b|ribu\b|rb\b|k\b|juta\b|jt\b)?"
    rf"{NOT_QUANTITY}"
)
SHIPPING_PATTERN = (
    r"\b(?:ongkos\s+kirim|ongkir|biaya\s+(?:kirim|pengiriman)|pengiriman|shipping)\b"
    r"\s*:?\s*(?:rp\.?\s*)?(?P<amount>\d[\d.,]*(?![\d.,])(?:\s*(?:ribu|rb|k|juta|jt)\b)?)"
    rf"{NOT_QUANTITY}"
)
PAYMENT_PATTERN = (
    r"\b(?:dp|down\s*payment|uang\s+muka|bayar\s+muka|bayar\s+dulu|pelunasan|sisa(?:nya)?"
    r"|final\s+payment)\b"
)

QUANTITY_PATTERN = (
    rf"(?<![\w.,])(?:(?P<n1>\d+)\s*(?:{UNIT_PATTERN})\b"
    r"|x\s*(?P<n2>\d+)\b"
    r"|\b(?:qty|jumlah)\s*:?\s*(?P<n3>\d+)\b)"
)
LEADING_QUANTITY_PATTERN = r"^(?P<n>\d+)\s+(?=[^\d\s])"
PRICE_PATTERN = (
    r"(?:\b(?:harga(?:\s+satuan)?|price|hrg)\b\s*:?\s*@?\s*|@\s*|(?<!\w)(?=rp\.?\s*\d))"
    rf"(?:rp\.?\s*)?(?P<amount>{AMOUNT_PATTERN})"
)
LIST_MARKER_PATTERN = r"^\s*(?:[-*•]|\d+[.)])\s+"

CONTACT_LABELS = {
    "name": r"nama(?:\s+(?:pelanggan|customer|pembeli))?|name|customer|pelanggan|pembeli|atas\s+nama|a\.\s?n\.?",
    "phone": r"no\.?\s*(?:hp|wa|telp|telepon)|hp|wa|whatsapp|telp|telepon|phone|tel",
    "email": r"e-?mail",
    "address": r"alamat(?:\s+(?:kirim|pengiriman))?|address|kirim\s+ke",
}
PHONE_PATTERN = r"(?<!\d)(?:\+?62|0)8\d{1,3}[\s\-]?\d{3,4}[\s\-]?\d{3,5}(?!\d)"
EMAIL_PATTERN = r"[\w.+-]+@[\w-]+(?:\.[\w-]+)+"

SEPARATORS = " \t-–—:,;|/"


class ItemCandidate(NamedTuple):
    item: ParsedLineItem
    line: str
    # neither quantity nor price was written; only kept if the catalog knows it
    bare: bool


class MessageExtractor:
    """Split a free-form order message into directives, contact details and item lines."""

    def __init__(self) -> None:
        self._notes_re = re.compile(NOTES_PATTERN, re.IGNORECASE)
        self._discount_re = re.compile(DISCOUNT_PATTERN, re.IGNORECASE)
        self._shipping_re = re.compile(SHIPPING_PATTERN, re.IGNORECASE)
        self._payment_re = re.compile(PAYMENT_PATTERN, re.IGNORECASE)
        self._quantity_re = re.compile(QUANTITY_PATTERN, re.IGNORECASE)
        self._leading_quantity_re = re.compile(LEADING_QUANTITY_PATTERN)
        self._price_re = re.compile(PRICE_PATTERN, re.IGNORECASE)
        self._list_marker_re = re.compile(LIST_MARKER_PATTERN)
        self._phone_re = re.compile(PHONE_PATTERN)
        self._email_re = re.compile(EMAIL_PATTERN)
        self._label_res = {
            field: re.compile(rf"^\s*(?:{labels})(?![\w])\s*[:=\-]?\s*(?P<value>\S.*)$", re.IGNORECASE)
            for field, labels in CONTACT_LABELS.items()
        }

    # Public API
    def extract(self, raw_text: str) -> ExtractedFields:
        text = raw_text.replace("\r\n", "\n").replace("\r", "\n")
        fields = ExtractedFields()

        notes_match = self._notes_re.search(text)
        if notes_match:
            fields.notes_block = text[notes_match.end():].strip() or None
            text = text[: notes_match.start()]

        payment_parts: list[str] = []
        for raw_line in text.split("\n"):
            line = raw_line.strip()
            if not line:
                continue

            line = self._take_discount(line, fields)
            line = self._take_shipping(line, fields)
            line, payment = self._split_payment(line)
            if payment:
                payment_parts.append(payment)
            if not line.strip(SEPARATORS):
                continue

            if self.classify(line) is DirectiveKind.CUSTOMER:
                fields.customer_block.append(line)
                self._apply_contact(line, fields.customer)
            else:
                fields.item_lines.append(line)

        if payment_parts:
            fields.payment_directive = "\n".join(payment_parts)
        logger.debug(
            f"Extracted {len(fields.item_lines)} item lines, "
            f"{len(fields.customer_block)} contact lines, discount={fields.discount_directive!r}"
        )
        return fields

    def classify(self, line: str) -> DirectiveKind:
        """Tag a single line (already stripped of inline directives)."""
        if self._notes_re.search(line):
            return DirectiveKind.NOTES
        if self._discount_re.search(line):
            return DirectiveKind.DISCOUNT
        if self._shipping_re.search(line):
            return DirectiveKind.SHIPPING
        if self._payment_start(line) is not None:
            return DirectiveKind.PAYMENT
        if self._contact_field(line) is not None:
            return DirectiveKind.CUSTOMER
        has_order_tokens = self._quantity_re.search(line) or self._price_re.search(line)
        if not has_order_tokens and (self._phone_re.search(line) or self._email_re.search(line)):
            return DirectiveKind.CUSTOMER
        return DirectiveKind.ITEM

    def parse_items(self, item_lines: List[str]) -> Tuple[List[ItemCandidate], List[ProcessingFlag]]:
        candidates: List[ItemCandidate] = []
        flags: List[ProcessingFlag] = []
        for line in item_lines:
            candidate = self.parse_item_line(line)
            if candidate is None:
                flags.append(
                    ProcessingFlag(
                        kind=FlagKind.EXTRACTION_AMBIGUOUS,
                        message="could not read a product from line",
                        line=line,
                    )
                )
                continue
            candidates.append(candidate)
        return candidates, flags

    def parse_item_line(self, line: str) -> Optional[ItemCandidate]:
        marker = self._list_marker_re.match(line)
        offset = marker.end() if marker else 0
        body = line[offset:]

        qty_match = self._quantity_re.search(body)
        price_match = self._price_re.search(body)
        leading = None if qty_match else self._leading_quantity_re.match(body)

        quantity = 1
        if qty_match:
            quantity = int(qty_match.group("n1") or qty_match.group("n2") or qty_match.group("n3"))
        elif leading:
            quantity = int(leading.group("n"))
        if quantity < 1:
            return None

        unit_price = parse_amount(price_match.group("amount")) if price_match else None

        spans = sorted(m.span() for m in (qty_match, price_match, leading) if m is not None)
        name = self._product_name(body, spans)
        if not name:
            return None

        item = ParsedLineItem(
            product_name=name,
            quantity=quantity,
            unit_price=unit_price,
            explicit_price=unit_price is not None,
        )
        return ItemCandidate(item=item, line=line, bare=not spans)

    def shipping_fee(self, directive: Optional[str]) -> Optional[int]:
        m = self._shipping_re.search(directive or "")
        return parse_amount(m.group("amount")) if m else None

    # Internals
    def _product_name(self, body: str, spans: List[Tuple[int, int]]) -> str:
        if not spans:
            return body.strip(SEPARATORS)
        first_start, first_end = spans[0]
        name = body[:first_start].strip(SEPARATORS)
        if name:
            return name
        # line opens with the quantity or price: name sits between the first two tokens
        next_start = spans[1][0] if len(spans) > 1 else len(body)
        return body[first_end:next_start].strip(SEPARATORS)

    def _take_discount(self, line: str, fields: ExtractedFields) -> str:
        while True:
            m = self._discount_re.search(line)
            if not m:
                return line
            directive = m.group(0).strip()
            if fields.discount_directive is None:
                fields.discount_directive = directive
            else:
                fields.extra_discount_directives.append(directive)
            line = self._cut(line, m.start(), m.end())

    def _take_shipping(self, line: str, fields: ExtractedFields) -> str:
        m = self._shipping_re.search(line)
        if not m:
            return line
        if fields.shipping_directive is None:
            fields.shipping_directive = m.group(0).strip()
        return self._cut(line, m.start(), m.end())

    def _split_payment(self, line: str) -> Tuple[str, Optional[str]]:
        start = self._payment_start(line)
        if start is None:
            return line, None
        return line[:start].strip(), line[start:].strip()

    def _payment_start(self, line: str) -> Optional[int]:
        """Where a payment directive begins; it runs to the end of the line.

        A keyword followed by a quantity or price ("Sisa kain 2pcs harga 10000")
        belongs to an item name instead.
        """
        for m in self._payment_re.finditer(line):
            rest = line[m.start():]
            if not (self._quantity_re.search(rest) or self._price_re.search(rest)):
                return m.start()
        return None

    def _contact_field(self, line: str) -> Optional[Tuple[str, str]]:
        for field, label_re in self._label_res.items():
            m = label_re.match(line)
            if not m:
                continue
            value = m.group("value").strip()
            if field == "phone" and not self._phone_re.search(value):
                continue
            if field == "email" and not self._email_re.search(value):
                continue
            return field, value
        return None

    def _apply_contact(self, line: str, customer: Customer) -> None:
        labelled = self._contact_field(line)
        if labelled is not None:
            field, value = labelled
            if field == "phone":
                value = self._phone_re.search(value).group(0)
            elif field == "email":
                value = self._email_re.search(value).group(0)
            if not getattr(customer, field):
                setattr(customer, field, value)
            return

        phone = self._phone_re.search(line)
        if phone and not customer.phone:
            customer.phone = phone.group(0)
        email = self._email_re.search(line)
        if email and not customer.email:
            customer.email = email.group(0)

    @staticmethod
    def _cut(line: str, start: int, end: int) -> str:
        before, after = line[:start].rstrip(), line[end:].lstrip()
        return f"{before} {after}".strip() if before and after else (before or after)
