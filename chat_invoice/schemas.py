"""Data models used across extractor, calculator, numbering, CLI, and API."""
from __future__ import annotations

from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, computed_field
from pydantic.alias_generators import to_camel

from .errors import FlagKind
from .utils import round_half_up


class _Model(BaseModel):
    model_config = ConfigDict(extra="ignore", alias_generator=to_camel, populate_by_name=True)


class _FrozenModel(_Model):
    model_config = ConfigDict(frozen=True)


class BusinessProfile(_FrozenModel):
    """Per-call business settings: who issues the invoice and how it is taxed."""

    name: str = ""
    address: str = ""
    phone: str = ""
    email: str = ""
    tax_enabled: bool = False
    tax_rate: float = Field(0, ge=0, le=100, description="Tax rate in percent, e.g. 11 for PPN")
    business_code: Optional[str] = None
    payment_terms: str = "NET_30"


class Customer(_Model):
    name: str = ""
    phone: str = ""
    email: str = ""
    address: str = ""


class ParsedLineItem(_Model):
    product_name: str
    quantity: int = Field(1, ge=1)
    unit_price: Optional[int] = Field(None, ge=0)
    explicit_price: bool = False
    matched_from_catalog: bool = False

    @computed_field(alias="lineTotal")
    @property
    def line_total(self) -> int:
        return self.quantity * (self.unit_price or 0)


# Discounts


class PercentageDiscount(_FrozenModel):
    kind: Literal["percentage"] = "percentage"
    value: float = Field(ge=0, le=100)

    @property
    def discount_type(self) -> str:
        return "percentage"

    def amount_for(self, subtotal: int) -> int:
        return round_half_up(Decimal(subtotal) * Decimal(str(self.value)) / 100)


class FixedDiscount(_FrozenModel):
    kind: Literal["fixed"] = "fixed"
    amount: int = Field(ge=0)

    @property
    def discount_type(self) -> str:
        return "fixed"

    def amount_for(self, subtotal: int) -> int:
        return max(0, min(self.amount, subtotal))


class NoDiscount(_FrozenModel):
    kind: Literal["none"] = "none"

    @property
    def discount_type(self) -> str:
        # reported as a zero fixed discount
        return "fixed"

    def amount_for(self, subtotal: int) -> int:
        return 0


DiscountSpec = Annotated[
    Union[PercentageDiscount, FixedDiscount, NoDiscount],
    Field(discriminator="kind"),
]


# Payment


class PaymentTerms(_Model):
    """What a payment directive asked for, before amounts are known."""

    down_payment_requested: bool = False
    down_payment_percentage: Optional[float] = Field(None, gt=0, le=100)
    immediate: bool = False
    down_payment_due: Optional[date] = None
    final_due: Optional[date] = None


class DownPayment(_Model):
    percentage: float
    amount: int
    due_date: date
    status: str = "pending"


class RemainingBalance(_Model):
    amount: int
    due_date: date
    status: str = "pending"


class PaymentSchedule(_Model):
    schedule_type: str = "down_payment"
    total_amount: int
    down_payment: DownPayment
    remaining_balance: RemainingBalance


# Invoice aggregate


class InvoiceCalculations(_Model):
    subtotal: int = 0
    discount: int = 0
    discount_type: str = "fixed"
    discount_value: float = 0
    tax: int = 0
    tax_rate: float = 0
    shipping: int = 0
    grand_total: int = 0
    currency: str = "IDR"


class InvoiceHeader(_Model):
    invoice_number: str
    order_number: Optional[str] = None
    invoice_date: date
    due_date: date
    business_name: str = ""
    business_address: str = ""
    business_phone: str = ""
    business_email: str = ""


class InvoiceNotes(_Model):
    custom_notes: Optional[str] = None


class ProcessingFlag(_Model):
    kind: FlagKind
    message: str
    line: Optional[str] = None


class Invoice(_FrozenModel):
    header: InvoiceHeader
    customer: Customer = Field(default_factory=Customer)
    items: List[ParsedLineItem] = Field(default_factory=list)
    calculations: InvoiceCalculations
    payment_schedule: Optional[PaymentSchedule] = None
    notes: InvoiceNotes = Field(default_factory=InvoiceNotes)
    flags: List[ProcessingFlag] = Field(default_factory=list)

    @property
    def display_id(self) -> str:
        return self.header.invoice_number


class ParseFailure(_Model):
    """Explicit failure naming the stage that stopped the pipeline."""

    success: Literal[False] = False
    stage: str
    kind: str
    message: str
    invoice: Optional[Invoice] = None


# Extraction


class DirectiveKind(str, Enum):
    NOTES = "notes"
    DISCOUNT = "discount"
    SHIPPING = "shipping"
    PAYMENT = "payment"
    CUSTOMER = "customer"
    ITEM = "item"


class ExtractedFields(_Model):
    item_lines: List[str] = Field(default_factory=list)
    discount_directive: Optional[str] = None
    extra_discount_directives: List[str] = Field(default_factory=list)
    shipping_directive: Optional[str] = None
    payment_directive: Optional[str] = None
    notes_block: Optional[str] = None
    customer_block: List[str] = Field(default_factory=list)
    customer: Customer = Field(default_factory=Customer)


class CatalogMatch(_Model):
    unit_price: int = 0
    matched_from_catalog: bool = False
    catalog_name: Optional[str] = None
