"""Error taxonomy for the chat invoice engine.

Soft conditions never raise; they are recorded as ``ProcessingFlag`` entries
on the invoice using the ``FlagKind`` values below. Hard conditions raise an
``InvoiceEngineError`` subclass and abort the request.
"""
from __future__ import annotations

from enum import Enum


class FlagKind(str, Enum):
    EXTRACTION_AMBIGUOUS = "ExtractionAmbiguous"
    PRICING_UNRESOLVED = "PricingUnresolved"
    DISCOUNT_UNPARSEABLE = "DiscountUnparseable"


class Stage(str, Enum):
    EXTRACTION = "extraction"
    PRICING = "pricing"
    DISCOUNT = "discount"
    CALCULATION = "calculation"
    NUMBERING = "numbering"
    STORAGE = "storage"


class InvoiceEngineError(Exception):
    """Base class for hard failures surfaced to the caller."""

    kind = "InvoiceEngineError"
    stage = Stage.CALCULATION

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class EmptyOrderError(InvoiceEngineError):
    kind = "EmptyOrder"
    stage = Stage.EXTRACTION


class NumberGenerationExhausted(InvoiceEngineError):
    kind = "NumberGenerationExhausted"
    stage = Stage.NUMBERING

    def __init__(self, message: str, attempts: int = 0) -> None:
        super().__init__(message)
        self.attempts = attempts


class StorageError(InvoiceEngineError):
    kind = "StorageError"
    stage = Stage.STORAGE

    def __init__(self, message: str, invoice=None) -> None:
        super().__init__(message)
        # the computed invoice that could not be stored, when there is one
        self.invoice = invoice
