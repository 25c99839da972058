"""Message to invoice pipeline.

raw text -> extracted fields -> priced items -> calculations -> numbered,
persisted invoice. Each call is independent; only the catalog (read-only)
and the record store (number ledger) are shared.
"""
from __future__ import annotations

import logging
from datetime import date
from typing import List, Optional, Union

from .calculator import InvoiceCalculator
from .catalog import CatalogResolver, CatalogStore, InMemoryCatalog
from .config import Settings
from .discount import DiscountInterpreter
from .errors import EmptyOrderError, FlagKind, InvoiceEngineError, StorageError
from .extractor import MessageExtractor
from .numbering import NumberGenerator, NumberKind, NumberReservation, NumberState
from .schemas import (
    BusinessProfile,
    Invoice,
    InvoiceHeader,
    InvoiceNotes,
    ParsedLineItem,
    ParseFailure,
    ProcessingFlag,
)
from .store import InMemoryRecordStore, JsonFileRecordStore, RecordStore
from .utils import today_in

logger = logging.getLogger(__name__)


class InvoiceEngine:
    def __init__(
        self,
        catalog: Optional[CatalogStore] = None,
        store: Optional[RecordStore] = None,
        settings: Optional[Settings] = None,
        numbers: Optional[NumberGenerator] = None,
    ) -> None:
        self.settings = settings or Settings()
        self.catalog = catalog if catalog is not None else InMemoryCatalog()
        self.store = store if store is not None else InMemoryRecordStore()
        self.extractor = MessageExtractor()
        self.resolver = CatalogResolver(
            self.catalog,
            fuzzy_matching=self.settings.catalog_fuzzy_matching,
            fuzzy_cutoff=self.settings.catalog_fuzzy_cutoff,
            auto_learning=self.settings.catalog_auto_learning,
        )
        self.discounts = DiscountInterpreter()
        self.calculator = InvoiceCalculator(
            default_down_payment_percentage=self.settings.default_down_payment_percentage,
            down_payment_days=self.settings.down_payment_days,
            final_payment_days=self.settings.final_payment_days,
            currency=self.settings.currency,
        )
        self.numbers = numbers or NumberGenerator(
            self.store,
            max_attempts=self.settings.number_max_attempts,
            fallback_code=self.settings.fallback_business_code,
            derive_code_from_name=self.settings.derive_code_from_name,
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> "InvoiceEngine":
        """Build an engine with the catalog and record store the settings point at."""
        catalog = InMemoryCatalog.from_json_file(settings.catalog_path) if settings.catalog_path else None
        store = JsonFileRecordStore(settings.record_store_path) if settings.record_store_path else None
        return cls(catalog=catalog, store=store, settings=settings)

    # Public API
    def process_message(
        self,
        raw_text: str,
        profile: BusinessProfile,
        invoice_date: Optional[date] = None,
        create_order: bool = False,
    ) -> Union[Invoice, ParseFailure]:
        """Return a complete invoice, or a failure naming the stage that stopped."""
        try:
            return self.build_invoice(raw_text, profile, invoice_date=invoice_date, create_order=create_order)
        except StorageError as exc:
            logger.error(f"Invoice could not be stored: {exc.message}")
            return ParseFailure(
                stage=exc.stage.value,
                kind=exc.kind,
                message=exc.message,
                invoice=exc.invoice,
            )
        except InvoiceEngineError as exc:
            logger.warning(f"Message rejected at {exc.stage.value}: {exc.message}")
            return ParseFailure(stage=exc.stage.value, kind=exc.kind, message=exc.message)

    def build_invoice(
        self,
        raw_text: str,
        profile: BusinessProfile,
        invoice_date: Optional[date] = None,
        create_order: bool = False,
    ) -> Invoice:
        """Same pipeline as ``process_message`` but raising hard failures."""
        day = invoice_date or self.today()
        fields = self.extractor.extract(raw_text or "")
        flags: List[ProcessingFlag] = [
            ProcessingFlag(
                kind=FlagKind.EXTRACTION_AMBIGUOUS,
                message="only the first discount is applied",
                line=directive,
            )
            for directive in fields.extra_discount_directives
        ]

        items = self._priced_items(fields.item_lines, flags)
        if not items:
            raise EmptyOrderError("No order lines found in message")

        subtotal = sum(item.line_total for item in items)
        discount, discount_flags = self.discounts.parse_with_flags(fields.discount_directive, subtotal)
        flags.extend(discount_flags)

        shipping = self._shipping(fields.shipping_directive, flags)
        payment = self.calculator.parse_payment(fields.payment_directive)
        calculations, schedule = self.calculator.compute(
            items,
            discount,
            tax_enabled=profile.tax_enabled,
            tax_rate=profile.tax_rate,
            shipping=shipping,
            payment=payment,
            invoice_date=day,
        )

        due_date = self.calculator.due_date(day, profile.payment_terms)
        if schedule is not None:
            due_date = schedule.remaining_balance.due_date
        elif payment is not None and payment.final_due:
            due_date = payment.final_due

        reservations: List[NumberReservation] = [self.numbers.generate(NumberKind.INVOICE, profile, day)]
        try:
            if create_order:
                reservations.append(self.numbers.generate(NumberKind.ORDER, profile, day))
        except InvoiceEngineError:
            self._release(reservations)
            raise

        invoice = Invoice(
            header=InvoiceHeader(
                invoice_number=reservations[0].number,
                order_number=reservations[1].number if create_order else None,
                invoice_date=day,
                due_date=due_date,
                business_name=profile.name,
                business_address=profile.address,
                business_phone=profile.phone,
                business_email=profile.email,
            ),
            customer=fields.customer,
            items=items,
            calculations=calculations,
            payment_schedule=schedule,
            notes=InvoiceNotes(custom_notes=fields.notes_block),
            flags=flags,
        )

        try:
            self.store.persist_invoice(invoice)
        except StorageError as exc:
            failure = StorageError(exc.message, invoice=invoice)
            self._release(reservations)
            raise failure from exc

        for reservation in reservations:
            reservation.state = NumberState.COMMITTED
        logger.info(
            f"Created {invoice.header.invoice_number}: {len(items)} item(s), "
            f"total {calculations.grand_total} {calculations.currency}"
        )
        return invoice

    def today(self) -> date:
        return today_in(self.settings.timezone)

    # Internals
    def _priced_items(self, item_lines: List[str], flags: List[ProcessingFlag]) -> List[ParsedLineItem]:
        candidates, extraction_flags = self.extractor.parse_items(item_lines)
        flags.extend(extraction_flags)

        items: List[ParsedLineItem] = []
        for candidate in candidates:
            item = candidate.item
            match = self.resolver.resolve(item.product_name, explicit_price=item.unit_price)
            if candidate.bare and not match.matched_from_catalog:
                flags.append(
                    ProcessingFlag(
                        kind=FlagKind.EXTRACTION_AMBIGUOUS,
                        message="line has no quantity, price or catalog product",
                        line=candidate.line,
                    )
                )
                continue
            if not item.explicit_price and not match.matched_from_catalog:
                flags.append(
                    ProcessingFlag(
                        kind=FlagKind.PRICING_UNRESOLVED,
                        message=f"no price for {item.product_name!r}",
                        line=candidate.line,
                    )
                )
            items.append(
                item.model_copy(
                    update={
                        "unit_price": match.unit_price,
                        "matched_from_catalog": match.matched_from_catalog,
                    }
                )
            )
        return items

    def _shipping(self, directive: Optional[str], flags: List[ProcessingFlag]) -> int:
        if not directive:
            return 0
        amount = self.extractor.shipping_fee(directive)
        if amount is None:
            flags.append(
                ProcessingFlag(kind=FlagKind.EXTRACTION_AMBIGUOUS, message="shipping fee unreadable", line=directive)
            )
            return 0
        return amount

    def _release(self, reservations: List[NumberReservation]) -> None:
        for reservation in reservations:
            try:
                self.numbers.release(reservation)
            except StorageError as exc:
                # the failure that triggered the release is the one reported
                logger.error(f"Could not release {reservation.number}: {exc.message}")
