"""Command-line entrypoints for turning chat messages into invoices."""
from __future__ import annotations

import json
import logging
import sys
from datetime import date
from enum import Enum
from pathlib import Path
from typing import Optional

import typer
from rich import print

from .calculator import InvoiceCalculator
from .catalog import InMemoryCatalog
from .config import get_settings
from .engine import InvoiceEngine
from .errors import InvoiceEngineError, StorageError
from .numbering import NumberGenerator, NumberKind
from .schemas import BusinessProfile, Invoice, ParseFailure
from .store import InMemoryRecordStore, JsonFileRecordStore
from .utils import today_in

app = typer.Typer(add_completion=False, help="Chat order invoice CLI")


class KindOption(str, Enum):
    invoice = "invoice"
    order = "order"


def _read_message(message: Path) -> str:
    if str(message) == "-":
        return sys.stdin.read()
    return message.read_text(encoding="utf-8")


def _load_profile(profile: Optional[Path]) -> BusinessProfile:
    if profile is None:
        return BusinessProfile()
    return BusinessProfile.model_validate(json.loads(profile.read_text(encoding="utf-8")))


def _parse_day(invoice_date: Optional[str]) -> Optional[date]:
    if not invoice_date:
        return None
    try:
        return date.fromisoformat(invoice_date)
    except ValueError as exc:
        raise typer.BadParameter(f"expected YYYY-MM-DD, got {invoice_date!r}", param_hint="--invoice-date") from exc


def _print_invoice(invoice: Invoice) -> None:
    calc = invoice.calculations
    print(f"[bold]{invoice.header.invoice_number}[/bold]  {invoice.header.invoice_date.isoformat()}")
    if invoice.customer.name:
        print(f"Customer: {invoice.customer.name}")
    for item in invoice.items:
        source = " (catalog)" if item.matched_from_catalog else ""
        print(f"- {item.product_name} x{item.quantity} @ {item.unit_price}{source} = {item.line_total}")
    print(f"Subtotal: {calc.subtotal}  Discount ({calc.discount_type}): {calc.discount}")
    print(f"Tax: {calc.tax}  Shipping: {calc.shipping}")
    print(f"[green]Total:[/green] {calc.grand_total} {calc.currency}")
    if invoice.payment_schedule:
        schedule = invoice.payment_schedule
        print(
            f"DP {schedule.down_payment.percentage:g}%: {schedule.down_payment.amount} "
            f"due {schedule.down_payment.due_date}; remaining {schedule.remaining_balance.amount} "
            f"due {schedule.remaining_balance.due_date}"
        )
    if invoice.notes.custom_notes:
        print(f"Notes: {invoice.notes.custom_notes}")
    for flag in invoice.flags:
        print(f"[yellow]{flag.kind.value}:[/yellow] {flag.message}")


@app.command()
def parse(
    message: Path = typer.Option(..., help="Text file holding the chat message, or - for stdin"),
    catalog: Optional[Path] = typer.Option(None, exists=True, dir_okay=False, help="JSON product catalog"),
    profile: Optional[Path] = typer.Option(None, exists=True, dir_okay=False, help="JSON business profile"),
    store: Optional[Path] = typer.Option(None, dir_okay=False, help="JSON record store to reserve numbers in"),
    output: Optional[Path] = typer.Option(None, help="Path to write the invoice JSON"),
    order: bool = typer.Option(False, "--order/--no-order", help="Also reserve an order number"),
    invoice_date: Optional[str] = typer.Option(None, help="Invoice date (YYYY-MM-DD), defaults to today"),
) -> None:
    """Turn a chat message into a numbered invoice."""
    settings = get_settings()
    day = _parse_day(invoice_date)
    try:
        engine = InvoiceEngine(
            catalog=InMemoryCatalog.from_json_file(catalog) if catalog else None,
            store=JsonFileRecordStore(store) if store else None,
            settings=settings,
        )
    except StorageError as exc:
        print(f"[red]{exc.kind}[/red]: {exc.message}")
        raise typer.Exit(code=1)
    result = engine.process_message(_read_message(message), _load_profile(profile), invoice_date=day, create_order=order)

    if isinstance(result, ParseFailure):
        print(f"[red]{result.kind}[/red] at {result.stage}: {result.message}")
        raise typer.Exit(code=1)

    if output:
        output.parent.mkdir(parents=True, exist_ok=True)
        output.write_text(result.model_dump_json(by_alias=True, indent=2), encoding="utf-8")
        print(f"Invoice written to {output}")
    _print_invoice(result)


@app.command()
def number(
    kind: KindOption = typer.Option(KindOption.invoice, help="Number kind"),
    code: Optional[str] = typer.Option(None, help="Business short code"),
    name: str = typer.Option("", help="Business name, used for the code when --code is missing"),
    store: Optional[Path] = typer.Option(None, dir_okay=False, help="JSON record store to reserve the number in"),
) -> None:
    """Reserve a single invoice or order number."""
    settings = get_settings()
    number_kind = NumberKind.INVOICE if kind is KindOption.invoice else NumberKind.ORDER
    try:
        record_store = JsonFileRecordStore(store) if store else InMemoryRecordStore()
        generator = NumberGenerator(
            record_store,
            max_attempts=settings.number_max_attempts,
            fallback_code=settings.fallback_business_code,
            derive_code_from_name=settings.derive_code_from_name,
        )
        profile = BusinessProfile(name=name, business_code=code)
        reservation = generator.generate(number_kind, profile, today_in(settings.timezone))
    except InvoiceEngineError as exc:
        print(f"[red]{exc.kind}[/red]: {exc.message}")
        raise typer.Exit(code=1)
    print(reservation.number)


@app.command()
def verify(
    input: Path = typer.Option(..., exists=True, dir_okay=False, help="Invoice JSON written by `parse`"),
) -> None:
    """Recompute an invoice's figures and report any mismatch."""
    invoice = Invoice.model_validate_json(input.read_text(encoding="utf-8"))
    errors = InvoiceCalculator().verify(invoice)
    if not errors:
        print(f"[green]OK[/green] {invoice.display_id}")
        return
    print(f"[red]{len(errors)} problem(s)[/red] in {invoice.display_id}:")
    for err in errors:
        print(f"- {err}")
    raise typer.Exit(code=1)


def main():
    logging.basicConfig(
        level=get_settings().log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    app()


if __name__ == "__main__":
    main()
