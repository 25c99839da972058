"""Tests for the record stores."""

import os
from concurrent.futures import ThreadPoolExecutor
from datetime import date

import pytest

from chat_invoice.engine import InvoiceEngine
from chat_invoice.errors import StorageError
from chat_invoice.numbering import NumberGenerator, NumberKind
from chat_invoice.store import InMemoryRecordStore, JsonFileRecordStore

DAY = date(2025, 8, 1)


class TestInMemoryRecordStore:
    def test_reserve_is_exclusive(self) -> None:
        store = InMemoryRecordStore()

        assert store.reserve_number("INV", "LLY", DAY, "AB12") is True
        assert store.reserve_number("inv", "lly", DAY, "ab12") is False

    def test_release(self) -> None:
        store = InMemoryRecordStore()
        store.reserve_number("INV", "LLY", DAY, "AB12")

        store.release_number("INV", "LLY", DAY, "AB12")

        assert store.reserve_number("INV", "LLY", DAY, "AB12") is True

    def test_duplicate_invoice_is_rejected(self, engine, store, profile, invoice_day) -> None:
        invoice = engine.build_invoice("lolly 1pc harga 5000", profile, invoice_date=invoice_day)

        with pytest.raises(StorageError):
            store.persist_invoice(invoice)
        assert len(store) == 1

    def test_unknown_invoice(self) -> None:
        assert InMemoryRecordStore().get_invoice("#INV-LLY-20250801-AAAA") is None


class TestJsonFileRecordStore:
    def test_invoices_and_numbers_survive_reload(self, tmp_path, catalog, settings, profile, invoice_day) -> None:
        path = tmp_path / "records.json"
        engine = InvoiceEngine(catalog=catalog, store=JsonFileRecordStore(path), settings=settings)
        invoice = engine.build_invoice(
            "Nama: Budi\nlinea 28 sumba 2pcs diskon 10%\nDP 30%\nCatatan: kirim sore",
            profile,
            invoice_date=invoice_day,
            create_order=True,
        )

        reloaded = JsonFileRecordStore(path)

        assert reloaded.get_invoice(invoice.header.invoice_number) == invoice
        suffix = invoice.header.invoice_number.rsplit("-", 1)[1]
        assert reloaded.reserve_number("INV", "LLY", invoice_day, suffix) is False
        order_suffix = invoice.header.order_number.rsplit("-", 1)[1]
        assert reloaded.reserve_number("ORD", "LLY", invoice_day, order_suffix) is False

    def test_unreadable_file(self, tmp_path) -> None:
        path = tmp_path / "records.json"
        path.write_text("{not json", encoding="utf-8")

        with pytest.raises(StorageError):
            JsonFileRecordStore(path)

    def test_unwritable_location(self, tmp_path) -> None:
        blocker = tmp_path / "blocker"
        blocker.write_text("", encoding="utf-8")
        store = JsonFileRecordStore(blocker / "records.json")

        with pytest.raises(StorageError):
            store.reserve_number("INV", "LLY", DAY, "AAAA")

    def test_concurrent_reservations_all_reach_disk(self, tmp_path, profile) -> None:
        path = tmp_path / "records.json"
        generator = NumberGenerator(JsonFileRecordStore(path))

        with ThreadPoolExecutor(max_workers=8) as pool:
            reservations = list(pool.map(lambda _: generator.generate(NumberKind.INVOICE, profile, DAY), range(40)))

        reloaded = JsonFileRecordStore(path)
        for reservation in reservations:
            assert reloaded.reserve_number("INV", "LLY", DAY, reservation.suffix) is False

    def test_failed_write_does_not_hold_the_number(self, tmp_path, monkeypatch) -> None:
        store = JsonFileRecordStore(tmp_path / "records.json")

        def replace(src, dst):
            raise OSError("disk full")

        monkeypatch.setattr(os, "replace", replace)
        with pytest.raises(StorageError):
            store.reserve_number("INV", "LLY", DAY, "AAAA")
        monkeypatch.undo()

        assert store.reserve_number("INV", "LLY", DAY, "AAAA") is True
