"""Invoice record stores: the uniqueness ledger for numbers plus persisted invoices."""
from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from abc import ABC, abstractmethod
from datetime import date
from pathlib import Path
from typing import Dict, Optional, Set, Tuple

from .errors import StorageError
from .schemas import Invoice

logger = logging.getLogger(__name__)

NumberKey = Tuple[str, str, str, str]


def number_key(kind: str, business_code: str, day: date, suffix: str) -> NumberKey:
    return (kind.upper(), business_code.upper(), day.strftime("%Y%m%d"), suffix.upper())


class RecordStore(ABC):
    """Durable, uniqueness-checked persistence of numbers and invoices."""

    @abstractmethod
    def reserve_number(self, kind: str, business_code: str, day: date, suffix: str) -> bool:
        """Atomically claim a number; False when it is already taken for that kind and day."""

    @abstractmethod
    def release_number(self, kind: str, business_code: str, day: date, suffix: str) -> None:
        """Give back a reservation whose invoice was never persisted."""

    @abstractmethod
    def persist_invoice(self, invoice: Invoice) -> None:
        """Store an invoice; raises StorageError on failure."""

    @abstractmethod
    def get_invoice(self, invoice_number: str) -> Optional[Invoice]:
        pass


class InMemoryRecordStore(RecordStore):
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._numbers: Set[NumberKey] = set()
        self._invoices: Dict[str, Invoice] = {}

    def reserve_number(self, kind: str, business_code: str, day: date, suffix: str) -> bool:
        key = number_key(kind, business_code, day, suffix)
        with self._lock:
            if key in self._numbers:
                return False
            self._numbers.add(key)
            return True

    def release_number(self, kind: str, business_code: str, day: date, suffix: str) -> None:
        with self._lock:
            self._numbers.discard(number_key(kind, business_code, day, suffix))

    def persist_invoice(self, invoice: Invoice) -> None:
        with self._lock:
            if invoice.header.invoice_number in self._invoices:
                raise StorageError(f"Invoice {invoice.header.invoice_number} already persisted")
            self._invoices[invoice.header.invoice_number] = invoice

    def get_invoice(self, invoice_number: str) -> Optional[Invoice]:
        with self._lock:
            return self._invoices.get(invoice_number)

    def __len__(self) -> int:
        return len(self._invoices)


class JsonFileRecordStore(InMemoryRecordStore):
    """In-memory ledger mirrored to a JSON file after every change."""

    def __init__(self, path: str | Path) -> None:
        super().__init__()
        # held across the in-memory change and the file replace so writes land in order
        self._io_lock = threading.Lock()
        self.path = Path(path)
        if self.path.exists():
            self._load()

    def reserve_number(self, kind: str, business_code: str, day: date, suffix: str) -> bool:
        with self._io_lock:
            if not super().reserve_number(kind, business_code, day, suffix):
                return False
            try:
                self._flush()
            except StorageError:
                super().release_number(kind, business_code, day, suffix)
                raise
            return True

    def release_number(self, kind: str, business_code: str, day: date, suffix: str) -> None:
        with self._io_lock:
            super().release_number(kind, business_code, day, suffix)
            self._flush()

    def persist_invoice(self, invoice: Invoice) -> None:
        with self._io_lock:
            super().persist_invoice(invoice)
            try:
                self._flush()
            except StorageError:
                with self._lock:
                    self._invoices.pop(invoice.header.invoice_number, None)
                raise

    # Internals
    def _load(self) -> None:
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            raise StorageError(f"Cannot read record store {self.path}: {exc}") from exc
        self._numbers = {tuple(key) for key in data.get("numbers", [])}
        self._invoices = {
            number: Invoice.model_validate(raw) for number, raw in data.get("invoices", {}).items()
        }
        logger.info(f"Loaded {len(self._invoices)} invoices from {self.path}")

    def _flush(self) -> None:
        with self._lock:
            payload = {
                "numbers": sorted(list(key) for key in self._numbers),
                "invoices": {
                    number: invoice.model_dump(mode="json", by_alias=True)
                    for number, invoice in self._invoices.items()
                },
            }
        tmp_name = None
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=self.path.parent, suffix=".tmp")
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(payload, handle, indent=2)
            os.replace(tmp_name, self.path)
        except OSError as exc:
            if tmp_name and os.path.exists(tmp_name):
                os.remove(tmp_name)
            raise StorageError(f"Cannot write record store {self.path}: {exc}") from exc
