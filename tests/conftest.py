"""Shared fixtures for the chat invoice engine tests."""

from datetime import date

import pytest

from chat_invoice.catalog import InMemoryCatalog
from chat_invoice.config import Settings
from chat_invoice.engine import InvoiceEngine
from chat_invoice.schemas import BusinessProfile
from chat_invoice.store import InMemoryRecordStore


@pytest.fixture
def invoice_day() -> date:
    return date(2025, 8, 1)


@pytest.fixture
def settings() -> Settings:
    """Settings isolated from any local .env file."""
    return Settings(_env_file=None)


@pytest.fixture
def profile() -> BusinessProfile:
    return BusinessProfile(
        name="Toko Lolly",
        address="Jl. Braga 10, Bandung",
        phone="0221234567",
        email="halo@tokololly.id",
        business_code="lly",
    )


@pytest.fixture
def catalog() -> InMemoryCatalog:
    return InMemoryCatalog.from_mapping(
        {
            "Linea 28 Sumba": 150000,
            "Sumba Blue Jeans": 275000,
            "lolly bag": 20000,
        }
    )


@pytest.fixture
def store() -> InMemoryRecordStore:
    return InMemoryRecordStore()


@pytest.fixture
def engine(catalog: InMemoryCatalog, store: InMemoryRecordStore, settings: Settings) -> InvoiceEngine:
    return InvoiceEngine(catalog=catalog, store=store, settings=settings)
