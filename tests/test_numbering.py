"""Tests for invoice and order number generation."""

import re
import secrets
from concurrent.futures import ThreadPoolExecutor
from datetime import date

import pytest

from chat_invoice.errors import NumberGenerationExhausted
from chat_invoice.numbering import (
    NUMBER_PATTERN,
    NumberGenerator,
    NumberKind,
    derive_business_code,
    random_suffix,
)
from chat_invoice.schemas import BusinessProfile
from chat_invoice.store import InMemoryRecordStore

DAY = date(2025, 8, 1)


@pytest.fixture
def generator(store) -> NumberGenerator:
    return NumberGenerator(store)


class TestFormat:
    def test_number_layout(self, generator, profile) -> None:
        reservation = generator.generate(NumberKind.INVOICE, profile, DAY)

        match = re.match(NUMBER_PATTERN, reservation.number)
        assert match is not None
        assert match.group("kind") == "INV"
        assert match.group("code") == "LLY"
        assert match.group("day") == "20250801"
        assert match.group("suffix") == reservation.suffix

    def test_random_suffix_alphabet(self) -> None:
        assert re.fullmatch(r"[A-Z0-9]{4}", random_suffix())

    def test_order_prefix(self, generator, profile) -> None:
        assert generator.generate(NumberKind.ORDER, profile, DAY).number.startswith("#ORD-LLY-20250801-")


class TestBusinessCode:
    def test_cleaned_profile_code(self, generator) -> None:
        assert generator.business_code(BusinessProfile(business_code="a-b c")) == "ABC"

    def test_fallback_code(self, generator) -> None:
        assert generator.business_code(BusinessProfile(name="Toko Lolly")) == "BIZ"
        assert generator.business_code(None) == "BIZ"

    def test_derived_code(self, store) -> None:
        generator = NumberGenerator(store, derive_code_from_name=True)

        assert generator.business_code(BusinessProfile(name="Toko Kue Manis Jaya")) == "TKM"

    @pytest.mark.parametrize(("name", "code"), [("BEVELIENT", "BEV"), ("Toko Lolly", "TL"), ("", "")])
    def test_derive_business_code(self, name, code) -> None:
        assert derive_business_code(name) == code


class TestUniqueness:
    def test_ten_numbers_are_distinct(self, generator, profile) -> None:
        numbers = {generator.generate(NumberKind.INVOICE, profile, DAY).number for _ in range(10)}

        assert len(numbers) == 10

    def test_taken_suffix_is_redrawn(self, store, profile) -> None:
        store.reserve_number("INV", "LLY", DAY, "AAAA")
        suffixes = iter(["AAAA", "AAAA", "BBBB"])
        generator = NumberGenerator(store, suffix_factory=lambda: next(suffixes))

        reservation = generator.generate(NumberKind.INVOICE, profile, DAY)

        assert reservation.suffix == "BBBB"
        assert reservation.attempts == 3

    def test_exhaustion(self, store, profile) -> None:
        store.reserve_number("INV", "LLY", DAY, "AAAA")
        generator = NumberGenerator(store, max_attempts=5, suffix_factory=lambda: "AAAA")

        with pytest.raises(NumberGenerationExhausted) as exc_info:
            generator.generate(NumberKind.INVOICE, profile, DAY)
        assert exc_info.value.attempts == 5

    def test_kinds_and_days_are_separate_namespaces(self, store, profile) -> None:
        generator = NumberGenerator(store, suffix_factory=lambda: "AAAA")

        numbers = [
            generator.generate(NumberKind.INVOICE, profile, DAY).number,
            generator.generate(NumberKind.ORDER, profile, DAY).number,
            generator.generate(NumberKind.INVOICE, profile, date(2025, 8, 2)).number,
        ]

        assert numbers == ["#INV-LLY-20250801-AAAA", "#ORD-LLY-20250801-AAAA", "#INV-LLY-20250802-AAAA"]

    def test_release_frees_the_number(self, store, profile) -> None:
        generator = NumberGenerator(store, max_attempts=1, suffix_factory=lambda: "AAAA")
        reservation = generator.generate(NumberKind.INVOICE, profile, DAY)

        generator.release(reservation)

        assert generator.generate(NumberKind.INVOICE, profile, DAY).number == reservation.number

    def test_concurrent_generation(self, profile) -> None:
        store = InMemoryRecordStore()
        # a small alphabet forces collisions between threads
        suffixes = ["AAA" + c for c in "ABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789"]
        generator = NumberGenerator(store, max_attempts=10_000, suffix_factory=lambda: secrets.choice(suffixes))

        with ThreadPoolExecutor(max_workers=8) as pool:
            numbers = list(pool.map(lambda _: generator.generate(NumberKind.INVOICE, profile, DAY).number, range(30)))

        assert len(set(numbers)) == 30
