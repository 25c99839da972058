"""Tests for catalog loading and price resolution."""

import json
import logging

import pytest

from chat_invoice.catalog import CatalogEntry, CatalogResolver, InMemoryCatalog


class TestInMemoryCatalog:
    def test_lookup_ignores_case_and_spacing(self, catalog) -> None:
        entry = catalog.lookup("  linea 28   SUMBA")

        assert entry.name == "Linea 28 Sumba"
        assert entry.unit_price == 150000

    def test_first_duplicate_wins(self) -> None:
        catalog = InMemoryCatalog([CatalogEntry(name="Kaos", unit_price=1), CatalogEntry(name="kaos", unit_price=2)])

        assert len(catalog) == 1
        assert catalog.lookup("KAOS").unit_price == 1

    def test_from_json_mapping(self, tmp_path) -> None:
        path = tmp_path / "catalog.json"
        path.write_text(json.dumps({"Kaos": 75000}), encoding="utf-8")

        assert InMemoryCatalog.from_json_file(path).lookup("kaos").unit_price == 75000

    def test_from_json_list(self, tmp_path) -> None:
        path = tmp_path / "catalog.json"
        path.write_text(json.dumps([{"name": "Topi", "unit_price": 20000}]), encoding="utf-8")

        catalog = InMemoryCatalog.from_json_file(path)
        assert catalog.entries() == [CatalogEntry(name="Topi", unit_price=20000)]


class TestCatalogResolver:
    def test_explicit_price_wins(self, catalog) -> None:
        match = CatalogResolver(catalog).resolve("Linea 28 Sumba", explicit_price=1000)

        assert match.unit_price == 1000
        assert match.matched_from_catalog is False

    def test_exact_match(self, catalog) -> None:
        match = CatalogResolver(catalog).resolve("linea 28 sumba")

        assert match.unit_price == 150000
        assert match.matched_from_catalog is True
        assert match.catalog_name == "Linea 28 Sumba"

    def test_word_prefix_match(self, catalog) -> None:
        match = CatalogResolver(catalog).resolve("lolly")

        assert match.catalog_name == "lolly bag"
        assert match.unit_price == 20000

    def test_typo_match(self, catalog) -> None:
        match = CatalogResolver(catalog).resolve("sumba blue jean")

        assert match.catalog_name == "Sumba Blue Jeans"

    def test_loose_fragment_is_not_matched(self, catalog) -> None:
        match = CatalogResolver(catalog).resolve("28 sumba")

        assert match.matched_from_catalog is False

    def test_fuzzy_matching_can_be_disabled(self, catalog) -> None:
        match = CatalogResolver(catalog, fuzzy_matching=False).resolve("lolly")

        assert match.matched_from_catalog is False
        assert match.unit_price == 0

    def test_unknown_product(self, catalog) -> None:
        match = CatalogResolver(catalog).resolve("gantungan kunci")

        assert match.unit_price == 0
        assert match.matched_from_catalog is False

    def test_auto_learning_is_refused(self, catalog, caplog) -> None:
        with caplog.at_level(logging.WARNING, logger="chat_invoice.catalog"):
            resolver = CatalogResolver(catalog, auto_learning=True)
        resolver.resolve("linea 28 sumba")

        assert "auto-learning" in caplog.text
        assert len(catalog) == 3


@pytest.mark.parametrize("name", ["", "   "])
def test_blank_name_is_unmatched(catalog, name) -> None:
    assert CatalogResolver(catalog).resolve(name).matched_from_catalog is False
