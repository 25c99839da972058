"""Catalog lookups that fill in unit prices for products named in a message."""
from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from difflib import SequenceMatcher
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Optional

from pydantic import BaseModel, Field

from .schemas import CatalogMatch
from .utils import normalize_name

logger = logging.getLogger(__name__)


class CatalogEntry(BaseModel):
    name: str
    unit_price: int = Field(ge=0)


class CatalogStore(ABC):
    """Read-only product name to reference price table."""

    @abstractmethod
    def lookup(self, product_name: str) -> Optional[CatalogEntry]:
        """Exact or case/whitespace-insensitive lookup; None when not found."""

    @abstractmethod
    def entries(self) -> List[CatalogEntry]:
        """All entries, used for similarity matching."""


class InMemoryCatalog(CatalogStore):
    def __init__(self, entries: Iterable[CatalogEntry] = ()) -> None:
        self._entries: Dict[str, CatalogEntry] = {}
        for entry in entries:
            self._entries.setdefault(normalize_name(entry.name), entry)

    @classmethod
    def from_mapping(cls, prices: Mapping[str, int]) -> "InMemoryCatalog":
        return cls(CatalogEntry(name=name, unit_price=price) for name, price in prices.items())

    @classmethod
    def from_json_file(cls, path: str | Path) -> "InMemoryCatalog":
        """Load ``{"name": price}`` or ``[{"name": ..., "unit_price": ...}]`` JSON."""
        data = json.loads(Path(path).read_text(encoding="utf-8"))
        if isinstance(data, dict):
            return cls.from_mapping(data)
        return cls(CatalogEntry.model_validate(item) for item in data)

    def lookup(self, product_name: str) -> Optional[CatalogEntry]:
        return self._entries.get(normalize_name(product_name))

    def entries(self) -> List[CatalogEntry]:
        return list(self._entries.values())

    def __len__(self) -> int:
        return len(self._entries)


class CatalogResolver:
    """Price products from the catalog without ever touching their names.

    A price written in the message always wins. Otherwise the catalog is
    consulted by exact/normalized name, then (optionally) by similarity.
    The catalog is never written to.
    """

    def __init__(
        self,
        store: CatalogStore,
        fuzzy_matching: bool = True,
        fuzzy_cutoff: float = 0.8,
        auto_learning: bool = False,
    ) -> None:
        self.store = store
        self.fuzzy_matching = fuzzy_matching
        self.fuzzy_cutoff = fuzzy_cutoff
        if auto_learning:
            logger.warning("Catalog auto-learning is not supported; catalog and product names are left unchanged")

    def resolve(self, product_name: str, explicit_price: Optional[int] = None) -> CatalogMatch:
        if explicit_price is not None:
            return CatalogMatch(unit_price=explicit_price, matched_from_catalog=False)

        entry = self.store.lookup(product_name)
        if entry is None and self.fuzzy_matching:
            entry = self._closest(product_name)
        if entry is None:
            logger.info(f"No catalog price for {product_name!r}")
            return CatalogMatch(unit_price=0, matched_from_catalog=False)

        logger.debug(f"Priced {product_name!r} from catalog entry {entry.name!r}")
        return CatalogMatch(unit_price=entry.unit_price, matched_from_catalog=True, catalog_name=entry.name)

    def _closest(self, product_name: str) -> Optional[CatalogEntry]:
        key = normalize_name(product_name)
        if not key:
            return None
        best: Optional[CatalogEntry] = None
        best_score = 0.0
        for entry in self.store.entries():
            candidate = normalize_name(entry.name)
            # "lolly" prices as "lolly bag"
            if candidate.startswith(key + " "):
                score = 1.0
            else:
                score = SequenceMatcher(None, key, candidate).ratio()
            if score >= self.fuzzy_cutoff and score > best_score:
                best, best_score = entry, score
        return best
