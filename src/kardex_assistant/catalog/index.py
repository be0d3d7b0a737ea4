"""Snapshot imutável do catálogo com índices de busca.

Construído de uma vez a partir das entradas do backend e substituído por
inteiro no reindex; nunca é alterado depois de criado.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from types import MappingProxyType

from kardex_assistant.domain.models import CatalogEntry
from kardex_assistant.text.normalizer import Normalizer, get_normalizer
from kardex_assistant.text.phonetics import soundex_es


@dataclass(frozen=True, slots=True)
class IndexedProduct:
    """Entrada do catálogo com suas formas normalizadas."""

    entry: CatalogEntry
    normalized_name: str
    tokens: frozenset[str]
    phonetic_key: str
    category_key: str | None


class CatalogIndex:
    """Índices por token, chave fonética e categoria."""

    def __init__(
        self,
        products: Mapping[int, IndexedProduct],
        token_index: Mapping[str, frozenset[int]],
        phonetic_index: Mapping[str, frozenset[int]],
        category_index: Mapping[str, frozenset[int]],
    ) -> None:
        self._products = MappingProxyType(dict(products))
        self._token_index = MappingProxyType(dict(token_index))
        self._phonetic_index = MappingProxyType(dict(phonetic_index))
        self._category_index = MappingProxyType(dict(category_index))

    @classmethod
    def build(
        cls,
        entries: Iterable[CatalogEntry],
        normalizer: Normalizer | None = None,
    ) -> CatalogIndex:
        """Constrói o snapshot; entradas inativas ou sem nome são ignoradas."""
        normalizer = normalizer or get_normalizer()
        products: dict[int, IndexedProduct] = {}
        tokens: dict[str, set[int]] = {}
        phonetic: dict[str, set[int]] = {}
        categories: dict[str, set[int]] = {}

        for entry in entries:
            if not entry.active or not entry.name.strip():
                continue
            normalized = normalizer.normalize_query(entry.name) or normalizer.clean(entry.name)
            category_key = normalizer.normalize_query(entry.category) if entry.category else None
            product = IndexedProduct(
                entry=entry,
                normalized_name=normalized,
                tokens=frozenset(normalized.split()),
                phonetic_key=soundex_es(normalized),
                category_key=category_key or None,
            )
            products[entry.id] = product
            for tok in product.tokens:
                tokens.setdefault(tok, set()).add(entry.id)
            if product.phonetic_key:
                phonetic.setdefault(product.phonetic_key, set()).add(entry.id)
            if product.category_key:
                for key in {product.category_key, *product.category_key.split()}:
                    categories.setdefault(key, set()).add(entry.id)

        return cls(
            products,
            {k: frozenset(v) for k, v in tokens.items()},
            {k: frozenset(v) for k, v in phonetic.items()},
            {k: frozenset(v) for k, v in categories.items()},
        )

    def __len__(self) -> int:
        return len(self._products)

    def get(self, product_id: int) -> IndexedProduct | None:
        return self._products.get(product_id)

    def entries(self) -> list[CatalogEntry]:
        return [p.entry for p in self._products.values()]

    def by_token(self, token: str) -> frozenset[int]:
        return self._token_index.get(token, frozenset())

    def by_phonetic(self, key: str) -> frozenset[int]:
        return self._phonetic_index.get(key, frozenset())

    def by_category(self, key: str) -> frozenset[int]:
        return self._category_index.get(key, frozenset())

    def is_category(self, key: str) -> bool:
        return key in self._category_index

    def candidates(self, tokens: Iterable[str], normalized_query: str) -> set[int]:
        """União dos ids achados por token e pela chave fonética da consulta."""
        ids: set[int] = set()
        for tok in tokens:
            ids |= self.by_token(tok)
            ids |= self.by_phonetic(soundex_es(tok))
        ids |= self.by_phonetic(soundex_es(normalized_query))
        return ids
