"""Resolução difusa de texto livre para produtos do catálogo.

Pontuação por candidato:
    w_jaccard * jaccard(tokens) + w_jw * jaro_winkler(nomes normalizados)
    + w_ph * match fonético + bônus de substring + bônus de categoria

Candidatos abaixo do limiar são descartados. Ordenação: score desc,
estoque desc, nome mais curto.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING

from kardex_assistant.catalog.index import CatalogIndex, IndexedProduct
from kardex_assistant.domain.models import CatalogEntry, MatchCandidate
from kardex_assistant.infra.ttl_cache import TTLCache
from kardex_assistant.observability.logging import get_logger
from kardex_assistant.observability.timing import timed
from kardex_assistant.text.normalizer import Normalizer, get_normalizer
from kardex_assistant.text.phonetics import phonetic_match
from kardex_assistant.text.similarity import jaccard, jaro_winkler

if TYPE_CHECKING:
    from kardex_assistant.config.settings import Settings
    from kardex_assistant.domain.protocols import CatalogBackend

logger: logging.Logger = get_logger(__name__)

SUBSTRING_BONUS = 0.25
CATEGORY_BONUS = 0.15


@dataclass(frozen=True)
class MatcherConfig:
    """Pesos e limiares do resolver."""

    weight_jaccard: float = 0.5
    weight_jaro_winkler: float = 0.3
    weight_phonetic: float = 0.2
    threshold: float = 0.55
    order_threshold: float = 0.60
    suggestion_threshold: float = 0.40
    cache_ttl_seconds: float = 300.0
    cache_max_entries: int = 1000

    @classmethod
    def from_settings(cls, settings: Settings) -> MatcherConfig:
        return cls(
            weight_jaccard=settings.matcher_weight_jaccard,
            weight_jaro_winkler=settings.matcher_weight_jaro_winkler,
            weight_phonetic=settings.matcher_weight_phonetic,
            threshold=settings.matcher_threshold,
            order_threshold=settings.order_match_threshold,
            suggestion_threshold=settings.suggestion_threshold,
            cache_ttl_seconds=float(settings.query_cache_ttl_seconds),
            cache_max_entries=settings.query_cache_max_entries,
        )


CacheKey = tuple[str, int, str | None, float]


class ProductResolver:
    """Resolve consultas contra o snapshot corrente do catálogo."""

    def __init__(
        self,
        index: CatalogIndex | None = None,
        config: MatcherConfig | None = None,
        normalizer: Normalizer | None = None,
        clock: Callable[[], float] | None = None,
    ) -> None:
        self._config = config or MatcherConfig()
        self._normalizer = normalizer or get_normalizer()
        self._clock = clock
        self._index = index or CatalogIndex.build([], self._normalizer)
        self._cache = self._new_cache()

    @property
    def config(self) -> MatcherConfig:
        return self._config

    @property
    def index(self) -> CatalogIndex:
        return self._index

    @property
    def normalizer(self) -> Normalizer:
        return self._normalizer

    def _new_cache(self) -> TTLCache[list[MatchCandidate]]:
        return TTLCache(
            ttl_seconds=self._config.cache_ttl_seconds,
            max_entries=self._config.cache_max_entries,
            clock=self._clock,
        )

    def reindex(self, entries: list[CatalogEntry]) -> int:
        """Troca o snapshot e o cache de consultas de uma só vez."""
        with timed("catalog_reindex"):
            index = CatalogIndex.build(entries, self._normalizer)
        self._index, self._cache = index, self._new_cache()
        logger.info("catalog_reindexed", extra={"indexed": len(index), "received": len(entries)})
        return len(index)

    async def refresh(self, backend: CatalogBackend) -> int:
        """Busca produtos ativos no backend e reindexa."""
        entries = await backend.list_products(active=True)
        return self.reindex(entries)

    def resolve(
        self,
        query: str | None,
        limit: int = 10,
        *,
        category: str | None = None,
        threshold: float | None = None,
    ) -> list[MatchCandidate]:
        """Retorna candidatos ranqueados com score >= limiar."""
        normalized = self._normalizer.normalize_query(query)
        if not normalized or limit <= 0:
            return []

        min_score = self._config.threshold if threshold is None else threshold
        category_key = self._normalizer.normalize_query(category) if category else None
        cache_key: CacheKey = (normalized, limit, category_key, min_score)
        cached = self._cache.get(cache_key)
        if cached is not None:
            return list(cached)

        index = self._index
        tokens = normalized.split()
        hints = {tok for tok in tokens if index.is_category(tok)}
        if category_key:
            hints.add(category_key)

        candidate_ids = index.candidates(tokens, normalized)
        for hint in hints:
            candidate_ids |= index.by_category(hint)

        results: list[MatchCandidate] = []
        for product_id in candidate_ids:
            product = index.get(product_id)
            if product is None:
                continue
            score = self._score(normalized, set(tokens), product, hints)
            if score >= min_score:
                results.append(MatchCandidate(entry=product.entry, score=round(score, 4)))

        results.sort(key=lambda c: (-c.score, -c.entry.stock, len(c.entry.name), c.entry.id))
        results = results[:limit]
        self._cache.set(cache_key, results)

        logger.debug(
            "catalog_resolve",
            extra={
                "query_tokens": len(tokens),
                "candidates": len(candidate_ids),
                "matches": len(results),
                "top_score": results[0].score if results else None,
            },
        )
        return list(results)

    def best(self, query: str | None, threshold: float | None = None) -> MatchCandidate | None:
        """Melhor candidato ou None."""
        matches = self.resolve(query, limit=1, threshold=threshold)
        return matches[0] if matches else None

    def resolve_order_line(self, phrase: str) -> MatchCandidate | None:
        """Resolve uma linha de pedido com o limiar mais exigente."""
        return self.best(phrase, threshold=self._config.order_threshold)

    def suggestions(self, query: str | None, limit: int = 5) -> list[MatchCandidate]:
        """Sugestões "quizás quisiste decir" com limiar mais baixo."""
        return self.resolve(query, limit=limit, threshold=self._config.suggestion_threshold)

    def alternatives(
        self, entry: CatalogEntry | None = None, limit: int = 3
    ) -> list[CatalogEntry]:
        """Produtos com estoque para oferecer no lugar de entry.

        Primeiro os da mesma categoria, depois os de nome parecido. Sem
        nenhum (ou sem entry), devolve os de maior estoque do catálogo.
        """
        if limit <= 0:
            return []
        index = self._index
        excluded = entry.id if entry is not None else None

        pool: list[CatalogEntry] = []
        if entry is not None:
            category_key = self._normalizer.normalize_query(entry.category or "")
            if category_key:
                same = (index.get(pid) for pid in index.by_category(category_key))
                pool.extend(sorted((p.entry for p in same if p), key=_popularity))
            pool.extend(m.entry for m in self.suggestions(entry.name, limit=limit * 3))

        similar = _available(pool, excluded, limit)
        if similar:
            return similar
        return _available(sorted(index.entries(), key=_popularity), excluded, limit)

    def _score(
        self,
        normalized_query: str,
        query_tokens: set[str],
        product: IndexedProduct,
        hints: set[str],
    ) -> float:
        cfg = self._config
        name = product.normalized_name
        score = (
            cfg.weight_jaccard * jaccard(query_tokens, product.tokens)
            + cfg.weight_jaro_winkler * jaro_winkler(normalized_query, name)
            + cfg.weight_phonetic * phonetic_match(normalized_query, name)
        )
        if normalized_query in name or name in normalized_query:
            score += SUBSTRING_BONUS
        if product.category_key and hints:
            category_tokens = {product.category_key, *product.category_key.split()}
            if category_tokens & hints:
                score += CATEGORY_BONUS
        return score


def _popularity(entry: CatalogEntry) -> tuple[int, int, int]:
    return (-entry.stock, len(entry.name), entry.id)


def _available(
    entries: list[CatalogEntry], excluded: int | None, limit: int
) -> list[CatalogEntry]:
    """Primeiros `limit` com estoque, sem repetir e sem o excluído."""
    seen: set[int] = set()
    result: list[CatalogEntry] = []
    for entry in entries:
        if entry.id == excluded or entry.id in seen or entry.stock <= 0 or not entry.active:
            continue
        seen.add(entry.id)
        result.append(entry)
        if len(result) >= limit:
            break
    return result
