"""Serviço de promoções e cálculo de preço final.

Lê promoções ativas do backend com cache curto. Para um produto, valem as
promoções do próprio produto, da sua categoria e as gerais. Promoções cuja
quantidade mínima não é atingida são descartadas antes de escolher a de
maior desconto.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from decimal import Decimal

from kardex_assistant.domain.errors import CollaboratorError
from kardex_assistant.domain.models import CatalogEntry, Promotion, PromotionRef, to_money
from kardex_assistant.domain.protocols import CatalogBackend
from kardex_assistant.infra.ttl_cache import TTLCache
from kardex_assistant.observability.logging import get_logger, log_fallback

logger: logging.Logger = get_logger(__name__)

_CACHE_KEY = "active_promotions"


@dataclass(frozen=True, slots=True)
class PricingResult:
    """Preço unitário final após a melhor promoção aplicável."""

    unit_price: Decimal
    final_price: Decimal
    discount: Decimal
    discount_percent: Decimal
    promotion: Promotion | None = None

    @property
    def promotion_ref(self) -> PromotionRef | None:
        if self.promotion is None:
            return None
        return PromotionRef(id=self.promotion.id, name=self.promotion.name)


class PromotionService:
    """Consulta promoções vigentes e calcula descontos."""

    def __init__(
        self,
        backend: CatalogBackend,
        ttl_seconds: float = 120.0,
        clock: Callable[[], float] | None = None,
        now: Callable[[], datetime] | None = None,
    ) -> None:
        self._backend = backend
        self._cache: TTLCache[list[Promotion]] = TTLCache(ttl_seconds, max_entries=1, clock=clock)
        self._now = now or (lambda: datetime.now(tz=UTC))

    async def active_promotions(self, fresh: bool = False) -> list[Promotion]:
        """Promoções vigentes; fresh=True ignora o cache."""
        if not fresh:
            cached = self._cache.get(_CACHE_KEY)
            if cached is not None:
                return cached
        try:
            promotions = await self._backend.list_promotions()
        except CollaboratorError as exc:
            log_fallback(logger, "promotions", reason=type(exc).__name__)
            return []

        now = self._now()
        current = [p for p in promotions if p.is_current(now)]
        self._cache.set(_CACHE_KEY, current)
        return current

    async def applicable(self, entry: CatalogEntry, fresh: bool = False) -> list[Promotion]:
        """Promoções do produto, da categoria ou gerais."""
        return [
            p
            for p in await self.active_promotions(fresh=fresh)
            if p.product_id == entry.id
            or (p.category_id is not None and p.category_id == entry.category_id)
            or p.is_general
        ]

    async def best_for(
        self,
        entry: CatalogEntry,
        quantity: int = 1,
        fresh: bool = False,
    ) -> PricingResult:
        """Melhor preço para a quantidade pedida (determinístico por snapshot)."""
        price = to_money(entry.price)
        eligible = [
            p
            for p in await self.applicable(entry, fresh=fresh)
            if not p.min_quantity or quantity >= p.min_quantity
        ]
        best: Promotion | None = None
        best_discount = Decimal("0")
        # Empate: menor id vence, para ordem estável
        for promotion in sorted(eligible, key=lambda p: p.id):
            discount = min(promotion.discount_for(price), price)
            if discount > best_discount:
                best, best_discount = promotion, discount

        final_price = to_money(max(price - best_discount, Decimal("0")))
        percent = to_money(best_discount * 100 / price) if price > 0 else Decimal("0.00")
        return PricingResult(
            unit_price=price,
            final_price=final_price,
            discount=best_discount,
            discount_percent=percent,
            promotion=best,
        )

    async def promotion_message(self, entry: CatalogEntry, currency: str = "S/.") -> str | None:
        """Texto curto da promoção aplicável a 1 unidade (ou None)."""
        pricing = await self.best_for(entry, quantity=1)
        if pricing.promotion is None:
            return None
        return (
            f"🎉 {pricing.promotion.name}: {currency} {pricing.final_price} "
            f"(antes {currency} {pricing.unit_price}, -{pricing.discount_percent}%)"
        )

    def invalidate(self) -> None:
        self._cache.clear()
