"""Validação autoritativa de linhas de pedido.

Cada linha é resolvida por id (backend) ou por nome (ProductResolver),
verificada contra estoque e precificada com a melhor promoção. O lote é
válido somente se nenhuma linha gerar erro; avisos não invalidam.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field, replace
from decimal import Decimal

from kardex_assistant.application.promotions import PromotionService
from kardex_assistant.catalog.resolver import ProductResolver
from kardex_assistant.domain.enums import IssueCode
from kardex_assistant.domain.models import CatalogEntry, ProductLine, to_money
from kardex_assistant.domain.protocols import CatalogBackend, StockCheck
from kardex_assistant.infra.ttl_cache import TTLCache
from kardex_assistant.observability.logging import get_logger

logger: logging.Logger = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class LineRequest:
    """Linha pedida pelo cliente (por id ou por nome)."""

    quantity: int
    product_id: int | None = None
    name: str | None = None
    unit_price: Decimal | None = None  # Preço visto pelo cliente, se houver


@dataclass(frozen=True, slots=True)
class ValidationIssue:
    code: IssueCode
    message: str
    product_ref: str | None = None
    product_id: int | None = None


@dataclass(slots=True)
class ValidationResult:
    valid: bool
    validated_lines: list[ProductLine] = field(default_factory=list)
    errors: list[ValidationIssue] = field(default_factory=list)
    warnings: list[ValidationIssue] = field(default_factory=list)

    def has_error(self, code: IssueCode) -> bool:
        return any(issue.code == code for issue in self.errors)

    def has_warning(self, code: IssueCode) -> bool:
        return any(issue.code == code for issue in self.warnings)


def merge_line_requests(requests: list[LineRequest]) -> list[LineRequest]:
    """Soma as quantidades de linhas repetidas do mesmo produto, mantendo a ordem.

    Linhas sem id ou com quantidade inválida passam intactas para a validação.
    """
    merged: list[LineRequest] = []
    positions: dict[int, int] = {}
    for request in requests:
        quantity = request.quantity
        countable = type(quantity) is int and quantity > 0
        if request.product_id is None or not countable:
            merged.append(request)
            continue
        position = positions.get(request.product_id)
        if position is None:
            positions[request.product_id] = len(merged)
            merged.append(request)
        else:
            first = merged[position]
            merged[position] = replace(first, quantity=first.quantity + quantity)
    return merged


@dataclass(frozen=True, slots=True)
class OrderTotals:
    subtotal: Decimal
    discount_total: Decimal
    total: Decimal


class OrderValidator:
    """Valida pedidos contra catálogo, estoque e promoções."""

    def __init__(
        self,
        backend: CatalogBackend,
        resolver: ProductResolver,
        promotions: PromotionService,
        product_cache_ttl_seconds: float = 120.0,
        clock: Callable[[], float] | None = None,
    ) -> None:
        self._backend = backend
        self._resolver = resolver
        self._promotions = promotions
        self._products: TTLCache[CatalogEntry] = TTLCache(
            product_cache_ttl_seconds, max_entries=500, clock=clock
        )

    async def get_product(self, product_id: int) -> CatalogEntry | None:
        """Produto autoritativo (cache curto)."""
        cached = self._products.get(product_id)
        if cached is not None:
            return cached
        product = await self._backend.get_product(product_id)
        if product is not None:
            self._products.set(product_id, product)
        return product

    async def verify_stock(self, product_id: int, quantity: int) -> StockCheck:
        return await self._backend.check_stock(product_id, quantity)

    async def _lookup(self, request: LineRequest) -> CatalogEntry | None:
        if request.product_id is not None:
            return await self.get_product(request.product_id)
        if request.name:
            match = self._resolver.resolve_order_line(request.name)
            if match is not None:
                # Dados de estoque/preço sempre do backend, não do snapshot
                return await self.get_product(match.entry.id)
        return None

    async def validate(self, lines: list[LineRequest]) -> ValidationResult:
        """Valida o lote inteiro."""
        result = ValidationResult(valid=False)
        if not lines:
            result.errors.append(ValidationIssue(IssueCode.EMPTY_ORDER, "El pedido está vacío"))
            return result

        for request in lines:
            ref = request.name or (str(request.product_id) if request.product_id else None)
            line = await self._validate_line(request, ref, result)
            if line is not None:
                result.validated_lines.append(line)

        result.valid = not result.errors
        logger.info(
            "order_validated",
            extra={
                "lines": len(lines),
                "valid": result.valid,
                "errors": [e.code.value for e in result.errors],
                "warnings": [w.code.value for w in result.warnings],
            },
        )
        return result

    async def _validate_line(
        self,
        request: LineRequest,
        ref: str | None,
        result: ValidationResult,
    ) -> ProductLine | None:
        quantity = request.quantity
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
            result.errors.append(
                ValidationIssue(
                    IssueCode.INVALID_QUANTITY,
                    f"Cantidad inválida para {ref or 'el producto'}: {request.quantity}",
                    ref,
                )
            )
            return None

        product = await self._lookup(request)
        if product is None or not product.active:
            result.errors.append(
                ValidationIssue(IssueCode.NOT_FOUND, f"Producto no encontrado: {ref}", ref)
            )
            return None

        if product.stock < request.quantity:
            result.errors.append(
                ValidationIssue(
                    IssueCode.INSUFFICIENT_STOCK,
                    f"Stock insuficiente de {product.name}: "
                    f"pediste {request.quantity}, disponibles {product.stock}",
                    product.name,
                    product.id,
                )
            )
            return None

        if product.stock == request.quantity:
            result.warnings.append(
                ValidationIssue(
                    IssueCode.STOCK_EXHAUSTED,
                    f"Te llevas las últimas unidades de {product.name}",
                    product.name,
                )
            )

        seen_price = request.unit_price
        if seen_price is not None and to_money(seen_price) != to_money(product.price):
            result.warnings.append(
                ValidationIssue(
                    IssueCode.PRICE_CHANGED,
                    f"El precio de {product.name} cambió a {product.price}",
                    product.name,
                )
            )

        pricing = await self._promotions.best_for(product, request.quantity)
        return ProductLine(
            product_id=product.id,
            name=product.name,
            quantity=request.quantity,
            unit_price=pricing.unit_price,
            final_price=pricing.final_price,
            discount=pricing.discount,
            stock_available=product.stock,
            promotion=pricing.promotion_ref,
        )

    @staticmethod
    def calculate_total(lines: list[ProductLine]) -> OrderTotals:
        """Totais a partir das linhas validadas."""
        subtotal = to_money(sum((line.unit_price * line.quantity for line in lines), Decimal("0")))
        total = to_money(sum((line.subtotal or Decimal("0") for line in lines), Decimal("0")))
        discount = to_money(subtotal - total)
        return OrderTotals(subtotal=subtotal, discount_total=discount, total=total)
