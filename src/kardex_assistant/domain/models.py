"""Modelos de domínio (pydantic) para catálogo, pedidos e sessões.

Valores monetários usam Decimal com duas casas. O invariante de linha
subtotal == final_price * quantity é garantido na construção.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from kardex_assistant.domain.enums import OrderStatus, PaymentMethod
from kardex_assistant.domain.session.states import INITIAL_STATE, SessionState

CENT = Decimal("0.01")
ORDER_SCHEMA_VERSION = 2


def to_money(value: Any) -> Decimal:
    """Converte para Decimal com duas casas (ROUND_HALF_UP)."""
    if isinstance(value, Decimal):
        amount = value
    else:
        amount = Decimal(str(value if value is not None else 0))
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def utcnow() -> datetime:
    return datetime.now(tz=UTC)


def _aware(value: datetime) -> datetime:
    """Datas sem fuso vindas do backend são tratadas como UTC."""
    return value if value.tzinfo is not None else value.replace(tzinfo=UTC)


class CatalogEntry(BaseModel):
    """Produto do catálogo (somente leitura, vindo do backend)."""

    model_config = ConfigDict(frozen=True)

    id: int
    name: str
    price: Decimal
    stock: int = 0
    active: bool = True
    category_id: int | None = None
    category: str | None = None

    @classmethod
    def from_backend(cls, data: dict[str, Any]) -> CatalogEntry:
        """Constrói a partir do payload REST (chaves em espanhol)."""
        category = data.get("categoria")
        if isinstance(category, dict):
            category = category.get("nombre")
        return cls(
            id=int(data["id"]),
            name=str(data.get("nombre") or data.get("name") or ""),
            price=to_money(data.get("precio_venta", data.get("price", 0))),
            stock=int(data.get("stock_actual", data.get("stock", 0)) or 0),
            active=bool(data.get("activo", data.get("active", True))),
            category_id=data.get("categoria_id", data.get("category_id")),
            category=category or data.get("categoria_nombre") or data.get("category"),
        )


class Promotion(BaseModel):
    """Promoção ativa (por produto, por categoria ou geral)."""

    model_config = ConfigDict(frozen=True)

    id: int
    name: str = ""
    description: str | None = None
    percent_discount: Decimal = Decimal("0")
    fixed_discount: Decimal = Decimal("0")
    product_id: int | None = None
    category_id: int | None = None
    min_quantity: int | None = None
    starts_at: datetime | None = None
    ends_at: datetime | None = None
    active: bool = True

    @property
    def is_general(self) -> bool:
        return self.product_id is None and self.category_id is None

    def is_current(self, now: datetime) -> bool:
        """Ativa e dentro da janela de validade."""
        if not self.active:
            return False
        if self.starts_at is not None and now < _aware(self.starts_at):
            return False
        return not (self.ends_at is not None and now > _aware(self.ends_at))

    def discount_for(self, price: Decimal) -> Decimal:
        """Desconto unitário: maior entre percentual e fixo."""
        discount = Decimal("0")
        if self.percent_discount:
            discount = price * self.percent_discount / Decimal("100")
        if self.fixed_discount:
            discount = max(discount, self.fixed_discount)
        return to_money(discount)

    @classmethod
    def from_backend(cls, data: dict[str, Any]) -> Promotion:
        return cls(
            id=int(data["id"]),
            name=str(data.get("nombre") or ""),
            description=data.get("descripcion"),
            percent_discount=Decimal(str(data.get("descuento_porcentaje") or 0)),
            fixed_discount=Decimal(str(data.get("descuento_fijo") or 0)),
            product_id=data.get("producto_id"),
            category_id=data.get("categoria_id"),
            min_quantity=data.get("cantidad_minima"),
            starts_at=data.get("fecha_inicio"),
            ends_at=data.get("fecha_fin"),
            active=bool(data.get("activo", True)),
        )


class PromotionRef(BaseModel):
    """Referência compacta à promoção aplicada numa linha."""

    id: int
    name: str


@dataclass(frozen=True, slots=True)
class MatchCandidate:
    """Candidato do resolver (efêmero, nunca persistido)."""

    entry: CatalogEntry
    score: float


class ProductLine(BaseModel):
    """Linha validada de pedido."""

    product_id: int
    name: str
    quantity: int = Field(ge=1)
    unit_price: Decimal
    final_price: Decimal
    subtotal: Decimal | None = None
    discount: Decimal = Decimal("0")
    stock_available: int | None = None
    promotion: PromotionRef | None = None

    @model_validator(mode="after")
    def _check_subtotal(self) -> ProductLine:
        self.unit_price = to_money(self.unit_price)
        self.final_price = to_money(self.final_price)
        self.discount = to_money(self.discount)
        expected = to_money(self.final_price * self.quantity)
        if self.subtotal is None:
            self.subtotal = expected
        elif to_money(self.subtotal) != expected:
            raise ValueError(
                f"subtotal {self.subtotal} != final_price {self.final_price} * {self.quantity}"
            )
        else:
            self.subtotal = expected
        return self


class PendingOrder(BaseModel):
    """Pedido em construção associado à sessão (payload versionado)."""

    schema_version: int = ORDER_SCHEMA_VERSION
    lines: list[ProductLine] = Field(default_factory=list)
    total: Decimal = Decimal("0.00")
    customer_name: str | None = None
    delivery_address: str | None = None
    delivery_date: str | None = None
    delivery_time: str | None = None
    payment_method: PaymentMethod | None = None
    status: OrderStatus = OrderStatus.PENDING
    client_id: int | None = None
    backend_order_id: int | None = None
    backend_order_number: str | None = None
    appended_product_ids: list[int] = Field(default_factory=list)

    def recompute_total(self) -> Decimal:
        """Recalcula e grava o total a partir das linhas."""
        self.total = to_money(sum((line.subtotal or Decimal("0")) for line in self.lines))
        return self.total

    def pending_lines(self) -> list[ProductLine]:
        """Linhas ainda não enviadas ao backend."""
        done = set(self.appended_product_ids)
        return [line for line in self.lines if line.product_id not in done]

    @classmethod
    def from_payload(cls, payload: dict[str, Any] | None) -> PendingOrder | None:
        """Carrega payload persistido, migrando o formato legado (v1).

        O formato v1 usava chaves em espanhol: productos, direccion, fecha,
        hora, metodoPago, pedido_id, numero_pedido.
        """
        if not payload:
            return None
        if payload.get("schema_version", 1) >= ORDER_SCHEMA_VERSION:
            return cls.model_validate(payload)
        return cls._migrate_v1(payload)

    @classmethod
    def _migrate_v1(cls, payload: dict[str, Any]) -> PendingOrder:
        lines: list[ProductLine] = []
        for item in payload.get("productos") or []:
            unit_price = to_money(item.get("precio_unitario", 0))
            final_price = to_money(item.get("precio_final", unit_price))
            lines.append(
                ProductLine(
                    product_id=int(item.get("producto_id") or item.get("id")),
                    name=str(item.get("nombre", "")),
                    quantity=int(item.get("cantidad", 1)),
                    unit_price=unit_price,
                    final_price=final_price,
                    discount=to_money(unit_price - final_price),
                )
            )
        method = payload.get("metodoPago")
        try:
            payment_method = PaymentMethod(str(method).lower()) if method else None
        except ValueError:
            payment_method = None
        order = cls(
            lines=lines,
            delivery_address=payload.get("direccion"),
            delivery_date=payload.get("fecha"),
            delivery_time=payload.get("hora"),
            payment_method=payment_method,
            backend_order_id=payload.get("pedido_id"),
            backend_order_number=payload.get("numero_pedido"),
        )
        order.recompute_total()
        return order


class Session(BaseModel):
    """Sessão de conversa (uma por telefone)."""

    phone: str
    state: SessionState = INITIAL_STATE
    current_order: PendingOrder | None = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    expires_at: datetime | None = None

    @field_validator("current_order", mode="before")
    @classmethod
    def _migrate_order(cls, value: Any) -> Any:
        if isinstance(value, dict) and value.get("schema_version", 1) < ORDER_SCHEMA_VERSION:
            return PendingOrder.from_payload(value)
        return value

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at is not None and self.expires_at <= now


@dataclass(frozen=True, slots=True)
class StateTransitionRecord:
    """Entrada do histórico de transições mantido pelo FlowGuard."""

    state: SessionState
    timestamp: datetime


class PendingOrderSnapshot(BaseModel):
    """Registro de auditoria gravado quando um pedido é criado."""

    phone: str
    order: PendingOrder
    created_at: datetime = Field(default_factory=utcnow)
