"""Dublês dos colaboradores externos usados nos testes.

FakeBackend guarda catálogo, promoções, clientes e pedidos em memória e
registra as chamadas recebidas. Falhas podem ser injetadas por produto.
"""

from __future__ import annotations

import asyncio
from decimal import Decimal
from typing import Any

from kardex_assistant.application.intent import IntentResult
from kardex_assistant.domain.errors import CollaboratorUnavailableError
from kardex_assistant.domain.models import CatalogEntry, Promotion
from kardex_assistant.domain.protocols import (
    BackendOrderRef,
    CatalogBackend,
    NluClassifier,
    StockCheck,
    Transport,
)
from kardex_assistant.text.phone import phone_variants

MOUSE_CATEGORY_ID = 1
CUSTOMER_PHONE = "51987654321"


def sample_catalog() -> list[CatalogEntry]:
    """Catálogo pequeno de eletrônicos (um produto inativo)."""
    return [
        CatalogEntry(
            id=1,
            name="Mouse Inalámbrico Logitech",
            price=Decimal("45.90"),
            stock=20,
            category_id=MOUSE_CATEGORY_ID,
            category="Mouse",
        ),
        CatalogEntry(
            id=2,
            name="Mouse Gamer Razer",
            price=Decimal("129.00"),
            stock=5,
            category_id=MOUSE_CATEGORY_ID,
            category="Mouse",
        ),
        CatalogEntry(
            id=3,
            name="Teclado Mecánico Redragon",
            price=Decimal("159.90"),
            stock=8,
            category_id=2,
            category="Teclado",
        ),
        CatalogEntry(
            id=4,
            name="Audífonos Sony WH-1000XM5",
            price=Decimal("1299.00"),
            stock=3,
            category_id=3,
            category="Audífonos",
        ),
        CatalogEntry(
            id=5,
            name="Laptop Lenovo IdeaPad 3",
            price=Decimal("2199.00"),
            stock=2,
            category_id=4,
            category="Laptop",
        ),
        CatalogEntry(
            id=6,
            name="Monitor Samsung 24",
            price=Decimal("649.00"),
            stock=4,
            category_id=5,
            category="Monitor",
        ),
        CatalogEntry(
            id=7,
            name="Impresora Epson L3250",
            price=Decimal("799.00"),
            stock=6,
            active=False,
            category_id=6,
            category="Impresora",
        ),
    ]


def mouse_week() -> Promotion:
    """10% em toda a categoria Mouse."""
    return Promotion(
        id=10,
        name="Semana del Mouse",
        percent_discount=Decimal("10"),
        category_id=MOUSE_CATEGORY_ID,
    )


class FakeBackend(CatalogBackend):
    """Backend em memória com registro de chamadas."""

    def __init__(
        self,
        products: list[CatalogEntry] | None = None,
        promotions: list[Promotion] | None = None,
        clients: dict[str, dict[str, Any]] | None = None,
    ) -> None:
        self.products: dict[int, CatalogEntry] = {
            p.id: p for p in (products if products is not None else sample_catalog())
        }
        self.promotions: list[Promotion] = (
            promotions if promotions is not None else [mouse_week()]
        )
        self.clients: dict[str, dict[str, Any]] = (
            clients
            if clients is not None
            else {CUSTOMER_PHONE: {"id": 7, "nombre": "Ana"}}
        )
        self.unavailable = False
        self.promotions_unavailable = False
        self.failing_products: set[int] = set()
        self.promotion_calls = 0
        self.created_orders: list[dict[str, Any]] = []
        self.appended: list[tuple[int, int, int]] = []
        self.append_attempts: list[int] = []
        self.confirmed: list[dict[str, Any]] = []
        self.cancelled: list[int] = []
        self._next_order_id = 100

    def _check(self) -> None:
        if self.unavailable:
            raise CollaboratorUnavailableError("backend unavailable")

    async def list_products(self, active: bool = True, limit: int = 1000) -> list[CatalogEntry]:
        self._check()
        entries = [p for p in self.products.values() if p.active or not active]
        return entries[:limit]

    async def get_product(self, product_id: int) -> CatalogEntry | None:
        self._check()
        return self.products.get(product_id)

    async def search_products(self, text: str, limit: int = 10) -> list[CatalogEntry]:
        self._check()
        needle = text.lower()
        return [p for p in self.products.values() if needle in p.name.lower()][:limit]

    async def check_stock(self, product_id: int, quantity: int) -> StockCheck:
        product = await self.get_product(product_id)
        available = product.stock if product is not None else 0
        return StockCheck(product_id, available, available >= quantity)

    async def list_promotions(self) -> list[Promotion]:
        self.promotion_calls += 1
        if self.promotions_unavailable:
            raise CollaboratorUnavailableError("promotions unavailable")
        return list(self.promotions)

    async def get_client_by_phone(self, phone: str) -> dict[str, Any] | None:
        self._check()
        for variant in phone_variants(phone):
            if variant in self.clients:
                return self.clients[variant]
        return None

    async def create_order(
        self,
        phone: str,
        customer_name: str | None = None,
        client_id: int | None = None,
    ) -> BackendOrderRef:
        self._check()
        self._next_order_id += 1
        order_id = self._next_order_id
        self.created_orders.append(
            {"id": order_id, "phone": phone, "customer_name": customer_name, "client_id": client_id}
        )
        return BackendOrderRef(order_id=order_id, order_number=f"PED-{order_id:05d}")

    async def append_line(self, order_id: int, product_id: int, quantity: int) -> None:
        self._check()
        self.append_attempts.append(product_id)
        if product_id in self.failing_products:
            raise CollaboratorUnavailableError(f"append failed for product {product_id}")
        self.appended.append((order_id, product_id, quantity))

    async def confirm_order(
        self,
        order_id: int,
        address: str | None = None,
        payment_method: str | None = None,
    ) -> dict[str, Any]:
        self._check()
        self.confirmed.append(
            {"order_id": order_id, "address": address, "payment_method": payment_method}
        )
        return {"id": order_id, "numero_pedido": f"PED-{order_id:05d}"}

    async def cancel_order(self, order_id: int) -> None:
        self._check()
        self.cancelled.append(order_id)


class FakeTransport(Transport):
    """Canal que só acumula as mensagens enviadas."""

    def __init__(self, fail: bool = False) -> None:
        self.sent: list[tuple[str, str]] = []
        self.fail = fail

    async def send_message(self, phone: str, text: str) -> None:
        if self.fail:
            raise ConnectionError("transport down")
        self.sent.append((phone, text))

    async def send_image(self, phone: str, data: bytes, filename: str) -> None:
        self.sent.append((phone, f"<image {filename}>"))


class FakeNlu(NluClassifier):
    """NLU com resposta fixa; delay simula lentidão."""

    def __init__(self, result: IntentResult | None = None, delay: float = 0.0) -> None:
        self.result = result
        self.delay = delay
        self.calls: list[str] = []

    async def classify(self, text: str, history: list[str] | None = None) -> IntentResult | None:
        self.calls.append(text)
        if self.delay:
            await asyncio.sleep(self.delay)
        return self.result


async def no_sleep(_seconds: float) -> None:
    """Substitui asyncio.sleep nos retries do FlowGuard."""
    return None
