"""Contrato do backend de inventário/pedidos."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

from kardex_assistant.domain.models import CatalogEntry, Promotion


@dataclass(frozen=True, slots=True)
class StockCheck:
    """Resultado de verificação de estoque."""

    product_id: int
    available: int
    sufficient: bool


@dataclass(frozen=True, slots=True)
class BackendOrderRef:
    """Identificadores do pedido criado no backend."""

    order_id: int
    order_number: str | None = None


class CatalogBackend(ABC):
    """Backend autoritativo de produtos, estoque, promoções e pedidos."""

    @abstractmethod
    async def list_products(self, active: bool = True, limit: int = 1000) -> list[CatalogEntry]: ...

    @abstractmethod
    async def get_product(self, product_id: int) -> CatalogEntry | None: ...

    @abstractmethod
    async def search_products(self, text: str, limit: int = 10) -> list[CatalogEntry]: ...

    @abstractmethod
    async def check_stock(self, product_id: int, quantity: int) -> StockCheck: ...

    @abstractmethod
    async def list_promotions(self) -> list[Promotion]: ...

    @abstractmethod
    async def get_client_by_phone(self, phone: str) -> dict[str, Any] | None: ...

    @abstractmethod
    async def create_order(
        self,
        phone: str,
        customer_name: str | None = None,
        client_id: int | None = None,
    ) -> BackendOrderRef: ...

    @abstractmethod
    async def append_line(self, order_id: int, product_id: int, quantity: int) -> None: ...

    @abstractmethod
    async def confirm_order(
        self,
        order_id: int,
        address: str | None = None,
        payment_method: str | None = None,
    ) -> dict[str, Any]: ...

    @abstractmethod
    async def cancel_order(self, order_id: int) -> None: ...
