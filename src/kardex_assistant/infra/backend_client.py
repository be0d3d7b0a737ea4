"""Cliente REST do backend Kardex (produtos, promoções, clientes, pedidos).

Respostas seguem o envelope {"success": bool, "data": ..., "message": str}.
Erros HTTP são traduzidos para a hierarquia de domínio:
timeout -> OperationTimeoutError, falha transitória -> CollaboratorUnavailableError,
rejeição 4xx em pedidos -> OrderValidationError.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

import httpx

from kardex_assistant.domain.errors import (
    CollaboratorUnavailableError,
    OperationTimeoutError,
    OrderValidationError,
)
from kardex_assistant.domain.models import CatalogEntry, Promotion
from kardex_assistant.domain.protocols import BackendOrderRef, CatalogBackend, StockCheck
from kardex_assistant.infra.circuit_breaker import CircuitBreakerConfig
from kardex_assistant.infra.http import HttpClient, HttpClientConfig, HttpError
from kardex_assistant.observability.logging import get_logger, mask_phone
from kardex_assistant.text.phone import phone_variants

if TYPE_CHECKING:
    from kardex_assistant.config.settings import Settings

logger: logging.Logger = get_logger(__name__)

_VALIDATION_STATUSES = frozenset({400, 409, 422})
# Métodos que o backend não trata como idempotentes: uma tentativa só
_SINGLE_ATTEMPT_METHODS = frozenset({"POST", "PATCH"})


class KardexBackendClient(CatalogBackend):
    """Implementação HTTP do CatalogBackend."""

    def __init__(self, http: HttpClient, timeout_seconds: float = 10.0) -> None:
        self._http = http
        self._timeout = timeout_seconds

    async def close(self) -> None:
        await self._http.close()

    async def _call(self, operation: str, method: str, url: str, **kwargs: Any) -> Any:
        """Executa a chamada e devolve o campo data do envelope."""
        if method.upper() in _SINGLE_ATTEMPT_METHODS:
            kwargs.setdefault("max_retries", 0)
        try:
            response = await self._http.request(method, url, **kwargs)
        except HttpError as exc:
            raise self._translate(operation, exc) from exc
        return _unwrap(response)

    def _translate(self, operation: str, exc: HttpError) -> Exception:
        if exc.is_timeout:
            return OperationTimeoutError(f"backend.{operation}", self._timeout)
        if exc.status_code in _VALIDATION_STATUSES:
            return OrderValidationError(f"backend rejected {operation}: {exc}")
        return CollaboratorUnavailableError(f"backend {operation} unavailable: {exc}")

    async def _get_optional(self, operation: str, url: str, **kwargs: Any) -> Any | None:
        """GET que trata 404 como ausência."""
        try:
            response = await self._http.get(url, **kwargs)
        except HttpError as exc:
            if exc.status_code == 404:
                return None
            raise self._translate(operation, exc) from exc
        return _unwrap(response)

    async def list_products(self, active: bool = True, limit: int = 1000) -> list[CatalogEntry]:
        params = {"limit": limit}
        if active:
            params["activo"] = 1
        data = await self._call("list_products", "GET", "/productos", params=params)
        return _parse_entries(data)

    async def get_product(self, product_id: int) -> CatalogEntry | None:
        data = await self._get_optional("get_product", f"/productos/{product_id}")
        if not data:
            return None
        return CatalogEntry.from_backend(data)

    async def search_products(self, text: str, limit: int = 10) -> list[CatalogEntry]:
        data = await self._call(
            "search_products", "GET", "/productos", params={"search": text, "limit": limit}
        )
        return _parse_entries(data)

    async def check_stock(self, product_id: int, quantity: int) -> StockCheck:
        product = await self.get_product(product_id)
        available = product.stock if product is not None and product.active else 0
        return StockCheck(
            product_id=product_id, available=available, sufficient=available >= quantity
        )

    async def list_promotions(self) -> list[Promotion]:
        data = await self._call("list_promotions", "GET", "/promociones", params={"activo": 1})
        return [Promotion.from_backend(item) for item in data or []]

    async def get_client_by_phone(self, phone: str) -> dict[str, Any] | None:
        for variant in phone_variants(phone):
            data = await self._get_optional("get_client_by_phone", f"/clientes/by-phone/{variant}")
            if data:
                return data
        logger.info("backend_client_not_found", extra={"phone": mask_phone(phone)})
        return None

    async def create_order(
        self,
        phone: str,
        customer_name: str | None = None,
        client_id: int | None = None,
    ) -> BackendOrderRef:
        data = await self._call(
            "create_order",
            "POST",
            "/pedidos/whatsapp/vacio",
            json={"cliente_id": client_id, "telefono": phone, "nombre_cliente": customer_name},
        )
        ref = BackendOrderRef(order_id=int(data["id"]), order_number=data.get("numero_pedido"))
        logger.info(
            "backend_order_created",
            extra={"order_id": ref.order_id, "phone": mask_phone(phone)},
        )
        return ref

    async def append_line(self, order_id: int, product_id: int, quantity: int) -> None:
        await self._call(
            "append_line",
            "POST",
            "/pedidos/whatsapp/agregar-producto",
            json={"pedido_id": order_id, "producto_id": product_id, "cantidad": quantity},
        )

    async def confirm_order(
        self,
        order_id: int,
        address: str | None = None,
        payment_method: str | None = None,
    ) -> dict[str, Any]:
        data = await self._call(
            "confirm_order",
            "POST",
            "/pedidos/whatsapp/confirmar",
            json={"pedido_id": order_id, "direccion": address, "metodo_pago": payment_method},
        )
        return data or {}

    async def cancel_order(self, order_id: int) -> None:
        await self._call(
            "cancel_order", "POST", "/pedidos/whatsapp/cancelar", json={"pedido_id": order_id}
        )


def _unwrap(response: httpx.Response) -> Any:
    body = response.json() if response.content else {}
    if isinstance(body, dict) and "data" in body:
        if body.get("success") is False:
            raise OrderValidationError(str(body.get("message") or "backend rejected request"))
        return body["data"]
    return body


def _parse_entries(data: Any) -> list[CatalogEntry]:
    items = data.get("productos", []) if isinstance(data, dict) else data or []
    entries: list[CatalogEntry] = []
    for item in items:
        try:
            entries.append(CatalogEntry.from_backend(item))
        except (KeyError, ValueError, TypeError) as exc:
            logger.warning(
                "backend_product_skipped",
                extra={"product_id": item.get("id"), "error_type": type(exc).__name__},
            )
    return entries


def create_backend_client(
    settings: Settings,
    transport: httpx.AsyncBaseTransport | None = None,
) -> KardexBackendClient:
    """Fábrica do cliente do backend a partir das settings."""
    headers = {"User-Agent": f"{settings.service_name}/{settings.version}"}
    if settings.backend_api_token:
        headers["Authorization"] = f"Bearer {settings.backend_api_token}"
        headers["x-chatbot-token"] = settings.backend_api_token

    config = HttpClientConfig(
        base_url=settings.backend_base_url.rstrip("/"),
        timeout_seconds=settings.backend_timeout_seconds,
        max_retries=settings.backend_max_retries,
        backoff_base_seconds=settings.backend_retry_backoff_seconds,
        default_headers=headers,
        circuit_breaker=CircuitBreakerConfig(
            enabled=settings.backend_circuit_breaker_enabled,
            fail_max=settings.backend_circuit_breaker_fail_max,
            reset_timeout_seconds=settings.backend_circuit_breaker_reset_timeout_seconds,
        ),
    )
    logger.info(
        "backend_client_created",
        extra={"timeout_seconds": config.timeout_seconds, "max_retries": config.max_retries},
    )
    return KardexBackendClient(
        HttpClient(config, transport=transport), settings.backend_timeout_seconds
    )
