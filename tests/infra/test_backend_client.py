"""Testes para infra/backend_client.py com transporte httpx simulado."""

from __future__ import annotations

import json
from collections.abc import Callable
from decimal import Decimal

import httpx
import pytest

from kardex_assistant.config.settings import Settings
from kardex_assistant.domain.errors import (
    CollaboratorUnavailableError,
    OperationTimeoutError,
    OrderValidationError,
)
from kardex_assistant.infra.backend_client import KardexBackendClient, create_backend_client

Handler = Callable[[httpx.Request], httpx.Response]

PRODUCT = {
    "id": 1,
    "nombre": "Mouse Inalámbrico Logitech",
    "precio_venta": "45.90",
    "stock_actual": 20,
    "activo": 1,
    "categoria_id": 1,
    "categoria": {"nombre": "Mouse"},
}


def _ok(data: object) -> httpx.Response:
    return httpx.Response(200, json={"success": True, "data": data})


def _client(handler: Handler, retries: int = 0) -> KardexBackendClient:
    settings = Settings(
        backend_base_url="http://backend.test/api",
        backend_api_token="tok",
        backend_max_retries=retries,
        backend_retry_backoff_seconds=0.0,
    )
    return create_backend_client(settings, transport=httpx.MockTransport(handler))


class TestCatalogEndpoints:
    @pytest.mark.asyncio
    async def test_list_products(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return _ok({"productos": [PRODUCT, {"nombre": "sin id"}]})

        entries = await _client(handler).list_products()
        assert len(entries) == 1
        assert entries[0].price == Decimal("45.90")
        assert entries[0].category == "Mouse"
        request = seen[0]
        assert request.url.path == "/api/productos"
        assert request.url.params["activo"] == "1"
        assert request.headers["Authorization"] == "Bearer tok"

    @pytest.mark.asyncio
    async def test_get_product_404_is_none(self) -> None:
        client = _client(lambda request: httpx.Response(404, json={"success": False}))
        assert await client.get_product(99) is None

    @pytest.mark.asyncio
    async def test_check_stock(self) -> None:
        client = _client(lambda request: _ok(PRODUCT))
        check = await client.check_stock(1, 25)
        assert check.available == 20
        assert check.sufficient is False

    @pytest.mark.asyncio
    async def test_list_promotions(self) -> None:
        promo = {"id": 10, "nombre": "Semana del Mouse", "descuento_porcentaje": 10}
        client = _client(lambda request: _ok([promo]))
        promotions = await client.list_promotions()
        assert promotions[0].percent_discount == Decimal("10")

    @pytest.mark.asyncio
    async def test_client_lookup_tries_variants(self) -> None:
        paths: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            paths.append(request.url.path)
            if request.url.path.endswith("/987654321"):
                return _ok({"id": 7, "nombre": "Ana"})
            return httpx.Response(404)

        client = await _client(handler).get_client_by_phone("51987654321")
        assert client == {"id": 7, "nombre": "Ana"}
        assert paths == [
            "/api/clientes/by-phone/51987654321",
            "/api/clientes/by-phone/987654321",
        ]


class TestOrderEndpoints:
    @pytest.mark.asyncio
    async def test_order_lifecycle_payloads(self) -> None:
        calls: list[tuple[str, dict]] = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append((request.url.path, json.loads(request.content)))
            return _ok({"id": 101, "numero_pedido": "PED-00101"})

        client = _client(handler)
        ref = await client.create_order("51987654321", customer_name="Ana", client_id=7)
        await client.append_line(ref.order_id, 1, 2)
        await client.confirm_order(ref.order_id, address="Av. Arequipa 123", payment_method="yape")
        await client.cancel_order(ref.order_id)

        assert ref.order_number == "PED-00101"
        assert [path for path, _ in calls] == [
            "/api/pedidos/whatsapp/vacio",
            "/api/pedidos/whatsapp/agregar-producto",
            "/api/pedidos/whatsapp/confirmar",
            "/api/pedidos/whatsapp/cancelar",
        ]
        assert calls[1][1] == {"pedido_id": 101, "producto_id": 1, "cantidad": 2}
        assert calls[2][1]["metodo_pago"] == "yape"


class TestErrorTranslation:
    @pytest.mark.asyncio
    async def test_rejection_is_validation_error(self) -> None:
        client = _client(lambda request: httpx.Response(422, json={"message": "stock"}))
        with pytest.raises(OrderValidationError):
            await client.append_line(101, 1, 500)

    @pytest.mark.asyncio
    async def test_success_false_envelope(self) -> None:
        client = _client(
            lambda request: httpx.Response(200, json={"success": False, "data": None})
        )
        with pytest.raises(OrderValidationError):
            await client.confirm_order(101)

    @pytest.mark.asyncio
    async def test_server_error_is_unavailable(self) -> None:
        client = _client(lambda request: httpx.Response(503))
        with pytest.raises(CollaboratorUnavailableError):
            await client.list_products()

    @pytest.mark.asyncio
    async def test_timeout(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("slow", request=request)

        with pytest.raises(OperationTimeoutError):
            await _client(handler).list_promotions()


class TestRetryPolicy:
    @pytest.mark.asyncio
    async def test_writes_are_sent_once(self) -> None:
        calls: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request.method)
            raise httpx.ReadTimeout("slow", request=request)

        client = _client(handler, retries=2)
        with pytest.raises(OperationTimeoutError):
            await client.append_line(101, 1, 2)
        with pytest.raises(OperationTimeoutError):
            await client.create_order("51987654321")
        assert calls == ["POST", "POST"]

    @pytest.mark.asyncio
    async def test_reads_keep_retrying(self) -> None:
        calls: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request.method)
            return httpx.Response(503)

        with pytest.raises(CollaboratorUnavailableError):
            await _client(handler, retries=2).list_products()
        assert calls == ["GET", "GET", "GET"]
