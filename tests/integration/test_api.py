"""Testes de integração da API HTTP (TestClient + backend falso)."""

from __future__ import annotations

from fastapi.testclient import TestClient

from tests.helpers.fakes import FakeBackend

PHONE = "987654321"


class TestHealth:
    def test_health(self, client: TestClient) -> None:
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "ok"

    def test_correlation_id_echoed(self, client: TestClient) -> None:
        response = client.get("/health", headers={"X-Correlation-ID": "abc-123"})
        assert response.headers.get("X-Correlation-ID") == "abc-123"


class TestMessages:
    def test_order_turn(self, client: TestClient) -> None:
        response = client.post("/messages", json={"phone": PHONE, "text": "kiero 2 maus logitech"})
        assert response.status_code == 200
        body = response.json()
        assert body["state"] == "awaiting_confirmation"
        assert "82.62" in body["reply"]

    def test_invalid_payload(self, client: TestClient) -> None:
        assert client.post("/messages", json={"phone": PHONE}).status_code == 422

    def test_session_lookup(self, client: TestClient) -> None:
        assert client.get(f"/sessions/{PHONE}").status_code == 404
        client.post("/messages", json={"phone": PHONE, "text": "quiero 1 teclado redragon"})
        response = client.get(f"/sessions/{PHONE}")
        assert response.status_code == 200
        body = response.json()
        assert body["phone"] == "51987654321"
        assert body["state"] == "awaiting_confirmation"
        assert body["current_order"]["lines"][0]["product_id"] == 3


class TestCatalogAndErrors:
    def test_reindex(self, client: TestClient) -> None:
        response = client.post("/catalog/reindex")
        assert response.status_code == 200
        assert response.json() == {"indexed": 6}

    def test_reindex_backend_down(self, client: TestClient, backend: FakeBackend) -> None:
        backend.unavailable = True
        assert client.post("/catalog/reindex").status_code == 503

    def test_errors_endpoint(self, client: TestClient, backend: FakeBackend) -> None:
        backend.promotions_unavailable = True
        backend.unavailable = True
        client.post("/messages", json={"phone": PHONE, "text": "quiero 1 teclado redragon"})
        response = client.get("/errors", params={"limit": 5})
        assert response.status_code == 200
        assert isinstance(response.json(), list)
