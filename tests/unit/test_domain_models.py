"""Testes para domain/models.py e domain/session (transições)."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from decimal import Decimal

import pytest
from pydantic import ValidationError

from kardex_assistant.domain.enums import PaymentMethod
from kardex_assistant.domain.models import (
    ORDER_SCHEMA_VERSION,
    CatalogEntry,
    PendingOrder,
    ProductLine,
    Promotion,
    Session,
    to_money,
)
from kardex_assistant.domain.session import SessionState, validate_transition

V1_ORDER = {
    "productos": [
        {
            "producto_id": 1,
            "nombre": "Mouse Inalámbrico Logitech",
            "cantidad": 2,
            "precio_unitario": 45.9,
            "precio_final": 41.31,
        }
    ],
    "direccion": "Av. Arequipa 123",
    "metodoPago": "Yape",
    "pedido_id": 55,
    "numero_pedido": "PED-00055",
}


class TestProductLine:
    def test_subtotal_computed(self) -> None:
        line = ProductLine(
            product_id=1,
            name="Mouse",
            quantity=2,
            unit_price=Decimal("45.90"),
            final_price=Decimal("41.31"),
        )
        assert line.subtotal == Decimal("82.62")

    def test_subtotal_mismatch_rejected(self) -> None:
        """subtotal == final_price * quantity sempre."""
        with pytest.raises(ValidationError):
            ProductLine(
                product_id=1,
                name="Mouse",
                quantity=2,
                unit_price=Decimal("45.90"),
                final_price=Decimal("41.31"),
                subtotal=Decimal("90.00"),
            )

    def test_quantity_must_be_positive(self) -> None:
        with pytest.raises(ValidationError):
            ProductLine(
                product_id=1,
                name="Mouse",
                quantity=0,
                unit_price=Decimal("1"),
                final_price=Decimal("1"),
            )

    def test_money_rounding(self) -> None:
        assert to_money("10.005") == Decimal("10.01")
        assert to_money(None) == Decimal("0.00")


class TestPendingOrder:
    def test_v1_payload_is_migrated(self) -> None:
        order = PendingOrder.from_payload(V1_ORDER)
        assert order is not None
        assert order.schema_version == ORDER_SCHEMA_VERSION
        assert order.lines[0].product_id == 1
        assert order.lines[0].discount == Decimal("4.59")
        assert order.total == Decimal("82.62")
        assert order.payment_method == PaymentMethod.YAPE
        assert order.backend_order_id == 55
        assert order.delivery_address == "Av. Arequipa 123"

    def test_empty_payload(self) -> None:
        assert PendingOrder.from_payload(None) is None
        assert PendingOrder.from_payload({}) is None

    def test_session_migrates_legacy_order(self) -> None:
        session = Session(phone="51987654321", current_order=V1_ORDER)
        assert session.current_order is not None
        assert session.current_order.schema_version == ORDER_SCHEMA_VERSION

    def test_pending_lines_skip_appended(self) -> None:
        order = PendingOrder.from_payload(V1_ORDER)
        assert order is not None
        order.appended_product_ids.append(1)
        assert order.pending_lines() == []

    def test_session_round_trips_as_json(self) -> None:
        order = PendingOrder.from_payload(V1_ORDER)
        session = Session(
            phone="51987654321", state=SessionState.AWAITING_PAYMENT, current_order=order
        )
        restored = Session.model_validate_json(session.model_dump_json())
        assert restored.model_dump() == session.model_dump()


class TestCatalogEntry:
    def test_from_backend_payload(self) -> None:
        entry = CatalogEntry.from_backend(
            {
                "id": "3",
                "nombre": "Teclado Mecánico Redragon",
                "precio_venta": "159.9",
                "stock_actual": 8,
                "activo": 1,
                "categoria_id": 2,
                "categoria": {"nombre": "Teclado"},
            }
        )
        assert entry.id == 3
        assert entry.price == Decimal("159.90")
        assert entry.category == "Teclado"
        assert entry.active is True


class TestPromotion:
    def test_discount_is_max_of_percent_and_fixed(self) -> None:
        promo = Promotion(id=1, percent_discount=Decimal("10"), fixed_discount=Decimal("5"))
        assert promo.discount_for(Decimal("45.90")) == Decimal("5.00")
        assert promo.discount_for(Decimal("100.00")) == Decimal("10.00")

    def test_validity_window(self) -> None:
        now = datetime(2026, 1, 10, tzinfo=UTC)
        promo = Promotion(id=1, starts_at=now - timedelta(days=1), ends_at=now + timedelta(days=1))
        assert promo.is_current(now)
        assert not promo.is_current(now + timedelta(days=2))
        assert not Promotion(id=2, active=False).is_current(now)

    def test_naive_dates_treated_as_utc(self) -> None:
        promo = Promotion(id=1, ends_at=datetime(2026, 1, 1))
        assert not promo.is_current(datetime(2026, 1, 2, tzinfo=UTC))

    def test_general_promotion(self) -> None:
        assert Promotion(id=1).is_general
        assert not Promotion(id=2, category_id=1).is_general


class TestTransitions:
    def test_credential_regression_rejected(self) -> None:
        """Depois de pedir a senha não se volta a pedir o telefone."""
        allowed, reason = validate_transition(
            SessionState.AWAITING_PASSWORD, SessionState.AWAITING_PHONE
        )
        assert allowed is False
        assert reason is not None
        assert reason.startswith("credential_regression")

    def test_forward_credential_transition_allowed(self) -> None:
        assert validate_transition(SessionState.AWAITING_PHONE, SessionState.AWAITING_PASSWORD) == (
            True,
            None,
        )

    def test_idle_always_allowed(self) -> None:
        for state in SessionState:
            assert validate_transition(state, SessionState.IDLE)[0] is True

    def test_order_state_cannot_reopen_registration(self) -> None:
        allowed, _ = validate_transition(
            SessionState.AWAITING_CONFIRMATION, SessionState.AWAITING_REG_NAME
        )
        assert allowed is False

    def test_unknown_state(self) -> None:
        allowed, reason = validate_transition("bogus", SessionState.IDLE)
        assert allowed is False
        assert reason is not None and reason.startswith("unknown_state")
