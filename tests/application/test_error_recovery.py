"""Testes para application/error_recovery.py."""

from __future__ import annotations

from datetime import UTC, datetime

import pytest

from kardex_assistant.application import messages
from kardex_assistant.application.error_recovery import (
    ErrorContext,
    ErrorRecovery,
    RecoveryFailure,
    classify,
)
from kardex_assistant.domain.enums import ErrorCategory
from kardex_assistant.domain.errors import (
    CollaboratorUnavailableError,
    InsufficientStockError,
    OperationTimeoutError,
    ProductNotFoundError,
    StateTransitionError,
)


class TestClassify:
    @pytest.mark.parametrize(
        ("exc", "category"),
        [
            (ProductNotFoundError("tablet"), ErrorCategory.NOT_FOUND),
            (InsufficientStockError("Mouse", 5, 2), ErrorCategory.STOCK),
            (OperationTimeoutError("nlu", 8.0), ErrorCategory.TIMEOUT),
            (CollaboratorUnavailableError("down"), ErrorCategory.CONNECTIVITY),
            (StateTransitionError("idle", "x"), ErrorCategory.STATE_CONFLICT),
            (TimeoutError(), ErrorCategory.TIMEOUT),
            (ConnectionResetError(), ErrorCategory.CONNECTIVITY),
        ],
    )
    def test_by_type(self, exc: Exception, category: ErrorCategory) -> None:
        assert classify(exc) == category

    @pytest.mark.parametrize(
        ("message", "category"),
        [
            ("connect ECONNREFUSED 127.0.0.1:3000", ErrorCategory.CONNECTIVITY),
            ("el backend tardó demasiado", ErrorCategory.TIMEOUT),
            ("stock insuficiente para el producto", ErrorCategory.STOCK),
            ("el producto no existe", ErrorCategory.NOT_FOUND),
            ("cantidad inválida", ErrorCategory.VALIDATION),
            ("boom", ErrorCategory.UNKNOWN),
        ],
    )
    def test_by_message(self, message: str, category: ErrorCategory) -> None:
        assert classify(RuntimeError(message)) == category


class TestRun:
    @pytest.mark.asyncio
    async def test_success_passes_through(self) -> None:
        async def ok() -> int:
            return 42

        assert await ErrorRecovery().run(ok, ErrorContext("op")) == 42

    @pytest.mark.asyncio
    async def test_failure_returns_friendly_message(self) -> None:
        async def down() -> int:
            raise CollaboratorUnavailableError("pool exhausted at 10.0.0.3")

        result = await ErrorRecovery().run(down, ErrorContext("list_products"))
        assert isinstance(result, RecoveryFailure)
        assert result.success is False
        assert result.category == ErrorCategory.CONNECTIVITY
        assert result.error == messages.ERROR_TEMPLATES[ErrorCategory.CONNECTIVITY]
        # Detalhes internos nunca chegam ao cliente
        assert "10.0.0.3" not in result.error

    @pytest.mark.asyncio
    async def test_fallback_value(self) -> None:
        async def down() -> list[str]:
            raise TimeoutError

        async def cached() -> list[str]:
            return ["cache"]

        result = await ErrorRecovery().run(down, ErrorContext("op"), fallback=cached)
        assert isinstance(result, RecoveryFailure)
        assert result.fallback_value == ["cache"]

    @pytest.mark.asyncio
    async def test_failing_fallback_is_recorded(self) -> None:
        async def down() -> int:
            raise TimeoutError

        async def broken() -> int:
            raise RuntimeError("fallback broke")

        recovery = ErrorRecovery()
        result = await recovery.run(down, ErrorContext("op"), fallback=broken)
        assert isinstance(result, RecoveryFailure)
        assert result.fallback_value is None
        assert [r.operation for r in recovery.history()] == ["op.fallback", "op"]


class TestHistory:
    def test_newest_first_and_bounded(self) -> None:
        stamp = datetime(2026, 4, 1, tzinfo=UTC)
        recovery = ErrorRecovery(max_log_entries=3, clock=lambda: stamp)
        for i in range(5):
            recovery.record(RuntimeError(f"e{i}"), ErrorContext(f"op{i}", phone="51987654321"))
        history = recovery.history()
        assert [r.operation for r in history] == ["op4", "op3", "op2"]
        assert history[0].timestamp == stamp
        assert history[0].error_type == "RuntimeError"
        assert recovery.history(limit=1)[0].operation == "op4"

    def test_clear(self) -> None:
        recovery = ErrorRecovery()
        recovery.record(RuntimeError("x"), ErrorContext("op"))
        recovery.clear()
        assert recovery.history() == []

    def test_unknown_category_has_template(self) -> None:
        assert ErrorRecovery.friendly_message(ErrorCategory.UNKNOWN)


class TestGuidanceMessages:
    def test_invalid_option_lists_options(self) -> None:
        text = ErrorRecovery.invalid_option_message("7", ["Yape", "Plin"])
        assert "Yape" in text and "Plin" in text

    def test_ambiguous_input_lists_interpretations(self) -> None:
        text = ErrorRecovery.ambiguous_input_message(
            "mouse", ["Mouse Gamer Razer", "Mouse Inalámbrico Logitech"]
        )
        assert "Mouse Gamer Razer" in text
