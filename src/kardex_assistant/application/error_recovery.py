"""Recuperação de erros: classificação e tradução para mensagens amigáveis.

Classifica primeiro pelo tipo (exceções de domínio carregam categoria),
depois por substrings da mensagem. Texto bruto de exceção nunca chega ao
cliente. Mantém um log limitado dos erros recentes.
"""

from __future__ import annotations

import logging
from collections import deque
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Generic, TypeVar

from kardex_assistant.application import messages
from kardex_assistant.domain.enums import ErrorCategory
from kardex_assistant.domain.errors import KardexAssistantError
from kardex_assistant.observability.logging import get_logger, mask_phone

logger: logging.Logger = get_logger(__name__)

T = TypeVar("T")

# Ordem importa: primeira categoria cujo marcador aparecer vence
_SUBSTRING_RULES: tuple[tuple[ErrorCategory, tuple[str, ...]], ...] = (
    (ErrorCategory.TIMEOUT, ("timeout", "etimedout", "timed out", "tardo", "tardó")),
    (ErrorCategory.CONNECTIVITY, ("econnrefused", "connection", "conexion", "pool", "unavailable")),
    (ErrorCategory.STOCK, ("stock", "disponible")),
    (ErrorCategory.NOT_FOUND, ("not found", "no existe", "no encontr")),
    (ErrorCategory.VALIDATION, ("validation", "invalid", "inválid", "invalido", "invalida")),
)


@dataclass(slots=True)
class ErrorContext:
    """Contexto da operação que falhou."""

    operation: str
    phone: str | None = None
    session_state: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class ErrorRecord:
    timestamp: datetime
    operation: str
    phone: str | None
    session_state: str | None
    category: ErrorCategory
    error_type: str
    message: str


@dataclass(frozen=True, slots=True)
class RecoveryFailure(Generic[T]):
    """Resultado de falha: mensagem amigável e, se houver, valor de fallback."""

    error: str
    category: ErrorCategory
    fallback_value: T | None = None
    success: bool = False


def classify(exc: BaseException) -> ErrorCategory:
    """Categoria do erro: tipo primeiro, depois substrings."""
    if isinstance(exc, KardexAssistantError) and exc.category != ErrorCategory.UNKNOWN:
        return exc.category
    if isinstance(exc, TimeoutError):
        return ErrorCategory.TIMEOUT
    if isinstance(exc, ConnectionError):
        return ErrorCategory.CONNECTIVITY

    text = f"{type(exc).__name__} {exc}".lower()
    for category, markers in _SUBSTRING_RULES:
        if any(marker in text for marker in markers):
            return category
    return ErrorCategory.UNKNOWN


class ErrorRecovery:
    """Executa operações convertendo falhas em respostas seguras."""

    def __init__(
        self,
        max_log_entries: int = 100,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._log: deque[ErrorRecord] = deque(maxlen=max_log_entries)
        self._clock = clock or (lambda: datetime.now(tz=UTC))

    async def run(
        self,
        operation: Callable[[], Awaitable[T]],
        context: ErrorContext,
        fallback: Callable[[], Awaitable[T]] | None = None,
    ) -> T | RecoveryFailure[T]:
        """Retorna o resultado da operação ou RecoveryFailure (nunca levanta Exception)."""
        try:
            return await operation()
        except Exception as exc:
            category = self.record(exc, context)
            fallback_value: T | None = None
            if fallback is not None:
                try:
                    fallback_value = await fallback()
                except Exception as fallback_exc:
                    self.record(fallback_exc, ErrorContext(f"{context.operation}.fallback"))
            return RecoveryFailure(
                error=self.friendly_message(category),
                category=category,
                fallback_value=fallback_value,
            )

    def record(self, exc: BaseException, context: ErrorContext) -> ErrorCategory:
        """Classifica, registra no log limitado e emite log estruturado."""
        category = classify(exc)
        self._log.append(
            ErrorRecord(
                timestamp=self._clock(),
                operation=context.operation,
                phone=context.phone,
                session_state=context.session_state,
                category=category,
                error_type=type(exc).__name__,
                message=str(exc)[:500],
            )
        )
        log = logger.error if category == ErrorCategory.UNKNOWN else logger.warning
        log(
            "operation_failed",
            extra={
                "operation": context.operation,
                "phone": mask_phone(context.phone),
                "session_state": context.session_state,
                "category": category.value,
                "error_type": type(exc).__name__,
            },
            exc_info=category == ErrorCategory.UNKNOWN,
        )
        return category

    @staticmethod
    def friendly_message(category: ErrorCategory) -> str:
        templates = messages.ERROR_TEMPLATES
        return templates.get(category, templates[ErrorCategory.UNKNOWN])

    def history(self, limit: int = 10) -> list[ErrorRecord]:
        """Erros mais recentes primeiro."""
        return list(reversed(self._log))[:limit]

    def clear(self) -> None:
        self._log.clear()

    @staticmethod
    def invalid_option_message(user_input: str, options: Sequence[str]) -> str:
        return messages.invalid_option(user_input, options)

    @staticmethod
    def ambiguous_input_message(user_input: str, interpretations: Sequence[str]) -> str:
        return messages.ambiguous_input(user_input, interpretations)
