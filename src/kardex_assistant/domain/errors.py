"""Hierarquia de exceções de domínio.

Cada exceção carrega uma ErrorCategory usada pelo ErrorRecovery para
escolher a mensagem amigável ao cliente.
"""

from __future__ import annotations

from kardex_assistant.domain.enums import ErrorCategory


class KardexAssistantError(Exception):
    """Erro base do assistente."""

    category: ErrorCategory = ErrorCategory.UNKNOWN


class ProductNotFoundError(KardexAssistantError):
    """Produto inexistente, inativo ou abaixo do limiar de similaridade."""

    category = ErrorCategory.NOT_FOUND

    def __init__(self, query: str) -> None:
        super().__init__(f"Product not found: {query}")
        self.query = query


class OrderValidationError(KardexAssistantError):
    """Pedido inválido (quantidade, linhas vazias, etc.)."""

    category = ErrorCategory.VALIDATION


class InsufficientStockError(KardexAssistantError):
    """Estoque menor que a quantidade pedida."""

    category = ErrorCategory.STOCK

    def __init__(self, product_name: str, requested: int, available: int) -> None:
        super().__init__(
            f"Insufficient stock for {product_name}: requested={requested} available={available}"
        )
        self.product_name = product_name
        self.requested = requested
        self.available = available


class CollaboratorError(KardexAssistantError):
    """Falha em colaborador externo (backend, NLU, transcrição)."""


class CollaboratorUnavailableError(CollaboratorError):
    """Colaborador inacessível (conexão recusada, circuit breaker aberto)."""

    category = ErrorCategory.CONNECTIVITY


class OperationTimeoutError(CollaboratorError):
    """Operação excedeu o timeout configurado."""

    category = ErrorCategory.TIMEOUT

    def __init__(self, operation: str, timeout_seconds: float) -> None:
        super().__init__(f"Operation '{operation}' timed out after {timeout_seconds}s")
        self.operation = operation
        self.timeout_seconds = timeout_seconds


class StateTransitionError(KardexAssistantError):
    """Transição de estado rejeitada pelo validador."""

    category = ErrorCategory.STATE_CONFLICT

    def __init__(self, current: str, target: str, reason: str | None = None) -> None:
        super().__init__(f"Invalid transition {current} -> {target}: {reason or 'rejected'}")
        self.current = current
        self.target = target
        self.reason = reason


class LoopDetectedError(KardexAssistantError):
    """Mesmo estado repetido além do limite na janela recente."""

    category = ErrorCategory.STATE_CONFLICT


class SessionStoreError(KardexAssistantError):
    """Erro ao persistir ou recuperar sessão."""

    category = ErrorCategory.CONNECTIVITY
