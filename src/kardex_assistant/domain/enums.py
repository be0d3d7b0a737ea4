"""Enums de domínio compartilhados (sem dependências internas)."""

from __future__ import annotations

from enum import StrEnum


class Intent(StrEnum):
    """Intenções reconhecidas em uma mensagem do cliente."""

    GREETING = "greeting"
    PLACE_ORDER = "place_order"
    VIEW_CATALOG = "view_catalog"
    PRICE_QUERY = "price_query"
    STOCK_QUERY = "stock_query"
    VIEW_PRODUCT = "view_product"
    ORDER_STATUS = "order_status"
    CANCEL = "cancel"
    HELP = "help"
    CONFIRM_YES = "confirm_yes"
    CONFIRM_NO = "confirm_no"
    OTHER = "other"


# Intenções que precisam consultar o backend de inventário
CATALOG_INTENTS: frozenset[Intent] = frozenset(
    {
        Intent.PLACE_ORDER,
        Intent.VIEW_CATALOG,
        Intent.PRICE_QUERY,
        Intent.STOCK_QUERY,
        Intent.VIEW_PRODUCT,
    }
)


class IntentSource(StrEnum):
    """Origem da classificação de intenção."""

    NLU = "nlu"
    KEYWORDS = "keywords"


class OrderStatus(StrEnum):
    """Status do pedido pendente."""

    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"


class PaymentMethod(StrEnum):
    """Métodos de pagamento aceitos pela loja."""

    YAPE = "yape"
    PLIN = "plin"
    TRANSFER = "transferencia"
    CASH = "efectivo"
    CARD = "tarjeta"


class ErrorCategory(StrEnum):
    """Taxonomia de erros usada na tradução para mensagens amigáveis."""

    CONNECTIVITY = "connectivity"
    TIMEOUT = "timeout"
    VALIDATION = "validation"
    STOCK = "stock"
    NOT_FOUND = "not_found"
    STATE_CONFLICT = "state_conflict"
    UNKNOWN = "unknown"


class IssueCode(StrEnum):
    """Códigos estruturados de erros/avisos de validação de pedido."""

    NOT_FOUND = "not_found"
    INVALID_QUANTITY = "invalid_quantity"
    INSUFFICIENT_STOCK = "insufficient_stock"
    STOCK_EXHAUSTED = "stock_exhausted"
    PRICE_CHANGED = "price_changed"
    EMPTY_ORDER = "empty_order"
