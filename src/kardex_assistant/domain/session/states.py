"""Estados canônicos da conversa de vendas.

Cada telefone possui exatamente um estado corrente. Estados "seguros" são
destinos válidos para retorno quando um loop ou conflito é detectado.
"""

from __future__ import annotations

from enum import StrEnum


class SessionState(StrEnum):
    """Estados da máquina de estados da sessão."""

    IDLE = "idle"
    AWAITING_CLIENT_CONFIRMATION = "awaiting_client_confirmation"
    AWAITING_PHONE = "awaiting_phone"
    AWAITING_PASSWORD = "awaiting_password"
    AWAITING_REG_NAME = "awaiting_reg_name"
    AWAITING_REG_DNI = "awaiting_reg_dni"
    AWAITING_REG_EMAIL = "awaiting_reg_email"
    AWAITING_REG_PASSWORD = "awaiting_reg_password"
    ORDER_IN_PROGRESS = "order_in_progress"
    AWAITING_CONFIRMATION = "awaiting_confirmation"
    AWAITING_PAYMENT_METHOD = "awaiting_payment_method"
    AWAITING_PAYMENT = "awaiting_payment"
    PAYMENT_CONFIRMED = "payment_confirmed"
    COMPLETED = "completed"
    AWAITING_CANCEL_CONFIRMATION = "awaiting_cancel_confirmation"
    AWAITING_UPDATE_PHONE = "awaiting_update_phone"
    AWAITING_UPDATE_ADDRESS = "awaiting_update_address"
    AWAITING_UPDATE_EMAIL = "awaiting_update_email"


INITIAL_STATE: SessionState = SessionState.IDLE

SAFE_STATES: frozenset[SessionState] = frozenset(
    {
        SessionState.IDLE,
        SessionState.AWAITING_PHONE,
        SessionState.AWAITING_CLIENT_CONFIRMATION,
    }
)

# Destinos sempre permitidos, independentemente da origem
ALWAYS_ALLOWED_TARGETS: frozenset[SessionState] = frozenset(
    {
        SessionState.IDLE,
        SessionState.AWAITING_CLIENT_CONFIRMATION,
    }
)

# Etapas de coleta de credenciais/cadastro
CREDENTIAL_STATES: frozenset[SessionState] = frozenset(
    {
        SessionState.AWAITING_PHONE,
        SessionState.AWAITING_PASSWORD,
        SessionState.AWAITING_REG_NAME,
        SessionState.AWAITING_REG_DNI,
        SessionState.AWAITING_REG_EMAIL,
        SessionState.AWAITING_REG_PASSWORD,
    }
)

# Estados em que existe um pedido em aberto
ORDER_STATES: frozenset[SessionState] = frozenset(
    {
        SessionState.ORDER_IN_PROGRESS,
        SessionState.AWAITING_CONFIRMATION,
        SessionState.AWAITING_UPDATE_ADDRESS,
        SessionState.AWAITING_PAYMENT_METHOD,
        SessionState.AWAITING_PAYMENT,
        SessionState.PAYMENT_CONFIRMED,
        SessionState.AWAITING_CANCEL_CONFIRMATION,
    }
)
