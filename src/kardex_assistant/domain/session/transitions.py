"""Validação pura de transições de estado.

Regra: um destino de coleta de credenciais é rejeitado quando a origem já
avançou além daquela etapa (ex.: depois de pedir a senha não se volta a
pedir o telefone). Destinos em ALWAYS_ALLOWED_TARGETS passam sempre.
Nunca levanta exceção.
"""

from __future__ import annotations

from kardex_assistant.domain.session.states import (
    ALWAYS_ALLOWED_TARGETS,
    CREDENTIAL_STATES,
    SessionState,
)

# Ordem de progresso na coleta de credenciais; estados ausentes = pós-credencial
_CREDENTIAL_RANK: dict[SessionState, int] = {
    SessionState.IDLE: 0,
    SessionState.AWAITING_CLIENT_CONFIRMATION: 0,
    SessionState.AWAITING_PHONE: 1,
    SessionState.AWAITING_PASSWORD: 2,
    SessionState.AWAITING_REG_NAME: 2,
    SessionState.AWAITING_REG_DNI: 3,
    SessionState.AWAITING_REG_EMAIL: 4,
    SessionState.AWAITING_REG_PASSWORD: 5,
}
_POST_CREDENTIAL_RANK = 10


def credential_rank(state: SessionState) -> int:
    """Retorna o nível de progresso da coleta de credenciais para o estado."""
    return _CREDENTIAL_RANK.get(state, _POST_CREDENTIAL_RANK)


def validate_transition(
    current: SessionState | str,
    target: SessionState | str,
) -> tuple[bool, str | None]:
    """Valida a transição current -> target.

    Returns:
        (allowed, reason) onde reason explica a rejeição.
    """
    try:
        current_state = SessionState(current)
        target_state = SessionState(target)
    except ValueError:
        return False, f"unknown_state:{current}->{target}"

    if target_state in ALWAYS_ALLOWED_TARGETS:
        return True, None

    if target_state in CREDENTIAL_STATES and credential_rank(current_state) > credential_rank(
        target_state
    ):
        return False, f"credential_regression:{current_state}->{target_state}"

    return True, None
