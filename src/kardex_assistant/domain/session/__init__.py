"""Estados e transições da sessão de conversa.

Exporta:
- SessionState: estados canônicos
- validate_transition: validador puro
"""

from kardex_assistant.domain.session.states import (
    ALWAYS_ALLOWED_TARGETS,
    INITIAL_STATE,
    ORDER_STATES,
    SAFE_STATES,
    SessionState,
)
from kardex_assistant.domain.session.transitions import validate_transition

__all__ = [
    "SessionState",
    "validate_transition",
    "INITIAL_STATE",
    "SAFE_STATES",
    "ALWAYS_ALLOWED_TARGETS",
    "ORDER_STATES",
]
