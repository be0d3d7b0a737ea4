"""Implementação de SessionStore em memória (apenas dev/testes)."""

from __future__ import annotations

import logging
from datetime import datetime

from kardex_assistant.domain.models import PendingOrderSnapshot, Session
from kardex_assistant.infra.session_store import SessionStore
from kardex_assistant.observability.logging import get_logger, mask_phone

logger: logging.Logger = get_logger(__name__)


class InMemorySessionStore(SessionStore):
    """Armazenamento em memória (não usar em produção).

    Guarda cópias dos modelos para que mutações fora do store não vazem.
    """

    def __init__(self) -> None:
        self._sessions: dict[str, Session] = {}
        self.pending_orders: list[PendingOrderSnapshot] = []

    async def load(self, phone: str) -> Session | None:
        session = self._sessions.get(phone)
        if session is None:
            logger.debug("session_not_found", extra={"phone": mask_phone(phone)})
            return None
        return session.model_copy(deep=True)

    async def save(self, session: Session) -> None:
        self._sessions[session.phone] = session.model_copy(deep=True)
        logger.debug(
            "session_saved",
            extra={"phone": mask_phone(session.phone), "state": session.state.value},
        )

    async def list_expired(self, now: datetime) -> list[Session]:
        return [s.model_copy(deep=True) for s in self._sessions.values() if s.is_expired(now)]

    async def record_pending_order(self, snapshot: PendingOrderSnapshot) -> None:
        self.pending_orders.append(snapshot.model_copy(deep=True))
