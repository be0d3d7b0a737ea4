"""Gerenciamento de sessões: estado corrente, pedido pendente e expiração.

Toda transição passa pelo validador de transições. Sessões expiradas são
reiniciadas (estado idle, sem pedido), nunca apagadas.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Callable
from datetime import UTC, datetime, timedelta

from kardex_assistant.application.flow_guard import FlowGuard
from kardex_assistant.domain.errors import StateTransitionError
from kardex_assistant.domain.models import PendingOrder, PendingOrderSnapshot, Session
from kardex_assistant.domain.session import INITIAL_STATE, SessionState, validate_transition
from kardex_assistant.infra.session_store import SessionStore
from kardex_assistant.observability.logging import get_logger, mask_phone
from kardex_assistant.observability.middleware import bind_correlation_id

logger: logging.Logger = get_logger(__name__)

KEEP_ORDER = object()


class SessionManager:
    """Fachada sobre o SessionStore com as regras de transição."""

    def __init__(
        self,
        store: SessionStore,
        flow_guard: FlowGuard | None = None,
        ttl: timedelta = timedelta(minutes=30),
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._store = store
        self._flow_guard = flow_guard or FlowGuard()
        self._ttl = ttl
        self._clock = clock or (lambda: datetime.now(tz=UTC))
        self._sweeper: asyncio.Task[None] | None = None

    @property
    def store(self) -> SessionStore:
        return self._store

    async def get(self, phone: str) -> Session:
        """Sessão do telefone; cria uma em idle se não existir."""
        session = await self._store.load(phone)
        if session is not None:
            return session
        now = self._clock()
        session = Session(
            phone=phone,
            state=INITIAL_STATE,
            created_at=now,
            updated_at=now,
            expires_at=now + self._ttl,
        )
        await self._store.save(session)
        logger.info("session_created", extra={"phone": mask_phone(phone)})
        return session

    async def set_state(
        self,
        phone: str,
        state: SessionState,
        order: PendingOrder | None | object = KEEP_ORDER,
    ) -> Session:
        """Transiciona a sessão.

        Args:
            phone: Telefone do cliente
            state: Estado destino
            order: Novo pedido corrente; omitido mantém o atual, None limpa

        Raises:
            StateTransitionError: Se a transição for rejeitada
        """
        session = await self.get(phone)
        current = session.state
        allowed, reason = validate_transition(current, state)
        if not allowed:
            logger.warning(
                "session_transition_rejected",
                extra={
                    "phone": mask_phone(phone),
                    "from_state": current.value,
                    "to_state": str(state),
                    "reason": reason,
                },
            )
            raise StateTransitionError(current.value, str(state), reason)

        previous_order = session.current_order
        now = self._clock()
        update: dict[str, object] = {
            "state": SessionState(state),
            "updated_at": now,
            "expires_at": now + self._ttl,
        }
        if order is not KEEP_ORDER:
            update["current_order"] = order
        updated = session.model_copy(update=update)

        await self._store.save(updated)
        self._flow_guard.record(phone, updated.state, at=now)

        new_order = updated.current_order
        if new_order is not None and previous_order is None:
            await self._store.record_pending_order(
                PendingOrderSnapshot(phone=phone, order=new_order, created_at=now)
            )

        if current != updated.state:
            logger.info(
                "session_transition",
                extra={
                    "phone": mask_phone(phone),
                    "from_state": current.value,
                    "to_state": updated.state.value,
                },
            )
        return updated

    async def get_pending_order(self, phone: str) -> PendingOrder | None:
        session = await self._store.load(phone)
        return session.current_order if session is not None else None

    async def clear(self, phone: str) -> Session:
        """Volta para idle sem pedido e sem expiração."""
        session = await self.get(phone)
        now = self._clock()
        cleared = session.model_copy(
            update={
                "state": SessionState.IDLE,
                "current_order": None,
                "updated_at": now,
                "expires_at": None,
            }
        )
        await self._store.save(cleared)
        self._flow_guard.record(phone, SessionState.IDLE, at=now)
        if session.state != SessionState.IDLE:
            logger.info(
                "session_transition",
                extra={
                    "phone": mask_phone(phone),
                    "from_state": session.state.value,
                    "to_state": SessionState.IDLE.value,
                },
            )
        return cleared

    async def sweep_expired(self, now: datetime | None = None) -> int:
        """Reinicia sessões expiradas que não estão em idle. Retorna quantas."""
        now = now or self._clock()
        reset = 0
        for session in await self._store.list_expired(now):
            already_idle = session.state == SessionState.IDLE and session.current_order is None
            await self._store.save(
                session.model_copy(
                    update={
                        "state": SessionState.IDLE,
                        "current_order": None,
                        "updated_at": now,
                        "expires_at": None,
                    }
                )
            )
            if already_idle:
                continue
            self._flow_guard.clear(session.phone)
            reset += 1
        if reset:
            logger.info("sessions_expired_reset", extra={"count": reset})
        return reset

    def start_sweeper(self, interval_seconds: float) -> asyncio.Task[None]:
        """Tarefa de fundo que varre sessões expiradas periodicamente."""
        if self._sweeper is not None and not self._sweeper.done():
            return self._sweeper

        async def _loop() -> None:
            while True:
                await asyncio.sleep(interval_seconds)
                bind_correlation_id()
                try:
                    await self.sweep_expired()
                except Exception as exc:
                    logger.error(
                        "session_sweep_failed",
                        extra={"error_type": type(exc).__name__},
                        exc_info=True,
                    )

        self._sweeper = asyncio.create_task(_loop(), name="session-sweeper")
        return self._sweeper

    async def stop_sweeper(self) -> None:
        if self._sweeper is None:
            return
        self._sweeper.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._sweeper
        self._sweeper = None
