"""Guarda de fluxo: histórico de transições, loops, timeout e retry.

Mantém por telefone uma janela limitada das últimas transições. Um loop é
sinalizado quando um mesmo estado aparece M vezes dentro da janela de N.
Também fornece execução com timeout e retry com backoff linear para
chamadas a colaboradores.
"""

from __future__ import annotations

import asyncio
import logging
from collections import Counter, deque
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING, TypeVar

from kardex_assistant.domain.errors import CollaboratorError, OperationTimeoutError
from kardex_assistant.domain.models import StateTransitionRecord
from kardex_assistant.domain.session import SAFE_STATES, SessionState, validate_transition
from kardex_assistant.observability.logging import get_logger, mask_phone

if TYPE_CHECKING:
    from kardex_assistant.config.settings import Settings

logger: logging.Logger = get_logger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class FlowGuardConfig:
    history_size: int = 10
    loop_threshold: int = 5
    default_timeout_seconds: float = 30.0
    max_retries: int = 3
    retry_delay_seconds: float = 1.0
    disconnect_window: timedelta = timedelta(minutes=10)

    @classmethod
    def from_settings(cls, settings: Settings) -> FlowGuardConfig:
        return cls(
            history_size=settings.flow_history_size,
            loop_threshold=settings.flow_loop_threshold,
            default_timeout_seconds=settings.flow_default_timeout_seconds,
            max_retries=settings.flow_max_retries,
            retry_delay_seconds=settings.flow_retry_delay_seconds,
            disconnect_window=timedelta(minutes=settings.disconnect_window_minutes),
        )


@dataclass(frozen=True, slots=True)
class FlowStats:
    total_transitions: int
    unique_states: int
    most_frequent_state: SessionState | None
    most_frequent_count: int
    last_transition_at: datetime | None


class FlowGuard:
    """Proteções de fluxo por telefone."""

    def __init__(
        self,
        config: FlowGuardConfig | None = None,
        clock: Callable[[], datetime] | None = None,
        sleep: Callable[[float], Awaitable[None]] | None = None,
    ) -> None:
        self._config = config or FlowGuardConfig()
        self._clock = clock or (lambda: datetime.now(tz=UTC))
        self._sleep = sleep or asyncio.sleep
        self._history: dict[str, deque[StateTransitionRecord]] = {}

    @property
    def config(self) -> FlowGuardConfig:
        return self._config

    # Histórico e loops

    def record(self, phone: str, state: SessionState, at: datetime | None = None) -> None:
        """Registra transição; a janela descarta a mais antiga ao exceder N."""
        window = self._history.get(phone)
        if window is None:
            window = deque(maxlen=self._config.history_size)
            self._history[phone] = window
        record = StateTransitionRecord(state=SessionState(state), timestamp=at or self._clock())
        window.append(record)

    def history(self, phone: str) -> list[StateTransitionRecord]:
        return list(self._history.get(phone, ()))

    def detect_loop(self, phone: str) -> bool:
        """True se algum estado aparece >= M vezes na janela."""
        window = self._history.get(phone)
        if not window:
            return False
        state, count = Counter(r.state for r in window).most_common(1)[0]
        if count >= self._config.loop_threshold:
            logger.warning(
                "flow_loop_detected",
                extra={"phone": mask_phone(phone), "state": state.value, "count": count},
            )
            return True
        return False

    def record_and_check(self, phone: str, state: SessionState) -> bool:
        self.record(phone, state)
        return self.detect_loop(phone)

    def safe_return(self, phone: str, current: SessionState | None = None) -> SessionState:
        """Estado seguro: o corrente se seguro, senão o mais recente seguro, senão idle."""
        if current is not None and current in SAFE_STATES:
            return current
        for record in reversed(self._history.get(phone, ())):
            if record.state in SAFE_STATES:
                return record.state
        return SessionState.IDLE

    def validate_transition(self, current: SessionState, target: SessionState) -> bool:
        allowed, reason = validate_transition(current, target)
        if not allowed:
            logger.warning(
                "flow_transition_rejected",
                extra={"from_state": str(current), "to_state": str(target), "reason": reason},
            )
        return allowed

    def is_disconnected(
        self,
        phone: str,
        window: timedelta | None = None,
        now: datetime | None = None,
    ) -> bool:
        """Heurística consultiva: última transição mais antiga que a janela."""
        records = self._history.get(phone)
        if not records:
            return False
        limit = window or self._config.disconnect_window
        return (now or self._clock()) - records[-1].timestamp > limit

    def stats(self, phone: str) -> FlowStats:
        records = self._history.get(phone, ())
        if not records:
            return FlowStats(0, 0, None, 0, None)
        counts = Counter(r.state for r in records)
        state, count = counts.most_common(1)[0]
        return FlowStats(
            total_transitions=len(records),
            unique_states=len(counts),
            most_frequent_state=state,
            most_frequent_count=count,
            last_transition_at=records[-1].timestamp,
        )

    def clear(self, phone: str) -> None:
        self._history.pop(phone, None)

    def clear_all(self) -> None:
        self._history.clear()

    # Execução protegida

    async def with_timeout(
        self,
        operation: Callable[[], Awaitable[T]],
        timeout_seconds: float | None = None,
        name: str = "operation",
    ) -> T:
        """Executa com timeout; estouro vira OperationTimeoutError."""
        limit = timeout_seconds or self._config.default_timeout_seconds
        try:
            return await asyncio.wait_for(operation(), timeout=limit)
        except TimeoutError as exc:
            logger.warning("flow_operation_timeout", extra={"operation": name, "timeout": limit})
            raise OperationTimeoutError(name, limit) from exc

    async def with_retry(
        self,
        operation: Callable[[], Awaitable[T]],
        max_attempts: int | None = None,
        delay_seconds: float | None = None,
        retry_on: tuple[type[BaseException], ...] = (CollaboratorError,),
        name: str = "operation",
    ) -> T:
        """Tenta até max_attempts com espera delay * tentativa; relança o último erro."""
        attempts = max_attempts or self._config.max_retries
        delay = self._config.retry_delay_seconds if delay_seconds is None else delay_seconds
        for attempt in range(1, attempts + 1):
            try:
                return await operation()
            except retry_on as exc:
                if attempt >= attempts:
                    logger.error(
                        "flow_retries_exhausted",
                        extra={
                            "operation": name,
                            "attempts": attempt,
                            "error_type": type(exc).__name__,
                        },
                    )
                    raise
                logger.info(
                    "flow_retry",
                    extra={"operation": name, "attempt": attempt, "wait_seconds": delay * attempt},
                )
                await self._sleep(delay * attempt)
        raise RuntimeError("unreachable")  # pragma: no cover

    async def guarded(
        self,
        operation: Callable[[], Awaitable[T]],
        name: str,
        timeout_seconds: float | None = None,
    ) -> T:
        """Timeout por tentativa + retry."""
        return await self.with_retry(
            lambda: self.with_timeout(operation, timeout_seconds, name=name), name=name
        )
