"""Circuit breaker assíncrono para chamadas ao backend."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Literal

from kardex_assistant.observability.logging import get_logger

logger: logging.Logger = get_logger(__name__)

CircuitState = Literal["closed", "open", "half_open"]


@dataclass(frozen=True)
class CircuitBreakerConfig:
    """Configuração do circuit breaker (desligado por padrão)."""

    enabled: bool = False
    fail_max: int = 5
    reset_timeout_seconds: float = 60.0
    half_open_max_calls: int = 1


class CircuitBreaker:
    """Abre após falhas retentáveis consecutivas; testa em half-open."""

    def __init__(
        self,
        config: CircuitBreakerConfig,
        name: str = "backend",
        clock: Callable[[], float] | None = None,
    ) -> None:
        self._config = config
        self._name = name
        self._clock = clock or time.monotonic
        self._lock = asyncio.Lock()
        self._state: CircuitState = "closed"
        self._failures = 0
        self._opened_at: float | None = None
        self._half_open_calls = 0

    @property
    def state(self) -> CircuitState:
        return self._state

    @property
    def failure_count(self) -> int:
        return self._failures

    async def allow_request(self) -> bool:
        """True se a chamada pode seguir (sempre True quando desligado)."""
        if not self._config.enabled:
            return True

        async with self._lock:
            if self._state == "open":
                opened_at = self._opened_at if self._opened_at is not None else self._clock()
                if self._clock() - opened_at < self._config.reset_timeout_seconds:
                    return False
                self._transition("half_open")

            if self._state == "half_open":
                if self._half_open_calls >= self._config.half_open_max_calls:
                    return False
                self._half_open_calls += 1
            return True

    async def record_success(self) -> CircuitState:
        if not self._config.enabled:
            return "closed"
        async with self._lock:
            self._transition("closed")
            return self._state

    async def record_failure(self, is_retryable: bool) -> CircuitState:
        """Falhas não retentáveis (4xx) não contam para abrir o circuito."""
        if not self._config.enabled:
            return "closed"

        async with self._lock:
            if not is_retryable:
                self._transition("closed")
            elif self._state == "half_open":
                self._transition("open")
            else:
                self._failures += 1
                if self._failures >= self._config.fail_max:
                    self._transition("open")
            return self._state

    def _transition(self, target: CircuitState) -> None:
        previous = self._state
        self._state = target
        self._half_open_calls = 0
        if target == "closed":
            self._failures = 0
            self._opened_at = None
        elif target == "open":
            self._opened_at = self._clock()
        if previous != target:
            logger.info(
                "circuit_breaker_transition",
                extra={"breaker": self._name, "from": previous, "to": target},
            )
