"""Persistência de sessões de conversa (contrato assíncrono + fábrica).

Coleções lógicas:
- sessions: uma sessão por telefone (estado, pedido corrente, expiração)
- pending_orders: snapshot de auditoria gravado na criação de cada pedido
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any

from kardex_assistant.domain.errors import SessionStoreError
from kardex_assistant.domain.models import PendingOrderSnapshot, Session
from kardex_assistant.observability.logging import get_logger

logger: logging.Logger = get_logger(__name__)

__all__ = ["SessionStore", "SessionStoreError", "create_session_store"]


class SessionStore(ABC):
    """Contrato abstrato para armazenamento de Session."""

    @abstractmethod
    async def load(self, phone: str) -> Session | None:
        """Carrega a sessão do telefone (None se inexistente)."""
        ...

    @abstractmethod
    async def save(self, session: Session) -> None:
        """Persiste a sessão.

        Raises:
            SessionStoreError: Em caso de falha de persistência
        """
        ...

    @abstractmethod
    async def list_expired(self, now: datetime) -> list[Session]:
        """Sessões com expires_at <= now."""
        ...

    @abstractmethod
    async def record_pending_order(self, snapshot: PendingOrderSnapshot) -> None:
        """Grava snapshot do pedido recém-criado."""
        ...


def create_session_store(
    backend: str = "memory",
    client: Any | None = None,
    **kwargs: Any,
) -> SessionStore:
    """Fábrica de SessionStore.

    Args:
        backend: memory | redis
        client: cliente redis.asyncio (obrigatório para redis)

    Raises:
        ValueError: Se backend não reconhecido ou cliente ausente
    """
    backend = backend.lower()
    if backend == "memory":
        from kardex_assistant.infra.session_store_memory import InMemorySessionStore

        return InMemorySessionStore()

    if backend == "redis":
        if client is None:
            raise ValueError("SessionStore redis requer cliente configurado")
        from kardex_assistant.infra.session_store_redis import RedisSessionStore

        return RedisSessionStore(client, **kwargs)

    raise ValueError(f"Backend de sessão desconhecido: {backend}")
