"""Implementação de SessionStore usando Redis (redis.asyncio)."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from pydantic import ValidationError

from kardex_assistant.domain.errors import SessionStoreError
from kardex_assistant.domain.models import PendingOrderSnapshot, Session
from kardex_assistant.infra.session_store import SessionStore
from kardex_assistant.observability.logging import get_logger, mask_phone

logger: logging.Logger = get_logger(__name__)


class RedisSessionStore(SessionStore):
    """Sessões como JSON em chaves por telefone + índice de expiração (ZSET)."""

    def __init__(
        self,
        redis_client: Any,
        key_prefix: str = "kardex:session:",
        pending_orders_key: str = "kardex:pending_orders",
    ) -> None:
        self._redis = redis_client
        self._prefix = key_prefix
        self._expiry_key = f"{key_prefix}expiry"
        self._pending_orders_key = pending_orders_key

    def _key(self, phone: str) -> str:
        return f"{self._prefix}{phone}"

    async def load(self, phone: str) -> Session | None:
        try:
            payload = await self._redis.get(self._key(phone))
        except Exception as e:
            logger.error(
                "session_load_failed",
                extra={"phone": mask_phone(phone), "error": str(e)},
            )
            raise SessionStoreError(f"Redis load failed: {e}") from e

        if not payload:
            return None
        if isinstance(payload, bytes):
            payload = payload.decode("utf-8")
        try:
            return Session.model_validate_json(payload)
        except ValidationError as e:
            logger.warning(
                "session_payload_invalid",
                extra={"phone": mask_phone(phone), "error_count": e.error_count()},
            )
            return None

    async def save(self, session: Session) -> None:
        key = self._key(session.phone)
        try:
            async with self._redis.pipeline(transaction=True) as pipe:
                pipe.set(key, session.model_dump_json())
                if session.expires_at is not None:
                    pipe.zadd(self._expiry_key, {session.phone: session.expires_at.timestamp()})
                else:
                    pipe.zrem(self._expiry_key, session.phone)
                await pipe.execute()
        except Exception as e:
            logger.error(
                "session_save_failed",
                extra={"phone": mask_phone(session.phone), "error": str(e)},
            )
            raise SessionStoreError(f"Redis save failed: {e}") from e

        logger.debug(
            "session_saved",
            extra={"phone": mask_phone(session.phone), "state": session.state.value},
        )

    async def list_expired(self, now: datetime) -> list[Session]:
        try:
            phones = await self._redis.zrangebyscore(self._expiry_key, "-inf", now.timestamp())
        except Exception as e:
            logger.error("session_expiry_scan_failed", extra={"error": str(e)})
            raise SessionStoreError(f"Redis expiry scan failed: {e}") from e

        sessions: list[Session] = []
        for phone in phones:
            if isinstance(phone, bytes):
                phone = phone.decode("utf-8")
            session = await self.load(phone)
            if session is not None and session.is_expired(now):
                sessions.append(session)
        return sessions

    async def record_pending_order(self, snapshot: PendingOrderSnapshot) -> None:
        try:
            await self._redis.rpush(self._pending_orders_key, snapshot.model_dump_json())
        except Exception as e:
            logger.error(
                "pending_order_record_failed",
                extra={"phone": mask_phone(snapshot.phone), "error": str(e)},
            )
            raise SessionStoreError(f"Redis pending order write failed: {e}") from e
