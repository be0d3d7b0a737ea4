"""Testes para os SessionStores (memória e Redis com cliente falso)."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from decimal import Decimal
from typing import Any

import pytest

from kardex_assistant.domain.errors import SessionStoreError
from kardex_assistant.domain.models import (
    PendingOrder,
    PendingOrderSnapshot,
    ProductLine,
    Session,
)
from kardex_assistant.domain.session import SessionState
from kardex_assistant.infra.session_store import create_session_store
from kardex_assistant.infra.session_store_memory import InMemorySessionStore
from kardex_assistant.infra.session_store_redis import RedisSessionStore

NOW = datetime(2026, 6, 1, 12, 0, tzinfo=UTC)


class FakePipeline:
    def __init__(self, redis: FakeRedis) -> None:
        self._redis = redis
        self._ops: list[tuple[str, tuple[Any, ...]]] = []

    async def __aenter__(self) -> FakePipeline:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        return None

    def set(self, key: str, value: str) -> FakePipeline:
        self._ops.append(("set", (key, value)))
        return self

    def zadd(self, key: str, mapping: dict[str, float]) -> FakePipeline:
        self._ops.append(("zadd", (key, mapping)))
        return self

    def zrem(self, key: str, member: str) -> FakePipeline:
        self._ops.append(("zrem", (key, member)))
        return self

    async def execute(self) -> list[Any]:
        if self._redis.fail:
            raise ConnectionError("redis down")
        for name, args in self._ops:
            getattr(self._redis, f"_{name}")(*args)
        return [True] * len(self._ops)


class FakeRedis:
    """Subconjunto de redis.asyncio usado pelo RedisSessionStore."""

    def __init__(self) -> None:
        self.values: dict[str, bytes] = {}
        self.zsets: dict[str, dict[str, float]] = {}
        self.lists: dict[str, list[str]] = {}
        self.fail = False

    def pipeline(self, transaction: bool = True) -> FakePipeline:
        return FakePipeline(self)

    def _set(self, key: str, value: str) -> None:
        self.values[key] = value.encode("utf-8")

    def _zadd(self, key: str, mapping: dict[str, float]) -> None:
        self.zsets.setdefault(key, {}).update(mapping)

    def _zrem(self, key: str, member: str) -> None:
        self.zsets.get(key, {}).pop(member, None)

    async def get(self, key: str) -> bytes | None:
        if self.fail:
            raise ConnectionError("redis down")
        return self.values.get(key)

    async def zrangebyscore(self, key: str, low: str, high: float) -> list[bytes]:
        members = self.zsets.get(key, {})
        return [m.encode("utf-8") for m, score in members.items() if score <= high]

    async def rpush(self, key: str, value: str) -> int:
        self.lists.setdefault(key, []).append(value)
        return len(self.lists[key])


def _session(phone: str = "51987654321", expires_in: timedelta | None = None) -> Session:
    line = ProductLine(
        product_id=1,
        name="Mouse Inalámbrico Logitech",
        quantity=2,
        unit_price=Decimal("45.90"),
        final_price=Decimal("41.31"),
    )
    return Session(
        phone=phone,
        state=SessionState.AWAITING_CONFIRMATION,
        current_order=PendingOrder(lines=[line], total=Decimal("82.62")),
        created_at=NOW,
        updated_at=NOW,
        expires_at=NOW + expires_in if expires_in is not None else None,
    )


class TestInMemorySessionStore:
    @pytest.mark.asyncio
    async def test_save_and_load_copy(self) -> None:
        store = InMemorySessionStore()
        session = _session()
        await store.save(session)
        loaded = await store.load(session.phone)
        assert loaded == session
        assert loaded is not session

    @pytest.mark.asyncio
    async def test_missing(self) -> None:
        assert await InMemorySessionStore().load("51900000000") is None

    @pytest.mark.asyncio
    async def test_list_expired(self) -> None:
        store = InMemorySessionStore()
        await store.save(_session("51911111111", timedelta(minutes=-1)))
        await store.save(_session("51922222222", timedelta(minutes=10)))
        await store.save(_session("51933333333"))
        expired = await store.list_expired(NOW)
        assert [s.phone for s in expired] == ["51911111111"]

    @pytest.mark.asyncio
    async def test_record_pending_order(self) -> None:
        store = InMemorySessionStore()
        session = _session()
        assert session.current_order is not None
        await store.record_pending_order(
            PendingOrderSnapshot(phone=session.phone, order=session.current_order)
        )
        assert len(store.pending_orders) == 1


class TestRedisSessionStore:
    @pytest.mark.asyncio
    async def test_round_trip(self) -> None:
        redis = FakeRedis()
        store = RedisSessionStore(redis)
        session = _session(expires_in=timedelta(minutes=30))
        await store.save(session)
        assert "kardex:session:51987654321" in redis.values
        loaded = await store.load(session.phone)
        assert loaded is not None
        assert loaded.model_dump() == session.model_dump()

    @pytest.mark.asyncio
    async def test_expiry_index(self) -> None:
        redis = FakeRedis()
        store = RedisSessionStore(redis)
        await store.save(_session("51911111111", timedelta(minutes=-5)))
        await store.save(_session("51922222222", timedelta(minutes=5)))
        expired = await store.list_expired(NOW)
        assert [s.phone for s in expired] == ["51911111111"]

        reset = (await store.load("51911111111")).model_copy(update={"expires_at": None})
        await store.save(reset)
        assert "51911111111" not in redis.zsets["kardex:session:expiry"]

    @pytest.mark.asyncio
    async def test_invalid_payload_treated_as_missing(self) -> None:
        redis = FakeRedis()
        redis.values["kardex:session:51987654321"] = b'{"phone": 1, "state": "nope"}'
        assert await RedisSessionStore(redis).load("51987654321") is None

    @pytest.mark.asyncio
    async def test_failures_raise_store_error(self) -> None:
        redis = FakeRedis()
        redis.fail = True
        store = RedisSessionStore(redis)
        with pytest.raises(SessionStoreError):
            await store.load("51987654321")
        with pytest.raises(SessionStoreError):
            await store.save(_session())

    @pytest.mark.asyncio
    async def test_pending_order_snapshot(self) -> None:
        redis = FakeRedis()
        session = _session()
        assert session.current_order is not None
        await RedisSessionStore(redis).record_pending_order(
            PendingOrderSnapshot(phone=session.phone, order=session.current_order)
        )
        assert len(redis.lists["kardex:pending_orders"]) == 1


class TestFactory:
    def test_memory(self) -> None:
        assert isinstance(create_session_store("memory"), InMemorySessionStore)

    def test_redis_requires_client(self) -> None:
        with pytest.raises(ValueError):
            create_session_store("redis")
        assert isinstance(create_session_store("redis", client=FakeRedis()), RedisSessionStore)

    def test_unknown_backend(self) -> None:
        with pytest.raises(ValueError):
            create_session_store("firestore")
