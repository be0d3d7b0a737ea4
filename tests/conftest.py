from __future__ import annotations

from collections.abc import Iterator

import pytest
from fastapi.testclient import TestClient

from kardex_assistant.api.app import create_app
from kardex_assistant.application.conversation import ConversationService
from kardex_assistant.application.error_recovery import ErrorRecovery
from kardex_assistant.application.flow_guard import FlowGuard, FlowGuardConfig
from kardex_assistant.application.intent import IntentClassifier
from kardex_assistant.application.order_validator import OrderValidator
from kardex_assistant.application.promotions import PromotionService
from kardex_assistant.application.sales_flow import SalesFlowEngine
from kardex_assistant.application.session_manager import SessionManager
from kardex_assistant.catalog.resolver import ProductResolver
from kardex_assistant.config.settings import Settings, get_settings
from kardex_assistant.infra.session_store_memory import InMemorySessionStore
from tests.helpers.fakes import FakeBackend, FakeTransport, no_sleep


@pytest.fixture()
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture()
def resolver(backend: FakeBackend) -> ProductResolver:
    resolver = ProductResolver()
    resolver.reindex(list(backend.products.values()))
    return resolver


@pytest.fixture()
def flow_guard() -> FlowGuard:
    return FlowGuard(FlowGuardConfig(retry_delay_seconds=0.0), sleep=no_sleep)


@pytest.fixture()
def promotions(backend: FakeBackend) -> PromotionService:
    return PromotionService(backend)


@pytest.fixture()
def validator(
    backend: FakeBackend, resolver: ProductResolver, promotions: PromotionService
) -> OrderValidator:
    return OrderValidator(backend, resolver, promotions)


@pytest.fixture()
def classifier(flow_guard: FlowGuard, resolver: ProductResolver) -> IntentClassifier:
    return IntentClassifier(flow_guard=flow_guard, normalizer=resolver.normalizer)


@pytest.fixture()
def engine(
    backend: FakeBackend,
    resolver: ProductResolver,
    validator: OrderValidator,
    promotions: PromotionService,
    classifier: IntentClassifier,
    flow_guard: FlowGuard,
) -> SalesFlowEngine:
    return SalesFlowEngine(
        backend, resolver, validator, promotions, classifier, flow_guard=flow_guard
    )


@pytest.fixture()
def store() -> InMemorySessionStore:
    return InMemorySessionStore()


@pytest.fixture()
def sessions(store: InMemorySessionStore, flow_guard: FlowGuard) -> SessionManager:
    return SessionManager(store, flow_guard)


@pytest.fixture()
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture()
def conversation(
    sessions: SessionManager,
    engine: SalesFlowEngine,
    classifier: IntentClassifier,
    flow_guard: FlowGuard,
    transport: FakeTransport,
) -> ConversationService:
    return ConversationService(
        sessions,
        engine,
        classifier,
        flow_guard,
        recovery=ErrorRecovery(),
        transport=transport,
    )


@pytest.fixture()
def client(backend: FakeBackend) -> Iterator[TestClient]:
    get_settings.cache_clear()
    settings = Settings(session_sweep_interval_seconds=3600, log_format="text")
    app = create_app(settings, backend=backend)
    with TestClient(app) as test_client:
        yield test_client
