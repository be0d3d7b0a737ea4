"""Fábrica da aplicação FastAPI."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import timedelta
from typing import Any

from fastapi import FastAPI
from redis import asyncio as redis_asyncio

from kardex_assistant.api.routes import router
from kardex_assistant.application.conversation import ConversationService
from kardex_assistant.application.error_recovery import ErrorRecovery
from kardex_assistant.application.flow_guard import FlowGuard, FlowGuardConfig
from kardex_assistant.application.intent import IntentClassifier
from kardex_assistant.application.order_validator import OrderValidator
from kardex_assistant.application.promotions import PromotionService
from kardex_assistant.application.sales_flow import SalesFlowEngine
from kardex_assistant.application.session_manager import SessionManager
from kardex_assistant.catalog.resolver import MatcherConfig, ProductResolver
from kardex_assistant.config.settings import Settings, get_settings
from kardex_assistant.domain.errors import CollaboratorError
from kardex_assistant.domain.protocols import (
    CatalogBackend,
    NluClassifier,
    Transcriber,
    Transport,
)
from kardex_assistant.infra.backend_client import KardexBackendClient, create_backend_client
from kardex_assistant.infra.session_store import SessionStore, create_session_store
from kardex_assistant.observability.logging import configure_logging, get_logger, log_fallback
from kardex_assistant.observability.middleware import CorrelationIdMiddleware

logger = get_logger(__name__)


def _create_redis_client(redis_url: str | None) -> Any | None:
    """Cria cliente Redis assíncrono se URL disponível."""
    if not redis_url:
        return None
    return redis_asyncio.from_url(redis_url, decode_responses=True)


def _create_session_store(settings: Settings) -> SessionStore:
    backend = settings.session_store_backend.lower()
    if backend == "redis":
        redis_client = _create_redis_client(settings.redis_url)
        if redis_client is None:
            raise ValueError("SESSION_STORE_BACKEND=redis mas REDIS_URL não configurado")
        return create_session_store(
            "redis", client=redis_client, key_prefix=settings.session_key_prefix
        )
    return create_session_store("memory")


def _create_nlu(settings: Settings) -> NluClassifier | None:
    if not settings.nlu_enabled:
        return None
    from kardex_assistant.ai.nlu_client import OpenAINluClient

    return OpenAINluClient.from_settings(settings)


def create_app(
    settings: Settings | None = None,
    *,
    backend: CatalogBackend | None = None,
    session_store: SessionStore | None = None,
    nlu: NluClassifier | None = None,
    transport: Transport | None = None,
    transcriber: Transcriber | None = None,
) -> FastAPI:
    """Cria a aplicação FastAPI com todos os serviços ligados em app.state."""
    settings = settings or get_settings()
    configure_logging(settings.log_level, settings.service_name, settings.log_format)

    validation_errors = settings.validate_all()
    if validation_errors:
        error_msg = "; ".join(validation_errors)
        raise ValueError(f"Configuração inválida: {error_msg}")

    backend = backend or create_backend_client(settings)
    store = session_store or _create_session_store(settings)
    nlu = nlu or _create_nlu(settings)

    flow_guard = FlowGuard(FlowGuardConfig.from_settings(settings))
    sessions = SessionManager(
        store, flow_guard, ttl=timedelta(minutes=settings.session_ttl_minutes)
    )
    resolver = ProductResolver(config=MatcherConfig.from_settings(settings))
    promotions = PromotionService(backend, ttl_seconds=settings.promotion_cache_ttl_seconds)
    validator = OrderValidator(
        backend,
        resolver,
        promotions,
        product_cache_ttl_seconds=settings.product_cache_ttl_seconds,
    )
    classifier = IntentClassifier(
        nlu=nlu,
        flow_guard=flow_guard,
        normalizer=resolver.normalizer,
        threshold=settings.nlu_confidence_threshold,
        timeout_seconds=settings.nlu_timeout_seconds,
    )
    engine = SalesFlowEngine(
        backend,
        resolver,
        validator,
        promotions,
        classifier,
        flow_guard=flow_guard,
        store_name=settings.store_name,
        currency=settings.currency_symbol,
    )
    recovery = ErrorRecovery(max_log_entries=settings.error_log_max_entries)
    conversation = ConversationService(
        sessions,
        engine,
        classifier,
        flow_guard,
        recovery=recovery,
        transport=transport,
        transcriber=transcriber,
        history_ttl_seconds=settings.session_ttl_minutes * 60,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        try:
            await resolver.refresh(backend)
        except CollaboratorError as e:
            # Sobe com índice vazio; POST /catalog/reindex recarrega depois
            log_fallback(logger, "catalog_startup", reason=type(e).__name__)
        sessions.start_sweeper(settings.session_sweep_interval_seconds)
        logger.info(
            "app_started",
            extra={"environment": settings.environment, "indexed": len(resolver.index)},
        )
        try:
            yield
        finally:
            await sessions.stop_sweeper()
            if isinstance(backend, KardexBackendClient):
                await backend.close()

    app = FastAPI(title=settings.service_name, version=settings.version, lifespan=lifespan)
    app.add_middleware(CorrelationIdMiddleware)
    app.include_router(router)

    app.state.settings = settings
    app.state.backend = backend
    app.state.session_store = store
    app.state.flow_guard = flow_guard
    app.state.sessions = sessions
    app.state.resolver = resolver
    app.state.promotions = promotions
    app.state.validator = validator
    app.state.engine = engine
    app.state.error_recovery = recovery
    app.state.conversation = conversation

    return app
