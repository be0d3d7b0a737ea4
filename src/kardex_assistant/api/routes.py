"""Rotas HTTP: mensagens de entrada, catálogo, sessões e diagnóstico."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field

from kardex_assistant.api.dependencies import (
    get_backend,
    get_conversation,
    get_error_recovery,
    get_resolver,
    get_session_store,
    get_settings,
)
from kardex_assistant.application.conversation import ConversationService
from kardex_assistant.application.error_recovery import ErrorRecovery
from kardex_assistant.catalog.resolver import ProductResolver
from kardex_assistant.config.settings import Settings
from kardex_assistant.domain.errors import CollaboratorError
from kardex_assistant.domain.protocols import CatalogBackend
from kardex_assistant.infra.session_store import SessionStore, SessionStoreError
from kardex_assistant.observability.logging import get_logger
from kardex_assistant.text.phone import normalize_phone

logger = get_logger(__name__)

router = APIRouter()


class MessageIn(BaseModel):
    """Mensagem recebida do canal de chat."""

    phone: str = Field(min_length=3, max_length=32)
    text: str = Field(max_length=4096)


class MessageOut(BaseModel):
    reply: str
    state: str


@router.get("/health")
def health(settings: Settings = Depends(get_settings)) -> dict[str, str]:
    """Healthcheck simples."""
    return {"status": "ok", "service": settings.service_name, "version": settings.version}


@router.post("/messages", response_model=MessageOut)
async def post_message(
    message: MessageIn,
    conversation: ConversationService = Depends(get_conversation),
) -> MessageOut:
    """Processa um turno de conversa e devolve a resposta."""
    result = await conversation.handle_text(message.phone, message.text)
    return MessageOut(reply=result.reply, state=result.state.value)


@router.post("/catalog/reindex")
async def reindex_catalog(
    resolver: ProductResolver = Depends(get_resolver),
    backend: CatalogBackend = Depends(get_backend),
) -> dict[str, int]:
    """Recarrega o snapshot do catálogo a partir do backend."""
    try:
        indexed = await resolver.refresh(backend)
    except CollaboratorError as e:
        logger.warning("catalog_reindex_failed", extra={"error_type": type(e).__name__})
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="backend_unavailable",
        ) from e
    return {"indexed": indexed}


@router.get("/sessions/{phone}")
async def get_session(
    phone: str,
    store: SessionStore = Depends(get_session_store),
) -> dict[str, Any]:
    """Estado atual da sessão de um telefone."""
    try:
        session = await store.load(normalize_phone(phone) or phone)
    except SessionStoreError as e:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="session_store_unavailable",
        ) from e
    if session is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="session_not_found")
    return session.model_dump(mode="json")


@router.get("/errors")
def list_errors(
    limit: int = Query(10, ge=1, le=100),
    recovery: ErrorRecovery = Depends(get_error_recovery),
) -> list[dict[str, Any]]:
    """Erros recentes registrados pelo ErrorRecovery (mais novos primeiro)."""
    return [
        {
            "timestamp": record.timestamp.isoformat(),
            "operation": record.operation,
            "session_state": record.session_state,
            "category": record.category.value,
            "error_type": record.error_type,
            "message": record.message,
        }
        for record in recovery.history(limit)
    ]
