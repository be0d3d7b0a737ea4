"""Dependências injetadas nas rotas."""

from __future__ import annotations

from fastapi import Request

from kardex_assistant.application.conversation import ConversationService
from kardex_assistant.application.error_recovery import ErrorRecovery
from kardex_assistant.catalog.resolver import ProductResolver
from kardex_assistant.config.settings import Settings
from kardex_assistant.domain.protocols import CatalogBackend
from kardex_assistant.infra.session_store import SessionStore


def get_settings(request: Request) -> Settings:
    """Retorna settings da aplicação."""

    return request.app.state.settings


def get_conversation(request: Request) -> ConversationService:
    """Retorna o serviço de conversa."""

    return request.app.state.conversation


def get_resolver(request: Request) -> ProductResolver:
    return request.app.state.resolver


def get_backend(request: Request) -> CatalogBackend:
    return request.app.state.backend


def get_session_store(request: Request) -> SessionStore:
    """Retorna o store de sessão ativo."""

    return request.app.state.session_store


def get_error_recovery(request: Request) -> ErrorRecovery:
    return request.app.state.error_recovery
