"""Serviço de conversa: um turno por mensagem recebida.

Responsabilidades:
- Serializar mensagens do mesmo telefone (asyncio.Lock por telefone)
- Aplicar as proteções de fluxo (desconexão, loops, retorno seguro)
- Despachar por (estado, intenção) para o SalesFlowEngine
- Garantir que todo turno produz uma mensagem e um estado válido
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections import Counter, deque
from collections.abc import AsyncIterator
from dataclasses import dataclass

from kardex_assistant.application import messages
from kardex_assistant.application.error_recovery import (
    ErrorContext,
    ErrorRecovery,
    RecoveryFailure,
)
from kardex_assistant.application.flow_guard import FlowGuard
from kardex_assistant.application.intent import IntentClassifier, IntentResult
from kardex_assistant.application.sales_flow import SalesFlowEngine, SalesStep
from kardex_assistant.application.session_manager import KEEP_ORDER, SessionManager
from kardex_assistant.domain.enums import CATALOG_INTENTS, Intent, IssueCode
from kardex_assistant.domain.errors import LoopDetectedError, StateTransitionError
from kardex_assistant.domain.models import PendingOrder, Session
from kardex_assistant.domain.protocols import Transcriber, Transport
from kardex_assistant.domain.session import ORDER_STATES, SessionState
from kardex_assistant.infra.ttl_cache import TTLCache
from kardex_assistant.observability.logging import get_logger, mask_phone
from kardex_assistant.observability.timing import timed
from kardex_assistant.text.phone import normalize_phone

logger: logging.Logger = get_logger(__name__)

HISTORY_SIZE = 6
MAX_TRACKED_CONVERSATIONS = 10_000

# Estados em que "no ..." ou "si ..." curtos valem como resposta sim/não
_YES_NO_STATES = frozenset(
    {
        SessionState.AWAITING_CONFIRMATION,
        SessionState.AWAITING_PAYMENT,
        SessionState.AWAITING_CANCEL_CONFIRMATION,
    }
)


@dataclass(frozen=True, slots=True)
class TurnResult:
    """Resposta do turno e estado final da sessão."""

    reply: str
    state: SessionState


@dataclass(slots=True)
class _Reply:
    message: str
    state: SessionState
    order: PendingOrder | None | object = KEEP_ORDER


class ConversationService:
    """Cola entre o canal de chat e o fluxo de vendas."""

    def __init__(
        self,
        sessions: SessionManager,
        engine: SalesFlowEngine,
        classifier: IntentClassifier,
        flow_guard: FlowGuard,
        recovery: ErrorRecovery | None = None,
        transport: Transport | None = None,
        transcriber: Transcriber | None = None,
        history_ttl_seconds: float = 1800.0,
    ) -> None:
        self._sessions = sessions
        self._engine = engine
        self._classifier = classifier
        self._flow_guard = flow_guard
        self._recovery = recovery or ErrorRecovery()
        self._transport = transport
        self._transcriber = transcriber
        # Locks existem só enquanto há turnos em andamento ou na fila
        self._locks: dict[str, asyncio.Lock] = {}
        self._lock_users: Counter[str] = Counter()
        self._history: TTLCache[deque[str]] = TTLCache(
            history_ttl_seconds, max_entries=MAX_TRACKED_CONVERSATIONS
        )

    @property
    def recovery(self) -> ErrorRecovery:
        return self._recovery

    @property
    def tracked_phones(self) -> set[str]:
        """Telefones com lock ativo ou histórico recente em memória."""
        return set(self._locks) | {str(key) for key in self._history.keys()}

    @contextlib.asynccontextmanager
    async def _phone_lock(self, phone: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(phone, asyncio.Lock())
        self._lock_users[phone] += 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[phone] -= 1
            if self._lock_users[phone] <= 0:
                del self._lock_users[phone]
                self._locks.pop(phone, None)

    def _forget(self, phone: str) -> None:
        """Descarta o estado em memória de uma conversa encerrada."""
        self._history.invalidate(phone)
        self._flow_guard.clear(phone)

    async def handle_text(self, phone: str, text: str) -> TurnResult:
        """Processa uma mensagem de texto e devolve a resposta enviada."""
        phone = normalize_phone(phone) or phone
        context = ErrorContext(operation="handle_text", phone=phone)

        async with self._phone_lock(phone):
            with timed("conversation_turn"):
                outcome = await self._recovery.run(
                    lambda: self._process(phone, text or "", context), context
                )
            if isinstance(outcome, RecoveryFailure):
                result = TurnResult(reply=outcome.error, state=await self._current_state(phone))
            else:
                result = outcome

        await self._deliver(phone, result.reply)
        return result

    async def handle_audio(
        self, phone: str, audio: bytes, filename: str = "audio.ogg"
    ) -> TurnResult:
        """Transcreve a nota de voz e trata como texto."""
        transcriber = self._transcriber
        if transcriber is None:
            raise RuntimeError("Transcriber não configurado")

        context = ErrorContext(operation="transcribe_audio", phone=phone)
        text = await self._recovery.run(
            lambda: self._flow_guard.with_timeout(
                lambda: transcriber.transcribe(audio, filename), name="transcribe_audio"
            ),
            context,
        )
        if isinstance(text, RecoveryFailure):
            normalized = normalize_phone(phone) or phone
            result = TurnResult(reply=text.error, state=await self._current_state(normalized))
            await self._deliver(normalized, result.reply)
            return result
        logger.info("audio_transcribed", extra={"phone": mask_phone(phone), "chars": len(text)})
        return await self.handle_text(phone, text)

    async def _current_state(self, phone: str) -> SessionState:
        try:
            return (await self._sessions.get(phone)).state
        except Exception as exc:
            logger.warning(
                "session_state_unavailable",
                extra={"phone": mask_phone(phone), "error_type": type(exc).__name__},
            )
            return SessionState.IDLE

    async def _deliver(self, phone: str, text: str) -> None:
        if self._transport is None or not text:
            return
        try:
            await self._transport.send_message(phone, text)
        except Exception as exc:
            logger.error(
                "transport_send_failed",
                extra={"phone": mask_phone(phone), "error_type": type(exc).__name__},
            )

    # Turno

    async def _process(self, phone: str, text: str, context: ErrorContext) -> TurnResult:
        session = await self._sessions.get(phone)
        session = await self._check_flow(session)
        context.session_state = session.state.value

        window = self._history.get(phone) or deque(maxlen=HISTORY_SIZE)
        history = list(window)
        window.append(text)
        self._history.set(phone, window)

        reply = await self._dispatch(session, text, history)
        final = await self._apply(session, reply)
        if final.state == SessionState.IDLE and final.current_order is None:
            # Idle sem pedido não guarda histórico de fluxo
            self._flow_guard.clear(phone)
            if reply.order is None:
                self._forget(phone)
        return TurnResult(reply=reply.message, state=final.state)

    async def _check_flow(self, session: Session) -> Session:
        """Reinicia conversas abandonadas e quebra loops de estado."""
        phone = session.phone
        if session.state != SessionState.IDLE and self._flow_guard.is_disconnected(phone):
            logger.info(
                "conversation_stale_reset",
                extra={"phone": mask_phone(phone), "state": session.state.value},
            )
            return await self._safe_reset(session, drop_order=True)

        if self._flow_guard.detect_loop(phone):
            stats = self._flow_guard.stats(phone)
            self._recovery.record(
                LoopDetectedError(
                    f"state {stats.most_frequent_state} repeated {stats.most_frequent_count}x"
                ),
                ErrorContext("flow_loop", phone=phone, session_state=session.state.value),
            )
            target = self._flow_guard.safe_return(phone, session.state)
            if target == session.state:
                self._flow_guard.clear(phone)
                return session
            return await self._safe_reset(session, drop_order=True)
        return session

    async def _safe_reset(self, session: Session, drop_order: bool = False) -> Session:
        phone = session.phone
        target = self._flow_guard.safe_return(phone, session.state)
        self._flow_guard.clear(phone)
        order = None if drop_order else KEEP_ORDER
        if target == SessionState.IDLE and order is None:
            return await self._sessions.clear(phone)
        try:
            return await self._sessions.set_state(phone, target, order=order)
        except StateTransitionError:
            return await self._sessions.clear(phone)

    async def _apply(self, session: Session, reply: _Reply) -> Session:
        if reply.state == SessionState.IDLE and reply.order is None:
            return await self._sessions.clear(session.phone)
        try:
            return await self._sessions.set_state(session.phone, reply.state, order=reply.order)
        except StateTransitionError:
            # Conflito de estado: retorno seguro, sem erro para o cliente
            current = await self._sessions.get(session.phone)
            return await self._safe_reset(current)

    async def _dispatch(self, session: Session, text: str, history: list[str]) -> _Reply:
        state = session.state
        if state == SessionState.AWAITING_REG_NAME:
            return await self._on_customer_name(session, text)
        if state == SessionState.AWAITING_UPDATE_ADDRESS:
            return await self._on_address(session, text)
        if state == SessionState.AWAITING_PAYMENT_METHOD:
            return await self._on_payment_method(session, text)

        outcome = await self._engine.identify_intent(
            text, history, expect_confirmation=state in _YES_NO_STATES
        )
        result: IntentResult = outcome.data["intent"]
        logger.info(
            "intent_classified",
            extra={
                "phone": mask_phone(session.phone),
                "state": state.value,
                "intent": result.intent.value,
                "confidence": result.confidence,
                "source": result.source.value,
            },
        )

        if state == SessionState.AWAITING_CONFIRMATION:
            return await self._on_confirmation(session, result)
        if state == SessionState.AWAITING_PAYMENT:
            return await self._on_closure_retry(session, result)
        if state == SessionState.AWAITING_CANCEL_CONFIRMATION:
            return await self._on_cancel_confirmation(session, result)
        return await self._on_intent(session, result, text)

    # Intenções gerais

    def _resting_state(self, session: Session) -> SessionState:
        return session.state if session.state in ORDER_STATES else SessionState.IDLE

    async def _on_intent(self, session: Session, result: IntentResult, text: str) -> _Reply:
        stay = self._resting_state(session)
        intent = result.intent

        if intent == Intent.GREETING:
            return _Reply(self._engine.greet().message, stay)
        if intent == Intent.HELP:
            return _Reply(messages.help_message(), stay)
        if intent == Intent.ORDER_STATUS:
            return _Reply(messages.order_status(session.current_order), stay)
        if intent == Intent.CANCEL:
            return self._start_cancel(session)
        if intent == Intent.PLACE_ORDER:
            return await self._start_order(session, result)
        if intent in CATALOG_INTENTS:
            query = result.fields.get("query")
            if not query and result.products:
                query = " ".join(p.name for p in result.products)
            return _Reply(await self._show_catalog(query, intent), stay)

        # Mensagem sem intenção clara mas que casa com um produto
        found = self._engine.query_catalog(text) if text.strip() else None
        if found is not None and found.action == "matches":
            message = await self._show_catalog(text, Intent.VIEW_PRODUCT)
            return _Reply(message, stay)
        return _Reply(messages.fallback(), stay)

    async def _show_catalog(self, query: str | None, intent: Intent) -> str:
        search = None if intent == Intent.VIEW_CATALOG and not query else query
        outcome = self._engine.query_catalog(search)
        if outcome.next_step != SalesStep.PRESENT_OPTIONS:
            return outcome.message
        presented = await self._engine.present_options(outcome.data["entries"], intent)
        return presented.message

    async def _start_order(self, session: Session, result: IntentResult) -> _Reply:
        stay = self._resting_state(session)
        selection = self._engine.assist_selection(result.products)
        if selection.next_step != SalesStep.CONFIRM:
            return _Reply(selection.message, stay)

        previous = session.current_order if session.state in ORDER_STATES else None
        base = PendingOrder(
            customer_name=previous.customer_name if previous else None,
            client_id=previous.client_id if previous else None,
        )
        confirmation = await self._engine.confirm(selection.data["requests"], base_order=base)
        order = confirmation.order
        if order is None:
            return _Reply(confirmation.message, stay)

        if not order.customer_name:
            client = await self._engine.lookup_customer(session.phone)
            if client:
                order.customer_name = client.get("nombre") or client.get("nombres")
                order.client_id = int(client["id"]) if client.get("id") else None
        if not order.customer_name:
            return _Reply(messages.ask_customer_name(), SessionState.AWAITING_REG_NAME, order)
        return _Reply(confirmation.message, SessionState.AWAITING_CONFIRMATION, order)

    def _start_cancel(self, session: Session) -> _Reply:
        order = session.current_order
        if order is None:
            return _Reply(messages.nothing_to_cancel(), SessionState.IDLE, None)
        if order.backend_order_id is not None:
            return _Reply(messages.confirm_cancel(), SessionState.AWAITING_CANCEL_CONFIRMATION)
        return _Reply(messages.order_cancelled(), SessionState.IDLE, None)

    def _wants_cancel(self, text: str) -> bool:
        corrected = self._classifier.normalizer.correct(text)
        return self._classifier.classify_keywords(corrected).intent == Intent.CANCEL

    # Estados que aguardam texto livre

    async def _on_customer_name(self, session: Session, text: str) -> _Reply:
        if self._wants_cancel(text):
            return self._start_cancel(session)
        order = session.current_order
        if order is None:
            return _Reply(messages.fallback(), SessionState.IDLE, None)

        name = " ".join(text.split())[:80]
        if len(name) < 2:
            return _Reply(messages.ask_customer_name(), SessionState.AWAITING_REG_NAME)

        outcome = await self._engine.reconfirm(order.model_copy(update={"customer_name": name}))
        if outcome.order is None:
            return _Reply(outcome.message, SessionState.IDLE, None)
        return _Reply(outcome.message, SessionState.AWAITING_CONFIRMATION, outcome.order)

    async def _on_address(self, session: Session, text: str) -> _Reply:
        if self._wants_cancel(text):
            return self._start_cancel(session)
        order = session.current_order
        if order is None:
            return _Reply(messages.fallback(), SessionState.IDLE, None)
        outcome = self._engine.collect_data(order, "address", text)
        return _Reply(outcome.message, SessionState.AWAITING_PAYMENT_METHOD, outcome.order)

    async def _on_payment_method(self, session: Session, text: str) -> _Reply:
        if self._wants_cancel(text):
            return self._start_cancel(session)
        order = session.current_order
        if order is None:
            return _Reply(messages.fallback(), SessionState.IDLE, None)
        outcome = self._engine.collect_data(order, "payment_method", text)
        if outcome.next_step != SalesStep.CLOSE_SALE or outcome.order is None:
            return _Reply(outcome.message, SessionState.AWAITING_PAYMENT_METHOD)
        return await self._close(session, outcome.order)

    # Estados que aguardam sim/não

    async def _on_confirmation(self, session: Session, result: IntentResult) -> _Reply:
        order = session.current_order
        if order is None:
            return _Reply(messages.fallback(), SessionState.IDLE, None)

        if result.intent == Intent.CONFIRM_YES:
            outcome = await self._engine.reconfirm(order)
            if outcome.order is None:
                return _Reply(outcome.message, SessionState.IDLE, None)
            validation = outcome.data["validation"]
            if validation.has_warning(IssueCode.PRICE_CHANGED):
                return _Reply(outcome.message, SessionState.AWAITING_CONFIRMATION, outcome.order)
            return _Reply(
                messages.ask_address(), SessionState.AWAITING_UPDATE_ADDRESS, outcome.order
            )
        if result.intent in (Intent.CONFIRM_NO, Intent.CANCEL):
            return _Reply(messages.order_declined(), SessionState.IDLE, None)
        if result.intent == Intent.PLACE_ORDER:
            return await self._start_order(session, result)
        if result.intent == Intent.OTHER:
            return _Reply(
                messages.confirmation_request(order), SessionState.AWAITING_CONFIRMATION
            )
        return await self._on_intent(session, result, "")

    async def _on_closure_retry(self, session: Session, result: IntentResult) -> _Reply:
        order = session.current_order
        if order is None:
            return _Reply(messages.fallback(), SessionState.IDLE, None)
        if result.intent == Intent.CONFIRM_YES:
            return await self._close(session, order)
        if result.intent in (Intent.CONFIRM_NO, Intent.CANCEL):
            return self._start_cancel(session)
        return _Reply(messages.closure_partial_failure(), SessionState.AWAITING_PAYMENT)

    async def _on_cancel_confirmation(self, session: Session, result: IntentResult) -> _Reply:
        order = session.current_order
        if order is None:
            return _Reply(messages.nothing_to_cancel(), SessionState.IDLE, None)
        if result.intent == Intent.CONFIRM_YES:
            outcome = await self._engine.cancel(order)
            return _Reply(outcome.message, SessionState.IDLE, None)
        if result.intent == Intent.CONFIRM_NO:
            return _Reply(
                messages.cancel_aborted() + "\n\n" + messages.closure_partial_failure(),
                SessionState.AWAITING_PAYMENT,
            )
        return _Reply(messages.confirm_cancel(), SessionState.AWAITING_CANCEL_CONFIRMATION)

    # Fechamento

    async def _close(self, session: Session, order: PendingOrder) -> _Reply:
        outcome = await self._engine.close_sale(session.phone, order)
        if outcome.action == "close_failed":
            return _Reply(outcome.message, SessionState.AWAITING_PAYMENT, outcome.order)

        await self._sessions.set_state(
            session.phone, SessionState.COMPLETED, order=outcome.order
        )
        follow_up = self._engine.follow_up()
        return _Reply(f"{outcome.message}\n\n{follow_up.message}", SessionState.IDLE, None)
