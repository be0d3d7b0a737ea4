"""Motor do fluxo de vendas em nove etapas.

Cada etapa recebe tudo de que precisa e devolve um StepOutcome; o motor não
guarda estado entre chamadas. O estado da conversa fica na sessão.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any

from kardex_assistant.application import messages
from kardex_assistant.application.flow_guard import FlowGuard
from kardex_assistant.application.intent import ExtractedProduct, IntentClassifier, IntentResult
from kardex_assistant.application.order_validator import (
    LineRequest,
    OrderValidator,
    ValidationIssue,
    merge_line_requests,
)
from kardex_assistant.application.promotions import PromotionService
from kardex_assistant.catalog.resolver import ProductResolver
from kardex_assistant.domain.enums import CATALOG_INTENTS, Intent, IssueCode, OrderStatus
from kardex_assistant.domain.errors import CollaboratorError, KardexAssistantError
from kardex_assistant.domain.models import CatalogEntry, PendingOrder
from kardex_assistant.domain.protocols import CatalogBackend
from kardex_assistant.observability.logging import get_logger, log_fallback, mask_phone
from kardex_assistant.text.order_parser import parse_payment_method

logger: logging.Logger = get_logger(__name__)

CATALOG_PAGE_SIZE = 10
PICKUP_KEYWORDS: frozenset[str] = frozenset({"tienda", "recojo", "recoger", "retiro"})
PICKUP_ADDRESS = "Recojo en tienda"


class SalesStep(IntEnum):
    GREET = 1
    IDENTIFY_INTENT = 2
    QUERY_CATALOG = 3
    PRESENT_OPTIONS = 4
    ASSIST_SELECTION = 5
    CONFIRM = 6
    COLLECT_DATA = 7
    CLOSE_SALE = 8
    FOLLOW_UP = 9


@dataclass(slots=True)
class StepOutcome:
    """Resultado de uma etapa: mensagem ao cliente e próxima etapa sugerida."""

    message: str
    next_step: SalesStep | None
    action: str
    data: dict[str, Any] = field(default_factory=dict)

    @property
    def order(self) -> PendingOrder | None:
        return self.data.get("order")


class SalesFlowEngine:
    """Orquestra as etapas de venda sobre os serviços de catálogo e pedido."""

    def __init__(
        self,
        backend: CatalogBackend,
        resolver: ProductResolver,
        validator: OrderValidator,
        promotions: PromotionService,
        classifier: IntentClassifier,
        flow_guard: FlowGuard | None = None,
        store_name: str = "KARDEX",
        currency: str = "S/.",
    ) -> None:
        self._backend = backend
        self._resolver = resolver
        self._validator = validator
        self._promotions = promotions
        self._classifier = classifier
        self._flow_guard = flow_guard or FlowGuard()
        self._store_name = store_name
        self._currency = currency

    # 1. Saudação

    def greet(self, customer_name: str | None = None) -> StepOutcome:
        return StepOutcome(
            message=messages.greeting(self._store_name, customer_name),
            next_step=SalesStep.IDENTIFY_INTENT,
            action="greet",
        )

    # 2. Intenção

    async def identify_intent(
        self,
        text: str,
        history: list[str] | None = None,
        nlu_result: IntentResult | None = None,
        expect_confirmation: bool = False,
    ) -> StepOutcome:
        result = await self._classifier.classify(
            text, history, nlu_result=nlu_result, expect_confirmation=expect_confirmation
        )
        if result.intent == Intent.GREETING:
            next_step = SalesStep.GREET
        elif result.intent == Intent.PLACE_ORDER:
            next_step = SalesStep.ASSIST_SELECTION
        elif result.intent in CATALOG_INTENTS:
            next_step = SalesStep.QUERY_CATALOG
        else:
            next_step = SalesStep.IDENTIFY_INTENT
        return StepOutcome(
            message="",
            next_step=next_step,
            action="intent",
            data={"intent": result},
        )

    # 3. Consulta ao catálogo

    def query_catalog(self, query: str | None = None) -> StepOutcome:
        """Busca no snapshot indexado; sem consulta lista o catálogo."""
        if not query:
            entries = sorted(self._resolver.index.entries(), key=lambda e: e.name.lower())
            return StepOutcome(
                message="",
                next_step=SalesStep.PRESENT_OPTIONS,
                action="catalog",
                data={"entries": entries[:CATALOG_PAGE_SIZE]},
            )

        matches = self._resolver.resolve(query, limit=5)
        if matches:
            return StepOutcome(
                message="",
                next_step=SalesStep.PRESENT_OPTIONS,
                action="matches",
                data={"entries": [m.entry for m in matches], "query": query},
            )

        return self._not_found(query)

    def _not_found(self, query: str) -> StepOutcome:
        candidates = self._resolver.suggestions(query, limit=3)
        popular = [] if candidates else self._resolver.alternatives(None, limit=3)
        return StepOutcome(
            message=messages.suggestions(query, candidates, self._currency, popular),
            next_step=SalesStep.IDENTIFY_INTENT,
            action="not_found",
            data={"query": query, "suggestions": candidates, "alternatives": popular},
        )

    # 4. Apresentação

    async def present_options(
        self,
        entries: list[CatalogEntry],
        intent: Intent = Intent.VIEW_CATALOG,
    ) -> StepOutcome:
        """Monta a resposta com promoções reconsultadas logo antes de exibir."""
        await self._promotions.active_promotions(fresh=True)

        if intent in (Intent.PRICE_QUERY, Intent.STOCK_QUERY, Intent.VIEW_PRODUCT) and entries:
            product = await self._authoritative(entries[0])
            note = await self._promotions.promotion_message(product, self._currency)
            message = messages.product_detail(product, self._currency, note)
            shown = [product]
            if product.stock <= 0:
                others = self._resolver.alternatives(product, limit=3)
                if others:
                    message += "\n\n" + messages.alternatives(others, self._currency)
        else:
            notes: dict[int, str] = {}
            for entry in entries:
                note = await self._promotions.promotion_message(entry, self._currency)
                if note:
                    notes[entry.id] = note
            message = messages.catalog_listing(entries, self._currency, notes)
            shown = list(entries)

        return StepOutcome(
            message=message,
            next_step=SalesStep.ASSIST_SELECTION,
            action="present",
            data={"entries": shown},
        )

    async def _authoritative(self, entry: CatalogEntry) -> CatalogEntry:
        try:
            product = await self._validator.get_product(entry.id)
        except CollaboratorError as exc:
            log_fallback(logger, "catalog_detail", reason=type(exc).__name__)
            return entry
        return product or entry

    # 5. Seleção assistida

    def assist_selection(self, products: list[ExtractedProduct]) -> StepOutcome:
        """Resolve as frases pedidas em produtos concretos."""
        if not products:
            return StepOutcome(
                message=messages.order_items_not_understood(),
                next_step=SalesStep.IDENTIFY_INTENT,
                action="no_items",
            )

        requests: list[LineRequest] = []
        for item in products:
            match = self._resolver.resolve_order_line(item.name)
            if match is None:
                return self._not_found(item.name)
            requests.append(
                LineRequest(
                    quantity=item.quantity,
                    product_id=match.entry.id,
                    name=match.entry.name,
                    unit_price=match.entry.price,
                )
            )

        return StepOutcome(
            message="",
            next_step=SalesStep.CONFIRM,
            action="selected",
            data={"requests": requests},
        )

    # 6. Confirmação

    async def confirm(
        self,
        requests: list[LineRequest],
        base_order: PendingOrder | None = None,
    ) -> StepOutcome:
        """Valida e recalcula totais; números vindos do cliente são ignorados.

        Linhas repetidas do mesmo produto viram uma só, com a soma das
        quantidades, antes da validação de estoque.
        """
        requests = merge_line_requests(requests)
        result = await self._validator.validate(requests)
        if not result.valid:
            lines = [f"❌ {issue.message}" for issue in result.errors]
            if result.has_error(IssueCode.NOT_FOUND):
                lines.append("Escribe *CATALOGO* para ver los productos disponibles.")
            requested = {r.product_id for r in requests if r.product_id is not None}
            others = self._stock_alternatives(result.errors, requested)
            if others:
                lines += ["", messages.alternatives(others, self._currency)]
            return StepOutcome(
                message="\n".join(lines),
                next_step=SalesStep.ASSIST_SELECTION,
                action="invalid",
                data={"validation": result, "alternatives": others},
            )

        totals = OrderValidator.calculate_total(result.validated_lines)
        base = base_order or PendingOrder()
        order = base.model_copy(
            update={"lines": result.validated_lines, "status": OrderStatus.PENDING}
        )
        order.total = totals.total

        notes = [issue.message for issue in result.warnings]
        return StepOutcome(
            message=messages.confirmation_request(order, self._currency, notes),
            next_step=SalesStep.COLLECT_DATA,
            action="confirm",
            data={"order": order, "validation": result, "totals": totals},
        )

    async def reconfirm(self, order: PendingOrder) -> StepOutcome:
        """Revalida um pedido já montado (preço e estoque atuais)."""
        requests = [
            LineRequest(
                quantity=line.quantity,
                product_id=line.product_id,
                name=line.name,
                unit_price=line.unit_price,
            )
            for line in order.lines
        ]
        return await self.confirm(requests, base_order=order)

    def _stock_alternatives(
        self, issues: list[ValidationIssue], requested: set[int]
    ) -> list[CatalogEntry]:
        """Produtos com estoque no lugar dos que faltaram no pedido."""
        found: dict[int, CatalogEntry] = {}
        for issue in issues:
            if issue.code != IssueCode.INSUFFICIENT_STOCK or issue.product_id is None:
                continue
            indexed = self._resolver.index.get(issue.product_id)
            if indexed is None:
                continue
            for entry in self._resolver.alternatives(indexed.entry, limit=3):
                if entry.id not in requested:
                    found.setdefault(entry.id, entry)
        return list(found.values())[:3]

    # 7. Coleta de dados

    def collect_data(self, order: PendingOrder, field_name: str, value: str) -> StepOutcome:
        """Registra endereço ou método de pagamento no pedido."""
        updated = order.model_copy(deep=True)
        text = self._classifier.normalizer.correct(value)

        if field_name == "address":
            if not text or set(text.split()) & PICKUP_KEYWORDS:
                updated.delivery_address = PICKUP_ADDRESS
            else:
                updated.delivery_address = value.strip()
            return StepOutcome(
                message=messages.ask_payment_method(),
                next_step=SalesStep.COLLECT_DATA,
                action="address_set",
                data={"order": updated, "awaiting": "payment_method"},
            )

        if field_name == "payment_method":
            method = parse_payment_method(text)
            if method is None:
                return StepOutcome(
                    message=messages.invalid_payment_method(),
                    next_step=SalesStep.COLLECT_DATA,
                    action="invalid_payment",
                    data={"order": order, "awaiting": "payment_method"},
                )
            updated.payment_method = method
            return StepOutcome(
                message="",
                next_step=SalesStep.CLOSE_SALE,
                action="payment_set",
                data={"order": updated},
            )

        raise ValueError(f"Campo desconhecido: {field_name}")

    # 8. Fechamento

    async def close_sale(self, phone: str, order: PendingOrder) -> StepOutcome:
        """Fecha a venda no backend de forma retomável.

        Linhas já enviadas ficam registradas em appended_product_ids; uma nova
        chamada continua de onde parou, sem duplicar nem desfazer nada. As
        escritas rodam só com timeout, sem retry.
        """
        progress = order.model_copy(deep=True)
        try:
            if progress.backend_order_id is None:
                ref = await self._flow_guard.with_timeout(
                    lambda: self._backend.create_order(
                        phone, customer_name=progress.customer_name, client_id=progress.client_id
                    ),
                    name="create_order",
                )
                progress.backend_order_id = ref.order_id
                progress.backend_order_number = ref.order_number

            order_id = progress.backend_order_id
            for line in progress.pending_lines():
                await self._flow_guard.with_timeout(
                    lambda line=line: self._backend.append_line(
                        order_id, line.product_id, line.quantity
                    ),
                    name="append_line",
                )
                progress.appended_product_ids.append(line.product_id)

            payment = progress.payment_method.value if progress.payment_method else None
            confirmation = await self._flow_guard.with_timeout(
                lambda: self._backend.confirm_order(
                    order_id, address=progress.delivery_address, payment_method=payment
                ),
                name="confirm_order",
            )
        except KardexAssistantError as exc:
            logger.warning(
                "sale_close_incomplete",
                extra={
                    "phone": mask_phone(phone),
                    "order_id": progress.backend_order_id,
                    "appended": len(progress.appended_product_ids),
                    "pending": len(progress.pending_lines()),
                    "error_type": type(exc).__name__,
                },
            )
            return StepOutcome(
                message=messages.closure_partial_failure(),
                next_step=SalesStep.CLOSE_SALE,
                action="close_failed",
                data={"order": progress, "error": exc},
            )

        number = confirmation.get("numero_pedido") if isinstance(confirmation, dict) else None
        if number:
            progress.backend_order_number = str(number)
        progress.status = OrderStatus.CONFIRMED
        logger.info(
            "sale_closed",
            extra={
                "phone": mask_phone(phone),
                "order_id": progress.backend_order_id,
                "lines": len(progress.lines),
                "total": str(progress.total),
            },
        )
        return StepOutcome(
            message=messages.order_closed(progress, self._currency),
            next_step=SalesStep.FOLLOW_UP,
            action="closed",
            data={"order": progress},
        )

    # 9. Pós-venda

    def follow_up(self) -> StepOutcome:
        return StepOutcome(
            message=messages.follow_up(self._store_name),
            next_step=SalesStep.GREET,
            action="follow_up",
        )

    # Auxiliares

    async def lookup_customer(self, phone: str) -> dict[str, Any] | None:
        """Cliente cadastrado no backend (None se desconhecido ou indisponível)."""
        try:
            return await self._flow_guard.guarded(
                lambda: self._backend.get_client_by_phone(phone), name="get_client_by_phone"
            )
        except CollaboratorError as exc:
            log_fallback(logger, "customer_lookup", reason=type(exc).__name__)
            return None

    async def cancel(self, order: PendingOrder) -> StepOutcome:
        """Cancela o pedido (também no backend, se já criado lá)."""
        if order.backend_order_id is not None:
            order_id = order.backend_order_id
            await self._flow_guard.with_timeout(
                lambda: self._backend.cancel_order(order_id), name="cancel_order"
            )
        return StepOutcome(
            message=messages.order_cancelled(),
            next_step=SalesStep.IDENTIFY_INTENT,
            action="cancelled",
            data={"order": order.model_copy(update={"status": OrderStatus.CANCELLED})},
        )
