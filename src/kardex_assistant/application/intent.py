"""Classificação de intenção (NLU com fallback determinístico por palavras-chave).

O resultado tem sempre o mesmo formato (IntentResult), venha do NLU ou do
fallback local. O fallback nunca devolve intenção nula.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any

from kardex_assistant.application.flow_guard import FlowGuard
from kardex_assistant.domain.enums import CATALOG_INTENTS, Intent, IntentSource
from kardex_assistant.domain.errors import CollaboratorError
from kardex_assistant.domain.protocols import NluClassifier
from kardex_assistant.observability.logging import get_logger, log_fallback
from kardex_assistant.observability.timing import timed
from kardex_assistant.text.normalizer import Normalizer, get_normalizer
from kardex_assistant.text.order_parser import parse_order_items, parse_payment_method

logger: logging.Logger = get_logger(__name__)

OTHER_CONFIDENCE = 0.3
_BASE_CONFIDENCE = 0.5
_MAX_CONFIDENCE = 0.9

_YES_PHRASES: frozenset[str] = frozenset(
    {
        "si", "sii", "siii", "ok", "okey", "okay", "dale", "claro", "confirmo",
        "confirmar", "confirmado", "correcto", "listo", "perfecto", "de acuerdo",
        "va", "yes", "afirmativo", "esta bien", "por supuesto", "si confirmo",
        "si por favor", "si claro",
    }
)
_NO_PHRASES: frozenset[str] = frozenset(
    {
        "no", "nop", "nope", "negativo", "todavia no", "aun no", "mejor no",
        "no gracias", "nel", "para nada",
    }
)

# Ordem define a prioridade em caso de empate no número de acertos
_KEYWORD_RULES: tuple[tuple[Intent, re.Pattern[str]], ...] = (
    (Intent.CANCEL, re.compile(r"\b(cancelar|cancela|cancelo|anular|anula|ya no quiero)\b")),
    (
        Intent.ORDER_STATUS,
        re.compile(r"\b(estado|seguimiento|mi pedido|donde esta|cuando llega|rastrear)\b"),
    ),
    (Intent.HELP, re.compile(r"\b(ayuda|help|como funciona|opciones|menu|no entiendo)\b")),
    (
        Intent.PRICE_QUERY,
        re.compile(r"\b(precio|precios|cuanto|cuesta|cuestan|costo|vale)\b"),
    ),
    (
        Intent.STOCK_QUERY,
        re.compile(r"\b(stock|disponible|disponibles|quedan|tienen|tienes|hay)\b"),
    ),
    (
        Intent.VIEW_CATALOG,
        re.compile(r"\b(catalogo|productos|que venden|que tienes|lista|ofertas|promociones)\b"),
    ),
    (
        Intent.PLACE_ORDER,
        re.compile(
            r"\b(quiero|necesito|dame|comprar|pedir|quisiera|llevar|agrega|agregar|ponme)\b"
        ),
    ),
    (
        Intent.VIEW_PRODUCT,
        re.compile(
            r"\b(detalle|detalles|informacion|info|caracteristicas|ver|mostrar|muestrame)\b"
        ),
    ),
    (
        Intent.GREETING,
        re.compile(r"\b(hola|buenas|buenos dias|buenas tardes|buenas noches|hey|saludos|alo)\b"),
    ),
)

_QUANTITY_PHRASE = re.compile(r"^\d{1,4}\s+[a-z]")


@dataclass(frozen=True, slots=True)
class ExtractedProduct:
    """Produto mencionado no texto (nome livre + quantidade)."""

    name: str
    quantity: int = 1


@dataclass(frozen=True, slots=True)
class IntentResult:
    """Intenção classificada, no mesmo formato para NLU e palavras-chave."""

    intent: Intent
    confidence: float
    fields: dict[str, Any] = field(default_factory=dict)
    products: list[ExtractedProduct] = field(default_factory=list)
    source: IntentSource = IntentSource.KEYWORDS

    @property
    def is_catalog_intent(self) -> bool:
        return self.intent in CATALOG_INTENTS


def detect_confirmation(corrected_text: str, expect_confirmation: bool = False) -> Intent | None:
    """Sim/não curto (CONFIRM_YES, CONFIRM_NO) ou None.

    Frases exatas valem sempre. Textos curtos começando por "no"/"si"
    só contam quando a conversa aguarda uma resposta sim/não.
    """
    if not corrected_text:
        return None
    if corrected_text in _YES_PHRASES:
        return Intent.CONFIRM_YES
    if corrected_text in _NO_PHRASES:
        return Intent.CONFIRM_NO
    tokens = corrected_text.split()
    if expect_confirmation and len(tokens) <= 4:
        if tokens[0] == "no":
            return Intent.CONFIRM_NO
        if tokens[0] in {"si", "ok", "dale", "claro", "confirmo", "listo"}:
            return Intent.CONFIRM_YES
    return None


class IntentClassifier:
    """Combina o colaborador NLU (opcional) com o fallback local."""

    def __init__(
        self,
        nlu: NluClassifier | None = None,
        flow_guard: FlowGuard | None = None,
        normalizer: Normalizer | None = None,
        threshold: float = 0.5,
        timeout_seconds: float = 8.0,
    ) -> None:
        self._nlu = nlu
        self._flow_guard = flow_guard or FlowGuard()
        self._normalizer = normalizer or get_normalizer()
        self._threshold = threshold
        self._timeout_seconds = timeout_seconds

    @property
    def normalizer(self) -> Normalizer:
        return self._normalizer

    async def classify(
        self,
        text: str,
        history: list[str] | None = None,
        nlu_result: IntentResult | None = None,
        expect_confirmation: bool = False,
    ) -> IntentResult:
        """Classifica a mensagem; nunca retorna None."""
        corrected = self._normalizer.correct(text)

        if nlu_result is not None and nlu_result.confidence >= self._threshold:
            return self._complete(nlu_result, corrected)

        if self._nlu is not None and corrected:
            result = await self._call_nlu(text, history)
            if result is not None and result.confidence >= self._threshold:
                return self._complete(result, corrected)
            if result is not None:
                log_fallback(logger, "nlu", reason="low_confidence")

        return self.classify_keywords(corrected, expect_confirmation=expect_confirmation)

    async def _call_nlu(self, text: str, history: list[str] | None) -> IntentResult | None:
        nlu = self._nlu
        if nlu is None:
            return None
        try:
            with timed("nlu_classify"):
                return await self._flow_guard.with_timeout(
                    lambda: nlu.classify(text, history),
                    self._timeout_seconds,
                    name="nlu_classify",
                )
        except CollaboratorError as exc:
            log_fallback(logger, "nlu", reason=type(exc).__name__)
            return None

    def _complete(self, result: IntentResult, corrected: str) -> IntentResult:
        """Preenche produtos pelo parser local quando o NLU não trouxe nenhum."""
        if result.products or result.intent != Intent.PLACE_ORDER:
            return result
        return IntentResult(
            intent=result.intent,
            confidence=result.confidence,
            fields=result.fields,
            products=self._extract_products(corrected),
            source=result.source,
        )

    def classify_keywords(
        self, corrected_text: str, expect_confirmation: bool = False
    ) -> IntentResult:
        """Fallback determinístico por palavras-chave."""
        fields: dict[str, Any] = {}
        method = parse_payment_method(corrected_text)
        if method is not None:
            fields["payment_method"] = method.value

        confirmation = detect_confirmation(corrected_text, expect_confirmation)
        if confirmation is not None:
            return IntentResult(intent=confirmation, confidence=_MAX_CONFIDENCE, fields=fields)

        best_intent = Intent.OTHER
        best_hits = 0
        for intent, pattern in _KEYWORD_RULES:
            hits = len(pattern.findall(corrected_text))
            if hits > best_hits:
                best_intent, best_hits = intent, hits

        # "2 mouse logitech" sem verbo também é pedido
        if best_intent == Intent.OTHER and _QUANTITY_PHRASE.match(corrected_text):
            best_intent, best_hits = Intent.PLACE_ORDER, 1

        if best_intent == Intent.OTHER:
            return IntentResult(intent=Intent.OTHER, confidence=OTHER_CONFIDENCE, fields=fields)

        products: list[ExtractedProduct] = []
        if best_intent == Intent.PLACE_ORDER:
            products = self._extract_products(corrected_text)
        elif best_intent in CATALOG_INTENTS:
            query = self._strip_keywords(corrected_text)
            if query:
                fields["query"] = query

        confidence = min(_MAX_CONFIDENCE, _BASE_CONFIDENCE + 0.1 * best_hits)
        logger.debug(
            "intent_keywords_classified",
            extra={"intent": best_intent.value, "hits": best_hits, "confidence": confidence},
        )
        return IntentResult(
            intent=best_intent,
            confidence=round(confidence, 2),
            fields=fields,
            products=products,
        )

    @staticmethod
    def _extract_products(corrected_text: str) -> list[ExtractedProduct]:
        return [
            ExtractedProduct(name=item.phrase, quantity=item.quantity)
            for item in parse_order_items(corrected_text)
        ]

    def _strip_keywords(self, corrected_text: str) -> str:
        text = corrected_text
        for _, pattern in _KEYWORD_RULES:
            text = pattern.sub(" ", text)
        return self._normalizer.normalize_query(text)
