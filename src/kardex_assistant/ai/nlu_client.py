"""Cliente OpenAI para classificação de intenção.

Qualquer falha (API, timeout, JSON inválido, intenção desconhecida) devolve
None; o IntentClassifier então usa o fallback por palavras-chave.
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any

from openai import APIError, APITimeoutError, AsyncOpenAI

from kardex_assistant.ai import nlu_prompts
from kardex_assistant.application.intent import ExtractedProduct, IntentResult
from kardex_assistant.domain.enums import Intent, IntentSource
from kardex_assistant.domain.protocols import NluClassifier
from kardex_assistant.observability.logging import get_logger, log_fallback

if TYPE_CHECKING:
    from kardex_assistant.config.settings import Settings

logger: logging.Logger = get_logger(__name__)

_MAX_PRODUCTS = 10
_MAX_QUANTITY = 10_000


class OpenAINluClient(NluClassifier):
    """Classificador de intenção sobre chat completions."""

    def __init__(
        self,
        api_key: str | None = None,
        model: str = "gpt-4o-mini",
        timeout_seconds: float = 8.0,
        store_name: str = "KARDEX",
        client: AsyncOpenAI | None = None,
    ) -> None:
        self._client = client or AsyncOpenAI(api_key=api_key, max_retries=1)
        self._model = model
        self._timeout = timeout_seconds
        self._system_prompt = nlu_prompts.get_intent_prompt(store_name)

    @classmethod
    def from_settings(cls, settings: Settings) -> OpenAINluClient:
        return cls(
            api_key=settings.openai_api_key,
            model=settings.openai_model,
            timeout_seconds=settings.nlu_timeout_seconds,
            store_name=settings.store_name,
        )

    async def classify(self, text: str, history: list[str] | None = None) -> IntentResult | None:
        try:
            response = await self._client.chat.completions.create(
                model=self._model,
                messages=[
                    {"role": "system", "content": self._system_prompt},
                    {"role": "user", "content": nlu_prompts.format_intent_input(text, history)},
                ],
                temperature=0.1,
                max_tokens=300,
                response_format={"type": "json_object"},
                timeout=self._timeout,
            )
        except (APIError, APITimeoutError) as e:
            logger.warning(
                "nlu_classification_error",
                extra={"error": str(e), "error_type": type(e).__name__},
            )
            return None

        content = response.choices[0].message.content if response.choices else None
        result = parse_intent_response(content or "")
        if result is None:
            log_fallback(logger, "nlu", reason="parse_error")
        return result


def _strip_code_fence(raw: str) -> str:
    text = raw.strip()
    if text.startswith("```"):
        text = text.strip("`")
        if text.lower().startswith("json"):
            text = text[4:]
    return text.strip()


def _parse_products(raw: Any) -> list[ExtractedProduct]:
    products: list[ExtractedProduct] = []
    if not isinstance(raw, list):
        return products
    for item in raw[:_MAX_PRODUCTS]:
        if not isinstance(item, dict):
            continue
        name = str(item.get("name") or "").strip()
        if not name:
            continue
        try:
            quantity = int(item.get("quantity") or 1)
        except (TypeError, ValueError):
            quantity = 1
        products.append(ExtractedProduct(name=name, quantity=min(max(quantity, 1), _MAX_QUANTITY)))
    return products


def parse_intent_response(raw: str) -> IntentResult | None:
    """Converte a resposta do modelo em IntentResult (None se inválida)."""
    try:
        data = json.loads(_strip_code_fence(raw))
    except (json.JSONDecodeError, TypeError):
        return None
    if not isinstance(data, dict):
        return None

    try:
        intent = Intent(str(data.get("intent", "")).lower())
        confidence = float(data.get("confidence", 0.0))
    except (TypeError, ValueError):
        return None

    fields = data.get("fields")
    clean_fields: dict[str, Any] = {}
    if isinstance(fields, dict):
        clean_fields = {k: v for k, v in fields.items() if v is not None}
    return IntentResult(
        intent=intent,
        confidence=min(max(confidence, 0.0), 1.0),
        fields=clean_fields,
        products=_parse_products(data.get("products")),
        source=IntentSource.NLU,
    )
