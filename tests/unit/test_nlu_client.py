"""Testes para ai/nlu_client.py e ai/nlu_prompts.py."""

from __future__ import annotations

import json
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest
from openai import APITimeoutError

from kardex_assistant.ai.nlu_client import OpenAINluClient, parse_intent_response
from kardex_assistant.ai.nlu_prompts import format_intent_input, get_intent_prompt
from kardex_assistant.domain.enums import Intent, IntentSource


def _completion(content: str) -> SimpleNamespace:
    message = SimpleNamespace(content=content)
    return SimpleNamespace(choices=[SimpleNamespace(message=message)])


def _openai_mock(content: str | None = None, error: Exception | None = None) -> MagicMock:
    client = MagicMock()
    client.chat.completions.create = AsyncMock(
        return_value=_completion(content or ""), side_effect=error
    )
    return client


class TestParseIntentResponse:
    def test_valid_payload(self) -> None:
        raw = json.dumps(
            {
                "intent": "place_order",
                "confidence": 0.92,
                "fields": {"payment_method": "yape", "query": None},
                "products": [{"name": "mouse logitech", "quantity": 2}],
            }
        )
        result = parse_intent_response(raw)
        assert result is not None
        assert result.intent == Intent.PLACE_ORDER
        assert result.source == IntentSource.NLU
        assert result.fields == {"payment_method": "yape"}
        assert result.products[0].name == "mouse logitech"
        assert result.products[0].quantity == 2

    def test_code_fence_stripped(self) -> None:
        raw = '```json\n{"intent": "greeting", "confidence": 0.8}\n```'
        result = parse_intent_response(raw)
        assert result is not None
        assert result.intent == Intent.GREETING

    def test_confidence_clamped(self) -> None:
        result = parse_intent_response('{"intent": "help", "confidence": 7}')
        assert result is not None
        assert result.confidence == 1.0

    def test_quantity_clamped(self) -> None:
        raw = (
            '{"intent": "place_order", "confidence": 0.9, '
            '"products": [{"name": "x", "quantity": -3}]}'
        )
        result = parse_intent_response(raw)
        assert result is not None
        assert result.products[0].quantity == 1

    @pytest.mark.parametrize(
        "raw",
        ["", "não é json", "[1, 2]", '{"intent": "comprar_todo", "confidence": 0.9}'],
    )
    def test_invalid_payload(self, raw: str) -> None:
        assert parse_intent_response(raw) is None


class TestPrompts:
    def test_prompt_mentions_store_and_intents(self) -> None:
        prompt = get_intent_prompt("KARDEX")
        assert "KARDEX" in prompt
        for intent in ("place_order", "price_query", "stock_query"):
            assert intent in prompt

    def test_input_keeps_last_messages(self) -> None:
        payload = json.loads(format_intent_input("hola", [str(i) for i in range(8)]))
        assert payload["message"] == "hola"
        assert payload["recent_messages"] == ["3", "4", "5", "6", "7"]


class TestOpenAINluClient:
    @pytest.mark.asyncio
    async def test_classify_success(self) -> None:
        mock = _openai_mock('{"intent": "view_catalog", "confidence": 0.85}')
        client = OpenAINluClient(client=mock)
        result = await client.classify("que venden")
        assert result is not None
        assert result.intent == Intent.VIEW_CATALOG
        kwargs = mock.chat.completions.create.call_args.kwargs
        assert kwargs["response_format"] == {"type": "json_object"}

    @pytest.mark.asyncio
    async def test_api_timeout_returns_none(self) -> None:
        error = APITimeoutError(request=httpx.Request("POST", "https://api.openai.com/v1"))
        client = OpenAINluClient(client=_openai_mock(error=error))
        assert await client.classify("hola") is None

    @pytest.mark.asyncio
    async def test_unparseable_returns_none(self) -> None:
        client = OpenAINluClient(client=_openai_mock("lo siento, no puedo"))
        assert await client.classify("hola") is None
