"""Prompts e formatação para a classificação de intenção via OpenAI."""

from __future__ import annotations

import json

from kardex_assistant.domain.enums import Intent

_INTENT_NAMES = ", ".join(intent.value for intent in Intent)


def get_intent_prompt(store_name: str) -> str:
    """System prompt da classificação de intenção."""
    return f"""Eres el asistente de ventas de la tienda {store_name} (Perú).

Tu trabajo es **clasificar la intención** del cliente y **extraer productos**.

Intenciones válidas: {_INTENT_NAMES}

Responde SOLO con JSON válido, con este formato exacto:
```json
{{
  "intent": "place_order",
  "confidence": 0.9,
  "products": [{{"name": "mouse logitech", "quantity": 2}}],
  "fields": {{"query": "mouse logitech", "payment_method": null}}
}}
```

Reglas:
- "products" solo cuando el cliente pide comprar; cantidad 1 si no la indica.
- "query" es el producto consultado en preguntas de precio, stock o detalle.
- Nunca inventes productos ni precios.
- Nunca agregues texto antes o después del JSON.
"""


def format_intent_input(text: str, history: list[str] | None = None) -> str:
    """Mensagem do usuário com o histórico recente (sem dados pessoais)."""
    payload = {"message": text, "recent_messages": (history or [])[-5:]}
    return json.dumps(payload, ensure_ascii=False)
