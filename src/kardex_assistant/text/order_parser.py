"""Extração local de itens (quantidade + produto) e método de pagamento.

Opera sobre texto já corrigido pelo Normalizer (números por extenso já
viraram dígitos). Usado como fallback quando o NLU não devolve produtos.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from kardex_assistant.domain.enums import PaymentMethod

_SEPARATORS: frozenset[str] = frozenset({"y", "e", "mas", "tambien", "ademas", "luego"})

_FILLER: frozenset[str] = frozenset(
    {
        "quiero", "necesito", "dame", "quisiera", "comprar", "pedir", "pedido",
        "llevar", "agregar", "agrega", "anade", "ponme", "por", "favor", "de",
        "del", "el", "la", "los", "las", "unidad", "unidades", "me", "para",
        "un", "una", "hola", "gracias", "porfa", "tambien", "solo",
    }
)

_PAYMENT_KEYWORDS: tuple[tuple[re.Pattern[str], PaymentMethod], ...] = (
    (re.compile(r"\byape\b"), PaymentMethod.YAPE),
    (re.compile(r"\bplin\b"), PaymentMethod.PLIN),
    (re.compile(r"\b(transferencia|transfer|deposito|bancaria)\b"), PaymentMethod.TRANSFER),
    (re.compile(r"\b(efectivo|cash|contra\s*entrega|contraentrega)\b"), PaymentMethod.CASH),
    (re.compile(r"\b(tarjeta|visa|mastercard|credito|debito)\b"), PaymentMethod.CARD),
)

_MAX_QUANTITY_DIGITS = 9


@dataclass(frozen=True, slots=True)
class ParsedItem:
    """Item solicitado em texto livre (ainda não resolvido)."""

    quantity: int
    phrase: str


def parse_order_items(corrected_text: str) -> list[ParsedItem]:
    """Extrai (quantidade, frase de produto) de um texto corrigido.

    "quiero 2 mouse logitech y 1 teclado" -> [(2, "mouse logitech"), (1, "teclado")]

    Um número só abre um novo item quando ainda não há palavras acumuladas;
    depois das palavras ele faz parte do nome (ex.: "wh 1000 xm5"). O sufixo
    "x N" define a quantidade do item corrente.
    """
    items: list[ParsedItem] = []
    quantity: int | None = None
    words: list[str] = []

    def flush() -> None:
        nonlocal quantity, words
        if words:
            items.append(ParsedItem(quantity=quantity or 1, phrase=" ".join(words)))
        quantity, words = None, []

    tokens = corrected_text.split() if corrected_text else []
    index = 0
    while index < len(tokens):
        tok = tokens[index]
        nxt = tokens[index + 1] if index + 1 < len(tokens) else ""
        if tok in _SEPARATORS:
            flush()
        elif tok == "x" and nxt.isdigit() and words:
            quantity = _to_quantity(nxt)
            index += 1
        elif tok.isdigit() and len(tok) <= _MAX_QUANTITY_DIGITS and not words:
            quantity = _to_quantity(tok)
        elif tok not in _FILLER:
            words.append(tok)
        index += 1
    flush()
    return items


def _to_quantity(token: str) -> int:
    value = int(token)
    return value if value > 0 else 1


def parse_payment_method(corrected_text: str) -> PaymentMethod | None:
    """Detecta método de pagamento mencionado no texto."""
    for pattern, method in _PAYMENT_KEYWORDS:
        if pattern.search(corrected_text or ""):
            return method
    return None
