"""Chave fonética para espanhol (variante de Soundex).

Códigos: b f p v -> 1; c g j k q s x z -> 2; d t -> 3; l -> 4; m n -> 5;
r -> 6. Vogais, h, w, y e espaços não geram código mas reiniciam o
controle de dígitos repetidos. A chave tem sempre 4 caracteres.
"""

from __future__ import annotations

from unidecode import unidecode

_CODES: dict[str, str] = {
    **dict.fromkeys("bfpv", "1"),
    **dict.fromkeys("cgjkqsxz", "2"),
    **dict.fromkeys("dt", "3"),
    "l": "4",
    **dict.fromkeys("mn", "5"),
    "r": "6",
}
_KEY_LENGTH = 4


def soundex_es(text: str | None) -> str:
    """Retorna a chave fonética (ex.: "mouse" -> "M200"); vazio -> ""."""
    if not text:
        return ""
    letters = [ch for ch in unidecode(text).lower() if ch.isalpha() or ch == " "]
    letters_str = "".join(letters).strip()
    if not letters_str:
        return ""

    first = letters_str[0]
    key = first.upper()
    previous = _CODES.get(first, "")
    for ch in letters_str[1:]:
        code = _CODES.get(ch, "")
        if code and code != previous:
            key += code
        previous = code
        if len(key) >= _KEY_LENGTH:
            break
    return (key + "000")[:_KEY_LENGTH]


def phrase_key(text: str | None) -> str:
    """Chave fonética por token, unida por "-"."""
    if not text:
        return ""
    return "-".join(soundex_es(tok) for tok in text.split() if soundex_es(tok))


def phonetic_match(a: str | None, b: str | None) -> float:
    """1.0 quando as chaves fonéticas coincidem, 0.0 caso contrário."""
    key_a = soundex_es(a)
    return 1.0 if key_a and key_a == soundex_es(b) else 0.0
