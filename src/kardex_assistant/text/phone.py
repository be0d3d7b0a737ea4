"""Normalização de telefones (padrão Peru: código de país 51)."""

from __future__ import annotations

import re

COUNTRY_CODE = "51"
_LOCAL_LENGTH = 9
_NON_DIGIT = re.compile(r"\D+")


def normalize_phone(phone: str | None) -> str:
    """Só dígitos; números locais de 9 dígitos recebem o prefixo 51."""
    if not phone:
        return ""
    digits = _NON_DIGIT.sub("", str(phone))
    if len(digits) == _LOCAL_LENGTH and not digits.startswith(COUNTRY_CODE):
        digits = COUNTRY_CODE + digits
    return digits


def phone_variants(phone: str | None) -> list[str]:
    """Variantes para busca flexível (com e sem código de país)."""
    normalized = normalize_phone(phone)
    if not normalized:
        return []
    variants = [normalized]
    if normalized.startswith(COUNTRY_CODE) and len(normalized) > _LOCAL_LENGTH:
        variants.append(normalized[len(COUNTRY_CODE):])
    elif len(normalized) > _LOCAL_LENGTH:
        variants.append(normalized[-_LOCAL_LENGTH:])
    return list(dict.fromkeys(variants))
