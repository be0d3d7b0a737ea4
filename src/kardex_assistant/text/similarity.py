"""Medidas de similaridade de strings e conjuntos de tokens."""

from __future__ import annotations

from collections.abc import Iterable

import jellyfish


def jaro_winkler(a: str | None, b: str | None) -> float:
    """Jaro-Winkler em [0, 1]; strings idênticas -> 1, vazia -> 0."""
    if not a or not b:
        return 0.0
    if a == b:
        return 1.0
    return float(jellyfish.jaro_winkler_similarity(a, b))


def jaccard(tokens_a: Iterable[str], tokens_b: Iterable[str]) -> float:
    """Similaridade de Jaccard entre conjuntos de tokens."""
    set_a, set_b = set(tokens_a), set(tokens_b)
    if not set_a or not set_b:
        return 0.0
    return len(set_a & set_b) / len(set_a | set_b)
