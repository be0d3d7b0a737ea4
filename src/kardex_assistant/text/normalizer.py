"""Normalização de texto ruidoso (digitado ou transcrito).

Pipeline: minúsculas, remoção de acentos (unidecode), pontuação, espaços;
depois cada tabela de correction_tables numa única rotina de substituição;
por fim, em modo consulta, remoção de stopwords.

Funções puras: nunca levantam exceção e entrada vazia resulta em "".
O resultado é ponto fixo: normalize(normalize(s)) == normalize(s).
"""

from __future__ import annotations

import re
from functools import lru_cache

from unidecode import unidecode

from kardex_assistant.text.correction_tables import (
    CORRECTION_PIPELINE,
    STOPWORDS,
    CorrectionTable,
)

_NON_ALNUM = re.compile(r"[^a-z0-9\s]+")
_SPACES = re.compile(r"\s+")
_MAX_PASSES = 4

CompiledTable = tuple[tuple[re.Pattern[str], str], ...]


def _compile(table: CorrectionTable) -> CompiledTable:
    return tuple((re.compile(rf"\b(?:{pattern})\b"), canonical) for pattern, canonical in table)


def _substitute(text: str, table: CompiledTable) -> str:
    """Aplica uma tabela (padrão -> canônico) e recompõe espaços."""
    for pattern, canonical in table:
        text = pattern.sub(canonical, text)
    return _SPACES.sub(" ", text).strip()


class Normalizer:
    """Normalizador configurável por tabelas declarativas."""

    def __init__(
        self,
        pipeline: tuple[tuple[str, CorrectionTable], ...] = CORRECTION_PIPELINE,
        stopwords: frozenset[str] = STOPWORDS,
    ) -> None:
        self._tables: tuple[CompiledTable, ...] = tuple(_compile(t) for _, t in pipeline)
        self._stopwords = stopwords

    @staticmethod
    def clean(text: str | None) -> str:
        """Limpeza básica: minúsculas, sem acentos, sem pontuação."""
        if not text:
            return ""
        ascii_text = unidecode(str(text)).lower()
        ascii_text = _NON_ALNUM.sub(" ", ascii_text)
        return _SPACES.sub(" ", ascii_text).strip()

    def _correct_once(self, text: str) -> str:
        for table in self._tables:
            text = _substitute(text, table)
        return text

    def _drop_stopwords(self, text: str) -> str:
        tokens = [
            tok
            for tok in text.split()
            if tok not in self._stopwords and not (tok.isdigit() and len(tok) <= 2)
        ]
        return " ".join(tokens)

    def normalize(self, text: str | None, query: bool = False) -> str:
        """Normaliza texto; com query=True remove stopwords e quantidades soltas."""
        out = self.clean(text)
        if not out:
            return ""
        for _ in range(_MAX_PASSES):
            step = self._correct_once(out)
            if query:
                step = self._drop_stopwords(step)
            if step == out:
                break
            out = step
        return out

    def correct(self, text: str | None) -> str:
        """Texto corrigido (mantém stopwords e números)."""
        return self.normalize(text, query=False)

    def normalize_query(self, text: str | None) -> str:
        """Texto pronto para matching de produtos."""
        return self.normalize(text, query=True)

    def tokenize(self, text: str | None, query: bool = True) -> list[str]:
        normalized = self.normalize(text, query=query)
        return normalized.split() if normalized else []


@lru_cache(maxsize=1)
def get_normalizer() -> Normalizer:
    """Instância padrão (tabelas de correction_tables)."""
    return Normalizer()
