"""Testes para text/normalizer.py e correction_tables."""

from __future__ import annotations

import pytest

from kardex_assistant.text.correction_tables import CORRECTION_PIPELINE
from kardex_assistant.text.normalizer import Normalizer, get_normalizer

SAMPLES = [
    "kiero 2 maus logitech",
    "¿Cuánto cuesta el TECLADO mecánico?",
    "ehh quiero unos audifonos sony wh1000xm5",
    "RATÓN inalámbrica",
    "nesesito dos laptops lenobo porfa",
    "",
    "   ",
]


class TestCorrect:
    """Correção de texto ruidoso."""

    def test_fixes_spelling_brand_and_keeps_quantity(self) -> None:
        """Erros comuns e marcas são corrigidos; números ficam."""
        assert get_normalizer().correct("kiero 2 maus logitech") == "quiero 2 mouse logitech"

    def test_spelled_numbers_become_digits(self) -> None:
        assert get_normalizer().correct("quiero dos teclados") == "quiero 2 teclado"

    def test_accents_and_punctuation_removed(self) -> None:
        assert get_normalizer().correct("¡Ratón inalámbrica!") == "mouse inalambrico"

    def test_product_alias_is_canonical(self) -> None:
        assert get_normalizer().correct("audifonos sony wh1000xm5") == "audifonos sony wh 1000 xm5"

    def test_voice_noise_removed(self) -> None:
        assert get_normalizer().correct("ehh mmm quiero mouse") == "quiero mouse"

    @pytest.mark.parametrize("empty", ["", None, "   ", "?!"])
    def test_empty_input_returns_empty(self, empty: str | None) -> None:
        """Entrada vazia nunca levanta exceção."""
        assert get_normalizer().correct(empty) == ""
        assert get_normalizer().normalize_query(empty) == ""


class TestNormalizeQuery:
    """Modo consulta: remove stopwords e quantidades soltas."""

    def test_drops_stopwords_and_small_numbers(self) -> None:
        assert get_normalizer().normalize_query("kiero 2 maus logitech") == "mouse logitech"

    def test_keeps_model_numbers(self) -> None:
        """Números longos fazem parte do nome do produto."""
        assert "1000" in get_normalizer().normalize_query("audifonos sony wh 1000 xm5")

    def test_tokenize(self) -> None:
        assert get_normalizer().tokenize("quiero dos teclados") == ["teclado"]


class TestFixedPoint:
    """normalize(normalize(s)) == normalize(s)."""

    @pytest.mark.parametrize("text", SAMPLES)
    def test_correct_is_idempotent(self, text: str) -> None:
        normalizer = get_normalizer()
        once = normalizer.correct(text)
        assert normalizer.correct(once) == once

    @pytest.mark.parametrize("text", SAMPLES)
    def test_query_is_idempotent(self, text: str) -> None:
        normalizer = get_normalizer()
        once = normalizer.normalize_query(text)
        assert normalizer.normalize_query(once) == once

    def test_canonical_forms_are_fixed_points(self) -> None:
        """Nenhuma forma canônica volta a casar um padrão."""
        normalizer = get_normalizer()
        for _, table in CORRECTION_PIPELINE:
            for _, canonical in table:
                if canonical:
                    assert normalizer.correct(canonical) == canonical


class TestCustomPipeline:
    def test_custom_table(self) -> None:
        """Tabelas são dados: um pipeline próprio substitui o padrão."""
        normalizer = Normalizer(pipeline=(("brands", ((r"lg+", "lg"),)),), stopwords=frozenset())
        assert normalizer.correct("monitor lgg") == "monitor lg"
