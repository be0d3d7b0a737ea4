"""Contratos de colaboradores externos: NLU, transcrição e transporte."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from kardex_assistant.application.intent import IntentResult


class NluClassifier(ABC):
    """Extrator de intenção/entidades (tipicamente um LLM)."""

    @abstractmethod
    async def classify(
        self, text: str, history: list[str] | None = None
    ) -> IntentResult | None: ...


class Transcriber(ABC):
    """Speech-to-text."""

    @abstractmethod
    async def transcribe(self, audio: bytes, filename: str = "audio.ogg") -> str: ...


class Transport(ABC):
    """Canal de chat (entrega de mensagens ao cliente)."""

    @abstractmethod
    async def send_message(self, phone: str, text: str) -> None: ...

    @abstractmethod
    async def send_image(self, phone: str, data: bytes, filename: str) -> None: ...
