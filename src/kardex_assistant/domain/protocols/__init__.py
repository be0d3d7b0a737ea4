"""Re-exports dos contratos de domínio para uso pela camada de aplicação."""

from __future__ import annotations

from kardex_assistant.domain.protocols.catalog_backend import (
    BackendOrderRef,
    CatalogBackend,
    StockCheck,
)
from kardex_assistant.domain.protocols.collaborators import (
    NluClassifier,
    Transcriber,
    Transport,
)

__all__ = [
    "CatalogBackend",
    "StockCheck",
    "BackendOrderRef",
    "NluClassifier",
    "Transcriber",
    "Transport",
]
