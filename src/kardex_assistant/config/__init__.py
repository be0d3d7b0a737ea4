"""Configurações centralizadas do kardex_assistant.

Uso típico:
    from kardex_assistant.config import get_settings
"""

from kardex_assistant.config.settings import Settings, get_settings

__all__ = ["Settings", "get_settings"]
