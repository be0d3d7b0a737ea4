"""Configurações da aplicação via variáveis de ambiente.

Todas as configurações são carregadas de env vars (ou .env em dev).
Nunca hardcode tokens do backend ou chaves de API.
"""

from __future__ import annotations

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict

VALID_SESSION_BACKENDS: frozenset[str] = frozenset({"memory", "redis"})


class Settings(BaseSettings):
    """Configurações lidas do ambiente.

    Comentários em PT-BR; mensagens ao cliente ficam em espanhol
    (application/messages.py).
    """

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=False)

    # Aplicação
    service_name: str = "kardex_assistant"
    version: str = "0.1.0"
    environment: str = "development"
    log_level: str = "INFO"
    log_format: str = "json"  # json | text

    # Loja
    store_name: str = "KARDEX"
    currency_symbol: str = "S/."

    # Sessão
    session_store_backend: str = "memory"  # memory | redis
    redis_url: str | None = None
    session_key_prefix: str = "kardex:session:"
    session_ttl_minutes: int = 30  # Expiração de conversas não concluídas
    session_sweep_interval_seconds: int = 60  # Varredura de sessões expiradas

    # Flow guard
    flow_history_size: int = 10  # Janela de transições por telefone
    flow_loop_threshold: int = 5  # Repetições do mesmo estado na janela = loop
    flow_default_timeout_seconds: float = 30.0
    flow_max_retries: int = 3
    flow_retry_delay_seconds: float = 1.0  # Backoff linear: delay * tentativa
    disconnect_window_minutes: int = 10  # Heurística de desconexão (consultiva)

    # Resolver de produtos
    matcher_weight_jaccard: float = 0.5
    matcher_weight_jaro_winkler: float = 0.3
    matcher_weight_phonetic: float = 0.2
    matcher_threshold: float = 0.55  # Aceitação geral
    order_match_threshold: float = 0.60  # Resolução de linhas de pedido
    suggestion_threshold: float = 0.40  # Sugestões "quizás quisiste decir"
    query_cache_ttl_seconds: int = 300
    query_cache_max_entries: int = 1000

    # Preços / estoque
    promotion_cache_ttl_seconds: int = 120
    product_cache_ttl_seconds: int = 120

    # Recuperação de erros
    error_log_max_entries: int = 100

    # Backend de inventário/pedidos (REST)
    backend_base_url: str = "http://localhost:3000/api"
    backend_api_token: str | None = None
    backend_timeout_seconds: float = 10.0
    backend_max_retries: int = 2
    backend_retry_backoff_seconds: float = 0.5
    backend_circuit_breaker_enabled: bool = False
    backend_circuit_breaker_fail_max: int = 5
    backend_circuit_breaker_reset_timeout_seconds: float = 60.0

    # NLU (OpenAI)
    nlu_enabled: bool = False  # Feature flag: fail-safe desligado
    openai_api_key: str | None = None
    openai_model: str = "gpt-4o-mini"
    nlu_timeout_seconds: float = 8.0
    nlu_confidence_threshold: float = 0.5

    def validate_session_store_config(self) -> list[str]:
        """Valida backend de session store por ambiente.

        Retorna lista de erros (vazia = tudo OK).
        """
        errors: list[str] = []
        backend = self.session_store_backend.lower()

        if backend not in VALID_SESSION_BACKENDS:
            errors.append(
                f"SESSION_STORE_BACKEND '{backend}' inválido. "
                f"Valores válidos: {sorted(VALID_SESSION_BACKENDS)}"
            )

        if backend == "redis" and not self.redis_url:
            errors.append("SESSION_STORE_BACKEND=redis requer REDIS_URL configurado")

        # Em produção as sessões precisam sobreviver a restarts
        if self.is_production and backend == "memory":
            errors.append("SESSION_STORE_BACKEND=memory é proibido em produção")

        if self.session_ttl_minutes <= 0:
            errors.append("SESSION_TTL_MINUTES deve ser > 0")

        return errors

    def validate_flow_guard(self) -> list[str]:
        """Valida parâmetros do flow guard."""
        errors: list[str] = []
        if self.flow_history_size < 1:
            errors.append("FLOW_HISTORY_SIZE deve ser >= 1")
        if not 1 < self.flow_loop_threshold <= self.flow_history_size:
            errors.append("FLOW_LOOP_THRESHOLD deve estar entre 2 e FLOW_HISTORY_SIZE")
        if self.flow_max_retries < 1:
            errors.append("FLOW_MAX_RETRIES deve ser >= 1")
        if self.flow_default_timeout_seconds <= 0:
            errors.append("FLOW_DEFAULT_TIMEOUT_SECONDS deve ser > 0")
        return errors

    def validate_matcher(self) -> list[str]:
        """Valida pesos e limiares do resolver."""
        errors: list[str] = []
        weights = (
            self.matcher_weight_jaccard,
            self.matcher_weight_jaro_winkler,
            self.matcher_weight_phonetic,
        )
        if any(w < 0 for w in weights):
            errors.append("Pesos do matcher não podem ser negativos")
        for name in ("matcher_threshold", "order_match_threshold", "suggestion_threshold"):
            value = getattr(self, name)
            if not 0 < value <= 1:
                errors.append(f"{name.upper()} deve estar entre 0 e 1")
        if self.query_cache_max_entries < 1:
            errors.append("QUERY_CACHE_MAX_ENTRIES deve ser >= 1")
        return errors

    def validate_nlu_config(self) -> list[str]:
        """Valida configuração de NLU.

        Se nlu_enabled=True, verifica se OPENAI_API_KEY está configurado.
        """
        errors: list[str] = []
        if self.nlu_enabled and not self.openai_api_key:
            errors.append("NLU_ENABLED=true requer OPENAI_API_KEY configurado")
        if not 0 < self.nlu_confidence_threshold <= 1:
            errors.append("NLU_CONFIDENCE_THRESHOLD deve estar entre 0 e 1")
        return errors

    def validate_all(self) -> list[str]:
        """Agrega todas as validações."""
        errors: list[str] = []
        errors.extend(self.validate_session_store_config())
        errors.extend(self.validate_flow_guard())
        errors.extend(self.validate_matcher())
        errors.extend(self.validate_nlu_config())
        return errors

    @property
    def is_production(self) -> bool:
        """Retorna True se ambiente é produção."""
        return self.environment.lower() in ("production", "prod")

    @property
    def is_development(self) -> bool:
        """Retorna True se ambiente é desenvolvimento."""
        return self.environment.lower() in ("development", "dev", "local")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Retorna Settings cacheado (uma instância por processo)."""
    return Settings()
