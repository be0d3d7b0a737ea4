"""Cliente HTTP com retry, timeout, circuit breaker e logging.

Usado pelos clientes de colaboradores externos (backend Kardex):
- Retry com backoff exponencial para 429/5xx, timeout e erro de conexão
- Timeout sempre configurado
- Logs estruturados sem tokens nem payloads
"""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass, field
from typing import Any

import httpx

from kardex_assistant.infra.circuit_breaker import CircuitBreaker, CircuitBreakerConfig
from kardex_assistant.observability.logging import get_logger

logger: logging.Logger = get_logger(__name__)

_TOKEN_PARAM = re.compile(r"(token|key)=[^&]+", re.IGNORECASE)


def _sanitize_url(url: str) -> str:
    """Remove tokens de query string para logging seguro."""
    return _TOKEN_PARAM.sub(r"\1=***", url)


@dataclass
class HttpClientConfig:
    """Configuração do cliente HTTP (defaults conservadores)."""

    base_url: str = ""
    timeout_seconds: float = 10.0
    max_retries: int = 2
    backoff_base_seconds: float = 0.5
    backoff_max_seconds: float = 8.0
    default_headers: dict[str, str] = field(default_factory=dict)
    circuit_breaker: CircuitBreakerConfig = field(default_factory=CircuitBreakerConfig)


class HttpError(Exception):
    """Erro de requisição HTTP sem expor informações sensíveis."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        is_retryable: bool = False,
        is_timeout: bool = False,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.is_retryable = is_retryable
        self.is_timeout = is_timeout


def _is_retryable_status(status_code: int) -> bool:
    """429 e 5xx permitem retry."""
    return status_code == 429 or 500 <= status_code < 600


def _calculate_backoff(attempt: int, base_seconds: float, max_seconds: float) -> float:
    """Backoff exponencial limitado."""
    return min((2**attempt) * base_seconds, max_seconds)


def _transient_error(exc: Exception, method: str, url: str, attempt: int) -> HttpError:
    """Converte exceções transitórias do httpx em HttpError retentável."""
    if isinstance(exc, httpx.TimeoutException):
        reason, error = "http_timeout", HttpError("Timeout", is_retryable=True, is_timeout=True)
    elif isinstance(exc, httpx.TransportError):
        reason, error = "http_connection_error", HttpError("Connection error", is_retryable=True)
    else:
        logger.error(
            "http_unexpected_error",
            extra={"method": method, "url": _sanitize_url(url), "error_type": type(exc).__name__},
        )
        raise HttpError(f"Unexpected error: {type(exc).__name__}") from exc

    logger.warning(
        reason,
        extra={"method": method, "url": _sanitize_url(url), "attempt": attempt + 1},
    )
    return error


class HttpClient:
    """Cliente HTTP assíncrono.

    Uso típico:
        async with HttpClient(config) as client:
            response = await client.get("/productos")
    """

    def __init__(
        self,
        config: HttpClientConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._config = config or HttpClientConfig()
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self._breaker = CircuitBreaker(self._config.circuit_breaker, name="http")

    @property
    def breaker(self) -> CircuitBreaker:
        return self._breaker

    async def _get_client(self) -> httpx.AsyncClient:
        """Retorna cliente httpx (lazy)."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self._config.base_url,
                timeout=httpx.Timeout(self._config.timeout_seconds),
                headers=self._config.default_headers,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        if self._client and not self._client.is_closed:
            await self._client.aclose()
        self._client = None

    async def __aenter__(self) -> HttpClient:
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    async def request(
        self, method: str, url: str, *, max_retries: int | None = None, **kwargs: Any
    ) -> httpx.Response:
        """Executa requisição com circuit breaker e retry.

        max_retries sobrepõe o valor da configuração (0 = tentativa única).
        """
        if not await self._breaker.allow_request():
            logger.warning(
                "http_circuit_open",
                extra={"method": method, "url": _sanitize_url(url)},
            )
            raise HttpError("Circuit breaker open", is_retryable=False)

        try:
            response = await self._request_with_retry(method, url, max_retries, **kwargs)
        except HttpError as exc:
            await self._breaker.record_failure(exc.is_retryable)
            raise

        await self._breaker.record_success()
        return response

    async def _request_with_retry(
        self, method: str, url: str, max_retries: int | None, **kwargs: Any
    ) -> httpx.Response:
        client = await self._get_client()
        cfg = self._config
        retries = cfg.max_retries if max_retries is None else max(0, max_retries)
        last_error: HttpError | None = None

        for attempt in range(retries + 1):
            try:
                response = await client.request(method, url, **kwargs)
            except Exception as exc:
                last_error = _transient_error(exc, method, url, attempt)
            else:
                if response.is_success:
                    logger.debug(
                        "http_request_ok",
                        extra={
                            "method": method,
                            "url": _sanitize_url(url),
                            "status_code": response.status_code,
                        },
                    )
                    return response
                if not _is_retryable_status(response.status_code):
                    logger.warning(
                        "http_request_rejected",
                        extra={
                            "method": method,
                            "url": _sanitize_url(url),
                            "status_code": response.status_code,
                        },
                    )
                    raise HttpError(
                        f"HTTP {response.status_code}",
                        status_code=response.status_code,
                        is_retryable=False,
                    )
                last_error = HttpError(
                    f"HTTP {response.status_code}",
                    status_code=response.status_code,
                    is_retryable=True,
                )

            if attempt < retries:
                backoff = _calculate_backoff(
                    attempt, cfg.backoff_base_seconds, cfg.backoff_max_seconds
                )
                logger.info(
                    "http_retry_backoff",
                    extra={"backoff_seconds": backoff, "next_attempt": attempt + 2},
                )
                await asyncio.sleep(backoff)

        logger.error(
            "http_retries_exhausted",
            extra={
                "method": method,
                "url": _sanitize_url(url),
                "total_attempts": retries + 1,
            },
        )
        raise last_error or HttpError("Request failed after retries")

    async def get(self, url: str, **kwargs: Any) -> httpx.Response:
        return await self.request("GET", url, **kwargs)

    async def post(self, url: str, json: Any | None = None, **kwargs: Any) -> httpx.Response:
        return await self.request("POST", url, json=json, **kwargs)
