"""Resilient client for the external language-model service.

Every pipeline stage reaches the inference service through this client. It
owns the process-wide concurrency cap (via an injected ConcurrencyPool), the
per-call timeout, retry with backoff, and classification of failures into
InferenceClientError kinds.
"""

import asyncio
from dataclasses import dataclass
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional

import httpx

from legal_intel.core.concurrency import ConcurrencyPool
from legal_intel.core.exceptions import InferenceClientError, InferenceErrorKind
from legal_intel.utils.logging import get_logger

LOGGER = get_logger(__name__)

DEFAULT_BASE_URL = "https://openrouter.ai/api/v1/chat/completions"


@dataclass
class InferenceResult:
    """Successful inference call."""
    content: str
    tokens_used: int
    model: str
    was_retried: bool
    attempts: int = 1


class InferenceClient:
    """Chat-completions client with bounded concurrency, timeouts and retries.

    Retryable failures (429, 5xx, timeouts, transport errors) are retried up to
    ``max_retries`` times. Each retry waits outside the pool and then queues for
    a slot again like any other call. Permanent failures (missing credential,
    other non-2xx responses) raise immediately.
    """

    def __init__(
        self,
        api_key: Optional[str],
        pool: ConcurrencyPool,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = 300.0,
        max_backoff_ms: int = 30_000,
        http_client: Optional[httpx.AsyncClient] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        """Initialize the inference client.

        Args:
            api_key: Bearer credential for the inference service
            pool: Shared concurrency pool limiting simultaneous calls
            base_url: Chat-completions endpoint
            timeout: Per-call timeout in seconds
            max_backoff_ms: Upper bound for any single backoff wait
            http_client: Optional pre-built httpx client (tests inject a mock transport)
            sleep: Awaitable used for backoff waits
        """
        self.api_key = api_key
        self.pool = pool
        self.base_url = base_url
        self.timeout = timeout
        self.max_backoff_ms = max_backoff_ms
        self._http_client = http_client
        self._sleep = sleep
        self.logger = LOGGER

    async def call(
        self,
        model: str,
        messages: List[Dict[str, Any]],
        temperature: float = 0.1,
        max_tokens: int = 4096,
        response_format: Optional[Dict[str, Any]] = None,
        max_retries: int = 2,
        retry_delay_ms: int = 1000,
        timeout: Optional[float] = None,
    ) -> InferenceResult:
        """Call the inference service.

        Args:
            model: Model identifier
            messages: Chat messages ({"role", "content"})
            temperature: Sampling temperature
            max_tokens: Completion token budget
            response_format: Optional response_format passed through to the API
            max_retries: Retries allowed for retryable failures
            retry_delay_ms: Base delay for exponential backoff
            timeout: Per-call timeout override in seconds

        Returns:
            InferenceResult with the model's text content and token usage

        Raises:
            InferenceClientError: On a permanent failure or once retries are exhausted
        """
        if not self.api_key:
            raise InferenceClientError(
                "OPENROUTER_API_KEY not configured", InferenceErrorKind.CONFIG_ERROR
            )

        payload: Dict[str, Any] = {
            "model": model,
            "messages": messages,
            "temperature": temperature,
            "max_tokens": max_tokens,
        }
        if response_format:
            payload["response_format"] = response_format

        call_timeout = timeout or self.timeout
        attempt = 0

        while True:
            try:
                async with self.pool.slot():
                    data = await self._post(payload, call_timeout)
                return self._to_result(data, model, attempt)

            except InferenceClientError as e:
                if not e.is_retryable or attempt >= max_retries:
                    self.logger.error(
                        f"Inference call failed (attempt {attempt + 1}/{max_retries + 1}): {e}",
                        extra={"kind": e.kind.value, "status_code": e.status_code, "model": model},
                    )
                    raise

                delay = self._backoff_seconds(e, attempt, retry_delay_ms)
                self.logger.warning(
                    f"Retryable inference failure (attempt {attempt + 1}/{max_retries + 1}), "
                    f"retrying in {delay:.2f}s",
                    extra={"kind": e.kind.value, "status_code": e.status_code, "model": model},
                )
                await self._sleep(delay)
                attempt += 1

    async def _post(self, payload: Dict[str, Any], timeout: float) -> Dict[str, Any]:
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

        try:
            if self._http_client is not None:
                response = await asyncio.wait_for(
                    self._http_client.post(self.base_url, headers=headers, json=payload, timeout=timeout),
                    timeout=timeout,
                )
            else:
                async with httpx.AsyncClient(timeout=timeout) as client:
                    response = await asyncio.wait_for(
                        client.post(self.base_url, headers=headers, json=payload),
                        timeout=timeout,
                    )
        except (asyncio.TimeoutError, httpx.TimeoutException) as e:
            raise InferenceClientError(
                f"Inference call timed out after {timeout}s",
                InferenceErrorKind.TIMEOUT,
                original_error=e,
            ) from e
        except httpx.TransportError as e:
            raise InferenceClientError(
                f"Inference call failed: {e}",
                InferenceErrorKind.NETWORK_ERROR,
                original_error=e,
            ) from e

        status_code = response.status_code
        if status_code == 429:
            raise InferenceClientError(
                "Inference API returned 429",
                InferenceErrorKind.RATE_LIMITED,
                status_code=status_code,
                retry_after=parse_retry_after(response.headers.get("retry-after")),
            )
        if status_code >= 500:
            raise InferenceClientError(
                f"Inference API returned {status_code}",
                InferenceErrorKind.TRANSIENT_ERROR,
                status_code=status_code,
            )
        if not 200 <= status_code < 300:
            raise InferenceClientError(
                f"Inference API returned {status_code}: {response.text[:500]}",
                InferenceErrorKind.API_ERROR,
                status_code=status_code,
            )

        try:
            return response.json()
        except ValueError as e:
            raise InferenceClientError(
                "Inference API returned a non-JSON body",
                InferenceErrorKind.API_ERROR,
                status_code=status_code,
                original_error=e,
            ) from e

    def _backoff_seconds(self, error: InferenceClientError, attempt: int, retry_delay_ms: int) -> float:
        if error.kind == InferenceErrorKind.RATE_LIMITED and error.retry_after is not None:
            delay_ms = error.retry_after * 1000
        elif error.kind == InferenceErrorKind.RATE_LIMITED:
            delay_ms = retry_delay_ms
        else:
            delay_ms = retry_delay_ms * (2 ** attempt)
        return min(delay_ms, self.max_backoff_ms) / 1000

    @staticmethod
    def _to_result(data: Dict[str, Any], model: str, attempt: int) -> InferenceResult:
        choices = data.get("choices") or []
        message = choices[0].get("message", {}) if choices else {}
        content = (message.get("content") or "").strip()
        usage = data.get("usage") or {}

        return InferenceResult(
            content=content,
            tokens_used=int(usage.get("total_tokens") or 0),
            model=data.get("model") or model,
            was_retried=attempt > 0,
            attempts=attempt + 1,
        )


def parse_retry_after(value: Optional[str]) -> Optional[float]:
    """Parse a Retry-After header (delta-seconds or HTTP-date) into seconds."""
    if not value:
        return None
    value = value.strip()
    try:
        return max(float(value), 0.0)
    except ValueError:
        pass
    try:
        retry_at = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    if retry_at.tzinfo is None:
        retry_at = retry_at.replace(tzinfo=timezone.utc)
    return max((retry_at - datetime.now(timezone.utc)).total_seconds(), 0.0)


def create_inference_client(pool: ConcurrencyPool, **overrides: Any) -> InferenceClient:
    """Build an InferenceClient from application settings.

    Args:
        pool: The process-wide pool; constructed once by the worker
        **overrides: Keyword overrides for InferenceClient arguments
    """
    from legal_intel.core.config import settings

    kwargs: Dict[str, Any] = {
        "api_key": settings.inference.api_key,
        "pool": pool,
        "base_url": settings.inference.base_url,
        "timeout": settings.inference.call_timeout_seconds,
        "max_backoff_ms": settings.inference.max_backoff_ms,
    }
    kwargs.update(overrides)
    LOGGER.info(
        f"Initialized inference client (limit={pool.max_concurrent}, timeout={kwargs['timeout']}s)"
    )
    return InferenceClient(**kwargs)
