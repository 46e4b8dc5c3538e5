"""Unit tests for InferenceClient retry and error classification."""

import asyncio

import httpx
import pytest

from legal_intel.core.concurrency import ConcurrencyPool
from legal_intel.core.exceptions import InferenceClientError, InferenceErrorKind
from legal_intel.core.inference_client import InferenceClient, parse_retry_after

OK_BODY = {
    "model": "test/model",
    "choices": [{"message": {"content": '  {"documentType": "medical_record"}  '}}],
    "usage": {"total_tokens": 42},
}


def _client(handler, api_key="key", sleeps=None, pool=None, sleep=None):
    """Build a client over a mock transport that records backoff waits."""
    recorded = sleeps if sleeps is not None else []

    async def fake_sleep(seconds):
        recorded.append(seconds)

    return InferenceClient(
        api_key=api_key,
        pool=pool or ConcurrencyPool(2),
        base_url="https://inference.test/v1/chat/completions",
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
        sleep=sleep or fake_sleep,
    )


def _sequence(*responses):
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return responses[min(len(calls) - 1, len(responses) - 1)]

    return handler, calls


class TestInferenceClient:

    @pytest.mark.asyncio
    async def test_success_returns_content_and_usage(self):
        handler, calls = _sequence(httpx.Response(200, json=OK_BODY))
        client = _client(handler)

        result = await client.call("test/model", [{"role": "user", "content": "hi"}])

        assert result.content == '{"documentType": "medical_record"}'
        assert result.tokens_used == 42
        assert result.was_retried is False
        assert calls[0].headers["Authorization"] == "Bearer key"

    @pytest.mark.asyncio
    async def test_missing_api_key_is_config_error_without_request(self):
        handler, calls = _sequence(httpx.Response(200, json=OK_BODY))
        client = _client(handler, api_key="")

        with pytest.raises(InferenceClientError) as exc_info:
            await client.call("test/model", [])

        assert exc_info.value.kind == InferenceErrorKind.CONFIG_ERROR
        assert calls == []

    @pytest.mark.asyncio
    async def test_server_error_is_retried_with_exponential_backoff(self):
        sleeps = []
        handler, calls = _sequence(
            httpx.Response(503), httpx.Response(502), httpx.Response(200, json=OK_BODY)
        )
        client = _client(handler, sleeps=sleeps)

        result = await client.call("test/model", [], max_retries=2, retry_delay_ms=100)

        assert len(calls) == 3
        assert sleeps == [0.1, 0.2]
        assert result.was_retried is True
        assert result.attempts == 3

    @pytest.mark.asyncio
    async def test_bad_request_is_not_retried(self):
        handler, calls = _sequence(httpx.Response(400, text="bad model"))
        client = _client(handler)

        with pytest.raises(InferenceClientError) as exc_info:
            await client.call("test/model", [], max_retries=3)

        assert exc_info.value.kind == InferenceErrorKind.API_ERROR
        assert exc_info.value.status_code == 400
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_rate_limit_honours_retry_after(self):
        sleeps = []
        handler, calls = _sequence(
            httpx.Response(429, headers={"Retry-After": "7"}), httpx.Response(200, json=OK_BODY)
        )
        client = _client(handler, sleeps=sleeps)

        await client.call("test/model", [], max_retries=1, retry_delay_ms=100)

        assert sleeps == [7.0]
        assert len(calls) == 2

    @pytest.mark.asyncio
    async def test_retries_exhausted_raises_last_error(self):
        handler, calls = _sequence(httpx.Response(500))
        client = _client(handler)

        with pytest.raises(InferenceClientError) as exc_info:
            await client.call("test/model", [], max_retries=1, retry_delay_ms=1)

        assert exc_info.value.kind == InferenceErrorKind.TRANSIENT_ERROR
        assert exc_info.value.is_retryable
        assert len(calls) == 2

    @pytest.mark.asyncio
    async def test_transport_error_is_network_error(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        client = _client(handler)

        with pytest.raises(InferenceClientError) as exc_info:
            await client.call("test/model", [], max_retries=0)

        assert exc_info.value.kind == InferenceErrorKind.NETWORK_ERROR

    @pytest.mark.asyncio
    async def test_backoff_is_capped(self):
        sleeps = []
        handler, _ = _sequence(httpx.Response(500), httpx.Response(200, json=OK_BODY))
        client = _client(handler, sleeps=sleeps)
        client.max_backoff_ms = 500

        await client.call("test/model", [], max_retries=1, retry_delay_ms=10_000)

        assert sleeps == [0.5]

    @pytest.mark.asyncio
    async def test_timeout_is_classified_and_retried(self):
        sleeps = []
        calls = []

        def handler(request):
            calls.append(request)
            if len(calls) == 1:
                raise httpx.ReadTimeout("read timed out", request=request)
            return httpx.Response(200, json=OK_BODY)

        client = _client(handler, sleeps=sleeps)

        result = await client.call("test/model", [], max_retries=1, retry_delay_ms=100)

        assert len(calls) == 2
        assert sleeps == [0.1]
        assert result.attempts == 2

    @pytest.mark.asyncio
    async def test_timeout_after_retries_raises_timeout_kind(self):
        def handler(request):
            raise httpx.ReadTimeout("read timed out", request=request)

        client = _client(handler)

        with pytest.raises(InferenceClientError) as exc_info:
            await client.call("test/model", [], max_retries=1, retry_delay_ms=1)

        assert exc_info.value.kind == InferenceErrorKind.TIMEOUT
        assert exc_info.value.is_retryable

    @pytest.mark.asyncio
    async def test_retry_queues_behind_earlier_waiters(self):
        pool = ConcurrencyPool(1)
        order = []
        background = []

        def handler(request):
            order.append("first" if "first" not in order else "retry")
            if order == ["first"]:
                return httpx.Response(503)
            return httpx.Response(200, json=OK_BODY)

        async def earlier_caller():
            async with pool.slot():
                order.append("earlier")

        async def release_when_retry_queued():
            while pool.queue_length < 2:
                await asyncio.sleep(0)
            pool.release()

        async def backoff(seconds):
            # Another call takes the free slot and a second one queues while we back off
            await pool.acquire()
            background.append(asyncio.create_task(earlier_caller()))
            while pool.queue_length < 1:
                await asyncio.sleep(0)
            background.append(asyncio.create_task(release_when_retry_queued()))

        client = _client(handler, pool=pool, sleep=backoff)

        result = await client.call("test/model", [], max_retries=1, retry_delay_ms=100)
        await asyncio.gather(*background)

        assert order == ["first", "earlier", "retry"]
        assert result.attempts == 2
        assert pool.active_count == 0


def test_parse_retry_after():
    assert parse_retry_after(None) is None
    assert parse_retry_after("3") == 3.0
    assert parse_retry_after("-4") == 0.0
    assert parse_retry_after("Wed, 21 Oct 2015 07:28:00 GMT") == 0.0
    assert parse_retry_after("soon") is None
