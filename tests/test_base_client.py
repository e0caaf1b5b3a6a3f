"""Tests for BaseAPIClient - retry, error mapping and circuit breaking."""

from unittest.mock import AsyncMock

import httpx
import pytest

from deep_research.core.async_utils import CircuitBreaker
from deep_research.core.exceptions import (
    APIError,
    NetworkError,
    ParseError,
    RateLimitError,
    ServiceUnavailableError,
)
from deep_research.infrastructure.sources import BaseAPIClient

BASE_URL = "https://api.example.org"


class EchoClient(BaseAPIClient):
    _service_name = "Echo"

    def __init__(self, **kwargs):
        super().__init__(base_url=BASE_URL, min_interval=0, backoff=0, **kwargs)


def _response(status: int, *, json_body=None, text: str = "", headers=None) -> httpx.Response:
    request = httpx.Request("GET", f"{BASE_URL}/items")
    if json_body is not None:
        return httpx.Response(status, json=json_body, headers=headers, request=request)
    return httpx.Response(status, text=text, headers=headers, request=request)


@pytest.fixture
def client():
    c = EchoClient()
    c._client = AsyncMock()
    return c


# ============================================================
# Success Paths
# ============================================================


class TestRequests:
    async def test_json_response(self, client):
        client._client.get.return_value = _response(200, json_body={"ok": True})

        result = await client._make_request("/items", params={"q": "x"})

        assert result == {"ok": True}
        client._client.get.assert_awaited_once_with(f"{BASE_URL}/items", params={"q": "x"}, headers={})

    async def test_full_url_is_kept(self, client):
        client._client.get.return_value = _response(200, json_body=[])

        await client._make_request("https://other.example.org/x")

        assert client._client.get.call_args.args[0] == "https://other.example.org/x"

    async def test_text_response(self, client):
        client._client.get.return_value = _response(200, text="<feed/>")

        assert await client._make_request("/feed", expect_json=False) == "<feed/>"

    async def test_post_sends_json_body(self, client):
        client._client.post = AsyncMock(return_value=_response(200, json_body={"id": 1}))

        result = await client._make_request("/items", method="POST", data={"name": "a"})

        assert result == {"id": 1}
        assert client._client.post.call_args.kwargs["json"] == {"name": "a"}

    async def test_context_manager_closes_client(self):
        async with EchoClient() as c:
            c._client = AsyncMock()

        c._client.aclose.assert_awaited_once()


# ============================================================
# Rate Limits and Retries
# ============================================================


class TestRetry:
    async def test_429_then_success(self, client):
        client._client.get.side_effect = [
            _response(429, headers={"Retry-After": "0"}),
            _response(200, json_body={"ok": True}),
        ]

        assert await client._make_request("/items") == {"ok": True}
        assert client._client.get.await_count == 2

    async def test_persistent_429(self, client):
        client._client.get.return_value = _response(429, headers={"Retry-After": "0"})

        with pytest.raises(RateLimitError) as exc_info:
            await client._make_request("/items")

        assert client._client.get.await_count == 4
        assert exc_info.value.source == "Echo"
        assert exc_info.value.context.retry_after == 0.0

    async def test_transport_error_then_success(self, client):
        request = httpx.Request("GET", f"{BASE_URL}/items")
        client._client.get.side_effect = [
            httpx.ConnectError("DNS failed", request=request),
            _response(200, json_body={"ok": True}),
        ]

        assert await client._make_request("/items") == {"ok": True}

    async def test_transport_errors_exhaust_retries(self, client):
        request = httpx.Request("GET", f"{BASE_URL}/items")
        client._client.get.side_effect = httpx.ConnectError("DNS failed", request=request)

        with pytest.raises(NetworkError, match="DNS failed"):
            await client._make_request("/items")

        assert client._client.get.await_count == 4

    def test_retry_after_fallback(self):
        bad_header = _response(429, headers={"Retry-After": "soon"})

        assert BaseAPIClient._get_retry_after(bad_header, attempt=1) == 4.0
        assert BaseAPIClient._get_retry_after(_response(429), attempt=0) == 2.0


# ============================================================
# Error Mapping
# ============================================================


class TestErrors:
    async def test_5xx(self, client):
        client._client.get.return_value = _response(503)

        with pytest.raises(ServiceUnavailableError) as exc_info:
            await client._make_request("/items")

        assert exc_info.value.status_code == 503
        assert str(exc_info.value) == "Echo: HTTP 503 Service Unavailable"
        assert client._client.get.await_count == 1

    async def test_4xx_is_not_retryable(self, client):
        client._client.get.return_value = _response(400)

        with pytest.raises(APIError) as exc_info:
            await client._make_request("/items")

        assert exc_info.value.status_code == 400
        assert not exc_info.value.retryable

    async def test_invalid_json(self, client):
        client._client.get.return_value = _response(200, text="not json")

        with pytest.raises(ParseError):
            await client._make_request("/items")

    async def test_open_circuit_rejects_without_calling(self):
        client = EchoClient(circuit_breaker=CircuitBreaker(failure_threshold=1, recovery_timeout=60, name="Echo"))
        client._client = AsyncMock()
        client._client.get.return_value = _response(500)

        with pytest.raises(ServiceUnavailableError):
            await client._make_request("/items")
        with pytest.raises(RateLimitError, match="Circuit breaker is open"):
            await client._make_request("/items")

        assert client._client.get.await_count == 1
