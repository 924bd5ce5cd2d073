"""Tests for the LINE Messaging API client.

All HTTP calls are mocked -- no network access is required.
"""

from __future__ import annotations

import httpx
import pytest
from unittest.mock import AsyncMock, patch

from billrelay.integrations.line_client import (
    Blocked,
    LineApiError,
    LineClient,
    LineTimeoutError,
    Profile,
    TransientError,
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _response(status_code: int = 200, json_body=None, method: str = "GET", text: str | None = None):
    """Return an httpx.Response suitable for mocking."""
    kwargs = {"json": json_body} if json_body is not None else {"text": text or ""}
    return httpx.Response(
        status_code=status_code,
        request=httpx.Request(method, "https://api.line.test"),
        **kwargs,
    )


def _client() -> LineClient:
    return LineClient(access_token="token-abc", base_url="https://api.line.test/", timeout=5.0)


# ---------------------------------------------------------------------------
# 1. get_profile
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_get_profile_success():
    client = _client()
    body = {"userId": "U123", "displayName": "Alice", "pictureUrl": "https://p/x", "language": "th"}

    with patch("httpx.AsyncClient.get", new_callable=AsyncMock) as mock_get:
        mock_get.return_value = _response(json_body=body)
        result = await client.get_profile("U123")

    assert result == Profile(user_id="U123", display_name="Alice", picture_url="https://p/x", language="th")
    assert mock_get.call_args.args[0] == "/v2/bot/profile/U123"
    await client.aclose()


@pytest.mark.asyncio
@pytest.mark.parametrize("status", [403, 404])
async def test_get_profile_blocked(status):
    client = _client()

    with patch("httpx.AsyncClient.get", new_callable=AsyncMock) as mock_get:
        mock_get.return_value = _response(status, json_body={"message": "Not found"})
        result = await client.get_profile("U123")

    assert result == Blocked(user_id="U123")
    await client.aclose()


@pytest.mark.asyncio
async def test_get_profile_server_error_is_transient():
    client = _client()

    with patch("httpx.AsyncClient.get", new_callable=AsyncMock) as mock_get:
        mock_get.return_value = _response(500, text="oops")
        result = await client.get_profile("U123")

    assert isinstance(result, TransientError)
    assert result.reason == "HTTP 500"
    await client.aclose()


@pytest.mark.asyncio
async def test_get_profile_timeout_is_transient():
    client = _client()

    with patch("httpx.AsyncClient.get", new_callable=AsyncMock) as mock_get:
        mock_get.side_effect = httpx.ReadTimeout("timed out")
        result = await client.get_profile("U123")

    assert result == TransientError(user_id="U123", reason="timeout")
    await client.aclose()


@pytest.mark.asyncio
async def test_get_profile_connect_error_is_transient():
    client = _client()

    with patch("httpx.AsyncClient.get", new_callable=AsyncMock) as mock_get:
        mock_get.side_effect = httpx.ConnectError("Connection refused")
        result = await client.get_profile("U123")

    assert isinstance(result, TransientError)
    assert "ConnectError" in result.reason
    await client.aclose()


@pytest.mark.asyncio
async def test_get_profile_malformed_body_is_transient():
    client = _client()

    with patch("httpx.AsyncClient.get", new_callable=AsyncMock) as mock_get:
        mock_get.return_value = _response(200, text="<html>")
        result = await client.get_profile("U123")

    assert isinstance(result, TransientError)
    await client.aclose()


# ---------------------------------------------------------------------------
# 2. multicast
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_multicast_sends_retry_key_and_body():
    client = _client()
    messages = [{"type": "text", "text": "hi"}]

    with patch("httpx.AsyncClient.post", new_callable=AsyncMock) as mock_post:
        mock_post.return_value = _response(200, json_body={}, method="POST")
        key = await client.multicast(["U123"], messages, retry_key="key-1")

    assert key == "key-1"
    assert mock_post.call_args.args[0] == "/v2/bot/message/multicast"
    assert mock_post.call_args.kwargs["json"] == {"to": ["U123"], "messages": messages}
    assert mock_post.call_args.kwargs["headers"] == {"X-Line-Retry-Key": "key-1"}
    await client.aclose()


@pytest.mark.asyncio
async def test_multicast_generates_retry_key_when_missing():
    client = _client()

    with patch("httpx.AsyncClient.post", new_callable=AsyncMock) as mock_post:
        mock_post.return_value = _response(200, json_body={}, method="POST")
        key = await client.multicast(["U123"], [{"type": "text", "text": "hi"}])

    assert key
    assert mock_post.call_args.kwargs["headers"]["X-Line-Retry-Key"] == key
    await client.aclose()


@pytest.mark.asyncio
async def test_multicast_duplicate_retry_key_counts_as_sent():
    client = _client()

    with patch("httpx.AsyncClient.post", new_callable=AsyncMock) as mock_post:
        mock_post.return_value = _response(409, json_body={"message": "accepted"}, method="POST")
        key = await client.multicast(["U123"], [], retry_key="key-1")

    assert key == "key-1"
    await client.aclose()


@pytest.mark.asyncio
async def test_multicast_rejection_raises_with_status():
    client = _client()

    with patch("httpx.AsyncClient.post", new_callable=AsyncMock) as mock_post:
        mock_post.return_value = _response(400, json_body={"message": "bad"}, method="POST")
        with pytest.raises(LineApiError) as exc_info:
            await client.multicast(["U123"], [], retry_key="key-1")

    assert exc_info.value.status_code == 400
    await client.aclose()


@pytest.mark.asyncio
async def test_multicast_timeout_raises():
    client = _client()

    with patch("httpx.AsyncClient.post", new_callable=AsyncMock) as mock_post:
        mock_post.side_effect = httpx.ReadTimeout("timed out")
        with pytest.raises(LineTimeoutError):
            await client.multicast(["U123"], [], retry_key="key-1")

    await client.aclose()


def test_client_sends_bearer_token():
    client = _client()

    assert client._http.headers["Authorization"] == "Bearer token-abc"
    assert client.base_url == "https://api.line.test"
