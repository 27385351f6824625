"""Transport error mapping into the Colloquy taxonomy."""

from __future__ import annotations

import asyncio
import json
from types import SimpleNamespace
from typing import Any

import anthropic
import httpx
import pytest

from colloquy.config import Config
from colloquy.conversation import ConversationBuilder
from colloquy.errors import APIError, ConfigurationError, RateLimitError
from colloquy.mcp import McpServer
from colloquy.transport._errors import (
    extract_retry_after_s,
    extract_status_code,
    wrap_transport_error,
)
from colloquy.transport.anthropic import AnthropicMessages

pytestmark = pytest.mark.unit

_REQUEST = httpx.Request("POST", "https://api.anthropic.com/v1/messages")


def _status_error(
    cls: type[anthropic.APIStatusError],
    status: int,
    *,
    body: dict[str, Any] | None = None,
    headers: dict[str, str] | None = None,
) -> anthropic.APIStatusError:
    response = httpx.Response(status, request=_REQUEST, headers=headers or {})
    return cls("boom", response=response, body=body)


def test_authentication_failure_maps_to_configuration_error() -> None:
    err = wrap_transport_error(_status_error(anthropic.AuthenticationError, 401))

    assert isinstance(err, ConfigurationError)
    assert "ANTHROPIC_API_KEY or ANTHROPIC_AUTH_TOKEN" in str(err)


def test_rate_limit_keeps_retry_after() -> None:
    exc = _status_error(anthropic.RateLimitError, 429, headers={"retry-after": "7"})

    err = wrap_transport_error(exc)

    assert isinstance(err, RateLimitError)
    assert str(err) == "Rate limit exceeded. Please retry later."
    assert err.error_type == "rate_limit_error"
    assert err.retry_after_s == 7.0
    assert err.retryable is True


def test_server_error_carries_status_and_error_type() -> None:
    exc = _status_error(
        anthropic.InternalServerError,
        529,
        body={"type": "error", "error": {"type": "overloaded_error", "message": "x"}},
    )

    err = wrap_transport_error(exc)

    assert isinstance(err, APIError)
    assert err.status_code == 529
    assert err.error_type == "overloaded_error"
    assert err.retryable is True


def test_bad_request_is_not_retryable() -> None:
    err = wrap_transport_error(_status_error(anthropic.BadRequestError, 400))

    assert isinstance(err, APIError)
    assert err.status_code == 400
    assert err.retryable is False


def test_connection_error_is_flagged() -> None:
    exc = anthropic.APIConnectionError(request=_REQUEST)

    err = wrap_transport_error(exc)

    assert isinstance(err, APIError)
    assert err.error_type == "connection_error"
    assert str(err).startswith("Failed to connect to Claude API:")


def test_unknown_failure_is_unexpected_api_error() -> None:
    err = wrap_transport_error(ValueError("weird"))

    assert isinstance(err, APIError)
    assert str(err) == "Unexpected API error: weird"
    assert err.retryable is False


def test_colloquy_errors_pass_through_unchanged() -> None:
    original = ConfigurationError("already mapped")
    assert wrap_transport_error(original) is original


def test_cancellation_is_never_wrapped() -> None:
    with pytest.raises(asyncio.CancelledError):
        wrap_transport_error(asyncio.CancelledError())


def test_status_and_retry_after_found_through_the_chain() -> None:
    inner = _status_error(anthropic.RateLimitError, 429, headers={"retry-after": "3"})
    try:
        try:
            raise inner
        except anthropic.RateLimitError as e:
            raise RuntimeError("wrapped") from e
    except RuntimeError as outer:
        assert extract_status_code(outer) == 429
        assert extract_retry_after_s(outer) == 3.0


class _FakeSdkMessages:
    def __init__(self, error: Exception | None = None) -> None:
        self.error = error
        self.kwargs: dict[str, Any] | None = None

    async def create(self, **kwargs: Any) -> Any:
        self.kwargs = kwargs
        if self.error is not None:
            raise self.error
        return {"ok": True}


class _FakeSdkClient:
    def __init__(self, messages: _FakeSdkMessages) -> None:
        self.beta = SimpleNamespace(messages=messages)


@pytest.mark.asyncio
async def test_transport_wraps_sdk_errors() -> None:
    transport = AnthropicMessages(Config(api_key="k"))
    transport._client = _FakeSdkClient(
        _FakeSdkMessages(_status_error(anthropic.RateLimitError, 429))
    )

    with pytest.raises(RateLimitError):
        await transport.create_message({"model": "m", "messages": [], "max_tokens": 1})


@pytest.mark.asyncio
async def test_transport_stream_requests_streaming_with_enabled_betas() -> None:
    sdk = _FakeSdkMessages()
    transport = AnthropicMessages(
        Config(api_key="k", beta_features={"mcp_connector": True})
    )
    transport._client = _FakeSdkClient(sdk)

    await transport.create_message_stream({"model": "m"})

    assert sdk.kwargs == {
        "model": "m",
        "stream": True,
        "betas": ["mcp-client-2025-11-20"],
    }


@pytest.mark.asyncio
async def test_unknown_payload_keys_travel_in_extra_body() -> None:
    sdk = _FakeSdkMessages()
    transport = AnthropicMessages(Config(api_key="k", beta_features={}))
    transport._client = _FakeSdkClient(sdk)

    await transport.create_message({"model": "m", "container": "c_1"})

    assert sdk.kwargs == {"model": "m", "extra_body": {"container": "c_1"}}


def test_sdk_client_is_built_lazily() -> None:
    transport = AnthropicMessages(
        Config(api_key="k", timeout=5, beta_features={"prompt_caching": True})
    )
    assert transport._client is None

    client = transport._get_client()

    assert isinstance(client, anthropic.AsyncAnthropic)
    assert client.api_key == "k"
    assert transport._get_client() is client


_WIRE_MESSAGE = {
    "id": "msg_wire",
    "type": "message",
    "role": "assistant",
    "model": "claude-sonnet-4-5-20250929",
    "content": [{"type": "text", "text": "hi"}],
    "stop_reason": "end_turn",
    "stop_sequence": None,
    "usage": {"input_tokens": 3, "output_tokens": 1},
}


class _Wire:
    """Captures requests reaching an ``httpx.MockTransport``."""

    def __init__(self, body: dict[str, Any]) -> None:
        self.body = body
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return httpx.Response(200, json=self.body)

    def transport(self, **config: Any) -> AnthropicMessages:
        return AnthropicMessages(
            Config(
                api_key="k",
                base_url="https://api.example.test",
                max_retries=0,
                **config,
            ),
            http_client=httpx.AsyncClient(transport=httpx.MockTransport(self)),
        )

    def sent(self) -> dict[str, Any]:
        return json.loads(self.requests[-1].content)


@pytest.mark.asyncio
async def test_mcp_servers_and_toolsets_reach_the_request_body() -> None:
    wire = _Wire(_WIRE_MESSAGE)
    transport = wire.transport()
    server = McpServer.url("https://mcp.example.com/sse").name("ex").token("t0k")

    builder = ConversationBuilder(transport, transport.config)
    response = await builder.user("hi").mcp([server.allow_tools(["search"])]).send()
    await transport.aclose()

    body = wire.sent()
    request = wire.requests[-1]
    assert request.url.path == "/v1/messages"
    assert "mcp-client-2025-11-20" in request.headers["anthropic-beta"]
    assert body["mcp_servers"] == [
        {
            "type": "url",
            "url": "https://mcp.example.com/sse",
            "name": "ex",
            "authorization_token": "t0k",
        }
    ]
    assert body["tools"] == [server.to_toolset_dict()]
    assert body["tools"][0]["type"] == "mcp_toolset"
    assert response.stop_reason == "end_turn"
    assert builder.messages[-1] == {"role": "assistant", "content": "hi"}


@pytest.mark.asyncio
async def test_count_tokens_uses_the_beta_endpoint() -> None:
    wire = _Wire({"input_tokens": 17})
    transport = wire.transport(beta_features={"mcp_connector": True})

    tokens = await transport.count_tokens(
        {
            "model": "claude-sonnet-4-5-20250929",
            "max_tokens": 1024,
            "messages": [{"role": "user", "content": "hi"}],
        }
    )
    await transport.aclose()

    assert tokens == 17
    assert wire.requests[-1].url.path == "/v1/messages/count_tokens"
    assert wire.requests[-1].headers["anthropic-beta"] == "mcp-client-2025-11-20"
    assert "max_tokens" not in wire.sent()
