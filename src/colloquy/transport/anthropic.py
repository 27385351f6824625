"""Anthropic Messages API transport.

Requests go through the SDK's beta Messages endpoint because MCP servers,
``mcp_toolset`` tools and the other opt-in features only exist there. The
enabled betas come from ``Config.beta_features``.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any

from colloquy.errors import APIError
from colloquy.transport._errors import wrap_transport_error

if TYPE_CHECKING:
    from collections.abc import AsyncIterable

    import httpx

    from colloquy.config import Config

logger = logging.getLogger(__name__)

# Keyword arguments accepted by ``beta.messages.create``; anything else in a
# payload is forwarded verbatim through ``extra_body``.
_CREATE_PARAMS = frozenset(
    {
        "model",
        "max_tokens",
        "messages",
        "system",
        "metadata",
        "service_tier",
        "stop_sequences",
        "temperature",
        "top_k",
        "top_p",
        "thinking",
        "tools",
        "tool_choice",
        "mcp_servers",
    }
)

_COUNT_PARAMS = frozenset(
    {"model", "messages", "system", "tools", "tool_choice", "thinking", "mcp_servers"}
)


class AnthropicMessages:
    """``MessagesClient`` backed by ``anthropic.AsyncAnthropic``."""

    def __init__(
        self, config: Config, *, http_client: httpx.AsyncClient | None = None
    ) -> None:
        """Initialize from a resolved ``Config``; the SDK client is created lazily."""
        self.config = config
        self._http_client = http_client
        self._client: Any = None

    def _get_client(self) -> Any:
        """Lazily initialize and return the async Anthropic client."""
        if self._client is None:
            try:
                from anthropic import AsyncAnthropic
            except ImportError as e:
                raise APIError(
                    "anthropic package not installed",
                    hint="pip install anthropic",
                ) from e

            kwargs: dict[str, Any] = {
                "timeout": self.config.timeout,
                "max_retries": self.config.max_retries,
            }
            if self.config.api_key:
                kwargs["api_key"] = self.config.api_key
            if self.config.auth_token:
                kwargs["auth_token"] = self.config.auth_token
            if self.config.base_url:
                kwargs["base_url"] = self.config.base_url
            if self._http_client is not None:
                kwargs["http_client"] = self._http_client

            self._client = AsyncAnthropic(**kwargs)
        return self._client

    def _request_kwargs(self, payload: dict[str, Any]) -> dict[str, Any]:
        kwargs = {k: v for k, v in payload.items() if k in _CREATE_PARAMS}
        extra = {k: v for k, v in payload.items() if k not in _CREATE_PARAMS}
        if extra:
            kwargs["extra_body"] = extra
        betas = self.config.betas()
        if betas:
            kwargs["betas"] = betas
        return kwargs

    async def create_message(self, payload: dict[str, Any]) -> Any:
        """Send one Messages API request."""
        client = self._get_client()
        logger.debug(
            "messages.create model=%s messages=%d tools=%d mcp_servers=%d",
            payload.get("model"),
            len(payload.get("messages", [])),
            len(payload.get("tools", [])),
            len(payload.get("mcp_servers", [])),
        )
        try:
            return await client.beta.messages.create(**self._request_kwargs(payload))
        except asyncio.CancelledError:
            raise
        except Exception as e:
            raise wrap_transport_error(e) from e

    async def create_message_stream(self, payload: dict[str, Any]) -> AsyncIterable[Any]:
        """Open a streaming Messages API request and return its raw events."""
        client = self._get_client()
        try:
            return await client.beta.messages.create(
                **self._request_kwargs(payload), stream=True
            )
        except asyncio.CancelledError:
            raise
        except Exception as e:
            raise wrap_transport_error(e) from e

    async def count_tokens(self, payload: dict[str, Any]) -> int:
        """Return the input token count the server computes for *payload*."""
        client = self._get_client()
        params = {k: v for k, v in payload.items() if k in _COUNT_PARAMS}
        betas = self.config.betas()
        if betas:
            params["betas"] = betas
        try:
            result = await client.beta.messages.count_tokens(**params)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            raise wrap_transport_error(e) from e
        return int(getattr(result, "input_tokens", 0))

    async def aclose(self) -> None:
        """Close underlying async client resources."""
        client = self._client
        if client is None:
            return
        self._client = None
        await client.close()
