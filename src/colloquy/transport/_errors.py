"""Transport-side error mapping.

SDK exceptions are translated once, here, into the Colloquy taxonomy with
stable retry metadata, so callers never match on SDK classes or messages.
"""

from __future__ import annotations

import asyncio
from typing import Any

import anthropic
import httpx

from colloquy.errors import (
    APIError,
    ColloquyError,
    ConfigurationError,
    RateLimitError,
    _walk_exception_chain,
)
from colloquy.retry import RETRYABLE_STATUS_CODES

_AUTH_MESSAGE = (
    "Invalid API credentials. Check your ANTHROPIC_API_KEY or ANTHROPIC_AUTH_TOKEN."
)


def _http_status(value: Any) -> int | None:
    return value if isinstance(value, int) and 100 <= value <= 599 else None


def _status_of(e: BaseException) -> int | None:
    response = getattr(e, "response", None)
    return _http_status(getattr(e, "status_code", None)) or _http_status(
        getattr(response, "status_code", None)
    )


def _retry_after_of(e: BaseException) -> float | None:
    # SDK errors expose the raw httpx response; its Retry-After is in seconds.
    headers = getattr(getattr(e, "response", None), "headers", None)
    if not isinstance(headers, httpx.Headers):
        return None
    try:
        seconds = float(headers.get("retry-after", ""))
    except ValueError:
        return None
    return seconds if seconds >= 0 else None


def extract_status_code(exc: BaseException) -> int | None:
    """First HTTP status code found along the exception chain."""
    return next(
        (s for s in map(_status_of, _walk_exception_chain(exc)) if s is not None),
        None,
    )


def extract_retry_after_s(exc: BaseException) -> float | None:
    """First Retry-After delay (seconds) found along the exception chain."""
    return next(
        (s for s in map(_retry_after_of, _walk_exception_chain(exc)) if s is not None),
        None,
    )


def _extract_error_type(exc: BaseException) -> str | None:
    for e in _walk_exception_chain(exc):
        body = getattr(e, "body", None)
        if isinstance(body, dict):
            error = body.get("error")
            if isinstance(error, dict) and isinstance(error.get("type"), str):
                return error["type"]
    return None


_CONNECTION_ERRORS = (anthropic.APIConnectionError, httpx.RequestError, TimeoutError)


def _is_connection_error(exc: BaseException) -> bool:
    return any(isinstance(e, _CONNECTION_ERRORS) for e in _walk_exception_chain(exc))


def wrap_transport_error(exc: BaseException) -> ColloquyError:
    """Map a Messages API exception into ``ConfigurationError`` or ``APIError``."""
    if isinstance(exc, asyncio.CancelledError):
        raise exc

    if isinstance(exc, ColloquyError):
        return exc

    status_code = extract_status_code(exc)

    if isinstance(exc, anthropic.AuthenticationError) or status_code == 401:
        return ConfigurationError(
            _AUTH_MESSAGE,
            hint="Set ANTHROPIC_API_KEY or pass Config(api_key=...).",
        )

    if status_code == 429:
        return RateLimitError(
            "Rate limit exceeded. Please retry later.",
            error_type="rate_limit_error",
            retryable=True,
            status_code=status_code,
            retry_after_s=extract_retry_after_s(exc),
        )

    if status_code is None and _is_connection_error(exc):
        return APIError(
            f"Failed to connect to Claude API: {exc}",
            error_type="connection_error",
            retryable=True,
        )

    if status_code is not None:
        return APIError(
            f"Claude API request failed (status={status_code}): {exc}",
            error_type=_extract_error_type(exc),
            retryable=status_code in RETRYABLE_STATUS_CODES,
            status_code=status_code,
            retry_after_s=extract_retry_after_s(exc),
        )

    return APIError(f"Unexpected API error: {exc}", retryable=False)
