"""Configuration: frozen Config resolved from arguments and the environment."""

from __future__ import annotations

from dataclasses import dataclass, field
import os
from typing import Any

from dotenv import load_dotenv

from colloquy.errors import ConfigurationError

load_dotenv()

DEFAULT_MODEL = "claude-sonnet-4-5-20250929"

_BETA_HEADERS: dict[str, str] = {
    "mcp_connector": "mcp-client-2025-11-20",
    "extended_thinking": "extended-thinking-2024-12-17",
    "prompt_caching": "prompt-caching-2024-07-31",
    "structured_outputs": "structured-outputs-2024-12-17",
}


def _default_beta_features() -> dict[str, bool]:
    return {
        "mcp_connector": True,
        "extended_thinking": True,
        "prompt_caching": True,
        "structured_outputs": True,
    }


def _default_pricing() -> dict[str, dict[str, float]]:
    # USD per million tokens, matched by model-name prefix.
    return {
        "claude-opus": {"input": 15.00, "output": 75.00},
        "claude-sonnet": {"input": 3.00, "output": 15.00},
        "claude-haiku": {"input": 0.25, "output": 1.25},
    }


@dataclass(frozen=True)
class Config:
    """Immutable configuration for Colloquy clients.

    Credentials are auto-resolved from ``ANTHROPIC_API_KEY`` or
    ``ANTHROPIC_AUTH_TOKEN`` when not passed explicitly.

    Example:
        config = Config(default_model="claude-sonnet-4-5-20250929")
        # api_key is resolved from ANTHROPIC_API_KEY
    """

    api_key: str | None = None
    #: Bearer token alternative to ``api_key``.
    auth_token: str | None = None
    base_url: str | None = None
    default_model: str | None = None
    #: Request timeout in seconds.
    timeout: float | None = None
    max_retries: int = 2
    beta_features: dict[str, bool] = field(default_factory=_default_beta_features)
    #: Pre-registered MCP servers, referenced by name in ``ConversationBuilder.mcp``.
    mcp_servers: dict[str, dict[str, Any]] = field(default_factory=dict)
    pricing: dict[str, dict[str, float]] = field(default_factory=_default_pricing)
    use_mock: bool = False

    def __post_init__(self) -> None:
        """Resolve environment defaults and validate."""
        if self.api_key is None:
            object.__setattr__(self, "api_key", os.environ.get("ANTHROPIC_API_KEY"))
        if self.auth_token is None:
            object.__setattr__(
                self, "auth_token", os.environ.get("ANTHROPIC_AUTH_TOKEN")
            )
        if self.base_url is None:
            object.__setattr__(self, "base_url", os.environ.get("ANTHROPIC_BASE_URL"))
        if self.default_model is None:
            object.__setattr__(
                self, "default_model", os.environ.get("CLAUDE_MODEL", DEFAULT_MODEL)
            )
        if self.timeout is None:
            object.__setattr__(self, "timeout", os.environ.get("CLAUDE_TIMEOUT", 30))

        try:
            object.__setattr__(self, "timeout", float(self.timeout))  # type: ignore[arg-type]
            object.__setattr__(self, "max_retries", int(self.max_retries))
        except (TypeError, ValueError) as e:
            raise ConfigurationError(
                f"timeout and max_retries must be numeric, got "
                f"timeout={self.timeout!r}, max_retries={self.max_retries!r}",
            ) from e

        if self.timeout <= 0:  # type: ignore[operator]
            raise ConfigurationError(
                f"timeout must be > 0, got {self.timeout}",
                hint="This is the per-request timeout in seconds.",
            )
        if self.max_retries < 0:
            raise ConfigurationError(
                f"max_retries must be ≥ 0, got {self.max_retries}",
                hint="Use 0 to disable SDK-level retries.",
            )

        if not self.use_mock and not (self.api_key or self.auth_token):
            raise ConfigurationError(
                "Either ANTHROPIC_API_KEY or ANTHROPIC_AUTH_TOKEN must be configured",
                hint="Set one of the environment variables or pass api_key=... / auth_token=...",
            )

    def betas(self) -> list[str]:
        """Return the beta identifiers for enabled features, in a stable order."""
        return [
            header
            for feature, header in _BETA_HEADERS.items()
            if self.beta_features.get(feature)
        ]

    def __str__(self) -> str:
        """Return a redacted, developer-friendly representation."""
        return (
            f"Config(default_model={self.default_model!r}, "
            f"api_key={'[REDACTED]' if self.api_key else None}, "
            f"auth_token={'[REDACTED]' if self.auth_token else None}, "
            f"base_url={self.base_url!r}, use_mock={self.use_mock})"
        )

    __repr__ = __str__
