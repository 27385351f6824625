"""Claude: the entry point tying configuration, transport, and conversations."""

from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING, Any

from colloquy.config import Config
from colloquy.content import TokenCost
from colloquy.conversation import ConversationBuilder
from colloquy.errors import ConfigurationError
from colloquy.mcp import McpServer
from colloquy.transport.anthropic import AnthropicMessages

if TYPE_CHECKING:
    from colloquy.testing import FakeResponse, PendingClaudeFake
    from colloquy.transport.base import MessagesClient

logger = logging.getLogger(__name__)

KNOWN_MODELS: frozenset[str] = frozenset(
    {
        "claude-opus-4-5-20251101",
        "claude-sonnet-4-5-20250929",
        "claude-haiku-4-5-20251001",
        "claude-opus-4-1-20250805",
        "claude-opus-4-20250514",
        "claude-sonnet-4-20250514",
        "claude-3-7-sonnet-20250219",
        "claude-3-5-sonnet-20241022",
        "claude-3-5-haiku-20241022",
        "claude-3-opus-20240229",
        "claude-3-haiku-20240307",
    }
)

_MODEL_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"^claude-(?:3|3-5|3-7)-(?:opus|sonnet|haiku)-\d{8}$"),
    re.compile(r"^claude-(?:opus|sonnet|haiku)-4(?:-\d+)?-\d{8}$"),
)

# Used when no configured prefix matches the model.
_FALLBACK_PRICING: dict[str, float] = {"input": 3.00, "output": 15.00}


class Claude:
    """Configured access to the Messages API.

    Example:
        claude = Claude()
        response = await claude.conversation().user("Hello").send()
    """

    def __init__(
        self, config: Config | None = None, *, client: MessagesClient | None = None
    ) -> None:
        self.config = config if config is not None else Config()
        self._client = client if client is not None else AnthropicMessages(self.config)

    @property
    def messages(self) -> MessagesClient:
        """The transport every conversation from this instance uses."""
        return self._client

    def conversation(self) -> ConversationBuilder:
        return ConversationBuilder(self._client, self.config)

    def config_value(self, key: str, default: Any = None) -> Any:
        """Look up a dotted *key* (``"mcp_servers.search.url"``) in the config."""
        current: Any = self.config
        for part in key.split("."):
            if isinstance(current, dict):
                if part not in current:
                    return default
                current = current[part]
            elif hasattr(current, part) and not part.startswith("_"):
                current = getattr(current, part)
            else:
                return default
        return current

    def mcp_server(self, name: str) -> McpServer:
        """Build the pre-registered MCP server called *name*."""
        server_config = self.config.mcp_servers.get(name)
        if server_config is None:
            raise ConfigurationError(f"MCP server '{name}' not found in config")
        return McpServer.from_config(name, server_config)

    # --- Cost estimation ---

    def pricing_for_model(self, model: str) -> dict[str, float]:
        """Per-million-token pricing for the longest configured prefix of *model*."""
        matches = [prefix for prefix in self.config.pricing if model.startswith(prefix)]
        if matches:
            return dict(self.config.pricing[max(matches, key=len)])
        logger.debug("No pricing for model %s; using fallback rates", model)
        return dict(self.config.pricing.get("claude-sonnet", _FALLBACK_PRICING))

    def estimate_cost(
        self, input_tokens: int, output_tokens: int = 0, model: str | None = None
    ) -> TokenCost:
        model = model or self.config.default_model or ""
        return TokenCost.calculate(
            input_tokens, output_tokens, self.pricing_for_model(model), model
        )

    def cost(self, usage: Any, model: str | None = None) -> TokenCost:
        """Cost of a response's ``usage`` (an object or a mapping)."""
        if isinstance(usage, dict):
            input_tokens = usage.get("input_tokens", 0)
            output_tokens = usage.get("output_tokens", 0)
        else:
            input_tokens = getattr(usage, "input_tokens", 0)
            output_tokens = getattr(usage, "output_tokens", 0)
        return self.estimate_cost(int(input_tokens or 0), int(output_tokens or 0), model)

    async def count_tokens(self, conversation: ConversationBuilder) -> int:
        """Server-side input token count for *conversation*'s next request."""
        counter = getattr(self._client, "count_tokens", None)
        if counter is None:
            raise ConfigurationError(
                f"{type(self._client).__name__} does not support token counting"
            )
        return await counter(conversation.build_payload())

    @staticmethod
    def is_known_model(model: str) -> bool:
        if model in KNOWN_MODELS:
            return True
        return any(pattern.match(model) for pattern in _MODEL_PATTERNS)

    @classmethod
    def fake(
        cls,
        responses: list[FakeResponse | str] | None = None,
        config: Config | None = None,
    ) -> PendingClaudeFake:
        """Return a ``Claude`` whose requests go to a recording fake."""
        from colloquy.testing import PendingClaudeFake

        return PendingClaudeFake(responses, config=config)

    async def aclose(self) -> None:
        closer = getattr(self._client, "aclose", None)
        if closer is not None:
            await closer()
