"""Content value objects: cacheable text and token cost estimates."""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any


@dataclass(frozen=True)
class CachedContent:
    """Text flagged so the server may reuse precomputation across calls.

    Example:
        system = CachedContent.make("You are a document analyzer.").ephemeral()
    """

    content: str
    cache_type: str = "ephemeral"

    @classmethod
    def make(cls, content: str) -> CachedContent:
        """Create cacheable content with the default ephemeral cache type."""
        return cls(content)

    def cache(self, cache_type: str = "ephemeral") -> CachedContent:
        """Return a copy with *cache_type*."""
        return replace(self, cache_type=cache_type)

    def ephemeral(self) -> CachedContent:
        """Return a copy with the ephemeral cache type."""
        return self.cache("ephemeral")

    def to_block(self) -> dict[str, Any]:
        """Return the wire text block with ``cache_control``."""
        return {
            "type": "text",
            "text": self.content,
            "cache_control": {"type": self.cache_type},
        }


@dataclass(frozen=True)
class TokenCost:
    """Estimated USD cost for a number of input/output tokens."""

    input_tokens: int
    output_tokens: int
    input_cost: float
    output_cost: float
    model: str = "unknown"

    @property
    def total(self) -> float:
        return self.input_cost + self.output_cost

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens

    def formatted(self, currency: str = "$", decimals: int = 6) -> str:
        return f"{currency}{self.total:,.{decimals}f}"

    @classmethod
    def calculate(
        cls,
        input_tokens: int,
        output_tokens: int,
        pricing: dict[str, float],
        model: str = "unknown",
    ) -> TokenCost:
        """Compute cost from per-million-token *pricing* (``input``/``output``)."""
        return cls(
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            input_cost=(input_tokens / 1_000_000) * pricing["input"],
            output_cost=(output_tokens / 1_000_000) * pricing["output"],
            model=model,
        )

    @classmethod
    def for_input(
        cls, input_tokens: int, pricing: dict[str, float], model: str = "unknown"
    ) -> TokenCost:
        return cls.calculate(input_tokens, 0, pricing, model)

    def to_dict(self) -> dict[str, Any]:
        return {
            "model": self.model,
            "input_tokens": self.input_tokens,
            "output_tokens": self.output_tokens,
            "input_cost": self.input_cost,
            "output_cost": self.output_cost,
            "total_cost": self.total,
            "total_tokens": self.total_tokens,
        }
