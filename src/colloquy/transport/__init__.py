"""Messages API transports."""

from .anthropic import AnthropicMessages
from .base import MessagesClient

__all__ = [
    "AnthropicMessages",
    "MessagesClient",
]
