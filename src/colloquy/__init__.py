"""Colloquy: tool-using conversations over the Anthropic Messages API.

Public API:
    - Claude: configured entry point; ``conversation()`` starts a builder
    - ConversationBuilder: fluent history, ``send()``, ``stream()``, ``queue()``
    - Tool / McpServer: local and remote capabilities the model may call
    - Config: configuration dataclass
"""

from __future__ import annotations

import logging

from colloquy.client import Claude
from colloquy.config import Config
from colloquy.content import CachedContent, TokenCost
from colloquy.conversation import ConversationBuilder
from colloquy.errors import (
    APIError,
    ColloquyError,
    ConfigurationError,
    RateLimitError,
    StreamingError,
    ToolExecutionError,
    ValidationError,
)
from colloquy.executor import ToolExecutor
from colloquy.jobs import ConversationCallback, ConversationJob
from colloquy.mcp import McpServer
from colloquy.models import (
    MessageResponse,
    StreamChunk,
    StreamComplete,
    TextBlock,
    ToolResult,
    ToolUseBlock,
    Usage,
)
from colloquy.payload import ConversationConfig, PayloadBuilder
from colloquy.retry import RetryPolicy
from colloquy.streaming import StreamHandler
from colloquy.tools import Tool, ToolRegistry

try:
    from importlib.metadata import PackageNotFoundError, version

    __version__ = version("colloquy-ai")
except PackageNotFoundError:
    __version__ = "0.0.0+unknown"

# Library-level NullHandler: stay silent unless the consumer configures logging.
logging.getLogger("colloquy").addHandler(logging.NullHandler())

__all__ = [
    "APIError",
    "CachedContent",
    "Claude",
    "ColloquyError",
    "Config",
    "ConfigurationError",
    "ConversationBuilder",
    "ConversationCallback",
    "ConversationConfig",
    "ConversationJob",
    "McpServer",
    "MessageResponse",
    "PayloadBuilder",
    "RateLimitError",
    "RetryPolicy",
    "StreamChunk",
    "StreamComplete",
    "StreamHandler",
    "StreamingError",
    "TextBlock",
    "TokenCost",
    "Tool",
    "ToolExecutionError",
    "ToolExecutor",
    "ToolRegistry",
    "ToolResult",
    "ToolUseBlock",
    "Usage",
    "ValidationError",
]
