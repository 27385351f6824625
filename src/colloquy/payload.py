"""Conversation snapshots and Messages API request assembly.

``PayloadBuilder`` is the single place where a ``ConversationConfig`` becomes
a wire request, shared by the tool loop, streaming, and background jobs.
Optional fields are omitted when unset so the server applies its defaults.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any

from colloquy.content import CachedContent
from colloquy.mcp import McpServer
from colloquy.tools import Tool

DEFAULT_MAX_TOKENS = 1024
DEFAULT_SCHEMA_NAME = "structured_output"
_SCHEMA_TOOL_DESCRIPTION = "Respond with structured data matching the provided schema"


@dataclass(frozen=True)
class ConversationConfig:
    """Immutable snapshot of everything needed to build one request.

    ``tools`` holds ``Tool`` objects or wire tool dicts. ``mcp_servers`` holds
    ``McpServer`` objects or frozen ``{"server": ..., "toolset": ...}`` pairs
    (the form produced by ``to_dict``).
    """

    model: str
    messages: tuple[dict[str, Any], ...] = ()
    system: str | CachedContent | dict[str, Any] | None = None
    max_tokens: int = DEFAULT_MAX_TOKENS
    temperature: float | None = None
    top_k: int | None = None
    top_p: float | None = None
    stop_sequences: tuple[str, ...] = ()
    metadata: dict[str, Any] | None = None
    service_tier: str | None = None
    tools: tuple[Tool | dict[str, Any], ...] = ()
    mcp_servers: tuple[McpServer | dict[str, Any], ...] = ()
    max_steps: int = 1
    thinking_budget: int | None = None
    json_schema: dict[str, Any] | None = None
    schema_name: str = DEFAULT_SCHEMA_NAME
    tool_timeout: float | None = None

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-serializable form; handlers are not carried."""
        system = self.system
        if isinstance(system, CachedContent):
            system = system.to_block()
        return {
            "model": self.model,
            "messages": [dict(m) for m in self.messages],
            "system": system,
            "max_tokens": self.max_tokens,
            "temperature": self.temperature,
            "top_k": self.top_k,
            "top_p": self.top_p,
            "stop_sequences": list(self.stop_sequences),
            "metadata": self.metadata,
            "service_tier": self.service_tier,
            "tools": [_tool_definition(t) for t in self.tools],
            "mcp_servers": [
                {"server": server, "toolset": toolset}
                for server, toolset in (_mcp_pair(s) for s in self.mcp_servers)
            ],
            "max_steps": self.max_steps,
            "thinking_budget": self.thinking_budget,
            "json_schema": self.json_schema,
            "schema_name": self.schema_name,
            "tool_timeout": self.tool_timeout,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ConversationConfig:
        """Rebuild a snapshot from ``to_dict`` output."""
        return cls(
            model=data["model"],
            messages=tuple(data.get("messages") or ()),
            system=data.get("system"),
            max_tokens=data.get("max_tokens", DEFAULT_MAX_TOKENS),
            temperature=data.get("temperature"),
            top_k=data.get("top_k"),
            top_p=data.get("top_p"),
            stop_sequences=tuple(data.get("stop_sequences") or ()),
            metadata=data.get("metadata"),
            service_tier=data.get("service_tier"),
            tools=tuple(data.get("tools") or ()),
            mcp_servers=tuple(data.get("mcp_servers") or ()),
            max_steps=data.get("max_steps", 1),
            thinking_budget=data.get("thinking_budget"),
            json_schema=data.get("json_schema"),
            schema_name=data.get("schema_name") or DEFAULT_SCHEMA_NAME,
            tool_timeout=data.get("tool_timeout"),
        )


def _tool_definition(tool: Tool | dict[str, Any]) -> dict[str, Any]:
    return tool.to_dict() if isinstance(tool, Tool) else dict(tool)


def _mcp_pair(entry: McpServer | dict[str, Any]) -> tuple[dict[str, Any], dict[str, Any]]:
    if isinstance(entry, McpServer):
        return entry.to_dict(), entry.to_toolset_dict()
    return dict(entry["server"]), dict(entry["toolset"])


class PayloadBuilder:
    """Build Messages API requests from a ``ConversationConfig``."""

    def __init__(self, config: ConversationConfig) -> None:
        self._config = config

    @property
    def config(self) -> ConversationConfig:
        return self._config

    def with_messages(self, messages: list[dict[str, Any]]) -> PayloadBuilder:
        """Return a builder over the same snapshot with *messages* replaced."""
        return PayloadBuilder(replace(self._config, messages=tuple(messages)))

    def build(self) -> dict[str, Any]:
        """Return the wire request. Pure: repeated calls give equal output."""
        cfg = self._config
        payload: dict[str, Any] = {
            "model": cfg.model,
            "max_tokens": cfg.max_tokens,
            "messages": [dict(m) for m in cfg.messages],
        }

        self._add_system(payload)
        self._add_sampling(payload)

        if cfg.metadata is not None:
            payload["metadata"] = dict(cfg.metadata)
        if cfg.service_tier is not None:
            payload["service_tier"] = cfg.service_tier

        if cfg.thinking_budget is not None:
            payload["thinking"] = {
                "type": "enabled",
                "budget_tokens": cfg.thinking_budget,
            }

        self._add_tools(payload)
        return payload

    def _add_system(self, payload: dict[str, Any]) -> None:
        system = self._config.system
        if system is None:
            return
        if isinstance(system, CachedContent):
            payload["system"] = [system.to_block()]
        elif isinstance(system, dict):
            payload["system"] = [dict(system)]
        else:
            payload["system"] = system

    def _add_sampling(self, payload: dict[str, Any]) -> None:
        cfg = self._config
        if cfg.temperature is not None:
            payload["temperature"] = cfg.temperature
        if cfg.stop_sequences:
            payload["stop_sequences"] = list(cfg.stop_sequences)
        if cfg.top_k is not None:
            payload["top_k"] = cfg.top_k
        if cfg.top_p is not None:
            payload["top_p"] = cfg.top_p

    def _add_tools(self, payload: dict[str, Any]) -> None:
        cfg = self._config
        tools = [_tool_definition(t) for t in cfg.tools]

        # Schema-constrained output: a synthetic tool the model is forced to call.
        if cfg.json_schema is not None:
            tools.append(
                {
                    "name": cfg.schema_name,
                    "description": _SCHEMA_TOOL_DESCRIPTION,
                    "input_schema": cfg.json_schema,
                }
            )
            payload["tool_choice"] = {"type": "tool", "name": cfg.schema_name}

        if cfg.mcp_servers:
            servers: list[dict[str, Any]] = []
            for entry in cfg.mcp_servers:
                server, toolset = _mcp_pair(entry)
                servers.append(server)
                tools.append(toolset)
            payload["mcp_servers"] = servers

        if tools:
            payload["tools"] = tools
