"""MCP server descriptors with SSRF-safe URL validation.

An ``McpServer`` names an external tool provider the model may call through
the MCP connector. It freezes into two wire shapes, which must always be sent
together: the server entry for ``mcp_servers`` and the ``mcp_toolset`` entry
appended to ``tools``.
"""

from __future__ import annotations

import ipaddress
import logging
from typing import Any
from urllib.parse import urlsplit

from colloquy.errors import ValidationError

logger = logging.getLogger(__name__)

_BLOCKED_HOSTS: frozenset[str] = frozenset(
    {
        "localhost",
        "127.0.0.1",
        "::1",
        "0.0.0.0",  # noqa: S104
        "169.254.169.254",
        "metadata.google.internal",
    }
)

_PRIVATE_V4_NETWORKS = tuple(
    ipaddress.ip_network(cidr)
    for cidr in (
        "10.0.0.0/8",
        "172.16.0.0/12",
        "192.168.0.0/16",
        "127.0.0.0/8",
        "169.254.0.0/16",
        "0.0.0.0/8",
    )
)

_ALLOWED_SCHEMES = ("http", "https")


def _is_private_ip(host: str) -> bool:
    try:
        addr = ipaddress.ip_address(host)
    except ValueError:
        return False
    if isinstance(addr, ipaddress.IPv6Address):
        if addr.ipv4_mapped is not None:
            addr = addr.ipv4_mapped
        else:
            return addr.is_private or addr.is_loopback or addr.is_link_local
    return any(addr in network for network in _PRIVATE_V4_NETWORKS)


def validate_url(url: str) -> str:
    """Reject URLs that could reach local, internal, or non-HTTP targets.

    Runs before any network use. Returns the URL unchanged when it is safe.
    """
    if not isinstance(url, str) or not url.strip():
        raise ValidationError("url", url, "MCP server URL cannot be empty")

    try:
        parts = urlsplit(url)
        host = parts.hostname
    except ValueError:
        host = None
        parts = None
    if (
        parts is None
        or not parts.scheme
        or not parts.netloc
        or not host
        or any(ch.isspace() for ch in url)
    ):
        raise ValidationError("url", url, "Invalid MCP server URL format")

    if host in _BLOCKED_HOSTS:
        raise ValidationError(
            "url", url, "MCP server URL cannot target local or internal hosts"
        )
    if _is_private_ip(host):
        raise ValidationError(
            "url", url, "MCP server URL cannot target private IP addresses"
        )
    if parts.scheme.lower() not in _ALLOWED_SCHEMES:
        raise ValidationError(
            "url", url, "MCP server URL must use HTTP or HTTPS protocol"
        )
    return url


class McpServer:
    """Fluent MCP server definition.

    Example:
        server = (
            McpServer.url("https://mcp.example.com/sse")
            .name("example")
            .token("secret")
            .allow_tools(["search"])
        )
    """

    def __init__(self, url: str) -> None:
        # The URL is fixed here; there is no setter that could bypass validation.
        self._url = validate_url(url)
        self._name: str | None = None
        self._token: str | None = None
        self._allowed_tools: list[str] | None = None
        self._denied_tools: list[str] | None = None

    @classmethod
    def url(cls, url: str) -> McpServer:
        """Create a server for *url* after SSRF validation."""
        return cls(url)

    @classmethod
    def from_config(cls, name: str, server_config: dict[str, Any]) -> McpServer:
        """Build a server from a ``Config.mcp_servers`` entry keyed by *name*."""
        url = server_config.get("url") or ""
        if not isinstance(url, str) or not url.strip():
            raise ValidationError(
                "url", url, f"MCP server '{name}' has no URL configured"
            )

        server = cls.url(url).name(server_config.get("name") or name)
        if server_config.get("token"):
            server.token(server_config["token"])
        if server_config.get("allowed_tools") is not None:
            server.allow_tools(server_config["allowed_tools"])
        if server_config.get("denied_tools") is not None:
            server.deny_tools(server_config["denied_tools"])
        return server

    def name(self, name: str) -> McpServer:
        if not isinstance(name, str) or not name.strip():
            raise ValidationError("name", name, "MCP server name cannot be empty")
        self._name = name
        return self

    def token(self, token: str) -> McpServer:
        """Set the bearer token sent to the MCP server."""
        self._token = token
        return self

    def allow_tools(self, tools: list[str]) -> McpServer:
        """Enable only *tools*. Replaces any deny-list."""
        if self._denied_tools is not None:
            logger.debug("MCP server %s: allow-list replaces deny-list", self._name)
        self._allowed_tools = list(tools)
        self._denied_tools = None
        return self

    def deny_tools(self, tools: list[str]) -> McpServer:
        """Enable every tool except *tools*. Replaces any allow-list."""
        if self._allowed_tools is not None:
            logger.debug("MCP server %s: deny-list replaces allow-list", self._name)
        self._denied_tools = list(tools)
        self._allowed_tools = None
        return self

    def get_name(self) -> str | None:
        return self._name

    def get_url(self) -> str:
        return self._url

    def _require_name(self) -> str:
        if self._name is None:
            raise ValidationError(
                "name",
                None,
                "MCP server must have a name",
                hint="Call .name('my-server') before sending.",
            )
        return self._name

    def to_dict(self) -> dict[str, Any]:
        """Return the ``mcp_servers`` entry."""
        server: dict[str, Any] = {
            "type": "url",
            "url": self._url,
            "name": self._require_name(),
        }
        if self._token is not None:
            server["authorization_token"] = self._token
        return server

    def to_toolset_dict(self) -> dict[str, Any]:
        """Return the ``mcp_toolset`` entry for the ``tools`` array."""
        toolset: dict[str, Any] = {
            "type": "mcp_toolset",
            "mcp_server_name": self._require_name(),
        }
        if self._allowed_tools is not None:
            toolset["default_config"] = {"enabled": False}
            if self._allowed_tools:
                toolset["configs"] = {
                    tool: {"enabled": True} for tool in self._allowed_tools
                }
        elif self._denied_tools is not None:
            toolset["default_config"] = {"enabled": True}
            if self._denied_tools:
                toolset["configs"] = {
                    tool: {"enabled": False} for tool in self._denied_tools
                }
        return toolset

    def __repr__(self) -> str:
        token = "[REDACTED]" if self._token else None
        return f"McpServer(url={self._url!r}, name={self._name!r}, token={token})"
