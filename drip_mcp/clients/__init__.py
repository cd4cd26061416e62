"""Shared external API clients."""

from drip_mcp.clients.drip import (
    AiohttpTransport,
    DripClient,
    DripResponse,
    DripTransport,
    RetryingTransport,
    RetryPolicy,
)
from drip_mcp.errors import DripAPIError

__all__ = [
    "AiohttpTransport",
    "DripAPIError",
    "DripClient",
    "DripResponse",
    "DripTransport",
    "RetryPolicy",
    "RetryingTransport",
]
