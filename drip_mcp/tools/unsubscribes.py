"""Unsubscribe tracking tool implementations."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from drip_mcp.clients.drip import DripClient


async def recent_unsubscribes_impl(client: DripClient, args: Mapping[str, Any]) -> Any:
    return await client.get_recent_unsubscribes(args)


async def unsubscribe_stats_impl(client: DripClient, args: Mapping[str, Any]) -> Any:
    return await client.get_unsubscribe_stats(args)
