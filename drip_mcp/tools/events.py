"""Event, conversion and purchase recording."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from drip_mcp.clients.drip import DripClient


async def track_event_impl(client: DripClient, args: Mapping[str, Any]) -> Any:
    return await client.track_event(args)


async def record_conversion_impl(client: DripClient, args: Mapping[str, Any]) -> Any:
    return await client.record_conversion(args)


async def record_purchase_impl(client: DripClient, args: Mapping[str, Any]) -> Any:
    return await client.record_purchase(args)
