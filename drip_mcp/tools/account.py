"""Account and custom-field lookups."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from drip_mcp.clients.drip import DripClient


async def get_account_impl(client: DripClient, args: Mapping[str, Any]) -> Any:
    return await client.get_account()


async def list_custom_fields_impl(client: DripClient, args: Mapping[str, Any]) -> Any:
    return await client.list_custom_fields()
