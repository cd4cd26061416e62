"""Forms and broadcasts — read-only lookups."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from drip_mcp.clients.drip import DripClient
from drip_mcp.validation import require_text


async def list_forms_impl(client: DripClient, args: Mapping[str, Any]) -> Any:
    return await client.list_forms(args)


async def get_form_impl(client: DripClient, args: Mapping[str, Any]) -> Any:
    return await client.get_form(require_text(args.get("form_id"), "form_id"))


async def list_broadcasts_impl(client: DripClient, args: Mapping[str, Any]) -> Any:
    return await client.list_broadcasts(args)


async def get_broadcast_impl(client: DripClient, args: Mapping[str, Any]) -> Any:
    return await client.get_broadcast(require_text(args.get("broadcast_id"), "broadcast_id"))
