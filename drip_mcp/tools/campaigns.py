"""Email series campaign tool implementations."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from drip_mcp.clients.drip import DripClient
from drip_mcp.validation import require_text


async def list_campaigns_impl(client: DripClient, args: Mapping[str, Any]) -> Any:
    return await client.list_campaigns(args)


async def subscribe_to_campaign_impl(client: DripClient, args: Mapping[str, Any]) -> Any:
    campaign_id = require_text(args.get("campaign_id"), "campaign_id")
    return await client.subscribe_to_campaign(campaign_id, args)
