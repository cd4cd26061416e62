"""Subscriber tool implementations — upsert, lookup, tagging, batches, search."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from drip_mcp.clients.drip import DripClient
from drip_mcp.validation import require_text


async def create_subscriber_impl(client: DripClient, args: Mapping[str, Any]) -> Any:
    return await client.create_or_update_subscriber(args)


async def list_subscribers_impl(client: DripClient, args: Mapping[str, Any]) -> Any:
    return await client.list_subscribers(args)


async def get_subscriber_impl(client: DripClient, args: Mapping[str, Any]) -> Any:
    subscriber_id = require_text(args.get("subscriber_id"), "subscriber_id")
    return await client.get_subscriber(subscriber_id)


async def delete_subscriber_impl(client: DripClient, args: Mapping[str, Any]) -> dict[str, Any]:
    subscriber_id = require_text(args.get("subscriber_id"), "subscriber_id")
    deleted = await client.delete_subscriber(subscriber_id)
    return {
        "success": deleted,
        "message": (
            "Subscriber deleted successfully" if deleted else "Failed to delete subscriber"
        ),
    }


async def unsubscribe_impl(client: DripClient, args: Mapping[str, Any]) -> Any:
    subscriber_id = require_text(args.get("subscriber_id"), "subscriber_id")
    campaign_id = args.get("campaign_id") or None
    return await client.unsubscribe_subscriber(subscriber_id, campaign_id)


async def tag_subscriber_impl(client: DripClient, args: Mapping[str, Any]) -> Any:
    return await client.tag_subscriber(args.get("email"), args.get("tags"))


async def remove_tag_impl(client: DripClient, args: Mapping[str, Any]) -> Any:
    email = require_text(args.get("email"), "email")
    tag = require_text(args.get("tag"), "tag")
    return await client.remove_tag(email, tag)


async def batch_create_subscribers_impl(client: DripClient, args: Mapping[str, Any]) -> Any:
    return await client.batch_create_subscribers(args.get("subscribers"))


async def batch_unsubscribe_impl(client: DripClient, args: Mapping[str, Any]) -> Any:
    return await client.batch_unsubscribe(args.get("subscribers"))


async def search_subscribers_impl(client: DripClient, args: Mapping[str, Any]) -> Any:
    return await client.search_subscribers(args)
