"""Drip MCP server — FastMCP entry point exposing the Drip operation catalog."""

from __future__ import annotations

import json
import logging
import os
import sys
from typing import Any

from mcp.server.fastmcp import FastMCP

from drip_mcp.clients.drip import DripClient
from drip_mcp.config import DripSettings, load_env_file
from drip_mcp.dispatcher import invoke
from drip_mcp.errors import (
    ConfigurationError,
    DripAPIError,
    InvalidInputError,
    UnknownOperationError,
)

mcp = FastMCP("drip-mcp-server")
logger = logging.getLogger(__name__)

_settings_ref: DripSettings | None = None
_client_override: DripClient | None = None


def set_client_override(client: DripClient | None) -> None:
    """Route every tool call through ``client`` (tests inject fake transports)."""
    global _client_override  # noqa: PLW0603
    _client_override = client


def _get_settings() -> DripSettings:
    """Lazy settings accessor — reads ``.env`` and ``DRIP_*`` on first call."""
    global _settings_ref  # noqa: PLW0603
    if _settings_ref is None:
        load_env_file()
        _settings_ref = DripSettings.from_env()
    return _settings_ref


def _compact(**kwargs: Any) -> dict[str, Any]:
    """Drop arguments the caller left unset."""
    return {k: v for k, v in kwargs.items() if v is not None and v != ""}


def _log_and_return_tool_error(*, tool_name: str, exc: Exception, user_message: str) -> str:
    logger.error("Tool %s failed: %s", tool_name, type(exc).__name__, exc_info=exc)
    return f"Error: {user_message}"


async def call_tool(name: str, args: dict[str, Any] | None = None) -> str:
    """Run one operation and render its result as JSON text or ``Error: ...``."""
    try:
        if _client_override is not None:
            result = await invoke(_client_override, name, args)
        else:
            async with DripClient(_get_settings()) as client:
                result = await invoke(client, name, args)
    except (
        InvalidInputError,
        DripAPIError,
        UnknownOperationError,
        ConfigurationError,
    ) as exc:
        return f"Error: {exc}"
    except Exception as exc:
        return _log_and_return_tool_error(
            tool_name=name,
            exc=exc,
            user_message=(
                "I am having trouble reaching Drip right now. "
                "Please try again in a moment."
            ),
        )
    return json.dumps(result, indent=2, default=str)


# ── Subscribers ───────────────────────────────────────────────────


@mcp.tool()
async def drip_create_subscriber(
    email: str,
    first_name: str = "",
    last_name: str = "",
    user_id: str = "",
    time_zone: str = "",
    company: str = "",
    phone: str = "",
    address1: str = "",
    address2: str = "",
    city: str = "",
    state: str = "",
    zip: str = "",
    country: str = "",
    custom_fields: dict[str, Any] | None = None,
    tags: list[str] | None = None,
    prospect: bool | None = None,
    base_lead_score: float | None = None,
    eu_consent: str = "",
    eu_consent_message: str = "",
) -> str:
    """Create or update a subscriber in Drip.

    first_name, last_name, user_id and time_zone are stored on the subscriber
    record; company, phone and address fields are stored as custom fields.
    eu_consent is one of granted, denied or unknown.
    """
    return await call_tool(
        "drip_create_subscriber",
        _compact(
            email=email,
            first_name=first_name,
            last_name=last_name,
            user_id=user_id,
            time_zone=time_zone,
            company=company,
            phone=phone,
            address1=address1,
            address2=address2,
            city=city,
            state=state,
            zip=zip,
            country=country,
            custom_fields=custom_fields,
            tags=tags,
            prospect=prospect,
            base_lead_score=base_lead_score,
            eu_consent=eu_consent,
            eu_consent_message=eu_consent_message,
        ),
    )


@mcp.tool()
async def drip_list_subscribers(
    page: int | None = None,
    per_page: int | None = None,
    sort: str = "",
    direction: str = "",
    status: str = "",
    tags: str = "",
) -> str:
    """List subscribers in your Drip account.

    per_page is capped at 1000. sort is created_at or updated_at, direction is
    asc or desc, status is active, unsubscribed or all, and tags is a
    comma-separated list.
    """
    return await call_tool(
        "drip_list_subscribers",
        _compact(
            page=page,
            per_page=per_page,
            sort=sort,
            direction=direction,
            status=status,
            tags=tags,
        ),
    )


@mcp.tool()
async def drip_get_subscriber(subscriber_id: str) -> str:
    """Fetch a specific subscriber by ID or email address."""
    return await call_tool("drip_get_subscriber", _compact(subscriber_id=subscriber_id))


@mcp.tool()
async def drip_delete_subscriber(subscriber_id: str) -> str:
    """Permanently delete a subscriber by ID or email address."""
    return await call_tool("drip_delete_subscriber", _compact(subscriber_id=subscriber_id))


@mcp.tool()
async def drip_unsubscribe(subscriber_id: str, campaign_id: str = "") -> str:
    """Unsubscribe a subscriber from all mailings, or from one campaign when campaign_id is set."""
    return await call_tool(
        "drip_unsubscribe",
        _compact(subscriber_id=subscriber_id, campaign_id=campaign_id),
    )


@mcp.tool()
async def drip_tag_subscriber(email: str, tags: list[str]) -> str:
    """Apply one or more tags to a subscriber."""
    return await call_tool("drip_tag_subscriber", _compact(email=email, tags=tags))


@mcp.tool()
async def drip_remove_tag(email: str, tag: str) -> str:
    """Remove a tag from a subscriber."""
    return await call_tool("drip_remove_tag", _compact(email=email, tag=tag))


@mcp.tool()
async def drip_batch_create_subscribers(subscribers: list[dict[str, Any]]) -> str:
    """Create or update many subscribers; sent in batches of up to 1000."""
    return await call_tool("drip_batch_create_subscribers", {"subscribers": subscribers})


@mcp.tool()
async def drip_search_subscribers(
    email: str = "",
    tags: list[str] | None = None,
    custom_field_filters: dict[str, Any] | None = None,
    created_after: str = "",
    created_before: str = "",
    page: int | None = None,
    per_page: int | None = None,
    status: str = "",
    sort: str = "",
    direction: str = "",
) -> str:
    """Search subscribers within one fetched page.

    email is a partial, case-insensitive match; every listed tag must be
    present; custom_field_filters match by equality; created_after and
    created_before are ISO 8601 bounds. Only the requested page is searched.
    """
    return await call_tool(
        "drip_search_subscribers",
        _compact(
            email=email,
            tags=tags,
            custom_field_filters=custom_field_filters,
            created_after=created_after,
            created_before=created_before,
            page=page,
            per_page=per_page,
            status=status,
            sort=sort,
            direction=direction,
        ),
    )


@mcp.tool()
async def drip_batch_unsubscribe(subscribers: list[str | dict[str, Any]]) -> str:
    """Unsubscribe many subscribers at once, given emails or {email} objects."""
    return await call_tool("drip_batch_unsubscribe", {"subscribers": subscribers})


# ── Events ────────────────────────────────────────────────────────


@mcp.tool()
async def drip_track_event(
    email: str,
    action: str,
    properties: dict[str, Any] | None = None,
    occurred_at: str = "",
) -> str:
    """Track a custom event for a subscriber.

    occurred_at is an ISO 8601 timestamp no more than 365 days old and not in
    the future. A "value" property must be an integer.
    """
    return await call_tool(
        "drip_track_event",
        _compact(email=email, action=action, properties=properties, occurred_at=occurred_at),
    )


@mcp.tool()
async def drip_record_conversion(
    email: str,
    action: str,
    occurred_at: str = "",
    properties: dict[str, Any] | None = None,
) -> str:
    """Record a conversion (within the last 30 days) for a subscriber."""
    return await call_tool(
        "drip_record_conversion",
        _compact(email=email, action=action, occurred_at=occurred_at, properties=properties),
    )


@mcp.tool()
async def drip_record_purchase(
    email: str,
    amount: float,
    occurred_at: str = "",
    properties: dict[str, Any] | None = None,
    items: list[dict[str, Any]] | None = None,
) -> str:
    """Record a purchase (within the last 90 days); amount is in currency units, e.g. 19.99."""
    return await call_tool(
        "drip_record_purchase",
        _compact(
            email=email,
            amount=amount,
            occurred_at=occurred_at,
            properties=properties,
            items=items,
        ),
    )


# ── Campaigns ─────────────────────────────────────────────────────


@mcp.tool()
async def drip_list_campaigns(
    status: str = "",
    page: int | None = None,
    per_page: int | None = None,
) -> str:
    """List email series campaigns; status is active, draft, paused or all."""
    return await call_tool(
        "drip_list_campaigns", _compact(status=status, page=page, per_page=per_page)
    )


@mcp.tool()
async def drip_subscribe_to_campaign(
    campaign_id: str,
    email: str,
    user_id: str = "",
    time_zone: str = "",
    custom_fields: dict[str, Any] | None = None,
    tags: list[str] | None = None,
    reactivate_if_removed: bool | None = None,
    prospect: bool | None = None,
    base_lead_score: float | None = None,
) -> str:
    """Subscribe someone to an email series campaign."""
    return await call_tool(
        "drip_subscribe_to_campaign",
        _compact(
            campaign_id=campaign_id,
            email=email,
            user_id=user_id,
            time_zone=time_zone,
            custom_fields=custom_fields,
            tags=tags,
            reactivate_if_removed=reactivate_if_removed,
            prospect=prospect,
            base_lead_score=base_lead_score,
        ),
    )


# ── Unsubscribe analytics ─────────────────────────────────────────


@mcp.tool()
async def drip_recent_unsubscribes(
    since: str = "",
    before: str = "",
    page: int | None = None,
    per_page: int | None = None,
    sort: str = "",
    direction: str = "",
) -> str:
    """List recently unsubscribed subscribers, optionally bounded by ISO 8601 since/before."""
    return await call_tool(
        "drip_recent_unsubscribes",
        _compact(
            since=since,
            before=before,
            page=page,
            per_page=per_page,
            sort=sort,
            direction=direction,
        ),
    )


@mcp.tool()
async def drip_unsubscribe_stats(
    since: str = "",
    before: str = "",
    page: int | None = None,
    per_page: int | None = None,
) -> str:
    """Count unsubscribes per day with totals and a daily average."""
    return await call_tool(
        "drip_unsubscribe_stats",
        _compact(since=since, before=before, page=page, per_page=per_page),
    )


# ── Workflows ─────────────────────────────────────────────────────


@mcp.tool()
async def drip_list_workflows(
    status: str = "",
    page: int | None = None,
    per_page: int | None = None,
) -> str:
    """List workflows; status is active, paused, draft or all."""
    return await call_tool(
        "drip_list_workflows", _compact(status=status, page=page, per_page=per_page)
    )


@mcp.tool()
async def drip_activate_workflow(workflow_id: str) -> str:
    """Activate a workflow by ID."""
    return await call_tool("drip_activate_workflow", _compact(workflow_id=workflow_id))


@mcp.tool()
async def drip_pause_workflow(workflow_id: str) -> str:
    """Pause a workflow by ID."""
    return await call_tool("drip_pause_workflow", _compact(workflow_id=workflow_id))


@mcp.tool()
async def drip_start_workflow(workflow_id: str, email: str) -> str:
    """Start a workflow for a subscriber."""
    return await call_tool(
        "drip_start_workflow", _compact(workflow_id=workflow_id, email=email)
    )


@mcp.tool()
async def drip_remove_from_workflow(workflow_id: str, email: str) -> str:
    """Remove a subscriber from a workflow."""
    return await call_tool(
        "drip_remove_from_workflow", _compact(workflow_id=workflow_id, email=email)
    )


# ── Forms & broadcasts ────────────────────────────────────────────


@mcp.tool()
async def drip_list_forms(page: int | None = None, per_page: int | None = None) -> str:
    """List opt-in forms."""
    return await call_tool("drip_list_forms", _compact(page=page, per_page=per_page))


@mcp.tool()
async def drip_get_form(form_id: str) -> str:
    """Get a form by ID."""
    return await call_tool("drip_get_form", _compact(form_id=form_id))


@mcp.tool()
async def drip_list_broadcasts(
    status: str = "",
    page: int | None = None,
    per_page: int | None = None,
) -> str:
    """List broadcasts; status is draft, scheduled, sent or all."""
    return await call_tool(
        "drip_list_broadcasts", _compact(status=status, page=page, per_page=per_page)
    )


@mcp.tool()
async def drip_get_broadcast(broadcast_id: str) -> str:
    """Get a broadcast by ID."""
    return await call_tool("drip_get_broadcast", _compact(broadcast_id=broadcast_id))


# ── Account & custom fields ───────────────────────────────────────


@mcp.tool()
async def drip_get_account() -> str:
    """Get details of the configured Drip account."""
    return await call_tool("drip_get_account")


@mcp.tool()
async def drip_list_custom_fields() -> str:
    """List custom field identifiers used in the account."""
    return await call_tool("drip_list_custom_fields")


def main() -> None:
    """Validate configuration, then serve MCP over stdio."""
    logging.basicConfig(
        level=os.environ.get("DRIP_LOG_LEVEL", "INFO").upper(),
        stream=sys.stderr,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        _get_settings()
    except ConfigurationError as exc:
        logger.error("%s", exc)
        raise SystemExit(1) from exc
    logger.info("Drip MCP server running on stdio")
    mcp.run()


if __name__ == "__main__":
    main()
