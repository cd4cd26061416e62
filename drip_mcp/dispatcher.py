"""Operation catalog — routes a tool name and argument bundle to one implementation."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Mapping
from typing import Any

from drip_mcp.clients.drip import DripClient
from drip_mcp.errors import InvalidInputError, UnknownOperationError
from drip_mcp.tools.account import get_account_impl, list_custom_fields_impl
from drip_mcp.tools.campaigns import list_campaigns_impl, subscribe_to_campaign_impl
from drip_mcp.tools.content import (
    get_broadcast_impl,
    get_form_impl,
    list_broadcasts_impl,
    list_forms_impl,
)
from drip_mcp.tools.events import (
    record_conversion_impl,
    record_purchase_impl,
    track_event_impl,
)
from drip_mcp.tools.subscribers import (
    batch_create_subscribers_impl,
    batch_unsubscribe_impl,
    create_subscriber_impl,
    delete_subscriber_impl,
    get_subscriber_impl,
    list_subscribers_impl,
    remove_tag_impl,
    search_subscribers_impl,
    tag_subscriber_impl,
    unsubscribe_impl,
)
from drip_mcp.tools.unsubscribes import recent_unsubscribes_impl, unsubscribe_stats_impl
from drip_mcp.tools.workflows import (
    activate_workflow_impl,
    list_workflows_impl,
    pause_workflow_impl,
    remove_from_workflow_impl,
    start_workflow_impl,
)

logger = logging.getLogger(__name__)

Operation = Callable[[DripClient, Mapping[str, Any]], Awaitable[Any]]

OPERATIONS: dict[str, Operation] = {
    # Subscribers
    "drip_create_subscriber": create_subscriber_impl,
    "drip_list_subscribers": list_subscribers_impl,
    "drip_get_subscriber": get_subscriber_impl,
    "drip_delete_subscriber": delete_subscriber_impl,
    "drip_unsubscribe": unsubscribe_impl,
    "drip_tag_subscriber": tag_subscriber_impl,
    "drip_remove_tag": remove_tag_impl,
    "drip_batch_create_subscribers": batch_create_subscribers_impl,
    "drip_search_subscribers": search_subscribers_impl,
    "drip_batch_unsubscribe": batch_unsubscribe_impl,
    # Events
    "drip_track_event": track_event_impl,
    "drip_record_conversion": record_conversion_impl,
    "drip_record_purchase": record_purchase_impl,
    # Campaigns
    "drip_list_campaigns": list_campaigns_impl,
    "drip_subscribe_to_campaign": subscribe_to_campaign_impl,
    # Unsubscribe analytics
    "drip_recent_unsubscribes": recent_unsubscribes_impl,
    "drip_unsubscribe_stats": unsubscribe_stats_impl,
    # Workflows
    "drip_list_workflows": list_workflows_impl,
    "drip_activate_workflow": activate_workflow_impl,
    "drip_pause_workflow": pause_workflow_impl,
    "drip_start_workflow": start_workflow_impl,
    "drip_remove_from_workflow": remove_from_workflow_impl,
    # Forms & broadcasts
    "drip_list_forms": list_forms_impl,
    "drip_get_form": get_form_impl,
    "drip_list_broadcasts": list_broadcasts_impl,
    "drip_get_broadcast": get_broadcast_impl,
    # Account & custom fields
    "drip_get_account": get_account_impl,
    "drip_list_custom_fields": list_custom_fields_impl,
}


async def invoke(
    client: DripClient,
    name: str,
    args: Mapping[str, Any] | None = None,
) -> Any:
    """Run one catalog operation.

    Raises ``UnknownOperationError`` for names outside the catalog; validation
    and upstream failures propagate unchanged.
    """
    operation = OPERATIONS.get(name)
    if operation is None:
        raise UnknownOperationError(name)
    if args is None:
        args = {}
    elif not isinstance(args, Mapping):
        raise InvalidInputError(f"Arguments for {name} must be an object")

    logger.debug("Invoking %s with keys %s", name, sorted(args))
    return await operation(client, args)
