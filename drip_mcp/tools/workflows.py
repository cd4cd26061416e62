"""Workflow tool implementations."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from drip_mcp.clients.drip import DripClient
from drip_mcp.validation import require_text


async def list_workflows_impl(client: DripClient, args: Mapping[str, Any]) -> Any:
    return await client.list_workflows(args)


async def activate_workflow_impl(client: DripClient, args: Mapping[str, Any]) -> Any:
    return await client.activate_workflow(require_text(args.get("workflow_id"), "workflow_id"))


async def pause_workflow_impl(client: DripClient, args: Mapping[str, Any]) -> Any:
    return await client.pause_workflow(require_text(args.get("workflow_id"), "workflow_id"))


async def start_workflow_impl(client: DripClient, args: Mapping[str, Any]) -> Any:
    workflow_id = require_text(args.get("workflow_id"), "workflow_id")
    return await client.start_workflow_for_subscriber(workflow_id, args.get("email"))


async def remove_from_workflow_impl(client: DripClient, args: Mapping[str, Any]) -> Any:
    workflow_id = require_text(args.get("workflow_id"), "workflow_id")
    email = require_text(args.get("email"), "email")
    return await client.remove_from_workflow(workflow_id, email)
