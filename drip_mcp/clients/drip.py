"""Async Drip API client with an injectable transport."""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from typing import Any

import aiohttp

from drip_mcp import unsubscribes
from drip_mcp.config import DripSettings
from drip_mcp.constants import (
    BATCH_SIZE,
    DEFAULT_UNSUBSCRIBE_PAGE_SIZE,
    MAX_PER_PAGE,
)
from drip_mcp.errors import (
    ConfigurationError,
    DripAPIError,
    InvalidInputError,
    format_api_error,
)
from drip_mcp.mapping import (
    batch_envelope,
    build_query,
    chunked,
    encode_path_segment,
    first_subscriber,
    format_subscriber_data,
    subscribers_envelope,
)
from drip_mcp.validation import (
    CONVERSION_WINDOW,
    EVENT_WINDOW,
    PURCHASE_WINDOW,
    parse_timestamp,
    validate_amount,
    validate_date,
    validate_email,
    validate_event_properties,
    validate_tags,
)

logger = logging.getLogger(__name__)

_NO_CONTENT = 204
_SUBSCRIBER_LIST_PARAMS = ("page", "per_page", "sort", "direction", "status", "tags")
_SEARCH_PARAMS = ("page", "per_page", "status", "sort", "direction")
_STATUS_PAGE_PARAMS = ("status", "page", "per_page")
_PAGE_PARAMS = ("page", "per_page")


@dataclass(frozen=True)
class DripResponse:
    status: int
    data: Any = field(default_factory=dict)


class DripTransport:
    """Sends one HTTP request and returns the decoded response.

    Implementations raise :class:`DripAPIError` for non-2xx statuses.
    """

    async def open(self) -> None:
        return None

    async def close(self) -> None:
        return None

    async def request(
        self,
        method: str,
        url: str,
        *,
        params: Mapping[str, str] | None = None,
        json_body: Any = None,
    ) -> DripResponse:
        raise NotImplementedError


def _decode_body(raw_text: str) -> Any:
    if not raw_text:
        return {}
    try:
        return json.loads(raw_text)
    except json.JSONDecodeError:
        return {"raw": raw_text}


class AiohttpTransport(DripTransport):
    """aiohttp-backed transport: Basic auth (API key, empty password), JSON I/O."""

    def __init__(self, settings: DripSettings) -> None:
        self._settings = settings
        self.session: aiohttp.ClientSession | None = None

    async def open(self) -> None:
        if self.session is None:
            self.session = aiohttp.ClientSession(
                auth=aiohttp.BasicAuth(self._settings.api_key, ""),
                headers={
                    "Content-Type": "application/json",
                    "Accept": "application/json",
                    "User-Agent": self._settings.user_agent,
                },
                timeout=aiohttp.ClientTimeout(total=self._settings.timeout_seconds),
            )

    async def close(self) -> None:
        if self.session:
            await self.session.close()
            self.session = None

    async def request(
        self,
        method: str,
        url: str,
        *,
        params: Mapping[str, str] | None = None,
        json_body: Any = None,
    ) -> DripResponse:
        if not self.session:
            raise RuntimeError("Client not entered as context manager")

        logger.debug("Drip %s %s params=%s", method, url, dict(params or {}))
        try:
            async with self.session.request(
                method,
                url,
                params=dict(params) if params else None,
                json=json_body,
            ) as resp:
                payload = _decode_body(await resp.text())
                if resp.status >= 400:
                    details: dict[str, Any] = {"url": url, "response": payload}
                    retry_after = resp.headers.get("Retry-After")
                    if retry_after:
                        details["retry_after"] = retry_after
                    raise DripAPIError(
                        format_api_error(resp.status, payload),
                        code="DRIP_HTTP_ERROR",
                        status=resp.status,
                        details=details,
                    )
                return DripResponse(status=resp.status, data=payload)
        except DripAPIError:
            raise
        except TimeoutError as exc:
            raise DripAPIError(
                "Drip request timed out.",
                code="TIMEOUT",
                details={"url": url},
            ) from exc
        except aiohttp.ClientError as exc:
            logger.error("Drip client error (%s %s): %s", method, url, exc)
            raise DripAPIError(
                "Drip request failed due to a network/client error.",
                code="NETWORK_ERROR",
                details={"url": url, "error": str(exc)},
            ) from exc


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded exponential backoff for rate-limit and server-error responses."""

    max_attempts: int = 3
    base_delay: float = 0.5
    max_delay: float = 8.0
    retry_statuses: frozenset[int] = frozenset({429, 500, 502, 503, 504})

    def should_retry(self, exc: DripAPIError, attempt: int) -> bool:
        return attempt + 1 < self.max_attempts and exc.status in self.retry_statuses

    def delay_for(self, exc: DripAPIError, attempt: int) -> float:
        retry_after = exc.details.get("retry_after")
        if retry_after is not None:
            try:
                return min(self.max_delay, max(0.0, float(retry_after)))
            except (TypeError, ValueError):
                pass
        return min(self.max_delay, self.base_delay * (2 ** attempt))


class RetryingTransport(DripTransport):
    """Decorates another transport with :class:`RetryPolicy` semantics."""

    def __init__(
        self,
        inner: DripTransport,
        policy: RetryPolicy | None = None,
        *,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.inner = inner
        self.policy = policy or RetryPolicy()
        self._sleep = sleep

    async def open(self) -> None:
        await self.inner.open()

    async def close(self) -> None:
        await self.inner.close()

    async def request(
        self,
        method: str,
        url: str,
        *,
        params: Mapping[str, str] | None = None,
        json_body: Any = None,
    ) -> DripResponse:
        attempt = 0
        while True:
            try:
                return await self.inner.request(
                    method, url, params=params, json_body=json_body
                )
            except DripAPIError as exc:
                if not self.policy.should_retry(exc, attempt):
                    raise
                delay = self.policy.delay_for(exc, attempt)
                logger.warning(
                    "Drip %s %s returned HTTP %s; retrying in %.2fs (attempt %d/%d)",
                    method,
                    url,
                    exc.status,
                    delay,
                    attempt + 2,
                    self.policy.max_attempts,
                )
                await self._sleep(delay)
                attempt += 1


def _success_or_body(response: DripResponse) -> Any:
    return {"success": True} if response.status == _NO_CONTENT else response.data


def _require_action(value: Any, label: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise InvalidInputError(f"{label} action is required and cannot be empty")
    return value.strip()


def _as_mapping(value: Any) -> dict[str, Any]:
    return dict(value) if isinstance(value, Mapping) else {}


class DripClient:
    """Async client for the Drip v2 REST API.

    Settings are fixed at construction; every method builds its own request.
    """

    def __init__(
        self,
        settings: DripSettings,
        *,
        transport: DripTransport | None = None,
    ) -> None:
        if not isinstance(settings, DripSettings):
            raise ConfigurationError("Drip API key and account ID are required")
        self.settings = settings
        self.transport = transport or RetryingTransport(
            AiohttpTransport(settings),
            RetryPolicy(max_attempts=settings.max_attempts),
        )

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> DripClient:
        return cls(DripSettings.from_env(environ))

    async def __aenter__(self) -> DripClient:
        await self.transport.open()
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.transport.close()

    async def _call(
        self,
        method: str,
        path: str,
        *,
        params: Mapping[str, str] | None = None,
        json_body: Any = None,
    ) -> DripResponse:
        url = f"{self.settings.base_url}{path}"
        return await self.transport.request(
            method, url, params=params, json_body=json_body
        )

    # ── Subscribers ───────────────────────────────────────────────

    async def create_or_update_subscriber(self, data: Mapping[str, Any]) -> Any:
        """Upsert one subscriber by email."""
        record = dict(data)
        if record.get("email"):
            record["email"] = validate_email(record["email"])
        payload = subscribers_envelope([format_subscriber_data(record)])
        response = await self._call("POST", "/subscribers", json_body=payload)
        return first_subscriber(response.data)

    async def list_subscribers(self, params: Mapping[str, Any] | None = None) -> Any:
        query = build_query(params, _SUBSCRIBER_LIST_PARAMS, per_page_cap=MAX_PER_PAGE)
        response = await self._call("GET", "/subscribers", params=query)
        return response.data

    async def get_subscriber(self, subscriber_id: str) -> Any:
        """Fetch a subscriber by Drip ID or email address."""
        identifier = encode_path_segment(subscriber_id)
        response = await self._call("GET", f"/subscribers/{identifier}")
        return first_subscriber(response.data)

    async def delete_subscriber(self, subscriber_id: str) -> bool:
        identifier = encode_path_segment(subscriber_id)
        response = await self._call("DELETE", f"/subscribers/{identifier}")
        return response.status == _NO_CONTENT

    async def unsubscribe_subscriber(
        self,
        subscriber_id: str,
        campaign_id: str | None = None,
    ) -> Any:
        """Remove from one campaign when ``campaign_id`` is given, else from all mailings."""
        identifier = encode_path_segment(subscriber_id)
        if campaign_id:
            response = await self._call(
                "POST",
                f"/subscribers/{identifier}/remove",
                params={"campaign_id": str(campaign_id)},
            )
        else:
            response = await self._call("POST", f"/subscribers/{identifier}/unsubscribe_all")
        return first_subscriber(response.data)

    async def tag_subscriber(self, email: str, tags: Any) -> Any:
        normalized = validate_email(email)
        valid_tags = validate_tags(tags)
        if not valid_tags:
            raise InvalidInputError("At least one valid tag is required")
        identifier = encode_path_segment(normalized)
        response = await self._call(
            "POST", f"/subscribers/{identifier}/tags", json_body={"tags": valid_tags}
        )
        return response.data

    async def remove_tag(self, email: str, tag: str) -> Any:
        identifier = encode_path_segment(email)
        tag_name = encode_path_segment(tag)
        response = await self._call("DELETE", f"/subscribers/{identifier}/tags/{tag_name}")
        return _success_or_body(response)

    async def search_subscribers(self, params: Mapping[str, Any] | None = None) -> Any:
        """Fetch one page and narrow it client-side.

        Only the fetched page is filtered; further pages are never requested.
        """
        params = params or {}
        query = build_query(params, _SEARCH_PARAMS, per_page_cap=MAX_PER_PAGE)
        response = await self._call("GET", "/subscribers", params=query)
        body = _as_mapping(response.data)
        subscribers = [s for s in body.get("subscribers") or [] if isinstance(s, Mapping)]

        email_part = params.get("email")
        if email_part:
            needle = str(email_part).lower()
            subscribers = [s for s in subscribers if needle in str(s.get("email") or "").lower()]

        wanted_tags = params.get("tags")
        if isinstance(wanted_tags, str):
            wanted_tags = [t.strip() for t in wanted_tags.split(",") if t.strip()]
        if wanted_tags:
            subscribers = [
                s for s in subscribers
                if all(tag in (s.get("tags") or []) for tag in wanted_tags)
            ]

        field_filters = params.get("custom_field_filters")
        if isinstance(field_filters, Mapping) and field_filters:
            subscribers = [
                s for s in subscribers
                if all(
                    _as_mapping(s.get("custom_fields")).get(k) == v
                    for k, v in field_filters.items()
                )
            ]

        created_after = unsubscribes.parse_bound(params.get("created_after"), "created_after")
        created_before = unsubscribes.parse_bound(params.get("created_before"), "created_before")
        if created_after or created_before:
            kept = []
            for s in subscribers:
                created = parse_timestamp(s.get("created_at"))
                if created is None:
                    continue
                if created_after and created < created_after:
                    continue
                if created_before and created > created_before:
                    continue
                kept.append(s)
            subscribers = kept

        return {**body, "subscribers": subscribers}

    async def batch_create_subscribers(self, subscribers: Any) -> Any:
        """Upsert subscribers in sequential chunks of at most 1000.

        Every email is validated before the first request is sent.
        """
        if not isinstance(subscribers, list) or not subscribers:
            raise InvalidInputError("Subscribers must be a non-empty array")

        records = []
        for sub in subscribers:
            if not isinstance(sub, Mapping):
                raise InvalidInputError("Each subscriber must be an object")
            record = dict(sub)
            if record.get("email"):
                record["email"] = validate_email(record["email"])
            records.append(format_subscriber_data(record))

        results = []
        for chunk in chunked(records, BATCH_SIZE):
            response = await self._call(
                "POST", "/subscribers/batches", json_body=batch_envelope(chunk)
            )
            results.append(response.data)
        return results[0] if len(results) == 1 else results

    async def batch_unsubscribe(self, subscribers: Any) -> Any:
        # Sent as one request; not chunked like batch_create_subscribers.
        if not isinstance(subscribers, list) or not subscribers:
            raise InvalidInputError("Subscribers must be a non-empty array")
        targets = [
            {"email": sub.get("email") if isinstance(sub, Mapping) else sub}
            for sub in subscribers
        ]
        response = await self._call(
            "POST", "/unsubscribes/batches", json_body=batch_envelope(targets)
        )
        return response.data

    # ── Unsubscribe tracking ──────────────────────────────────────

    async def get_recent_unsubscribes(self, params: Mapping[str, Any] | None = None) -> Any:
        params = params or {}
        query: dict[str, str] = {
            "status": "unsubscribed",
            "sort": str(params.get("sort") or "updated_at"),
            "direction": str(params.get("direction") or "desc"),
        }
        if params.get("page"):
            query["page"] = str(params["page"])
        query.update(
            build_query(
                {"per_page": params.get("per_page") or DEFAULT_UNSUBSCRIBE_PAGE_SIZE},
                ("per_page",),
                per_page_cap=MAX_PER_PAGE,
            )
        )

        response = await self._call("GET", "/subscribers", params=query)
        body = _as_mapping(response.data)
        records = [s for s in body.get("subscribers") or [] if isinstance(s, Mapping)]
        since = params.get("since")
        before = params.get("before")
        enriched = [
            unsubscribes.annotate(s)
            for s in unsubscribes.filter_by_window(records, since=since, before=before)
        ]
        return {
            **body,
            "subscribers": enriched,
            "meta": {
                **_as_mapping(body.get("meta")),
                "filtered_count": len(enriched),
                "date_range": {"since": since or None, "before": before or None},
            },
        }

    async def get_unsubscribe_stats(self, params: Mapping[str, Any] | None = None) -> Any:
        recent = await self.get_recent_unsubscribes(params)
        return unsubscribes.summarize(recent["subscribers"])

    # ── Events, conversions, purchases ────────────────────────────

    async def track_event(self, data: Mapping[str, Any]) -> Any:
        email = validate_email(data.get("email"))
        action = _require_action(data.get("action"), "Event")
        properties = validate_event_properties(data.get("properties"))
        occurred_at = validate_date(data.get("occurred_at"), EVENT_WINDOW)
        payload = {
            "events": [{
                "email": email,
                "action": action,
                "properties": properties,
                "occurred_at": occurred_at,
            }],
        }
        return _success_or_body(await self._call("POST", "/events", json_body=payload))

    async def record_conversion(self, data: Mapping[str, Any]) -> Any:
        email = validate_email(data.get("email"))
        action = _require_action(data.get("action"), "Conversion")
        occurred_at = validate_date(data.get("occurred_at"), CONVERSION_WINDOW)
        payload = {
            "conversions": [{
                "email": email,
                "action": action,
                "occurred_at": occurred_at,
                "properties": _as_mapping(data.get("properties")),
            }],
        }
        return _success_or_body(await self._call("POST", "/conversions", json_body=payload))

    async def record_purchase(self, data: Mapping[str, Any]) -> Any:
        email = validate_email(data.get("email"))
        amount = validate_amount(data.get("amount"))
        occurred_at = validate_date(data.get("occurred_at"), PURCHASE_WINDOW)
        items = data.get("items") or []
        if not isinstance(items, list):
            raise InvalidInputError("Purchase items must be a list")
        payload = {
            "purchases": [{
                "email": email,
                "amount": amount,
                "occurred_at": occurred_at,
                "properties": _as_mapping(data.get("properties")),
                "items": items,
            }],
        }
        return _success_or_body(await self._call("POST", "/purchases", json_body=payload))

    # ── Campaigns ─────────────────────────────────────────────────

    async def list_campaigns(self, params: Mapping[str, Any] | None = None) -> Any:
        response = await self._call(
            "GET", "/campaigns", params=build_query(params, _STATUS_PAGE_PARAMS)
        )
        return response.data

    async def subscribe_to_campaign(self, campaign_id: str, data: Mapping[str, Any]) -> Any:
        record = {k: v for k, v in data.items() if k != "campaign_id"}
        if record.get("email"):
            record["email"] = validate_email(record["email"])
        payload = subscribers_envelope([format_subscriber_data(record)])
        response = await self._call(
            "POST",
            f"/campaigns/{encode_path_segment(campaign_id)}/subscribers",
            json_body=payload,
        )
        return first_subscriber(response.data)

    # ── Workflows ─────────────────────────────────────────────────

    async def list_workflows(self, params: Mapping[str, Any] | None = None) -> Any:
        response = await self._call(
            "GET", "/workflows", params=build_query(params, _STATUS_PAGE_PARAMS)
        )
        return response.data

    async def activate_workflow(self, workflow_id: str) -> Any:
        response = await self._call(
            "POST", f"/workflows/{encode_path_segment(workflow_id)}/activate"
        )
        return response.data

    async def pause_workflow(self, workflow_id: str) -> Any:
        response = await self._call(
            "POST", f"/workflows/{encode_path_segment(workflow_id)}/pause"
        )
        return response.data

    async def start_workflow_for_subscriber(self, workflow_id: str, email: str) -> Any:
        payload = subscribers_envelope([{"email": validate_email(email)}])
        response = await self._call(
            "POST",
            f"/workflows/{encode_path_segment(workflow_id)}/subscribers",
            json_body=payload,
        )
        return response.data

    async def remove_from_workflow(self, workflow_id: str, email: str) -> Any:
        path = (
            f"/workflows/{encode_path_segment(workflow_id)}"
            f"/subscribers/{encode_path_segment(email)}"
        )
        return _success_or_body(await self._call("DELETE", path))

    # ── Forms & broadcasts (read-only) ────────────────────────────

    async def list_forms(self, params: Mapping[str, Any] | None = None) -> Any:
        response = await self._call("GET", "/forms", params=build_query(params, _PAGE_PARAMS))
        return response.data

    async def get_form(self, form_id: str) -> Any:
        response = await self._call("GET", f"/forms/{encode_path_segment(form_id)}")
        return response.data

    async def list_broadcasts(self, params: Mapping[str, Any] | None = None) -> Any:
        response = await self._call(
            "GET", "/broadcasts", params=build_query(params, _STATUS_PAGE_PARAMS)
        )
        return response.data

    async def get_broadcast(self, broadcast_id: str) -> Any:
        response = await self._call(
            "GET", f"/broadcasts/{encode_path_segment(broadcast_id)}"
        )
        return response.data

    # ── Account & custom fields ───────────────────────────────────

    async def get_account(self) -> Any:
        """Look up the configured account in the unscoped ``/accounts`` listing."""
        response = await self.transport.request("GET", self.settings.accounts_url)
        data = response.data
        if isinstance(data, Mapping) and isinstance(data.get("accounts"), list):
            account_id = str(self.settings.account_id)
            for account in data["accounts"]:
                if isinstance(account, Mapping) and str(account.get("id")) == account_id:
                    return {"account": account}
        return data

    async def list_custom_fields(self) -> Any:
        response = await self._call("GET", "/custom_field_identifiers")
        return response.data

