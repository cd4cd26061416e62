"""Request/response shaping for the Drip wire format.

Subscriber attributes are bucketed by membership, not by type: a fixed list
of root fields, a fixed list of known custom fields, and everything else
defaults to the ``custom_fields`` bucket.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping, Sequence
from typing import Any
from urllib import parse

from drip_mcp.constants import (
    CUSTOM_FIELDS_KEY,
    KNOWN_CUSTOM_FIELDS,
    MAX_CUSTOM_FIELD_LENGTH,
    ROOT_FIELDS,
)
from drip_mcp.errors import InvalidInputError
from drip_mcp.validation import validate_tags

_TRUTHY_ROOT_FIELDS = ("first_name", "last_name", "user_id", "time_zone")
_KNOWN_CUSTOM = frozenset(KNOWN_CUSTOM_FIELDS)


def classify_field(name: str) -> str:
    """Return ``"root"``, ``"envelope"`` or ``"custom"`` for a subscriber key."""
    if name in ROOT_FIELDS:
        return "root"
    if name == CUSTOM_FIELDS_KEY:
        return "envelope"
    return "custom"


def _collect_custom_fields(data: Mapping[str, Any]) -> dict[str, Any]:
    supplied = data.get(CUSTOM_FIELDS_KEY)
    custom = dict(supplied) if isinstance(supplied, Mapping) else {}

    for key, value in data.items():
        if classify_field(key) != "custom":
            continue
        if key in _KNOWN_CUSTOM:
            if value:
                custom[key] = value
        elif value is not None:
            custom[key] = value

    for key, value in custom.items():
        if isinstance(value, str) and len(value) > MAX_CUSTOM_FIELD_LENGTH:
            raise InvalidInputError(
                f'Custom field "{key}" is too long (max {MAX_CUSTOM_FIELD_LENGTH} characters)'
            )
    return custom


def format_subscriber_data(data: Mapping[str, Any]) -> dict[str, Any]:
    """Map a loosely shaped subscriber into the Drip record shape.

    Root-level shorthands for known custom fields (``company``, ``phone``…)
    override same-named entries in the caller's ``custom_fields``.
    The input mapping is never mutated.
    """
    formatted: dict[str, Any] = {}
    if data.get("email") is not None:
        formatted["email"] = data["email"]

    for field in _TRUTHY_ROOT_FIELDS:
        if data.get(field):
            formatted[field] = data[field]

    custom = _collect_custom_fields(data)
    if custom:
        formatted[CUSTOM_FIELDS_KEY] = custom

    if data.get("tags"):
        formatted["tags"] = validate_tags(data["tags"])

    if data.get("prospect") is not None:
        formatted["prospect"] = data["prospect"]

    score = data.get("base_lead_score")
    if score is not None:
        if isinstance(score, (int, float)) and not isinstance(score, bool) and score < 0:
            raise InvalidInputError("Base lead score cannot be negative")
        formatted["base_lead_score"] = score

    if data.get("eu_consent"):
        formatted["eu_consent"] = data["eu_consent"]
    if data.get("eu_consent_message"):
        formatted["eu_consent_message"] = data["eu_consent_message"]
    if data.get("reactivate_if_removed") is not None:
        formatted["reactivate_if_removed"] = data["reactivate_if_removed"]

    return formatted


def encode_path_segment(value: Any) -> str:
    """Percent-encode an identifier for use as a single URL path segment."""
    return parse.quote(str(value), safe="!'()*~")


def build_query(
    params: Mapping[str, Any] | None,
    allowed: Sequence[str],
    *,
    per_page_cap: int | None = None,
) -> dict[str, str]:
    """Keep truthy recognized parameters, in ``allowed`` order, as strings."""
    params = params or {}
    query: dict[str, str] = {}
    for key in allowed:
        value = params.get(key)
        if not value:
            continue
        if key == "per_page" and per_page_cap is not None:
            try:
                value = min(int(value), per_page_cap)
            except (TypeError, ValueError) as exc:
                raise InvalidInputError(f"per_page must be a number, got {value!r}") from exc
        if isinstance(value, (list, tuple)):
            value = ",".join(str(v) for v in value)
        query[key] = str(value)
    return query


def subscribers_envelope(records: Iterable[Mapping[str, Any]]) -> dict[str, Any]:
    return {"subscribers": [dict(r) for r in records]}


def batch_envelope(records: Iterable[Mapping[str, Any]]) -> dict[str, Any]:
    return {"batches": [{"subscribers": [dict(r) for r in records]}]}


def chunked(items: Sequence[Any], size: int) -> Iterator[Sequence[Any]]:
    """Yield consecutive slices of at most ``size`` items."""
    if size <= 0:
        raise ValueError("chunk size must be positive")
    for start in range(0, len(items), size):
        yield items[start:start + size]


def first_subscriber(body: Any) -> Any:
    """Unwrap ``{"subscribers": [x, ...]}`` to ``x``; otherwise return the body."""
    if isinstance(body, Mapping):
        subscribers = body.get("subscribers")
        if isinstance(subscribers, list) and subscribers:
            return subscribers[0]
    return body
