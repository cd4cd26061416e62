"""Unsubscribe analytics — pure logic over one fetched page, no I/O.

Drip does not sort or filter by unsubscribe time, so bounds and per-day
grouping are applied client-side to the records of a single page.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

from drip_mcp.errors import InvalidInputError
from drip_mcp.validation import parse_timestamp


def best_unsubscribe_time(record: Mapping[str, Any]) -> Any:
    """Unsubscribe time if present, else update time, else creation time."""
    return (
        record.get("unsubscribed_at")
        or record.get("updated_at")
        or record.get("created_at")
    )


def parse_bound(value: Any, name: str) -> datetime | None:
    if value is None or value == "":
        return None
    parsed = parse_timestamp(value)
    if parsed is None:
        raise InvalidInputError(f"Invalid date format for {name}: {value}")
    return parsed


def filter_by_window(
    records: Sequence[Mapping[str, Any]],
    *,
    since: Any = None,
    before: Any = None,
) -> list[Mapping[str, Any]]:
    """Keep records whose best timestamp lies in ``[since, before]``.

    Records without a parseable timestamp are dropped once any bound is set.
    """
    since_dt = parse_bound(since, "since")
    before_dt = parse_bound(before, "before")
    if since_dt is None and before_dt is None:
        return list(records)

    kept: list[Mapping[str, Any]] = []
    for record in records:
        moment = parse_timestamp(best_unsubscribe_time(record))
        if moment is None:
            continue
        if since_dt is not None and moment < since_dt:
            continue
        if before_dt is not None and moment > before_dt:
            continue
        kept.append(record)
    return kept


def annotate(record: Mapping[str, Any]) -> dict[str, Any]:
    """Copy a record and attach a derived ``unsubscribe_info`` block."""
    custom = record.get("custom_fields")
    if not isinstance(custom, Mapping):
        custom = {}
    enriched = dict(record)
    enriched["unsubscribe_info"] = {
        "unsubscribed_at": best_unsubscribe_time(record),
        "status": record.get("status"),
        "email": record.get("email"),
        "unsubscribe_reason": custom.get("unsubscribe_reason"),
        "last_campaign_id": custom.get("last_campaign_id"),
    }
    return enriched


def _daily_average(total: int, days: int) -> float:
    """Two-decimal average with halves rounded up."""
    if not days:
        return 0
    average = Decimal(total) / Decimal(days)
    return float(average.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


def summarize(records: Sequence[Mapping[str, Any]]) -> dict[str, Any]:
    """Group records by UTC calendar day of their best unsubscribe timestamp."""
    by_date: dict[str, dict[str, Any]] = {}
    for record in records:
        raw = best_unsubscribe_time(record)
        moment = parse_timestamp(raw)
        if moment is None:
            continue
        day = moment.astimezone(timezone.utc).date().isoformat()
        bucket = by_date.setdefault(day, {"count": 0, "subscribers": []})
        bucket["count"] += 1
        bucket["subscribers"].append({"email": record.get("email"), "unsubscribed_at": raw})

    total = len(records)
    days = sorted(by_date)
    return {
        "total": total,
        "date_range": {
            "start": days[0] if days else None,
            "end": days[-1] if days else None,
        },
        "by_date": {day: by_date[day] for day in days},
        "daily_average": _daily_average(total, len(days)),
    }
