"""Input validators for Drip payloads — pure logic, no network or protocol.

Each validator either returns a normalized value or raises
:class:`~drip_mcp.errors.InvalidInputError` with an actionable message.
"""

from __future__ import annotations

import math
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

from drip_mcp.constants import (
    EMAIL_RE,
    MAX_EMAIL_LENGTH,
    MAX_TAG_LENGTH,
    MAX_YEAR,
    TAG_FORBIDDEN_RE,
)
from drip_mcp.errors import InvalidInputError

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_FALLBACK_DATE_FORMATS = ("%Y-%m-%d", "%m/%d/%Y", "%m/%d/%y")


@dataclass(frozen=True)
class DateWindow:
    """Recency window applied to a timestamped fact."""

    max_past_days: int = 3650
    max_future_days: int = 365
    allow_future: bool = True
    allow_past: bool = True
    field_name: str = "Date"


EVENT_WINDOW = DateWindow(
    max_past_days=365,
    max_future_days=1,
    allow_future=False,
    field_name="Event occurred_at",
)
CONVERSION_WINDOW = DateWindow(
    max_past_days=30,
    max_future_days=0,
    allow_future=False,
    field_name="Conversion occurred_at",
)
PURCHASE_WINDOW = DateWindow(
    max_past_days=90,
    max_future_days=0,
    allow_future=False,
    field_name="Purchase occurred_at",
)


def validate_email(email: Any) -> str:
    """Return the trimmed, lower-cased address or raise ``InvalidInputError``."""
    if not email or not isinstance(email, str):
        raise InvalidInputError("Email is required and must be a string")
    normalized = email.strip()
    if not normalized:
        raise InvalidInputError("Email cannot be empty")
    if not EMAIL_RE.fullmatch(normalized):
        raise InvalidInputError(f"Invalid email format: {email}")
    if len(normalized) > MAX_EMAIL_LENGTH:
        raise InvalidInputError(
            f"Email address is too long (max {MAX_EMAIL_LENGTH} characters)"
        )
    return normalized.lower()


def validate_tags(tags: Any) -> list[str]:
    """Validate one tag or a sequence of tags; ``None`` entries are skipped.

    A forbidden character rejects the whole call instead of being stripped.
    """
    if isinstance(tags, (list, tuple, set, frozenset)):
        candidates = list(tags)
    else:
        candidates = [tags]

    valid: list[str] = []
    for tag in candidates:
        if tag is None:
            continue
        text = str(tag).strip()
        if not text:
            raise InvalidInputError("Tag cannot be empty")
        if len(text) > MAX_TAG_LENGTH:
            raise InvalidInputError(
                f"Tag is too long (max {MAX_TAG_LENGTH} characters): {text[:50]}..."
            )
        if TAG_FORBIDDEN_RE.search(text):
            raise InvalidInputError(f"Tag contains invalid characters: {text}")
        valid.append(text)
    return valid


def _is_integral(value: Any) -> bool:
    if isinstance(value, bool):
        return False
    if isinstance(value, int):
        return True
    return isinstance(value, float) and value.is_integer()


def validate_event_properties(properties: Any) -> dict[str, Any]:
    """Pass properties through, enforcing that ``value`` is an integer."""
    if not isinstance(properties, Mapping):
        return {}

    validated: dict[str, Any] = {}
    for key, value in properties.items():
        if key == "value" and not _is_integral(value):
            raise InvalidInputError(
                'Event property "value" must be an integer, not a float or string'
            )
        validated[key] = value
    return validated


def format_timestamp(moment: datetime) -> str:
    """Render a datetime as ``YYYY-MM-DDTHH:MM:SS.mmmZ`` in UTC."""
    return moment.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace(
        "+00:00", "Z"
    )


def parse_timestamp(value: Any) -> datetime | None:
    """Best-effort timestamp parsing.  Returns ``None`` for unparseable input.

    Naive values are treated as UTC.
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError:
            for fmt in _FALLBACK_DATE_FORMATS:
                try:
                    parsed = datetime.strptime(text, fmt)
                    break
                except ValueError:
                    continue
            else:
                return None
    else:
        return None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def validate_date(value: Any, window: DateWindow | None = None) -> str:
    """Validate a timestamp against a recency window.

    Missing input means "now".  Returns the canonical UTC timestamp text.
    """
    if value is None or value == "":
        return format_timestamp(datetime.now(timezone.utc))

    window = window or DateWindow()
    parsed = parse_timestamp(value)
    if parsed is None:
        raise InvalidInputError(f"Invalid date format: {value}")

    name = window.field_name
    now = datetime.now(timezone.utc)

    if window.allow_past and window.max_past_days > 0:
        if parsed < now - timedelta(days=window.max_past_days):
            raise InvalidInputError(
                f"{name} cannot be more than {window.max_past_days} days in the past"
            )
    if not window.allow_past and parsed < now:
        raise InvalidInputError(f"{name} cannot be in the past")
    if not window.allow_future and parsed > now:
        raise InvalidInputError(f"{name} cannot be in the future")
    if window.allow_future and window.max_future_days > 0:
        if parsed > now + timedelta(days=window.max_future_days):
            raise InvalidInputError(
                f"{name} cannot be more than {window.max_future_days} days in the future"
            )
    if parsed < _EPOCH:
        raise InvalidInputError(f"{name} cannot be before January 1, 1970")
    if parsed.astimezone(timezone.utc).year > MAX_YEAR:
        raise InvalidInputError(f"{name} year is unreasonably far in the future")

    return format_timestamp(parsed)


def validate_amount(amount: Any) -> int:
    """Convert a decimal currency amount to integer cents (half-up)."""
    if isinstance(amount, bool) or not isinstance(amount, (int, float)):
        raise InvalidInputError("Amount must be a number")
    scaled = amount * 100
    if isinstance(scaled, float) and not math.isfinite(scaled):
        raise InvalidInputError("Amount must be a finite number")
    if amount < 0:
        raise InvalidInputError("Amount cannot be negative")
    if isinstance(scaled, int):
        return scaled
    return math.floor(scaled + 0.5)


def require_text(value: Any, name: str) -> str:
    """Return a stripped required string argument or raise ``InvalidInputError``."""
    if value is None or isinstance(value, bool):
        raise InvalidInputError(f"{name} is required")
    text = str(value).strip()
    if not text:
        raise InvalidInputError(f"{name} is required")
    return text
