"""Shared constants used across the validator, mapper and client modules.

Single source of truth for field classification, limits and date windows.
"""

from __future__ import annotations

import re

# Subscriber attributes Drip accepts at the top level of a record.
ROOT_FIELDS: frozenset[str] = frozenset({
    "email",
    "first_name",
    "last_name",
    "user_id",
    "time_zone",
    "eu_consent",
    "eu_consent_message",
    "prospect",
    "base_lead_score",
    "tags",
    "reactivate_if_removed",
})

# Commonly supplied attributes that Drip only stores as custom fields.
KNOWN_CUSTOM_FIELDS: tuple[str, ...] = (
    "company",
    "phone",
    "address1",
    "address2",
    "city",
    "state",
    "zip",
    "country",
    "name",
    "full_name",
)

CUSTOM_FIELDS_KEY = "custom_fields"

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
MAX_EMAIL_LENGTH = 254

TAG_FORBIDDEN_RE = re.compile(r"[<>\"'&\n\r\t]")
MAX_TAG_LENGTH = 255

MAX_CUSTOM_FIELD_LENGTH = 5000

MAX_PER_PAGE = 1000
BATCH_SIZE = 1000
DEFAULT_UNSUBSCRIBE_PAGE_SIZE = 100

MAX_YEAR = 3000
