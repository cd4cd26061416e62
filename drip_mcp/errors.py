"""Error taxonomy shared by the validators, client, dispatcher and server."""

from __future__ import annotations

from typing import Any


class ConfigurationError(RuntimeError):
    """Raised when Drip credentials or settings are missing or malformed."""


class InvalidInputError(ValueError):
    """Raised when caller-supplied arguments fail validation."""


class UnknownOperationError(LookupError):
    """Raised when an operation name is outside the tool catalog."""

    def __init__(self, name: str) -> None:
        super().__init__(f"Unknown tool: {name}")
        self.name = name


class DripAPIError(RuntimeError):
    """Raised for Drip request failures with structured metadata."""

    def __init__(
        self,
        message: str,
        *,
        code: str,
        status: int | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.status = status
        self.details = details or {}


def format_api_error(status: int, body: Any) -> str:
    """Collapse a Drip error response into one human-readable line."""
    message = f"API Error ({status}): "
    errors = body.get("errors") if isinstance(body, dict) else None

    if errors:
        if isinstance(errors, list):
            parts = []
            for item in errors:
                if isinstance(item, dict) and item.get("message"):
                    parts.append(str(item["message"]))
                else:
                    parts.append(str(item))
            return message + ", ".join(parts)
        if isinstance(errors, dict):
            fields = []
            for field, problems in errors.items():
                if isinstance(problems, (list, tuple)):
                    detail = ", ".join(str(p) for p in problems)
                else:
                    detail = str(problems)
                fields.append(f"{field}: {detail}")
            return message + "; ".join(fields)
        return message + str(errors)

    if isinstance(body, dict) and body.get("message"):
        return message + str(body["message"])
    return message + "Unknown error occurred"
