"""Drip connection settings loaded from the environment."""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path

from drip_mcp import __version__
from drip_mcp.errors import ConfigurationError

DEFAULT_API_HOST = "api.getdrip.com"
DEFAULT_TIMEOUT_SECONDS = 30.0
DEFAULT_MAX_ATTEMPTS = 3
USER_AGENT = f"drip-mcp/{__version__} (Drip MCP Server)"

ENV_FILE = Path(__file__).resolve().parent.parent / ".env"


def load_env_file(path: Path = ENV_FILE) -> None:
    """Load ``KEY=VALUE`` lines into ``os.environ`` without overriding it."""
    if not path.is_file():
        return
    for line in path.read_text().splitlines():
        line = line.strip()
        if line and not line.startswith("#") and "=" in line:
            k, _, v = line.partition("=")
            os.environ.setdefault(k.strip(), v.strip().strip("\"'"))


def _read_number(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(name, "").strip()
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError as exc:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}") from exc
    if value <= 0:
        raise ConfigurationError(f"{name} must be positive, got {raw!r}")
    return value


@dataclass(frozen=True)
class DripSettings:
    """Immutable credentials and endpoint configuration for one Drip account."""

    api_key: str = field(repr=False)
    account_id: str
    api_host: str = DEFAULT_API_HOST
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS
    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    user_agent: str = USER_AGENT

    def __post_init__(self) -> None:
        if not self.api_key or not str(self.api_key).strip():
            raise ConfigurationError("DRIP_API_KEY is required but was not provided.")
        if not self.account_id or not str(self.account_id).strip():
            raise ConfigurationError("DRIP_ACCOUNT_ID is required but was not provided.")

    @property
    def base_url(self) -> str:
        return f"https://{self.api_host}/v2/{self.account_id}"

    @property
    def accounts_url(self) -> str:
        return f"https://{self.api_host}/v2/accounts"

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> DripSettings:
        """Build settings from ``DRIP_*`` variables; missing credentials fail fast."""
        env = os.environ if environ is None else environ
        api_key = env.get("DRIP_API_KEY", "").strip()
        account_id = env.get("DRIP_ACCOUNT_ID", "").strip()

        missing = [
            name
            for name, value in (("DRIP_API_KEY", api_key), ("DRIP_ACCOUNT_ID", account_id))
            if not value
        ]
        if missing:
            raise ConfigurationError(
                f"Missing required environment variable(s): {', '.join(missing)}. "
                "Drip API key and account ID are required."
            )

        return cls(
            api_key=api_key,
            account_id=account_id,
            api_host=env.get("DRIP_API_HOST", "").strip() or DEFAULT_API_HOST,
            timeout_seconds=_read_number(env, "DRIP_TIMEOUT_SECONDS", DEFAULT_TIMEOUT_SECONDS),
            max_attempts=int(_read_number(env, "DRIP_MAX_ATTEMPTS", DEFAULT_MAX_ATTEMPTS)),
        )
