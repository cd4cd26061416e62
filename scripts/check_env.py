#!/usr/bin/env python3
"""Report whether the Drip credentials are available without printing the API key.

Reads the process environment plus the project ``.env`` file.  Exit 1 when a
required variable is missing.
"""

from __future__ import annotations

import os
import sys

from drip_mcp.config import load_env_file


def check() -> list[str]:
    missing: list[str] = []
    load_env_file()

    api_key = os.environ.get("DRIP_API_KEY", "").strip()
    if api_key:
        print(f"OK   DRIP_API_KEY found ({len(api_key)} characters)")
    else:
        print("MISS DRIP_API_KEY not found in environment")
        missing.append("DRIP_API_KEY")

    account_id = os.environ.get("DRIP_ACCOUNT_ID", "").strip()
    if account_id:
        print(f"OK   DRIP_ACCOUNT_ID found: {account_id}")
    else:
        print("MISS DRIP_ACCOUNT_ID not found in environment")
        missing.append("DRIP_ACCOUNT_ID")

    return missing


def main() -> int:
    missing = check()
    if missing:
        print(
            "\nSet the missing variables in the environment or in .env, e.g.\n"
            "  DRIP_API_KEY=abc123def456...\n"
            "  DRIP_ACCOUNT_ID=12345678",
            file=sys.stderr,
        )
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
