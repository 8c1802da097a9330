"""Utility for inspecting and repairing the shared token storage file.

The tool performs three steps:

1. It validates the storage structure, dropping entries without an access
   token and recreating the file when its content cannot be parsed.
2. It lists every authenticated user.
3. It prints token metadata per user (never the token values) and flags
   missing mail scopes.

Example usage::

    python -m scripts.validate_tokens --storage-path ~/.enhanced-outlook-mcp-tokens.json
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from outlook_mcp.core.config import SecuritySettings, StorageSettings
from outlook_mcp.services.token_cipher import TokenCipherService
from outlook_mcp.services.token_store import TokenStore

EXIT_OK = 0
EXIT_STORAGE_RECREATED = 2
EXIT_RUNTIME_ERROR = 5

MAIL_SCOPE_CHECKS = (
    ("Mail.Read", "required for listing emails"),
    ("Mail.ReadWrite", "required for moving and updating emails"),
    ("Mail.Send", "required for sending emails"),
)


def _format_expiry(expires_at: Optional[int]) -> str:
    if expires_at is None:
        return "unknown"
    moment = datetime.fromtimestamp(expires_at / 1000, tz=timezone.utc)
    return moment.isoformat(timespec="seconds")


async def _inspect(store: TokenStore) -> int:
    if not await store.validate():
        print(
            "Token storage was unreadable and has been recreated empty. "
            "Please re-authenticate to create new tokens.",
            file=sys.stderr,
        )
        return EXIT_STORAGE_RECREATED

    users = await store.list_users()
    if not users:
        print("No authenticated users found. Please authenticate first.")
        return EXIT_OK

    print(f"Found {len(users)} authenticated users: {', '.join(users)}")
    for user_id in users:
        record = await store.get(user_id)
        if record is None:
            print(f"[{user_id}] token could not be read", file=sys.stderr)
            continue
        print(f"[{user_id}] type: {record.token_type}")
        print(f"[{user_id}] scopes: {record.scope or 'none specified'}")
        print(f"[{user_id}] expires at: {_format_expiry(record.expires_at)}")
        print(f"[{user_id}] has refresh token: {bool(record.refresh_token)}")
        for scope, purpose in MAIL_SCOPE_CHECKS:
            if not record.covers((scope,)):
                print(f"[{user_id}] missing {scope} scope, {purpose}", file=sys.stderr)
    return EXIT_OK


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Validate the token storage file and report per-user token health."
    )
    parser.add_argument(
        "--storage-path",
        type=Path,
        default=None,
        help="Token storage file (default: TOKEN_STORAGE_PATH or the configured default).",
    )
    parser.add_argument(
        "--encryption-secret",
        default=None,
        help="Secret used to encrypt stored tokens (default: TOKEN_ENCRYPTION_SECRET).",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    try:
        storage_path: Path = args.storage_path or StorageSettings().token_storage_path
        secret = args.encryption_secret or SecuritySettings().token_encryption_secret
        cipher = TokenCipherService(secret=secret) if secret else None
        return asyncio.run(_inspect(TokenStore(storage_path.expanduser(), cipher=cipher)))
    except Exception as exc:  # pylint: disable=broad-except
        print(f"Token validation failed: {exc}", file=sys.stderr)
        return EXIT_RUNTIME_ERROR


if __name__ == "__main__":  # pragma: no cover - script entry point
    sys.exit(main())
