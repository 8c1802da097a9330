"""
File-backed token storage shared by the MCP server and the companion
authorization server.

The whole mapping ``user id -> token record`` lives in one JSON document. Every
operation re-reads the file, and every mutation is a full read-modify-write
that replaces the file atomically.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import tempfile
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, Optional

from pydantic import ValidationError as PydanticValidationError

from outlook_mcp.core.errors import ValidationError
from outlook_mcp.models.tokens import TokenRecord
from outlook_mcp.services.token_cipher import (
    ENCRYPTED_SUFFIX,
    TokenCipherService,
    has_access_token,
)

logger = logging.getLogger(__name__)

STORAGE_FILE_MODE = 0o600


class _StorageState(Enum):
    MISSING = "missing"
    OK = "ok"
    CORRUPT = "corrupt"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _require_user_id(user_id: str | None) -> str:
    if not user_id or not isinstance(user_id, str) or not user_id.strip():
        raise ValidationError("User ID is required")
    return user_id


class TokenStore:
    """Durable mapping from user id to :class:`TokenRecord`.

    Writers within one process are serialised by a store-wide lock so that
    concurrent saves for different users cannot drop each other's entries.
    Separate processes sharing ``storage_path`` remain last-writer-wins for
    the whole file.
    """

    def __init__(
        self,
        storage_path: Path | str,
        *,
        cipher: Optional[TokenCipherService] = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._path = Path(storage_path)
        self._cipher = cipher
        self._clock = clock
        self._write_lock = asyncio.Lock()

    @property
    def path(self) -> Path:
        return self._path

    async def get(self, user_id: str) -> TokenRecord | None:
        """Return the stored record for ``user_id`` or ``None``."""
        _require_user_id(user_id)
        storage = await self._load()
        if user_id not in storage:
            return None
        return self._to_record(user_id, storage[user_id])

    async def save(self, user_id: str, record: TokenRecord) -> TokenRecord:
        """Persist ``record`` for ``user_id`` and return it with ``expires_at`` set."""
        _require_user_id(user_id)
        if record is None or not record.access_token:
            raise ValidationError("Valid token data with an access token is required")

        record = record.with_expiry(self._clock())
        async with self._write_lock:
            storage = await self._load()
            storage[user_id] = self._to_entry(record)
            await asyncio.to_thread(self._write_storage, storage)

        logger.info("Token saved for user %s", user_id)
        return record

    async def delete(self, user_id: str) -> bool:
        """Remove the record for ``user_id``; ``False`` when there was none."""
        _require_user_id(user_id)
        async with self._write_lock:
            storage = await self._load()
            if user_id not in storage:
                return False
            del storage[user_id]
            await asyncio.to_thread(self._write_storage, storage)

        logger.info("Token deleted for user %s", user_id)
        return True

    async def list_users(self) -> list[str]:
        storage = await self._load()
        return list(storage.keys())

    async def validate(self) -> bool:
        """Drop unusable entries and rewrite the file.

        Returns ``False`` when the file had to be recreated because its
        content could not be parsed, ``True`` otherwise.
        """
        async with self._write_lock:
            storage, state = await asyncio.to_thread(self._read_storage)
            if state is _StorageState.MISSING:
                logger.info("No token storage at %s; nothing to validate", self._path)
                return True
            if state is _StorageState.CORRUPT:
                logger.error(
                    "Token storage at %s is unreadable; recreating it empty", self._path
                )
                await asyncio.to_thread(self._write_storage, {})
                return False

            cleaned: Dict[str, Any] = {}
            for user_id, entry in storage.items():
                if not user_id or not isinstance(entry, dict):
                    logger.warning("Dropping malformed token entry for user %r", user_id)
                    continue
                if not has_access_token(entry):
                    logger.warning("Dropping token for user %s: no access token", user_id)
                    continue
                if self._cipher is None and f"access_token{ENCRYPTED_SUFFIX}" in entry:
                    logger.warning(
                        "Token for user %s is encrypted but no encryption secret is configured",
                        user_id,
                    )
                elif self._to_record(user_id, entry) is None:
                    logger.warning("Dropping token for user %s: unreadable record", user_id)
                    continue
                if not (entry.get("refresh_token") or entry.get(f"refresh_token{ENCRYPTED_SUFFIX}")):
                    logger.warning("Token for user %s has no refresh token", user_id)
                if not entry.get("scope"):
                    logger.warning("Token for user %s has no scope information", user_id)
                cleaned[user_id] = entry

            await asyncio.to_thread(self._write_storage, cleaned)

        dropped = len(storage) - len(cleaned)
        logger.info("Token storage validated: %d kept, %d dropped", len(cleaned), dropped)
        return True

    async def _load(self) -> Dict[str, Any]:
        storage, _ = await asyncio.to_thread(self._read_storage)
        return storage

    def _read_storage(self) -> tuple[Dict[str, Any], _StorageState]:
        try:
            raw = self._path.read_bytes()
        except FileNotFoundError:
            return {}, _StorageState.MISSING
        try:
            data = json.loads(raw)
        except ValueError:
            logger.warning("Token storage at %s is not valid JSON; treating as empty", self._path)
            return {}, _StorageState.CORRUPT
        if not isinstance(data, dict):
            logger.warning("Token storage at %s is not a JSON object; treating as empty", self._path)
            return {}, _StorageState.CORRUPT
        return data, _StorageState.OK

    def _write_storage(self, storage: Dict[str, Any]) -> None:
        directory = self._path.parent
        directory.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{self._path.name}.", suffix=".tmp", dir=directory
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(storage, handle, indent=2)
                handle.flush()
                os.fsync(handle.fileno())
            os.chmod(tmp_name, STORAGE_FILE_MODE)
            os.replace(tmp_name, self._path)
        except BaseException:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise

    def _to_entry(self, record: TokenRecord) -> Dict[str, Any]:
        entry = record.to_storage()
        if self._cipher is not None:
            entry = self._cipher.seal(entry)
        return entry

    def _to_record(self, user_id: str, entry: Any) -> TokenRecord | None:
        if not isinstance(entry, dict):
            logger.warning("Stored token for user %s is not an object", user_id)
            return None
        if self._cipher is not None:
            try:
                entry = self._cipher.unseal(entry)
            except ValueError:
                logger.error("Stored token for user %s cannot be decrypted", user_id)
                return None
        try:
            record = TokenRecord.model_validate(entry)
        except PydanticValidationError:
            logger.warning("Stored token for user %s is malformed", user_id)
            return None
        if not record.access_token:
            return None
        return record


__all__ = ["STORAGE_FILE_MODE", "TokenStore"]
