"""Field-level encryption for token secrets kept in the storage file."""

from __future__ import annotations

import base64
import hashlib
from typing import Any, Dict

from cryptography.fernet import Fernet, InvalidToken

SECRET_FIELDS = ("access_token", "refresh_token", "id_token")
ENCRYPTED_SUFFIX = "_encrypted"


class TokenCipherService:
    """Encrypt and decrypt token secrets with a Fernet key derived from a passphrase."""

    def __init__(self, *, secret: str) -> None:
        if not secret:
            raise ValueError("Token encryption secret must be provided.")
        digest = hashlib.sha256(secret.encode("utf-8")).digest()
        self._fernet = Fernet(base64.urlsafe_b64encode(digest))

    def encrypt(self, plaintext: str) -> str:
        return self._fernet.encrypt(plaintext.encode("utf-8")).decode("utf-8")

    def decrypt(self, ciphertext: str) -> str:
        try:
            plaintext = self._fernet.decrypt(ciphertext.encode("utf-8"))
        except InvalidToken as exc:
            raise ValueError("Failed to decrypt token; invalid ciphertext provided.") from exc
        return plaintext.decode("utf-8")

    def seal(self, entry: Dict[str, Any]) -> Dict[str, Any]:
        """Replace every secret field with its ``*_encrypted`` counterpart."""
        sealed = dict(entry)
        for name in SECRET_FIELDS:
            value = sealed.pop(name, None)
            if value:
                sealed[f"{name}{ENCRYPTED_SUFFIX}"] = self.encrypt(value)
        return sealed

    def unseal(self, entry: Dict[str, Any]) -> Dict[str, Any]:
        """Inverse of :meth:`seal`.

        Plaintext secrets written before encryption was enabled are passed
        through untouched; they are re-sealed on the next save.
        """
        opened = dict(entry)
        for name in SECRET_FIELDS:
            ciphertext = opened.pop(f"{name}{ENCRYPTED_SUFFIX}", None)
            if ciphertext:
                opened[name] = self.decrypt(ciphertext)
        return opened


def has_access_token(entry: Dict[str, Any]) -> bool:
    """True when a raw storage entry carries an access token in either form."""
    return bool(entry.get("access_token") or entry.get(f"access_token{ENCRYPTED_SUFFIX}"))


__all__ = ["ENCRYPTED_SUFFIX", "SECRET_FIELDS", "TokenCipherService", "has_access_token"]
