"""
Credential lookup keyed by server or environment name.

The store is a YAML mapping::

    nws_sftp:
      user_id: nwsuser
      password: secret
    fews-prod01:
      user_id: fewsadmin
      password: secret
      domain: RFC

kept either in plain text (development) or as a PGP-encrypted message
decrypted in memory with a private key.

Notes:
- PGPy loads the encrypted message into memory; credential files are small.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml

from feedmover.core.types import Credential
from feedmover.exceptions import ConfigurationError, CredentialNotFoundError
from feedmover.utils.logging import get_logger

logger = get_logger("feedmover.integrations.credentials")

_ENCRYPTED_SUFFIXES = (".pgp", ".gpg", ".asc")


class CredentialStore:
    """
    Config (``credentials:`` section):
    - path: str (required for lookups)
    - private_key_path: str (required when the file is encrypted)
    - private_key_passphrase: str (optional)
    - encrypted: bool (optional, default: inferred from .pgp/.gpg/.asc suffix)
    """

    def __init__(self, entries: dict[str, Any]):
        self._entries = entries

    @classmethod
    def from_config(cls, config: dict[str, Any], project_dir: Path | None = None) -> CredentialStore:
        path_value = config.get("path")
        if not path_value:
            return cls({})
        path = Path(path_value)
        if project_dir and not path.is_absolute():
            path = project_dir / path
        if not path.is_file():
            raise ConfigurationError(f"Credential store not found: {path}")

        encrypted = config.get("encrypted")
        if encrypted is None:
            encrypted = path.suffix.lower() in _ENCRYPTED_SUFFIXES

        if encrypted:
            key_path = config.get("private_key_path")
            if not key_path:
                raise ConfigurationError("Encrypted credential store requires credentials.private_key_path")
            text = _decrypt(path, Path(key_path), config.get("private_key_passphrase"))
        else:
            text = path.read_text(encoding="utf-8")

        try:
            entries = yaml.safe_load(text) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Credential store {path} is not valid YAML: {e}") from None
        if not isinstance(entries, dict):
            raise ConfigurationError(f"Credential store {path} must be a mapping of key -> credential")
        logger.debug(f"Loaded {len(entries)} credential(s) from {path}")
        return cls(entries)

    def lookup(self, key: str) -> Credential:
        entry = self._entries.get(key)
        if not isinstance(entry, dict):
            raise CredentialNotFoundError(key)
        user_id = entry.get("user_id") or entry.get("username")
        if not user_id:
            raise CredentialNotFoundError(key)
        return Credential(user_id=str(user_id), password=str(entry.get("password", "")), domain=entry.get("domain"))

    def __contains__(self, key: str) -> bool:
        return key in self._entries


def _decrypt(path: Path, key_path: Path, passphrase: str | None) -> str:
    # Import lazily so plain-text stores work without pgpy installed
    import pgpy

    key, _ = pgpy.PGPKey.from_file(str(key_path))
    message = pgpy.PGPMessage.from_file(str(path))
    if passphrase:
        with key.unlock(passphrase):
            payload = key.decrypt(message).message
    else:
        payload = key.decrypt(message).message
    if isinstance(payload, (bytes, bytearray)):
        return bytes(payload).decode("utf-8")
    return payload or ""
