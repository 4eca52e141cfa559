"""
Transport connection manager.

Builds transport connections from the ``connections:`` config section and
hands them out by name as sources or sinks.
"""

from __future__ import annotations

import copy
from typing import Any

from feedmover.exceptions import ConfigurationError
from feedmover.integrations.credentials import CredentialStore
from feedmover.transports.base import BaseTransportConnection
from feedmover.transports.filesystem import FilesystemConnection
from feedmover.transports.s3 import S3Connection
from feedmover.transports.sftp import SFTPConnection
from feedmover.utils.logging import get_logger

logger = get_logger("feedmover.transports.manager")

CONNECTION_TYPES: dict[str, type[BaseTransportConnection]] = {
    "filesystem": FilesystemConnection,
    "sftp": SFTPConnection,
    "s3": S3Connection,
}


class TransportManager:
    """
    Supports:
    - ``filesystem``: mounted shares and local drop directories (fetch + push)
    - ``sftp``: listing + selective download, delete-after-fetch (fetch + push)
    - ``s3``: object storage destinations (push)

    A connection config may name a ``credential`` key instead of carrying a
    username/password; it is resolved through the credential store.
    """

    def __init__(self, config: dict[str, Any], credentials: CredentialStore | None = None):
        self.config = config
        self.credentials = credentials or CredentialStore({})
        self._connections: dict[str, BaseTransportConnection] = {}
        self._load_connections()

    def _load_connections(self) -> None:
        for name, conn_config in (self.config.get("connections") or {}).items():
            conn_type = (conn_config or {}).get("type")
            conn_cls = CONNECTION_TYPES.get(conn_type)
            if conn_cls is None:
                logger.warning(f"Unknown connection type '{conn_type}' for connection '{name}', skipping")
                continue
            try:
                self._connections[name] = conn_cls(name, self._with_credentials(name, conn_config))
            except ValueError as e:
                raise ConfigurationError(str(e), details={"connection": name}) from None

    def _with_credentials(self, name: str, conn_config: dict[str, Any]) -> dict[str, Any]:
        cred_key = (conn_config.get("config") or {}).get("credential")
        if not cred_key:
            return conn_config
        credential = self.credentials.lookup(cred_key)
        resolved = copy.deepcopy(conn_config)
        inner = resolved.setdefault("config", {})
        inner.setdefault("username", credential.user_id)
        inner.setdefault("password", credential.password)
        logger.debug(f"Connection '{name}' uses credential '{cred_key}'")
        return resolved

    def get(self, name: str) -> BaseTransportConnection:
        if name not in self._connections:
            raise ConfigurationError(
                f"Connection not found: {name}. Available: {sorted(self._connections)}",
                details={"connection": name},
            )
        return self._connections[name]

    def source(self, name: str) -> Any:
        conn = self.get(name)
        if not conn.can_fetch:
            raise ConfigurationError(f"Connection '{name}' ({type(conn).__name__}) cannot be used as a source")
        return conn

    def sink(self, name: str) -> Any:
        conn = self.get(name)
        if not conn.can_push:
            raise ConfigurationError(f"Connection '{name}' ({type(conn).__name__}) cannot be used as a destination")
        return conn

    def list(self) -> list[str]:
        return list(self._connections.keys())

    def close_all(self) -> None:
        for conn in self._connections.values():
            try:
                conn.close()
            except Exception as e:
                logger.debug(f"Error closing connection {conn.name}: {e}")
