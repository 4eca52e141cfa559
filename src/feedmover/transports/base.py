"""
Shared pieces of the transport connections.
"""

from __future__ import annotations

import fnmatch
import posixpath
from pathlib import Path
from typing import Any


class BaseTransportConnection:
    """
    Base class for transport connections.

    Connections are built from one entry of the ``connections:`` config
    section::

        connections:
          nws_sftp:
            type: sftp
            config:
              host: sftp.example.gov
              credential: nws_sftp      # looked up in the credential store

    Subclasses implement ``fetch``/``acknowledge`` (RemoteSource) and/or
    ``push`` (RemoteSink).
    """

    can_fetch = False
    can_push = False

    def __init__(self, name: str, config: dict[str, Any]):
        self.name = name
        self.config = config

    @property
    def _cfg(self) -> dict[str, Any]:
        cfg = self.config.get("config", {}) if isinstance(self.config, dict) else {}
        return cfg or {}

    def close(self) -> None:
        """Release any held resources (no-op by default)."""

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(name='{self.name}')"


def local_matches(local_dir: Path, pattern: str) -> list[Path]:
    """Regular files in local_dir whose name matches pattern, sorted by name."""
    if not local_dir.is_dir():
        return []
    return sorted(p for p in local_dir.iterdir() if p.is_file() and fnmatch.fnmatchcase(p.name, pattern))


def join_remote(*parts: str) -> str:
    """Join remote (POSIX) path segments, skipping empty ones."""
    cleaned = [p for p in parts if p]
    if not cleaned:
        return ""
    return posixpath.join(*cleaned)


def select_newest(entries: list[Any], *, mtime: Any, newest_first: bool, limit: int | None) -> list[Any]:
    """Order candidate files by modification time and cap the count."""
    ordered = sorted(entries, key=mtime, reverse=newest_first)
    return ordered[:limit] if limit is not None else ordered
