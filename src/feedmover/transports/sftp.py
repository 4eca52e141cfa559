"""
SFTP transport.

Fetch side: directory listing plus selective download, with optional
delete-on-remote once the file has been delivered downstream. Push side:
upload to a temporary name, then rename into place.
"""

from __future__ import annotations

import fnmatch
import os
import socket
import stat
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import paramiko

from feedmover.core.types import DestinationDescriptor, FetchResult, PushResult, SourceDescriptor, StagedFile
from feedmover.transports.base import BaseTransportConnection, join_remote, local_matches, select_newest
from feedmover.utils.logging import get_logger

logger = get_logger("feedmover.transports.sftp")


@dataclass(frozen=True)
class SFTPConfig:
    host: str
    port: int = 22
    username: str | None = None
    password: str | None = None
    private_key_path: str | None = None
    private_key_passphrase: str | None = None
    connect_timeout_s: float = 15.0
    # Applies to every read/write on the open channel
    operation_timeout_s: float = 120.0


class SFTPConnection(BaseTransportConnection):
    """
    SFTP connection used both as a source and as a sink.

    Config example::

        connections:
          nws_sftp:
            type: sftp
            config:
              host: sftp.example.gov
              port: 22
              credential: nws_sftp
              connect_timeout_s: 15
              operation_timeout_s: 120
    """

    can_fetch = True
    can_push = True

    def __init__(self, name: str, config: dict[str, Any]):
        super().__init__(name, config)
        self._transport: paramiko.Transport | None = None
        self._client: paramiko.SFTPClient | None = None
        # One session at a time per connection when feeds run in parallel
        self._lock = threading.RLock()

    def _parse_config(self) -> SFTPConfig:
        cfg = self._cfg
        return SFTPConfig(
            host=cfg.get("host", ""),
            port=int(cfg.get("port", 22)),
            username=cfg.get("username"),
            password=cfg.get("password"),
            private_key_path=cfg.get("private_key_path"),
            private_key_passphrase=cfg.get("private_key_passphrase"),
            connect_timeout_s=float(cfg.get("connect_timeout_s", 15.0)),
            operation_timeout_s=float(cfg.get("operation_timeout_s", 120.0)),
        )

    def connect(self) -> paramiko.SFTPClient:
        """Connect (lazy) and return a live `paramiko.SFTPClient`."""
        if self._client is not None:
            return self._client

        cfg = self._parse_config()
        if not cfg.host:
            raise ValueError(f"SFTP connection '{self.name}' missing host")

        # Bounded TCP connect; paramiko.Transport((host, port)) would block indefinitely
        sock = socket.create_connection((cfg.host, cfg.port), timeout=cfg.connect_timeout_s)
        transport = paramiko.Transport(sock)
        transport.banner_timeout = cfg.connect_timeout_s
        transport.auth_timeout = cfg.connect_timeout_s

        pkey = None
        if cfg.private_key_path:
            try:
                pkey = paramiko.RSAKey.from_private_key_file(cfg.private_key_path, password=cfg.private_key_passphrase)
            except paramiko.SSHException:
                pkey = paramiko.Ed25519Key.from_private_key_file(
                    cfg.private_key_path, password=cfg.private_key_passphrase
                )

        try:
            transport.connect(username=cfg.username, password=cfg.password, pkey=pkey)
            client = paramiko.SFTPClient.from_transport(transport)
        except Exception:
            transport.close()
            raise
        client.get_channel().settimeout(cfg.operation_timeout_s)

        self._transport = transport
        self._client = client
        return client

    def close(self) -> None:
        """Close SFTP client + underlying transport."""
        try:
            if self._client is not None:
                self._client.close()
        finally:
            self._client = None
        try:
            if self._transport is not None:
                self._transport.close()
        finally:
            self._transport = None

    def __enter__(self) -> SFTPConnection:
        self.connect()
        return self

    def __exit__(self, exc_type: type[BaseException] | None, exc: BaseException | None, tb: Any) -> None:
        self.close()

    # --- RemoteSource -------------------------------------------------------

    def fetch(self, source: SourceDescriptor, local_dir: Path) -> FetchResult:
        staged: list[StagedFile] = []
        try:
            with self._lock, self:
                client = self.connect()
                remote_dir = source.remote_dir or "."
                entries = [
                    attr
                    for attr in client.listdir_attr(remote_dir)
                    if not stat.S_ISDIR(attr.st_mode or 0) and fnmatch.fnmatchcase(attr.filename, source.pattern)
                ]
                chosen = select_newest(
                    entries,
                    mtime=lambda a: (int(a.st_mtime or 0), a.filename),
                    newest_first=source.newest_first,
                    limit=source.max_files,
                )
                local_dir.mkdir(parents=True, exist_ok=True)
                for attr in chosen:
                    remote_path = join_remote(remote_dir, attr.filename)
                    target = local_dir / attr.filename
                    _download(client, remote_path, target)
                    staged.append(StagedFile.from_path(target, source=source.name, remote_path=remote_path))
        except (OSError, paramiko.SSHException, ValueError) as e:
            # socket.timeout is an OSError
            return FetchResult(files_retrieved=staged, error=f"{type(e).__name__}: {e}")
        logger.debug(f"Fetched {len(staged)} file(s) from {self.name}:{source.remote_dir}")
        return FetchResult(files_retrieved=staged)

    def acknowledge(self, source: SourceDescriptor, remote_paths: list[str]) -> None:
        if not remote_paths:
            return
        with self._lock, self:
            client = self.connect()
            for remote_path in remote_paths:
                client.remove(remote_path)
                logger.debug(f"Removed {remote_path} from '{self.name}'")

    # --- RemoteSink ---------------------------------------------------------

    def push(self, local_dir: Path, pattern: str, destination: DestinationDescriptor, subpath: str) -> PushResult:
        sent: list[str] = []
        try:
            with self._lock, self:
                client = self.connect()
                target_dir = join_remote(destination.root, subpath) or "."
                _makedirs(client, target_dir)
                for path in local_matches(local_dir, pattern):
                    final = join_remote(target_dir, path.name)
                    tmp = join_remote(target_dir, f".{path.name}.part")
                    client.put(str(path), tmp)
                    client.posix_rename(tmp, final)
                    sent.append(path.name)
        except (OSError, paramiko.SSHException, ValueError) as e:
            return PushResult(files_sent=sent, error=f"{type(e).__name__}: {e}")
        return PushResult(files_sent=sent)


def _download(client: Any, remote_path: str, local_path: Path) -> None:
    tmp_path = f"{local_path}.part"
    client.get(remote_path, tmp_path)
    os.replace(tmp_path, local_path)


def _makedirs(client: Any, remote_dir: str) -> None:
    """mkdir -p over SFTP."""
    current = "/" if remote_dir.startswith("/") else ""
    for part in [p for p in remote_dir.split("/") if p and p != "."]:
        current = join_remote(current, part)
        try:
            client.stat(current)
        except FileNotFoundError:
            client.mkdir(current)
