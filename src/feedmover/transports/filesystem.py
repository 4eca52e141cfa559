"""
Mounted file share (SMB/NFS) or local directory transport.

Covers bulk copy by name pattern on the fetch side and drop-directory
delivery on the push side.
"""

from __future__ import annotations

import fnmatch
import os
import shutil
from pathlib import Path
from typing import Any

from feedmover.core.types import DestinationDescriptor, FetchResult, PushResult, SourceDescriptor, StagedFile
from feedmover.transports.base import BaseTransportConnection, local_matches, select_newest
from feedmover.utils.logging import get_logger

logger = get_logger("feedmover.transports.filesystem")


class FilesystemConnection(BaseTransportConnection):
    """
    Directory tree rooted at ``root_path``.

    Config example::

        connections:
          prod_share:
            type: filesystem
            config:
              root_path: /mnt/fews_prod
    """

    can_fetch = True
    can_push = True

    def __init__(self, name: str, config: dict[str, Any]):
        super().__init__(name, config)

    @property
    def root_path(self) -> Path:
        return Path(self._cfg.get("root_path", "."))

    def resolve(self, *parts: str) -> Path:
        """
        Path under root_path.

        Raises:
            ValueError: If the result escapes root_path
        """
        root_resolved = self.root_path.resolve()
        full = root_resolved.joinpath(*[p.lstrip("/") for p in parts if p]).resolve()
        try:
            full.relative_to(root_resolved)
        except ValueError as e:
            raise ValueError(f"Path traversal detected: {'/'.join(parts)} escapes root_path '{self.root_path}'") from e
        return full

    def fetch(self, source: SourceDescriptor, local_dir: Path) -> FetchResult:
        try:
            remote_dir = self.resolve(source.remote_dir)
            candidates = [
                p for p in remote_dir.iterdir() if p.is_file() and fnmatch.fnmatchcase(p.name, source.pattern)
            ]
            chosen = select_newest(
                candidates,
                mtime=lambda p: (p.stat().st_mtime, p.name),
                newest_first=source.newest_first,
                limit=source.max_files,
            )
            local_dir.mkdir(parents=True, exist_ok=True)
            staged = []
            for path in chosen:
                target = local_dir / path.name
                tmp = target.with_name(target.name + ".part")
                shutil.copy2(path, tmp)
                os.replace(tmp, target)
                staged.append(StagedFile.from_path(target, source=source.name, remote_path=str(path)))
            return FetchResult(files_retrieved=staged)
        except (OSError, ValueError) as e:
            return FetchResult(error=str(e))

    def acknowledge(self, source: SourceDescriptor, remote_paths: list[str]) -> None:
        root = self.root_path.resolve()
        for remote_path in remote_paths:
            path = Path(remote_path).resolve()
            # Only ever delete inside this connection's tree
            if not path.is_relative_to(root):
                raise ValueError(f"Refusing to delete {path}: outside root_path '{self.root_path}'")
            path.unlink(missing_ok=True)
            logger.debug(f"Removed fetched file {path} from '{self.name}'")

    def push(self, local_dir: Path, pattern: str, destination: DestinationDescriptor, subpath: str) -> PushResult:
        sent: list[str] = []
        try:
            target_dir = self.resolve(destination.root, subpath)
            target_dir.mkdir(parents=True, exist_ok=True)
            for path in local_matches(local_dir, pattern):
                full = target_dir / path.name
                tmp = full.with_suffix(full.suffix + ".part")
                shutil.copy2(path, tmp)
                os.replace(tmp, full)
                sent.append(path.name)
        except (OSError, ValueError) as e:
            return PushResult(files_sent=sent, error=str(e))
        return PushResult(files_sent=sent)
