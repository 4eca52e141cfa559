"""
Run-level advisory lock.

Only one run may process the feeds at a time: the archive's
read-compare-overwrite sequence is not safe against a concurrent run.
"""

from __future__ import annotations

import os
import time
import uuid
from pathlib import Path
from typing import Any

from feedmover.exceptions import RunLockError
from feedmover.utils.logging import get_logger

logger = get_logger("feedmover.core.lock")


def _identity(st: os.stat_result) -> tuple[int, int, int]:
    return (st.st_ino, st.st_mtime_ns, st.st_size)


class RunLock:
    """
    Lock file acquired with an atomic create-exclusive open.

    The file holds the owner's PID and acquisition time for operators. A lock
    older than ``stale_after_s`` is treated as left behind by a crashed run
    and is broken once. Breaking renames the stale file aside and checks that
    the renamed file is still the one judged stale; a fresh lock taken by a
    competing run in the meantime is put back and this run is refused.

    Usage::

        with RunLock(path):
            ...
    """

    def __init__(self, path: Path, stale_after_s: float = 3600.0):
        self.path = Path(path)
        self.stale_after_s = stale_after_s
        self._held: tuple[int, int, int] | None = None

    @property
    def held(self) -> bool:
        return self._held is not None

    def acquire(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        for attempt in range(2):
            try:
                fd = os.open(self.path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
            except FileExistsError:
                observed = self._stat()
                if attempt == 0 and (observed is None or self._is_stale(observed)):
                    if observed is not None:
                        logger.warning(
                            f"Breaking stale run lock {self.path} (held by pid {self._owner()}, "
                            f"older than {self.stale_after_s:.0f}s)"
                        )
                        self._break(observed)
                    continue
                raise self._refused() from None
            with os.fdopen(fd, "w") as f:
                f.write(f"{os.getpid()} {int(time.time())}\n")
            self._held = _identity(self.path.stat())
            return

    def release(self) -> None:
        if self._held is None:
            return
        current = self._stat()
        if current is not None and current.st_ino == self._held[0]:
            self.path.unlink(missing_ok=True)
        else:
            logger.warning(f"Run lock {self.path} was taken over by another run; leaving it in place")
        self._held = None

    def _break(self, observed: os.stat_result) -> None:
        aside = self.path.with_name(f"{self.path.name}.{uuid.uuid4().hex}.stale")
        try:
            os.rename(self.path, aside)
        except FileNotFoundError:
            # Another run broke it first
            return
        if _identity(aside.stat()) == _identity(observed):
            aside.unlink(missing_ok=True)
            return
        # A competing run re-acquired between the staleness check and the rename
        try:
            os.link(aside, self.path)
        except FileExistsError:
            logger.error(f"Run lock {self.path} changed hands while being broken; aside copy kept at {aside}")
            raise self._refused() from None
        aside.unlink(missing_ok=True)
        raise self._refused()

    def _refused(self) -> RunLockError:
        owner = self._owner()
        return RunLockError(
            f"Another run is in progress (pid {owner or 'unknown'}); lock file {self.path}",
            pid=owner,
            path=str(self.path),
        )

    def _owner(self) -> str | None:
        try:
            return self.path.read_text().split()[0]
        except (OSError, IndexError):
            return None

    def _stat(self) -> os.stat_result | None:
        try:
            return self.path.stat()
        except FileNotFoundError:
            return None

    def _is_stale(self, st: os.stat_result) -> bool:
        return time.time() - st.st_mtime > self.stale_after_s

    def __enter__(self) -> RunLock:
        self.acquire()
        return self

    def __exit__(self, exc_type: type[BaseException] | None, exc: BaseException | None, tb: Any) -> None:
        self.release()
