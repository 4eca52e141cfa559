"""
Archive of the last file sent per feed.

Layout under the archive root::

    current/<feed_id>.last          the one record used for change detection
    history/<feed_id>/<stamp>_<name> dated audit copies, pruned by age

The current record is overwritten by feed name, so there is never more than
one per feed.
"""

from __future__ import annotations

import os
import shutil
from datetime import datetime, timedelta
from pathlib import Path

from feedmover.core.staging import StagingArea
from feedmover.core.types import ArchiveRecord, StagedFile
from feedmover.utils.logging import get_logger

logger = get_logger("feedmover.core.archive")


class ArchiveStore:
    def __init__(self, root: Path, *, keep_history: bool = True):
        self.root = Path(root)
        self.keep_history = keep_history

    def current_path(self, feed_id: str) -> Path:
        return self.root / "current" / f"{feed_id}.last"

    def history_dir(self, feed_id: str) -> Path:
        return self.root / "history" / feed_id

    def get(self, feed_id: str) -> ArchiveRecord | None:
        path = self.current_path(feed_id)
        if not path.is_file():
            return None
        return ArchiveRecord(
            feed_id=feed_id,
            archived_path=path,
            archived_at=datetime.fromtimestamp(path.stat().st_mtime),
        )

    def commit(
        self, feed_id: str, staged: StagedFile, staging: StagingArea, *, run_timestamp: datetime
    ) -> ArchiveRecord:
        """
        Make ``staged`` the current record for the feed, moving it out of
        staging. Call only after a destination push has been confirmed.
        """
        if self.keep_history:
            history = self.history_dir(feed_id)
            history.mkdir(parents=True, exist_ok=True)
            shutil.copyfile(staged.local_path, history / f"{run_timestamp:%Y%m%d%H%M%S}_{staged.original_name}")

        current = self.current_path(feed_id)
        # Move next to the record first so the final swap is an atomic rename
        tmp = staging.archive(staged, current.parent, name=f".{feed_id}.part")
        os.replace(tmp, current)
        logger.debug(f"Archived {staged.original_name} as current record for feed '{feed_id}'")
        return ArchiveRecord(feed_id=feed_id, archived_path=current, archived_at=datetime.now())

    def prune(self, feed_id: str, retention_days: int, *, now: datetime | None = None) -> list[Path]:
        """Delete history copies older than ``retention_days``. The current record is never pruned."""
        history = self.history_dir(feed_id)
        if not history.is_dir():
            return []
        cutoff = (now or datetime.now()) - timedelta(days=retention_days)
        removed = []
        for path in history.iterdir():
            if path.is_file() and datetime.fromtimestamp(path.stat().st_mtime) < cutoff:
                path.unlink()
                removed.append(path)
        if removed:
            logger.info(f"Pruned {len(removed)} archived file(s) older than {retention_days} day(s) for feed '{feed_id}'")
        return removed
