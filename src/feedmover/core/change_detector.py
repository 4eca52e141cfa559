"""
Change detection for staged files.

A staged file is NEW when its feed has no archive record yet, or when its
bytes differ from the archived copy of the last file sent.
"""

from pathlib import Path

from feedmover.core.types import ArchiveRecord, StagedFile
from feedmover.utils.logging import get_logger

logger = get_logger("feedmover.core.change_detector")

CHUNK_SIZE = 64 * 1024


class ChangeDetector:
    """
    Decides NEW vs UNCHANGED. Read-only: never touches the archive.

    Every staged file of a feed must be compared with the same pre-run
    archive snapshot; the orchestrator loads the record once per feed and
    passes it to each call.
    """

    def is_new(self, staged: StagedFile, record: ArchiveRecord | None) -> bool:
        if record is None:
            logger.debug(f"{staged.original_name}: no archive record, first sighting")
            return True
        if not record.archived_path.exists():
            logger.warning(f"Archive record for feed '{record.feed_id}' points to missing file {record.archived_path}")
            return True
        return not files_identical(staged.local_path, record.archived_path)


def files_identical(left: Path, right: Path) -> bool:
    """Byte-for-byte comparison, length first."""
    if left.stat().st_size != right.stat().st_size:
        return False
    with open(left, "rb") as a, open(right, "rb") as b:
        for chunk in iter(lambda: a.read(CHUNK_SIZE), b""):
            if chunk != b.read(len(chunk)):
                return False
    return True
