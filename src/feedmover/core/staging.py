"""
Per-run local staging area.

Layout under the staging root::

    _inbox/<source>/      files as fetched, before claiming
    <feed_id>/            files claimed by one feed (disjoint per feed)
    _unclaimed/<source>/  files no feed claimed; kept across runs

``prepare()`` empties everything except ``_unclaimed``: quarantined files
stay visible until an operator removes them with ``purge_unclaimed()``.
"""

from __future__ import annotations

import fnmatch
import os
import shutil
from pathlib import Path

from feedmover.core.types import FeedDescriptor, StagedFile
from feedmover.exceptions import StagingUnavailable
from feedmover.utils.logging import get_logger

logger = get_logger("feedmover.core.staging")

INBOX = "_inbox"
UNCLAIMED = "_unclaimed"


def matches(pattern: str, name: str) -> bool:
    """Case-sensitive glob match on a bare file name."""
    return fnmatch.fnmatchcase(name, pattern)


class StagingArea:
    def __init__(self, root: Path):
        self.root = Path(root)

    @property
    def unclaimed_dir(self) -> Path:
        return self.root / UNCLAIMED

    def inbox(self, source: str) -> Path:
        path = self.root / INBOX / _safe_segment(source)
        path.mkdir(parents=True, exist_ok=True)
        return path

    def feed_dir(self, feed_id: str) -> Path:
        path = self.root / _safe_segment(feed_id)
        path.mkdir(parents=True, exist_ok=True)
        return path

    def prepare(self) -> None:
        """Ensure the staging root exists and holds nothing from a previous run."""
        try:
            self.root.mkdir(parents=True, exist_ok=True)
            for entry in self.root.iterdir():
                if entry.name == UNCLAIMED:
                    continue
                if entry.is_dir() and not entry.is_symlink():
                    shutil.rmtree(entry)
                else:
                    entry.unlink()
            self.unclaimed_dir.mkdir(exist_ok=True)
        except OSError as e:
            raise StagingUnavailable(str(self.root), str(e)) from e

    def claim(
        self, staged: list[StagedFile], descriptors: list[FeedDescriptor]
    ) -> tuple[dict[str, list[StagedFile]], list[StagedFile]]:
        """
        Assign each staged file to the first descriptor (in registry order)
        whose source and pattern match, moving it into that feed's directory.

        Returns ``(claimed_by_feed, unclaimed)``. Unclaimed files are moved to
        the quarantine rather than dropped.
        """
        claimed: dict[str, list[StagedFile]] = {d.id: [] for d in descriptors}
        unclaimed: list[StagedFile] = []
        for sf in sorted(staged, key=lambda s: s.original_name):
            owner = next(
                (
                    d
                    for d in descriptors
                    if (sf.source is None or d.source == sf.source) and matches(d.source_pattern, sf.original_name)
                ),
                None,
            )
            if owner is None:
                unclaimed.append(self._quarantine(sf))
                continue
            target = self.feed_dir(owner.id) / sf.original_name
            os.replace(sf.local_path, target)
            claimed[owner.id].append(sf.moved_to(target))
        return claimed, unclaimed

    def _quarantine(self, sf: StagedFile) -> StagedFile:
        target_dir = self.unclaimed_dir / _safe_segment(sf.source or "local")
        target_dir.mkdir(parents=True, exist_ok=True)
        target = target_dir / sf.original_name
        os.replace(sf.local_path, target)
        logger.warning(f"Unclaimed file {sf.original_name} from source '{sf.source}' quarantined at {target}")
        return sf.moved_to(target)

    def list_unclaimed(self, descriptors: list[FeedDescriptor] | None = None) -> list[StagedFile]:
        """
        Every staged file no descriptor claims: files waiting in an inbox
        that match no descriptor, plus everything in the quarantine.
        """
        results: list[StagedFile] = []
        inbox_root = self.root / INBOX
        if inbox_root.is_dir():
            for source_dir in sorted(p for p in inbox_root.iterdir() if p.is_dir()):
                for path in sorted(p for p in source_dir.iterdir() if p.is_file()):
                    owned = any(
                        d.source == source_dir.name and matches(d.source_pattern, path.name)
                        for d in descriptors or []
                    )
                    if not owned:
                        results.append(StagedFile.from_path(path, source=source_dir.name))
        if self.unclaimed_dir.is_dir():
            for source_dir in sorted(p for p in self.unclaimed_dir.iterdir() if p.is_dir()):
                for path in sorted(p for p in source_dir.iterdir() if p.is_file()):
                    results.append(StagedFile.from_path(path, source=source_dir.name))
        return results

    def purge_unclaimed(self) -> list[str]:
        """Delete quarantined files. Only called on explicit operator request."""
        removed: list[str] = []
        for sf in self.list_unclaimed():
            if sf.local_path.is_relative_to(self.unclaimed_dir):
                sf.local_path.unlink()
                removed.append(sf.original_name)
        return removed

    def archive(self, staged: StagedFile, dest_dir: Path, name: str | None = None) -> Path:
        """Move a staged file into dest_dir, overwriting any file of the same name."""
        dest_dir.mkdir(parents=True, exist_ok=True)
        target = dest_dir / (name or staged.original_name)
        shutil.move(str(staged.local_path), str(target))
        return target

    def discard(self, staged: StagedFile) -> None:
        staged.local_path.unlink(missing_ok=True)


def _safe_segment(name: str) -> str:
    return name.replace("/", "_").replace("..", "__")
