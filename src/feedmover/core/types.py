"""
Type definitions for feeds, staged files and transfer results.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Protocol


@dataclass(frozen=True)
class SourceDescriptor:
    """
    A remote location polled once per run.

    Several feeds may draw from one source; fetched files are claimed by the
    first feed whose pattern matches.
    """

    name: str
    connection: str
    remote_dir: str
    pattern: str = "*"
    # Remove upstream files once their feed has delivered them
    delete_after_fetch: bool = False
    # Selective download: only the newest N matching files
    max_files: int | None = None
    newest_first: bool = True


@dataclass(frozen=True)
class FeedDescriptor:
    """One logical data feed: which staged files it owns and where they go."""

    id: str
    source: str
    source_pattern: str
    destination_subpath: str
    rename_template: str
    workflow_name: str = ""
    # None means "every destination of the resolved environment"
    destinations: tuple[str, ...] | None = None
    retention_days: int = 3
    detect_changes: bool = True
    timestamp_format: str = "%Y%m%d%H%M%S"


@dataclass(frozen=True)
class DestinationDescriptor:
    """A named push target; ``workflow_host`` is its workflow execution context."""

    name: str
    connection: str
    root: str = ""
    workflow_host: str | None = None


@dataclass(frozen=True)
class StagedFile:
    local_path: Path
    original_name: str
    size_bytes: int
    discovered_at: datetime
    source: str | None = None
    remote_path: str | None = None

    @classmethod
    def from_path(cls, path: Path, *, source: str | None = None, remote_path: str | None = None) -> StagedFile:
        stat = path.stat()
        return cls(
            local_path=path,
            original_name=path.name,
            size_bytes=stat.st_size,
            discovered_at=datetime.now(),
            source=source,
            remote_path=remote_path,
        )

    def moved_to(self, path: Path) -> StagedFile:
        """Same file under a new local path (identity fields kept)."""
        return StagedFile(
            local_path=path,
            original_name=self.original_name,
            size_bytes=self.size_bytes,
            discovered_at=self.discovered_at,
            source=self.source,
            remote_path=self.remote_path,
        )


@dataclass(frozen=True)
class ArchiveRecord:
    feed_id: str
    archived_path: Path
    archived_at: datetime


@dataclass(frozen=True)
class FetchResult:
    files_retrieved: list[StagedFile] = field(default_factory=list)
    error: str | None = None


@dataclass(frozen=True)
class PushResult:
    files_sent: list[str] = field(default_factory=list)
    error: str | None = None


@dataclass(frozen=True)
class DestinationResult:
    destination: str
    succeeded: bool
    files_sent: int = 0
    error: str | None = None


@dataclass
class TransferOutcome:
    """Result of moving one feed's files during one run."""

    feed_id: str
    files_considered: int = 0
    files_transferred: int = 0
    destinations: list[DestinationResult] = field(default_factory=list)
    succeeded: bool = True
    error_detail: str | None = None
    skipped_unchanged: int = 0
    triggered: list[str] = field(default_factory=list)

    @property
    def failed_destinations(self) -> list[DestinationResult]:
        return [d for d in self.destinations if not d.succeeded]


@dataclass(frozen=True)
class EnvironmentInfo:
    environment_class: str
    destination_server: str
    database_id: str
    destinations: tuple[str, ...] = ()


@dataclass(frozen=True)
class Credential:
    user_id: str
    password: str
    domain: str | None = None


@dataclass
class RunSummary:
    run_timestamp: datetime
    outcomes: list[TransferOutcome] = field(default_factory=list)
    unclaimed: list[StagedFile] = field(default_factory=list)
    exit_code: int = 0

    @property
    def files_transferred(self) -> int:
        return sum(o.files_transferred for o in self.outcomes)


class RemoteSource(Protocol):
    """Fetch files matching a source's pattern into a local directory."""

    def fetch(self, source: SourceDescriptor, local_dir: Path) -> FetchResult: ...

    def acknowledge(self, source: SourceDescriptor, remote_paths: list[str]) -> None: ...


class RemoteSink(Protocol):
    """Push files matching a pattern from a local directory to a destination."""

    def push(
        self, local_dir: Path, pattern: str, destination: DestinationDescriptor, subpath: str
    ) -> PushResult: ...
