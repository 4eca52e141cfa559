"""
Registry-driven transfer orchestration.

One call to ``Orchestrator.run()`` is one scheduled tick::

    Stage -> Detect -> [no change: cleanup] -> Transform -> Push -> Trigger -> Archive -> Log

Failures are isolated per feed (a source that cannot be reached only fails
the feeds drawing from it) and per destination (every destination is
attempted). Only a staging failure aborts the run.
"""

from __future__ import annotations

import os
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from feedmover.core.archive import ArchiveStore
from feedmover.core.change_detector import ChangeDetector
from feedmover.core.registry import FeedRegistry
from feedmover.core.runlog import RunLog
from feedmover.core.staging import StagingArea
from feedmover.core.transformer import FilenameTransformer
from feedmover.core.types import (
    DestinationDescriptor,
    DestinationResult,
    EnvironmentInfo,
    FeedDescriptor,
    FetchResult,
    PushResult,
    RunSummary,
    SourceDescriptor,
    StagedFile,
    TransferOutcome,
)
from feedmover.exceptions import FeedFetchFailed, FeedPushFailed, WorkflowTriggerFailed
from feedmover.utils.logging import get_logger

logger = get_logger("feedmover.core.orchestrator")

OUTGOING = "_out"


@dataclass
class _FeedResult:
    outcome: TransferOutcome
    # Staged files whose upstream copy may now be removed
    delivered: list[StagedFile] = field(default_factory=list)


class Orchestrator:
    """
    Ties the registry, staging area, archive, transports and workflow
    trigger together for one run.

    ``transports`` must provide ``source(connection_name)`` and
    ``sink(connection_name)``; ``trigger`` provides
    ``run(workflow_name, target_host)``; ``notifier`` provides
    ``notify(subject, body)``.
    """

    def __init__(
        self,
        registry: FeedRegistry,
        staging: StagingArea,
        archive: ArchiveStore,
        transports: Any,
        trigger: Any,
        run_log: RunLog,
        environment: EnvironmentInfo,
        *,
        notifier: Any | None = None,
        detector: ChangeDetector | None = None,
        max_workers: int = 1,
        notify_on_failure: bool = True,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.registry = registry
        self.staging = staging
        self.archive = archive
        self.transports = transports
        self.trigger = trigger
        self.run_log = run_log
        self.environment = environment
        self.notifier = notifier
        self.detector = detector or ChangeDetector()
        self.max_workers = max(1, int(max_workers))
        self.notify_on_failure = notify_on_failure
        self.clock = clock

    def run(self, feed_ids: list[str] | None = None) -> RunSummary:
        """
        Process the selected feeds (all for None or ``["ALL"]``).

        Raises:
            StagingUnavailable: staging directory cannot be prepared
            ConfigurationError: an unknown feed id was requested
        """
        run_timestamp = self.clock().replace(microsecond=0)
        feeds = self.registry.select(feed_ids)
        transformer = FilenameTransformer(run_timestamp)
        summary = RunSummary(run_timestamp=run_timestamp)

        self.staging.prepare()
        already_quarantined = {(sf.local_path, sf.size_bytes) for sf in self.staging.list_unclaimed()}
        self.run_log.append(
            f"Run {run_timestamp:%Y%m%d%H%M%S} started: {len(feeds)} feed(s), "
            f"environment {self.environment.environment_class}"
        )

        # Stage
        sources = _unique(self.registry.sources[f.source] for f in feeds)
        fetched: list[StagedFile] = []
        fetch_errors: dict[str, str] = {}
        for source, result in zip(sources, self._map(self._fetch, sources)):
            if result.error:
                fetch_errors[source.name] = result.error
                # Partially fetched files stay in the inbox; nothing of a failed source is processed
                continue
            fetched.extend(result.files_retrieved)

        # Claim against the whole registry so files of unselected feeds are not reported as unclaimed
        fetched_sources = {s.name for s in sources} - set(fetch_errors)
        claimable = [f for f in self.registry if f.source in fetched_sources]
        claimed, unclaimed = self.staging.claim(fetched, claimable)
        summary.unclaimed = unclaimed
        if unclaimed:
            self._report_unclaimed(unclaimed, already_quarantined)

        # Detect .. Archive, per feed
        results = self._map(
            lambda feed: self._process_feed(
                feed, claimed.get(feed.id, []), fetch_errors.get(feed.source), transformer, run_timestamp
            ),
            feeds,
        )
        summary.outcomes = [r.outcome for r in results]

        self._acknowledge(results)
        self._sweep(feeds)

        failed = [o for o in summary.outcomes if not o.succeeded]
        counts = ", ".join(f"{o.feed_id}={o.files_transferred}" for o in summary.outcomes) or "none"
        self.run_log.append(
            f"Run {run_timestamp:%Y%m%d%H%M%S} finished: {summary.files_transferred} file(s) transferred "
            f"({counts}); {len(failed)} feed(s) failed"
        )
        if failed and self.notify_on_failure:
            self._notify(
                f"{len(failed)} feed(s) failed",
                "\n".join(f"{o.feed_id}: {o.error_detail}" for o in failed),
            )
        return summary

    # --- stages -------------------------------------------------------------

    def _fetch(self, source: SourceDescriptor) -> FetchResult:
        try:
            conn = self.transports.source(source.connection)
            result = conn.fetch(source, self.staging.inbox(source.name))
        except Exception as e:
            result = FetchResult(error=f"{type(e).__name__}: {e}")
        if result.error:
            self.run_log.append(str(FeedFetchFailed(source.name, result.error)), level="error")
        else:
            logger.info(f"Fetched {len(result.files_retrieved)} file(s) from source '{source.name}'")
        return result

    def _process_feed(
        self,
        feed: FeedDescriptor,
        files: list[StagedFile],
        fetch_error: str | None,
        transformer: FilenameTransformer,
        run_timestamp: datetime,
    ) -> _FeedResult:
        outcome = TransferOutcome(feed_id=feed.id, files_considered=len(files))
        result = _FeedResult(outcome=outcome)

        if fetch_error:
            outcome.succeeded = False
            outcome.error_detail = str(FeedFetchFailed(feed.source, fetch_error))
            self.run_log.append(f"{feed.id}: skipped, {outcome.error_detail}", level="error")
            return result

        try:
            if not files:
                self.run_log.append(f"{feed.id}: no files found")
                return result

            new_files = self._detect(feed, files, result)
            if not new_files:
                self.run_log.append(f"{feed.id}: no new files ({outcome.skipped_unchanged} unchanged)")
                return result

            outgoing = self._transform(feed, new_files, transformer)
            succeeded = self._push(feed, outcome)
            if not succeeded:
                outcome.succeeded = False
                outcome.error_detail = "; ".join(d.error or "" for d in outcome.failed_destinations)
                self.run_log.append(f"{feed.id}: transfer failed, {outcome.error_detail}", level="error")
                return result

            outcome.files_transferred = len(outgoing)
            if outcome.failed_destinations:
                outcome.succeeded = False
                outcome.error_detail = "; ".join(d.error or "" for d in outcome.failed_destinations)

            self._trigger(feed, succeeded, outcome)

            # Archive strictly after a confirmed push
            for sf in outgoing:
                self.archive.commit(feed.id, sf, self.staging, run_timestamp=run_timestamp)
            result.delivered.extend(outgoing)

            self.run_log.append(
                f"{feed.id}: transferred {outcome.files_transferred} file(s) to "
                f"{', '.join(d.name for d in succeeded)}"
                + (f"; failed: {outcome.error_detail}" if outcome.failed_destinations else "")
            )
        except Exception as e:
            logger.exception(f"Unexpected error processing feed '{feed.id}'")
            outcome.succeeded = False
            outcome.error_detail = f"{type(e).__name__}: {e}"
            self.run_log.append(f"{feed.id}: failed, {outcome.error_detail}", level="error")
        return result

    def _detect(self, feed: FeedDescriptor, files: list[StagedFile], result: _FeedResult) -> list[StagedFile]:
        if not feed.detect_changes:
            return list(files)
        # One snapshot for every file of this feed in this run
        record = self.archive.get(feed.id)
        new_files = []
        for sf in files:
            if self.detector.is_new(sf, record):
                new_files.append(sf)
            else:
                logger.info(f"{feed.id}: {sf.original_name} unchanged since last transfer")
                self.staging.discard(sf)
                result.outcome.skipped_unchanged += 1
                # Already delivered on an earlier run
                result.delivered.append(sf)
        return new_files

    def _transform(
        self, feed: FeedDescriptor, files: list[StagedFile], transformer: FilenameTransformer
    ) -> list[StagedFile]:
        out_dir = self.staging.feed_dir(feed.id) / OUTGOING
        out_dir.mkdir(parents=True, exist_ok=True)
        outgoing = []
        for sf in files:
            name = transformer.apply(
                feed.rename_template, sf, feed.timestamp_format, scope=feed.destination_subpath
            )
            target = out_dir / name
            os.replace(sf.local_path, target)
            outgoing.append(sf.moved_to(target))
            logger.debug(f"{feed.id}: {sf.original_name} -> {name}")
        return outgoing

    def _destinations_for(self, feed: FeedDescriptor) -> list[DestinationDescriptor]:
        names = feed.destinations or self.environment.destinations
        return [self.registry.destinations[name] for name in names]

    def _push(self, feed: FeedDescriptor, outcome: TransferOutcome) -> list[DestinationDescriptor]:
        """Push the feed's outgoing directory to every destination; returns those that succeeded."""
        out_dir = self.staging.feed_dir(feed.id) / OUTGOING
        destinations = self._destinations_for(feed)
        if not destinations:
            outcome.destinations.append(
                DestinationResult(destination="-", succeeded=False, error="no destinations configured")
            )
            return []

        succeeded = []
        for dest in destinations:
            try:
                sink = self.transports.sink(dest.connection)
                pushed = sink.push(out_dir, "*", dest, feed.destination_subpath)
            except Exception as e:
                pushed = PushResult(error=f"{type(e).__name__}: {e}")
            if pushed.error:
                err = FeedPushFailed(dest.name, pushed.error)
                self.run_log.append(f"{feed.id}: {err}", level="error")
                outcome.destinations.append(
                    DestinationResult(dest.name, succeeded=False, files_sent=len(pushed.files_sent), error=str(err))
                )
            else:
                outcome.destinations.append(DestinationResult(dest.name, succeeded=True, files_sent=len(pushed.files_sent)))
                succeeded.append(dest)
        return succeeded

    def _trigger(self, feed: FeedDescriptor, destinations: list[DestinationDescriptor], outcome: TransferOutcome) -> None:
        if not feed.workflow_name:
            return
        # Once per workflow execution context among the destinations that received the files
        for host in _unique(d.workflow_host for d in destinations):
            try:
                self.trigger.run(feed.workflow_name, host)
                outcome.triggered.append(host or "local")
            except WorkflowTriggerFailed as e:
                self.run_log.append(f"{feed.id}: {e}", level="warning")
            except Exception as e:
                # Files are already delivered; archiving still follows
                logger.exception(f"Workflow trigger for feed '{feed.id}' raised unexpectedly")
                err = WorkflowTriggerFailed(feed.workflow_name, f"{type(e).__name__}: {e}", host=host)
                self.run_log.append(f"{feed.id}: {err}", level="warning")

    def _acknowledge(self, results: list[_FeedResult]) -> None:
        """Remove delivered files upstream for sources that ask for it."""
        by_source: dict[str, list[str]] = {}
        for r in results:
            for sf in r.delivered:
                if sf.source and sf.remote_path:
                    by_source.setdefault(sf.source, []).append(sf.remote_path)

        for source_name, remote_paths in by_source.items():
            source = self.registry.sources.get(source_name)
            if source is None or not source.delete_after_fetch:
                continue
            try:
                self.transports.source(source.connection).acknowledge(source, remote_paths)
                logger.info(f"Removed {len(remote_paths)} delivered file(s) from source '{source_name}'")
            except Exception as e:
                self.run_log.append(f"Could not remove delivered files from source '{source_name}': {e}", level="warning")

    def _sweep(self, feeds: list[FeedDescriptor]) -> None:
        now = self.clock()
        for feed in feeds:
            try:
                self.archive.prune(feed.id, feed.retention_days, now=now)
            except OSError as e:
                logger.warning(f"Archive retention sweep failed for feed '{feed.id}': {e}")

    # --- reporting ----------------------------------------------------------

    def _report_unclaimed(self, unclaimed: list[StagedFile], already_quarantined: set) -> None:
        names = ", ".join(f"{sf.source}:{sf.original_name}" for sf in unclaimed)
        self.run_log.append(f"WARNING {len(unclaimed)} unclaimed file(s): {names}", level="warning")
        # Only files new to the quarantine are emailed
        fresh = [sf for sf in unclaimed if (sf.local_path, sf.size_bytes) not in already_quarantined]
        if not fresh:
            return
        self._notify(
            f"{len(fresh)} unclaimed file(s)",
            "These files matched no feed pattern and were quarantined in "
            f"{self.staging.unclaimed_dir}:\n\n" + "\n".join(f"  {sf.source}: {sf.original_name}" for sf in fresh),
        )

    def _notify(self, subject: str, body: str) -> None:
        if self.notifier is not None:
            self.notifier.notify(subject, body)

    def _map(self, fn: Callable, items: list) -> list:
        if self.max_workers == 1 or len(items) <= 1:
            return [fn(item) for item in items]
        with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
            return list(pool.map(fn, items))


def _unique(items) -> list:
    """Order-preserving de-duplication."""
    seen = []
    for item in items:
        if item not in seen:
            seen.append(item)
    return seen
