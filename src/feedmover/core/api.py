"""
Programmatic API for feedmover.
"""

from __future__ import annotations

from datetime import datetime
from pathlib import Path
from typing import Any

from feedmover.core.initialization import initialize
from feedmover.core.types import RunSummary
from feedmover.exceptions import ConfigurationError, InitializationError, RunLockError, StagingUnavailable
from feedmover.utils.logging import get_logger

logger = get_logger("feedmover.core.api")


def run(
    feeds: list[str] | str | None = None,
    project_dir: Path | None = None,
    env: str | None = None,
    verbose: bool = False,
    **kwargs: Any,
) -> RunSummary:
    """
    Run feeds once, the way a scheduled tick does.

    Args:
        feeds: Feed ids to process. None, an empty list or ``"ALL"`` runs
            every registered feed.
        project_dir: Project directory (default: current directory)
        env: Environment class; overrides host matching and FEEDMOVER_ENV
        verbose: Enable debug logging
        **kwargs: Passed to the initializer (``hostname``, ``configure_logging``)

    Returns:
        RunSummary with one outcome per feed. ``exit_code`` is 1 when the run
        could not start (configuration, environment, credentials, lock or
        staging), 0 otherwise, including when individual feeds failed.
    """
    project_dir = Path.cwd() if project_dir is None else Path(project_dir)
    feed_ids = [feeds] if isinstance(feeds, str) else list(feeds or [])

    try:
        context = initialize(project_dir, env=env, verbose=verbose, **kwargs)
    except InitializationError as e:
        logger.error(f"Initialization failed: {e}")
        return RunSummary(run_timestamp=datetime.now().replace(microsecond=0), exit_code=1)

    try:
        with context.lock:
            return context.orchestrator().run(feed_ids)
    except (RunLockError, StagingUnavailable, ConfigurationError) as e:
        logger.error(f"Run aborted: {e}")
        context.run_log.append(f"Run aborted: {e}", level="error")
        return RunSummary(run_timestamp=datetime.now().replace(microsecond=0), exit_code=1)
    finally:
        context.transports.close_all()
