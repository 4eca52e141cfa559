"""
Feedmover startup initialization.

Initializes every component in order, before any network activity:
1. Config (with validation)
2. Logging
3. Credential store
4. Environment (host -> environment class, destination list)
5. Feed registry (rename templates validated here)
6. Transports (connections; every source/destination checked)
7. Local stores (staging, archive, run log, lock) and collaborators

Any failure is fatal for the run and surfaces as InitializationError.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

from feedmover.config.loader import Config, load_config
from feedmover.core.archive import ArchiveStore
from feedmover.core.lock import RunLock
from feedmover.core.orchestrator import Orchestrator
from feedmover.core.registry import FeedRegistry
from feedmover.core.runlog import RunLog
from feedmover.core.staging import StagingArea
from feedmover.core.types import EnvironmentInfo
from feedmover.exceptions import FeedMoverError, InitializationError
from feedmover.integrations.credentials import CredentialStore
from feedmover.integrations.environment import EnvironmentResolver
from feedmover.integrations.notify import Notifier
from feedmover.integrations.workflow import WorkflowTrigger
from feedmover.transports.manager import TransportManager
from feedmover.utils.logging import get_logger, setup_logging_from_config

logger = get_logger("feedmover.core.initialization")

ENV_VAR = "FEEDMOVER_ENV"


@dataclass
class RunContext:
    """Everything one run needs, built once at startup."""

    project_dir: Path
    config: Config
    environment: EnvironmentInfo
    credentials: CredentialStore
    registry: FeedRegistry
    transports: TransportManager
    staging: StagingArea
    archive: ArchiveStore
    run_log: RunLog
    lock: RunLock
    trigger: WorkflowTrigger
    notifier: Notifier

    def orchestrator(self) -> Orchestrator:
        run_cfg = self.config.section("run")
        return Orchestrator(
            self.registry,
            self.staging,
            self.archive,
            self.transports,
            self.trigger,
            self.run_log,
            self.environment,
            notifier=self.notifier,
            max_workers=int(run_cfg.get("max_workers", 1)),
            notify_on_failure=bool(self.config.get("notify.on_failure", True)),
        )


class FeedMoverInitializer:
    """Handles complete initialization of a feedmover project."""

    def __init__(
        self,
        project_dir: Path,
        env: str | None = None,
        verbose: bool = False,
        hostname: str | None = None,
        configure_logging: bool = True,
    ):
        self.project_dir = Path(project_dir)
        self.env = env or os.environ.get(ENV_VAR)
        self.verbose = verbose
        self.hostname = hostname
        self.configure_logging = configure_logging

    def initialize_all(self) -> RunContext:
        """
        Raises:
            InitializationError: If any initialization step fails
        """
        config = self._initialize_config()
        if self.configure_logging:
            self._initialize_logging(config)
        credentials = self._step("credential store", lambda: CredentialStore.from_config(
            config.section("credentials"), self.project_dir
        ))
        environment = self._step("environment", lambda: EnvironmentResolver(
            config.section("environments"), forced=self.env, hostname=self.hostname
        ).resolve())
        if not self.env:
            # Overlay for the environment this host belongs to
            config = self._initialize_config(environment.environment_class)
        registry = self._step("feed registry", lambda: FeedRegistry.from_config(config.data))
        transports = self._step("connections", lambda: TransportManager(config.data, credentials))
        self._step("configuration check", lambda: self._check_references(registry, transports, environment))
        trigger = self._step("workflow trigger", lambda: WorkflowTrigger(
            config.section("workflow"), database_id=environment.database_id, credentials=credentials
        ))

        run_log_path = config.get("run_log.path", "logs/run.log")
        context = RunContext(
            project_dir=self.project_dir,
            config=config,
            environment=environment,
            credentials=credentials,
            registry=registry,
            transports=transports,
            staging=StagingArea(self._path(config.get("staging.path", "staging"))),
            archive=ArchiveStore(
                self._path(config.get("archive.path", "archive")),
                keep_history=bool(config.get("archive.keep_history", True)),
            ),
            run_log=RunLog(self._path(run_log_path) if run_log_path else None),
            lock=RunLock(
                self._path(config.get("lock.path", "feedmover.lock")),
                stale_after_s=float(config.get("lock.stale_after_s", 3600)),
            ),
            trigger=trigger,
            notifier=Notifier(config.section("notify"), credentials),
        )
        logger.debug(
            f"Initialized {len(registry)} feed(s) for environment '{environment.environment_class}' "
            f"(destination server {environment.destination_server or '-'})"
        )
        return context

    def _initialize_config(self, env: str | None = None) -> Config:
        """Initialize and validate configuration."""
        try:
            config = load_config(self.project_dir, env=env or self.env)
            config.validate()
            return config
        except (FileNotFoundError, PermissionError, ValueError, yaml.YAMLError) as e:
            raise InitializationError(str(e)) from None
        except FeedMoverError as e:
            raise InitializationError(str(e)) from None
        except Exception as e:
            raise InitializationError(f"Unexpected error loading config: {e}") from None

    def _initialize_logging(self, config: Config) -> None:
        try:
            data = dict(config.data)
            if self.verbose:
                data["logging"] = {**config.section("logging"), "level": "DEBUG"}
            setup_logging_from_config(data, project_dir=self.project_dir)
        except (OSError, TypeError, ValueError) as e:
            raise InitializationError(f"Failed to initialize logging: {e}") from None

    def _step(self, what: str, fn: Any) -> Any:
        try:
            return fn()
        except FeedMoverError as e:
            raise InitializationError(f"{what}: {e}") from None
        except (OSError, ValueError, TypeError) as e:
            raise InitializationError(f"Failed to initialize {what}: {e}") from None

    def _check_references(
        self, registry: FeedRegistry, transports: TransportManager, environment: EnvironmentInfo
    ) -> None:
        for source in registry.sources.values():
            transports.source(source.connection)
        for dest in registry.destinations.values():
            transports.sink(dest.connection)
        for name in environment.destinations:
            if name not in registry.destinations:
                raise InitializationError(
                    f"Environment '{environment.environment_class}' lists unknown destination '{name}'. "
                    f"Available: {sorted(registry.destinations)}"
                )
        for feed in registry:
            if not (feed.destinations or environment.destinations):
                raise InitializationError(
                    f"Feed '{feed.id}' has no destinations in environment '{environment.environment_class}'"
                )

    def _path(self, value: str) -> Path:
        path = Path(value)
        return path if path.is_absolute() else self.project_dir / path


def initialize(
    project_dir: Path, env: str | None = None, verbose: bool = False, **kwargs: Any
) -> RunContext:
    """Initialize a feedmover project; see FeedMoverInitializer."""
    return FeedMoverInitializer(project_dir, env=env, verbose=verbose, **kwargs).initialize_all()
