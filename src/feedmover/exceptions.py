"""
Feedmover exception hierarchy.

All domain-specific exceptions inherit from FeedMoverError, so a caller can
catch any mover failure with a single base class while still handling the
per-feed cases individually.

Hierarchy::

    FeedMoverError
    ├── ConfigurationError          - config loading, parsing, validation
    │   └── UnknownPlaceholder      - rename template uses an unknown field
    ├── InitializationError         - startup failures (fatal for the run)
    ├── EnvironmentResolutionError  - host does not map to an environment
    ├── CredentialNotFoundError     - credential key missing from the store
    ├── RunLockError                - another run holds the lock
    ├── StagingUnavailable          - staging directory cannot be prepared
    ├── TransferError               - per-feed transfer failures
    │   ├── FeedFetchFailed         - a source could not be fetched
    │   └── FeedPushFailed          - a destination push failed
    └── WorkflowTriggerFailed       - downstream import job failed
"""

from __future__ import annotations


class FeedMoverError(Exception):
    """Base exception for all feedmover errors."""

    def __init__(self, message: str, *, details: dict | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}


# --- Configuration -----------------------------------------------------------


class ConfigurationError(FeedMoverError):
    """Raised when configuration loading, parsing, or validation fails."""


class UnknownPlaceholder(ConfigurationError):
    """Raised when a rename template references a placeholder that does not exist."""

    def __init__(self, template: str, placeholder: str, *, feed_id: str | None = None) -> None:
        where = f" in feed '{feed_id}'" if feed_id else ""
        super().__init__(
            f"Unknown placeholder '{{{placeholder}}}' in rename template '{template}'{where}",
            details={"template": template, "placeholder": placeholder, "feed": feed_id},
        )
        self.template = template
        self.placeholder = placeholder
        self.feed_id = feed_id


# --- Initialization ----------------------------------------------------------


class InitializationError(FeedMoverError):
    """Raised during startup when a required component fails to initialize.

    Exception chaining is suppressed (``from None``) by the initializer to keep
    cron mail and log output short.
    """


class EnvironmentResolutionError(FeedMoverError):
    """Raised when the local host cannot be mapped to a deployment environment."""

    def __init__(self, message: str, *, hostname: str | None = None) -> None:
        super().__init__(message, details={"hostname": hostname})
        self.hostname = hostname


class CredentialNotFoundError(FeedMoverError):
    """Raised when a key is not present in the credential store."""

    def __init__(self, key: str) -> None:
        super().__init__(f"Credential not found: {key}", details={"key": key})
        self.key = key


class RunLockError(FeedMoverError):
    """Raised when the run lock is held by another live process."""

    def __init__(self, message: str, *, pid: str | None = None, path: str | None = None) -> None:
        super().__init__(message, details={"pid": pid, "path": path})
        self.pid = pid
        self.path = path


class StagingUnavailable(FeedMoverError):
    """Raised when the staging directory cannot be created or cleared."""

    def __init__(self, path: str, reason: str) -> None:
        super().__init__(f"Staging area unavailable: {path}: {reason}", details={"path": path})
        self.path = path


# --- Transfers ---------------------------------------------------------------


class TransferError(FeedMoverError):
    """Base class for per-feed transfer failures (never fatal to the run)."""


class FeedFetchFailed(TransferError):
    """Raised when a source cannot be fetched."""

    def __init__(self, source: str, message: str, *, cause: Exception | None = None) -> None:
        super().__init__(f"Fetch from source '{source}' failed: {message}", details={"source": source})
        self.source = source
        if cause is not None:
            self.__cause__ = cause


class FeedPushFailed(TransferError):
    """Raised when files cannot be pushed to one destination."""

    def __init__(self, destination: str, message: str, *, cause: Exception | None = None) -> None:
        super().__init__(
            f"Push to destination '{destination}' failed: {message}", details={"destination": destination}
        )
        self.destination = destination
        if cause is not None:
            self.__cause__ = cause


# --- Workflow ----------------------------------------------------------------


class WorkflowTriggerFailed(FeedMoverError):
    """Raised when a downstream import workflow exits non-zero or times out."""

    def __init__(self, workflow: str, message: str, *, host: str | None = None, exit_status: int | None = None) -> None:
        target = host or "local"
        super().__init__(
            f"Workflow '{workflow}' on {target} failed: {message}",
            details={"workflow": workflow, "host": host, "exit_status": exit_status},
        )
        self.workflow = workflow
        self.host = host
        self.exit_status = exit_status
