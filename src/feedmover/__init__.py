"""
Feedmover - scheduled, registry-driven file transfer between remote hosts.
"""

__version__ = "0.1.0"

from feedmover.core.api import run
from feedmover.core.types import (
    DestinationDescriptor,
    FeedDescriptor,
    RunSummary,
    SourceDescriptor,
    StagedFile,
    TransferOutcome,
)

# Exceptions
from feedmover.exceptions import (
    ConfigurationError,
    CredentialNotFoundError,
    EnvironmentResolutionError,
    FeedFetchFailed,
    FeedMoverError,
    FeedPushFailed,
    InitializationError,
    RunLockError,
    StagingUnavailable,
    TransferError,
    UnknownPlaceholder,
    WorkflowTriggerFailed,
)

# Logging utilities
from feedmover.utils.logging import get_logger, setup_logging, setup_logging_from_config

__all__ = [
    "__version__",
    "run",
    # Types
    "DestinationDescriptor",
    "FeedDescriptor",
    "RunSummary",
    "SourceDescriptor",
    "StagedFile",
    "TransferOutcome",
    # Exceptions
    "ConfigurationError",
    "CredentialNotFoundError",
    "EnvironmentResolutionError",
    "FeedFetchFailed",
    "FeedMoverError",
    "FeedPushFailed",
    "InitializationError",
    "RunLockError",
    "StagingUnavailable",
    "TransferError",
    "UnknownPlaceholder",
    "WorkflowTriggerFailed",
    # Logging
    "get_logger",
    "setup_logging",
    "setup_logging_from_config",
]
