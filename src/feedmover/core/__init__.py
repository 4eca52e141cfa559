"""
Core engine: feed registry, staging, change detection, renaming, archive and
the run orchestrator.
"""

from feedmover.core.orchestrator import Orchestrator
from feedmover.core.registry import ALL_FEEDS, FeedRegistry
from feedmover.core.transformer import FilenameTransformer

__all__ = [
    "ALL_FEEDS",
    "FeedRegistry",
    "FilenameTransformer",
    "Orchestrator",
]
