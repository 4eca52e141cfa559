"""
Configuration management.

Configuration file parsing, overlay merge and placeholder resolution.
"""

from feedmover.config.loader import Config, load_config
from feedmover.config.resolver import resolve_config

__all__ = [
    "load_config",
    "Config",
    "resolve_config",
]
