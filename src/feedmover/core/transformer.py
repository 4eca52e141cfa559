"""
Rename staged files from per-feed templates.

Templates use ``{base}``, ``{ext}`` and ``{timestamp}``. Templates are
validated when the registry is loaded, so a typo fails the run before any
network activity.
"""

from __future__ import annotations

import re
import threading
from datetime import datetime

from feedmover.core.types import StagedFile
from feedmover.exceptions import ConfigurationError, UnknownPlaceholder

PLACEHOLDERS = frozenset({"base", "ext", "timestamp"})
# strftime directives allowed in a feed's timestamp format (fixed-width numeric)
TIMESTAMP_DIRECTIVES = frozenset({"Y", "m", "d", "H", "M", "S"})

_PLACEHOLDER_RE = re.compile(r"\{([^{}]*)\}")
_DIRECTIVE_RE = re.compile(r"%(.)")


def validate_template(template: str, *, feed_id: str | None = None) -> None:
    """Raise UnknownPlaceholder if the template names anything but the known fields."""
    if not template:
        raise ConfigurationError(f"Empty rename template for feed '{feed_id}'", details={"feed": feed_id})
    for match in _PLACEHOLDER_RE.finditer(template):
        if match.group(1) not in PLACEHOLDERS:
            raise UnknownPlaceholder(template, match.group(1), feed_id=feed_id)


def validate_timestamp_format(fmt: str, *, feed_id: str | None = None) -> None:
    directives = _DIRECTIVE_RE.findall(fmt)
    if not directives or any(d not in TIMESTAMP_DIRECTIVES for d in directives):
        raise ConfigurationError(
            f"Timestamp format '{fmt}' for feed '{feed_id}' may only use %Y %m %d %H %M %S",
            details={"feed": feed_id, "timestamp_format": fmt},
        )


def split_name(name: str) -> tuple[str, str]:
    """Split ``storm01.grb`` into ``("storm01", "grb")``; dotfiles have no extension."""
    stem, dot, ext = name.rpartition(".")
    if not dot or not stem:
        return name, ""
    return stem, ext


class FilenameTransformer:
    """
    Apply rename templates for one run.

    One instance lives for exactly one run: it holds the run timestamp and
    the names already produced per scope (the destination subpath), so two
    files that would land on the same name are told apart by a sequence
    number instead of by sleeping until the clock moves on. Names in
    different scopes never collide.
    """

    def __init__(self, run_timestamp: datetime):
        self.run_timestamp = run_timestamp
        self._issued: dict[str, set[str]] = {}
        self._sequence: dict[str, int] = {}
        self._lock = threading.Lock()

    def render(self, template: str, staged: StagedFile, timestamp_format: str = "%Y%m%d%H%M%S") -> str:
        """Pure substitution; same inputs always give the same name."""
        base, ext = split_name(staged.original_name)
        values = {
            "base": base,
            "ext": ext,
            "timestamp": self.run_timestamp.strftime(timestamp_format),
        }

        def substitute(match: re.Match) -> str:
            key = match.group(1)
            if key not in values:
                raise UnknownPlaceholder(template, key)
            return values[key]

        # Single pass: substituted text is never rescanned
        return _PLACEHOLDER_RE.sub(substitute, template)

    def apply(
        self,
        template: str,
        staged: StagedFile,
        timestamp_format: str = "%Y%m%d%H%M%S",
        *,
        scope: str = "",
    ) -> str:
        """Render the output name, disambiguating collisions within ``scope`` for this run."""
        name = self.render(template, staged, timestamp_format)
        with self._lock:
            return self._issue(name, scope)

    def _issue(self, name: str, scope: str) -> str:
        issued = self._issued.setdefault(scope, set())
        if name in issued:
            base, ext = split_name(name)
            while True:
                self._sequence[scope] = self._sequence.get(scope, 0) + 1
                n = self._sequence[scope]
                candidate = f"{base}_{n}.{ext}" if ext else f"{base}_{n}"
                if candidate not in issued:
                    name = candidate
                    break
        issued.add(name)
        return name
