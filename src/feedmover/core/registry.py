"""
Feed registry.

Turns the ``sources``, ``destinations`` and ``feeds`` sections of the
configuration into immutable descriptors, validating every rename template
at load time.

Example::

    sources:
      - name: nws_sbn
        connection: nws_sftp
        remote_dir: /outgoing/qpe
        pattern: "*"
        delete_after_fetch: true

    destinations:
      prod:
        connection: prod_share
        root: /Import
        workflow_host: fews-prod01

    feeds:
      - id: qpe_grib
        source: nws_sbn
        source_pattern: "*.grb"
        destination_subpath: QPE
        rename_template: "{base}_{timestamp}.grib"
        workflow_name: ImportQPE
        retention_days: 2
"""

from __future__ import annotations

from typing import Any

from feedmover.core.transformer import validate_template, validate_timestamp_format
from feedmover.core.types import DestinationDescriptor, FeedDescriptor, SourceDescriptor
from feedmover.exceptions import ConfigurationError

ALL_FEEDS = "ALL"

_REQUIRED_FEED_KEYS = ("id", "source", "source_pattern", "rename_template")


class FeedRegistry:
    """Registry of feeds, in configuration order."""

    def __init__(
        self,
        feeds: list[FeedDescriptor],
        sources: dict[str, SourceDescriptor],
        destinations: dict[str, DestinationDescriptor],
    ):
        self._feeds = list(feeds)
        self.sources = dict(sources)
        self.destinations = dict(destinations)
        self._validate()

    @classmethod
    def from_config(cls, config: dict[str, Any]) -> FeedRegistry:
        sources = {}
        for raw in config.get("sources") or []:
            src = _source_from_config(raw)
            if src.name in sources:
                raise ConfigurationError(f"Duplicate source name '{src.name}'")
            sources[src.name] = src

        destinations = {}
        for name, raw in (config.get("destinations") or {}).items():
            if not isinstance(raw, dict) or not raw.get("connection"):
                raise ConfigurationError(f"Destination '{name}' requires a 'connection'")
            destinations[name] = DestinationDescriptor(
                name=name,
                connection=raw["connection"],
                root=str(raw.get("root", "")),
                workflow_host=raw.get("workflow_host"),
            )

        feeds = [_feed_from_config(raw) for raw in config.get("feeds") or []]
        return cls(feeds, sources, destinations)

    def _validate(self) -> None:
        seen: set[str] = set()
        for feed in self._feeds:
            if feed.id in seen:
                raise ConfigurationError(f"Duplicate feed id '{feed.id}'", details={"feed": feed.id})
            if feed.id == ALL_FEEDS:
                raise ConfigurationError(f"'{ALL_FEEDS}' is reserved and cannot be a feed id")
            if feed.id.startswith("_"):
                # Staging keeps its own directories (_inbox, _unclaimed) beside the feed directories
                raise ConfigurationError(f"Feed id '{feed.id}' may not start with '_'")
            seen.add(feed.id)
            if feed.source not in self.sources:
                raise ConfigurationError(
                    f"Feed '{feed.id}' references unknown source '{feed.source}'. Available: {sorted(self.sources)}",
                    details={"feed": feed.id},
                )
            for dest in feed.destinations or ():
                if dest not in self.destinations:
                    raise ConfigurationError(
                        f"Feed '{feed.id}' references unknown destination '{dest}'. "
                        f"Available: {sorted(self.destinations)}",
                        details={"feed": feed.id},
                    )
            if feed.retention_days < 0:
                raise ConfigurationError(f"Feed '{feed.id}': retention_days must be >= 0")
            validate_template(feed.rename_template, feed_id=feed.id)
            validate_timestamp_format(feed.timestamp_format, feed_id=feed.id)

    def __iter__(self):
        return iter(self._feeds)

    def __len__(self) -> int:
        return len(self._feeds)

    def get(self, feed_id: str) -> FeedDescriptor:
        for feed in self._feeds:
            if feed.id == feed_id:
                return feed
        raise ConfigurationError(f"Unknown feed '{feed_id}'. Available: {self.ids()}")

    def ids(self) -> list[str]:
        return [f.id for f in self._feeds]

    def select(self, feed_ids: list[str] | None = None) -> list[FeedDescriptor]:
        """Feeds to process: all of them for None/empty/``ALL``, else the named ones in registry order."""
        if not feed_ids or ALL_FEEDS in feed_ids:
            return list(self._feeds)
        wanted = set(feed_ids)
        for feed_id in wanted:
            self.get(feed_id)
        return [f for f in self._feeds if f.id in wanted]


def _source_from_config(raw: Any) -> SourceDescriptor:
    if not isinstance(raw, dict) or not raw.get("name") or not raw.get("connection"):
        raise ConfigurationError(f"Source entries require 'name' and 'connection', got: {raw}")
    max_files = raw.get("max_files")
    return SourceDescriptor(
        name=str(raw["name"]),
        connection=str(raw["connection"]),
        remote_dir=str(raw.get("remote_dir", "")),
        pattern=str(raw.get("pattern", "*")),
        delete_after_fetch=bool(raw.get("delete_after_fetch", False)),
        max_files=int(max_files) if max_files is not None else None,
        newest_first=bool(raw.get("newest_first", True)),
    )


def _feed_from_config(raw: Any) -> FeedDescriptor:
    if not isinstance(raw, dict):
        raise ConfigurationError(f"Feed entries must be mappings, got: {raw!r}")
    missing = [k for k in _REQUIRED_FEED_KEYS if not raw.get(k)]
    if missing:
        raise ConfigurationError(
            f"Feed '{raw.get('id', '?')}' is missing required key(s): {', '.join(missing)}",
            details={"feed": raw.get("id")},
        )
    destinations = raw.get("destinations")
    try:
        retention_days = int(raw.get("retention_days", 3))
    except (TypeError, ValueError):
        raise ConfigurationError(f"Feed '{raw['id']}': retention_days must be an integer") from None
    return FeedDescriptor(
        id=str(raw["id"]),
        source=str(raw["source"]),
        source_pattern=str(raw["source_pattern"]),
        destination_subpath=str(raw.get("destination_subpath", "")),
        rename_template=str(raw["rename_template"]),
        workflow_name=str(raw.get("workflow_name") or ""),
        destinations=tuple(destinations) if destinations else None,
        retention_days=retention_days,
        detect_changes=bool(raw.get("detect_changes", True)),
        timestamp_format=str(raw.get("timestamp_format", "%Y%m%d%H%M%S")),
    )
