"""
Deployment environment lookup.

Maps the local host to an environment class using the ``environments:``
config section::

    environments:
      prod:
        hosts: ["fews-prod*", "rfc-mover01"]
        destination_server: fews-prod01
        database_id: FEWS_PROD
        destinations: [prod, backup]
      dev:
        hosts: ["*-dev*"]
        destination_server: fews-dev01
        database_id: FEWS_DEV
        destinations: [dev]

The result is constant for the run.
"""

from __future__ import annotations

import fnmatch
import socket
from typing import Any

from feedmover.core.types import EnvironmentInfo
from feedmover.exceptions import EnvironmentResolutionError


class EnvironmentResolver:
    def __init__(self, environments: dict[str, Any], *, forced: str | None = None, hostname: str | None = None):
        self.environments = environments or {}
        self.forced = forced
        self._hostname = hostname

    @property
    def hostname(self) -> str:
        return self._hostname or socket.gethostname()

    def resolve(self) -> EnvironmentInfo:
        if self.forced:
            if self.forced not in self.environments:
                raise EnvironmentResolutionError(
                    f"Environment '{self.forced}' is not configured. Available: {sorted(self.environments)}"
                )
            return self._info(self.forced)

        host = self.hostname.lower()
        short = host.split(".", 1)[0]
        for env_class, env_cfg in self.environments.items():
            for pattern in (env_cfg or {}).get("hosts", []):
                pattern = str(pattern).lower()
                if fnmatch.fnmatchcase(host, pattern) or fnmatch.fnmatchcase(short, pattern):
                    return self._info(env_class)

        raise EnvironmentResolutionError(
            f"Host '{self.hostname}' does not belong to any configured environment",
            hostname=self.hostname,
        )

    def _info(self, env_class: str) -> EnvironmentInfo:
        env_cfg = self.environments.get(env_class) or {}
        return EnvironmentInfo(
            environment_class=env_class,
            destination_server=str(env_cfg.get("destination_server", "")),
            database_id=str(env_cfg.get("database_id", "")),
            destinations=tuple(env_cfg.get("destinations") or ()),
        )
