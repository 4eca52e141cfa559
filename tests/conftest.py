"""
Shared fixtures: in-memory sources, sinks and workflow trigger, plus a
builder for orchestrators over a temporary staging and archive tree.
"""

from datetime import datetime
from pathlib import Path

import pytest

from feedmover.core.archive import ArchiveStore
from feedmover.core.orchestrator import Orchestrator
from feedmover.core.registry import FeedRegistry
from feedmover.core.runlog import RunLog
from feedmover.core.staging import StagingArea
from feedmover.core.types import (
    DestinationDescriptor,
    EnvironmentInfo,
    FeedDescriptor,
    FetchResult,
    PushResult,
    SourceDescriptor,
    StagedFile,
)
from feedmover.exceptions import WorkflowTriggerFailed

RUN_TIME = datetime(2024, 1, 2, 3, 4, 5)


class FakeSource:
    """Remote directory held in memory: ``files`` maps name -> bytes."""

    can_fetch = True
    can_push = False

    def __init__(self, files=None, error=None):
        self.files = dict(files or {})
        self.error = error
        self.fetch_calls = 0
        self.acknowledged = []

    def fetch(self, source, local_dir):
        self.fetch_calls += 1
        if self.error:
            return FetchResult(error=self.error)
        local_dir.mkdir(parents=True, exist_ok=True)
        staged = []
        for name, data in sorted(self.files.items()):
            path = local_dir / name
            path.write_bytes(data)
            staged.append(StagedFile.from_path(path, source=source.name, remote_path=f"/remote/{name}"))
        return FetchResult(files_retrieved=staged)

    def acknowledge(self, source, remote_paths):
        self.acknowledged.extend(remote_paths)
        for remote_path in remote_paths:
            self.files.pop(Path(remote_path).name, None)


class FakeSink:
    """Destination that keeps what it receives: ``received[subpath/name] = bytes``."""

    can_fetch = False
    can_push = True

    def __init__(self, error=None):
        self.error = error
        self.received = {}
        self.push_calls = 0

    def push(self, local_dir, pattern, destination, subpath):
        self.push_calls += 1
        if self.error:
            return PushResult(error=self.error)
        sent = []
        for path in sorted(local_dir.glob(pattern)):
            self.received[f"{subpath}/{path.name}" if subpath else path.name] = path.read_bytes()
            sent.append(path.name)
        return PushResult(files_sent=sent)


class FakeTransports:
    def __init__(self, connections):
        self.connections = connections

    def source(self, name):
        return self.connections[name]

    def sink(self, name):
        return self.connections[name]


class FakeTrigger:
    def __init__(self, fail_hosts=()):
        self.calls = []
        self.fail_hosts = set(fail_hosts)

    def run(self, workflow_name, target_host=None):
        self.calls.append((workflow_name, target_host))
        if target_host in self.fail_hosts:
            raise WorkflowTriggerFailed(workflow_name, "exit status 1", host=target_host, exit_status=1)
        return 0


class FakeNotifier:
    def __init__(self):
        self.sent = []

    def notify(self, subject, body):
        self.sent.append((subject, body))
        return True


class Clock:
    """Settable clock for run timestamps and retention."""

    def __init__(self, now=RUN_TIME):
        self.now = now

    def __call__(self):
        return self.now


def feed(feed_id, source="nws", pattern="*.grb", template="{base}_{timestamp}.{ext}", **kwargs):
    kwargs.setdefault("destination_subpath", "QPE")
    return FeedDescriptor(
        id=feed_id, source=source, source_pattern=pattern, rename_template=template, **kwargs
    )


@pytest.fixture
def rig(tmp_path):
    """
    Orchestrator factory. ``rig.build(feeds, ...)`` wires a registry over one
    in-memory source ``nws`` and destinations ``prod``/``backup``.
    """
    return Rig(tmp_path)


class Rig:
    def __init__(self, root):
        self.root = root
        self.source = FakeSource()
        self.prod = FakeSink()
        self.backup = FakeSink()
        self.trigger = FakeTrigger()
        self.notifier = FakeNotifier()
        self.clock = Clock()
        self.staging = StagingArea(root / "staging")
        self.archive = ArchiveStore(root / "archive")
        self.run_log = RunLog(root / "logs" / "run.log")
        self.extra_connections = {}

    def build(self, feeds, *, sources=None, destinations=None, env_destinations=("prod",), max_workers=1):
        sources = sources or {"nws": SourceDescriptor(name="nws", connection="nws_conn", remote_dir="/outgoing")}
        destinations = destinations or {
            "prod": DestinationDescriptor("prod", "prod_conn", "/Import", workflow_host="fews-prod01"),
            "backup": DestinationDescriptor("backup", "backup_conn", "/Import", workflow_host="fews-prod01"),
        }
        registry = FeedRegistry(feeds, sources, destinations)
        transports = FakeTransports(
            {"nws_conn": self.source, "prod_conn": self.prod, "backup_conn": self.backup, **self.extra_connections}
        )
        environment = EnvironmentInfo("prod", "fews-prod01", "FEWS_PROD", tuple(env_destinations))
        return Orchestrator(
            registry,
            self.staging,
            self.archive,
            transports,
            self.trigger,
            self.run_log,
            environment,
            notifier=self.notifier,
            max_workers=max_workers,
            clock=self.clock,
        )

    def log_lines(self):
        path = self.run_log.path
        return path.read_text().splitlines() if path.exists() else []


def make_project(root, **overrides):
    """
    Write a runnable project under ``root``: one filesystem source
    (``upstream/outgoing``) and one filesystem destination (``fews/Import``).
    Top-level sections in ``overrides`` replace the defaults.
    """
    import yaml

    config = {
        "project": {"name": "rfc-feeds"},
        "staging": {"path": "staging"},
        "archive": {"path": "archive"},
        "run_log": {"path": "logs/run.log"},
        "lock": {"path": "feedmover.lock"},
        "logging": {"level": "INFO", "console_enabled": False},
        "environments": {
            "test": {
                "hosts": ["*"],
                "destination_server": "fews-test01",
                "database_id": "FEWS_TEST",
                "destinations": ["fews"],
            }
        },
        "connections": {
            "upstream": {"type": "filesystem", "config": {"root_path": str(root / "upstream")}},
            "fews_share": {"type": "filesystem", "config": {"root_path": str(root / "fews")}},
        },
        "sources": [{"name": "nws", "connection": "upstream", "remote_dir": "outgoing", "delete_after_fetch": True}],
        "destinations": {"fews": {"connection": "fews_share", "root": "Import"}},
        "feeds": [
            {
                "id": "qpe",
                "source": "nws",
                "source_pattern": "*.grb",
                "destination_subpath": "QPE",
                "rename_template": "{base}_{timestamp}.grib",
                "workflow_name": "ImportQPE",
            }
        ],
    }
    config.update(overrides)
    root.mkdir(parents=True, exist_ok=True)
    (root / "upstream" / "outgoing").mkdir(parents=True, exist_ok=True)
    (root / "config.yaml").write_text(yaml.safe_dump(config, sort_keys=False))
    return root


@pytest.fixture
def project(tmp_path):
    return make_project(tmp_path / "project")


@pytest.fixture(autouse=True)
def _no_forced_environment(monkeypatch):
    monkeypatch.delenv("FEEDMOVER_ENV", raising=False)
