"""
Downstream import workflow trigger.

The trigger is an external program given as an argument list; each argument
may use ``{workflow}``, ``{database}`` and ``{host}``. Locally it runs as a
subprocess without a shell; against a target host it runs over SSH.

Config (``workflow:`` section)::

    workflow:
      command: ["/opt/fews/bin/run_workflow.sh", "{workflow}", "{database}"]
      timeout_s: 600
      ssh_port: 22
      connect_timeout_s: 15
      host_key_policy: reject     # reject | warn | auto
"""

from __future__ import annotations

import shlex
import string
import subprocess
from collections.abc import Callable
from typing import Any

import paramiko

from feedmover.exceptions import ConfigurationError, CredentialNotFoundError, WorkflowTriggerFailed
from feedmover.integrations.credentials import CredentialStore
from feedmover.utils.logging import get_logger

logger = get_logger("feedmover.integrations.workflow")

_HOST_KEY_POLICIES = {
    "reject": paramiko.RejectPolicy,
    "warn": paramiko.WarningPolicy,
    "auto": paramiko.AutoAddPolicy,
}

COMMAND_PLACEHOLDERS = frozenset({"workflow", "database", "host"})


def validate_command(command: list[str]) -> None:
    """Raise ConfigurationError if a command argument uses anything but the known placeholders."""
    for arg in command:
        try:
            fields = [name for _, name, _, _ in string.Formatter().parse(arg) if name is not None]
        except ValueError as e:
            raise ConfigurationError(
                f"Malformed workflow command argument '{arg}': {e}", details={"argument": arg}
            ) from None
        for name in fields:
            if name not in COMMAND_PLACEHOLDERS:
                raise ConfigurationError(
                    f"Unknown placeholder '{{{name}}}' in workflow command argument '{arg}'. "
                    f"Available: {sorted(COMMAND_PLACEHOLDERS)}",
                    details={"argument": arg, "placeholder": name},
                )


class WorkflowTrigger:
    def __init__(
        self,
        config: dict[str, Any],
        *,
        database_id: str = "",
        credentials: CredentialStore | None = None,
        runner: Callable[..., subprocess.CompletedProcess] = subprocess.run,
        ssh_client_factory: Callable[[], paramiko.SSHClient] = paramiko.SSHClient,
    ):
        self.command = [str(arg) for arg in config.get("command") or []]
        validate_command(self.command)
        self.timeout_s = float(config.get("timeout_s", 600))
        self.ssh_port = int(config.get("ssh_port", 22))
        self.connect_timeout_s = float(config.get("connect_timeout_s", 15))
        self.host_key_policy = str(config.get("host_key_policy", "reject"))
        self.database_id = database_id
        self.credentials = credentials or CredentialStore({})
        self._runner = runner
        self._ssh_client_factory = ssh_client_factory

    @property
    def enabled(self) -> bool:
        return bool(self.command)

    def argv(self, workflow_name: str, target_host: str | None = None) -> list[str]:
        values = {"workflow": workflow_name, "database": self.database_id, "host": target_host or ""}
        try:
            return [arg.format_map(values) for arg in self.command]
        except (KeyError, IndexError, ValueError) as e:
            raise WorkflowTriggerFailed(
                workflow_name, f"cannot build command: {type(e).__name__}: {e}", host=target_host
            ) from None

    def run(self, workflow_name: str, target_host: str | None = None) -> int:
        """
        Run the workflow once and return its exit status (0).

        Raises:
            WorkflowTriggerFailed: non-zero exit, timeout, or launch failure
        """
        if not self.enabled:
            logger.debug(f"No workflow command configured; skipping '{workflow_name}'")
            return 0
        argv = self.argv(workflow_name, target_host)
        if target_host:
            status = self._run_remote(workflow_name, argv, target_host)
        else:
            status = self._run_local(workflow_name, argv)
        if status != 0:
            raise WorkflowTriggerFailed(
                workflow_name, f"exit status {status}", host=target_host, exit_status=status
            )
        logger.info(f"Workflow '{workflow_name}' completed on {target_host or 'local host'}")
        return status

    def _run_local(self, workflow_name: str, argv: list[str]) -> int:
        try:
            completed = self._runner(argv, capture_output=True, text=True, timeout=self.timeout_s, check=False)
        except subprocess.TimeoutExpired:
            raise WorkflowTriggerFailed(workflow_name, f"timed out after {self.timeout_s:.0f}s") from None
        except OSError as e:
            raise WorkflowTriggerFailed(workflow_name, f"could not start {argv[0]}: {e}") from None
        if completed.returncode != 0 and completed.stderr:
            logger.warning(f"Workflow '{workflow_name}' stderr: {completed.stderr.strip()}")
        return completed.returncode

    def _run_remote(self, workflow_name: str, argv: list[str], host: str) -> int:
        try:
            credential = self.credentials.lookup(host)
        except CredentialNotFoundError:
            credential = None

        client = self._ssh_client_factory()
        try:
            client.load_system_host_keys()
            policy = _HOST_KEY_POLICIES.get(self.host_key_policy, paramiko.RejectPolicy)
            client.set_missing_host_key_policy(policy())
            client.connect(
                host,
                port=self.ssh_port,
                username=credential.user_id if credential else None,
                password=credential.password if credential else None,
                timeout=self.connect_timeout_s,
                banner_timeout=self.connect_timeout_s,
                auth_timeout=self.connect_timeout_s,
            )
            _, stdout, stderr = client.exec_command(shlex.join(argv), timeout=self.timeout_s)
            channel = stdout.channel
            if not channel.status_event.wait(self.timeout_s):
                channel.close()
                raise WorkflowTriggerFailed(
                    workflow_name, f"timed out after {self.timeout_s:.0f}s", host=host
                )
            status = channel.recv_exit_status()
            if status != 0:
                err = stderr.read().decode("utf-8", errors="replace").strip()
                if err:
                    logger.warning(f"Workflow '{workflow_name}' on {host} stderr: {err}")
            return status
        except (OSError, paramiko.SSHException) as e:
            raise WorkflowTriggerFailed(workflow_name, f"{type(e).__name__}: {e}", host=host) from None
        finally:
            client.close()
