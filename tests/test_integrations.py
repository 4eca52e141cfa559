"""
Tests for environment lookup, the credential store, the workflow trigger and
operator notifications.
"""

import subprocess
import sys
import types
from unittest.mock import MagicMock, patch

import paramiko
import pytest

from feedmover.core.types import Credential
from feedmover.exceptions import (
    ConfigurationError,
    CredentialNotFoundError,
    EnvironmentResolutionError,
    WorkflowTriggerFailed,
)
from feedmover.integrations import CredentialStore, EnvironmentResolver, Notifier, WorkflowTrigger

ENVIRONMENTS = {
    "prod": {
        "hosts": ["fews-prod*", "rfc-mover01"],
        "destination_server": "fews-prod01",
        "database_id": "FEWS_PROD",
        "destinations": ["prod", "backup"],
    },
    "dev": {"hosts": ["*-dev*"], "destination_server": "fews-dev01", "database_id": "FEWS_DEV", "destinations": ["dev"]},
}


class TestEnvironmentResolver:
    def test_matches_host_pattern(self):
        info = EnvironmentResolver(ENVIRONMENTS, hostname="fews-prod02").resolve()
        assert info.environment_class == "prod"
        assert info.destination_server == "fews-prod01"
        assert info.database_id == "FEWS_PROD"
        assert info.destinations == ("prod", "backup")

    def test_matches_short_name_case_insensitive(self):
        info = EnvironmentResolver(ENVIRONMENTS, hostname="RFC-Mover01.nws.example.gov").resolve()
        assert info.environment_class == "prod"

    def test_first_environment_wins(self):
        info = EnvironmentResolver(ENVIRONMENTS, hostname="fews-prod-dev1").resolve()
        assert info.environment_class == "prod"

    def test_forced_environment(self):
        info = EnvironmentResolver(ENVIRONMENTS, forced="dev", hostname="fews-prod01").resolve()
        assert info.environment_class == "dev"
        assert info.destinations == ("dev",)

    def test_forced_unknown(self):
        with pytest.raises(EnvironmentResolutionError, match="not configured"):
            EnvironmentResolver(ENVIRONMENTS, forced="staging").resolve()

    def test_unknown_host(self):
        with pytest.raises(EnvironmentResolutionError) as exc_info:
            EnvironmentResolver(ENVIRONMENTS, hostname="laptop").resolve()
        assert exc_info.value.hostname == "laptop"

    def test_defaults_to_local_hostname(self):
        with patch("socket.gethostname", return_value="app-dev3"):
            assert EnvironmentResolver(ENVIRONMENTS).resolve().environment_class == "dev"


class TestCredentialStore:
    def test_lookup(self):
        store = CredentialStore({"nws_sftp": {"user_id": "rfc", "password": "pw", "domain": "NWS"}})
        assert store.lookup("nws_sftp") == Credential("rfc", "pw", "NWS")
        assert "nws_sftp" in store

    def test_username_alias(self):
        store = CredentialStore({"smtp": {"username": "mailer", "password": "pw"}})
        assert store.lookup("smtp").user_id == "mailer"

    def test_missing_key(self):
        with pytest.raises(CredentialNotFoundError) as exc_info:
            CredentialStore({}).lookup("nope")
        assert exc_info.value.key == "nope"

    def test_entry_without_user(self):
        with pytest.raises(CredentialNotFoundError):
            CredentialStore({"broken": {"password": "pw"}}).lookup("broken")

    def test_from_config_no_path(self, tmp_path):
        store = CredentialStore.from_config({}, tmp_path)
        assert "anything" not in store

    def test_from_plain_yaml(self, tmp_path):
        (tmp_path / "credentials.yaml").write_text("nws_sftp:\n  user_id: rfc\n  password: secret\n")
        store = CredentialStore.from_config({"path": "credentials.yaml"}, tmp_path)
        assert store.lookup("nws_sftp").password == "secret"

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError, match="not found"):
            CredentialStore.from_config({"path": "missing.yaml"}, tmp_path)

    def test_not_a_mapping(self, tmp_path):
        (tmp_path / "credentials.yaml").write_text("- a\n- b\n")
        with pytest.raises(ConfigurationError, match="mapping"):
            CredentialStore.from_config({"path": "credentials.yaml"}, tmp_path)

    def test_invalid_yaml(self, tmp_path):
        (tmp_path / "credentials.yaml").write_text("key: [unclosed\n")
        with pytest.raises(ConfigurationError, match="not valid YAML"):
            CredentialStore.from_config({"path": "credentials.yaml"}, tmp_path)

    def test_encrypted_requires_key(self, tmp_path):
        (tmp_path / "credentials.yaml.pgp").write_bytes(b"-----BEGIN PGP MESSAGE-----")
        with pytest.raises(ConfigurationError, match="private_key_path"):
            CredentialStore.from_config({"path": "credentials.yaml.pgp"}, tmp_path)

    def test_encrypted_store_is_decrypted(self, tmp_path, monkeypatch):
        (tmp_path / "credentials.yaml.gpg").write_bytes(b"ciphertext")
        key = MagicMock()
        key.decrypt.return_value.message = "nws_sftp:\n  user_id: rfc\n  password: secret\n"
        fake_pgpy = types.SimpleNamespace(
            PGPKey=MagicMock(from_file=MagicMock(return_value=(key, None))),
            PGPMessage=MagicMock(from_file=MagicMock(return_value="message")),
        )
        monkeypatch.setitem(sys.modules, "pgpy", fake_pgpy)

        store = CredentialStore.from_config(
            {"path": "credentials.yaml.gpg", "private_key_path": "/keys/mover.asc", "private_key_passphrase": "pp"},
            tmp_path,
        )

        assert store.lookup("nws_sftp").user_id == "rfc"
        fake_pgpy.PGPKey.from_file.assert_called_once_with("/keys/mover.asc")
        key.unlock.assert_called_once_with("pp")
        key.decrypt.assert_called_once_with("message")


def completed(returncode, stderr=""):
    return subprocess.CompletedProcess(args=[], returncode=returncode, stdout="", stderr=stderr)


class TestWorkflowTriggerLocal:
    CONFIG = {"command": ["run_workflow", "--workflow", "{workflow}", "--db", "{database}"], "timeout_s": 30}

    def test_disabled_without_command(self):
        runner = MagicMock()
        trigger = WorkflowTrigger({}, runner=runner)
        assert not trigger.enabled
        assert trigger.run("ImportQPE") == 0
        runner.assert_not_called()

    def test_argv_substitution(self):
        trigger = WorkflowTrigger(self.CONFIG, database_id="FEWS_PROD")
        assert trigger.argv("ImportQPE") == ["run_workflow", "--workflow", "ImportQPE", "--db", "FEWS_PROD"]

    def test_success(self):
        runner = MagicMock(return_value=completed(0))
        trigger = WorkflowTrigger(self.CONFIG, database_id="FEWS_PROD", runner=runner)

        assert trigger.run("ImportQPE") == 0

        runner.assert_called_once_with(
            ["run_workflow", "--workflow", "ImportQPE", "--db", "FEWS_PROD"],
            capture_output=True,
            text=True,
            timeout=30.0,
            check=False,
        )

    def test_non_zero_exit(self):
        trigger = WorkflowTrigger(self.CONFIG, runner=MagicMock(return_value=completed(2, "no such workflow")))
        with pytest.raises(WorkflowTriggerFailed) as exc_info:
            trigger.run("ImportQPE")
        assert exc_info.value.exit_status == 2
        assert exc_info.value.host is None

    def test_timeout(self):
        runner = MagicMock(side_effect=subprocess.TimeoutExpired(cmd="run_workflow", timeout=30))
        trigger = WorkflowTrigger(self.CONFIG, runner=runner)
        with pytest.raises(WorkflowTriggerFailed, match="timed out"):
            trigger.run("ImportQPE")

    def test_missing_executable(self):
        runner = MagicMock(side_effect=FileNotFoundError("run_workflow"))
        trigger = WorkflowTrigger(self.CONFIG, runner=runner)
        with pytest.raises(WorkflowTriggerFailed, match="could not start"):
            trigger.run("ImportQPE")

    def test_unknown_command_placeholder_rejected(self):
        with pytest.raises(ConfigurationError, match=r"Unknown placeholder '\{other\}'"):
            WorkflowTrigger({"command": ["run.sh", "--opts={other}", "{workflow}"]})

    def test_malformed_command_argument_rejected(self):
        with pytest.raises(ConfigurationError, match="Malformed"):
            WorkflowTrigger({"command": ["run.sh", "{workflow"]})

    def test_escaped_braces_allowed(self):
        trigger = WorkflowTrigger({"command": ["run.sh", "--json={{}}", "{workflow}"]})
        assert trigger.argv("ImportQPE") == ["run.sh", "--json={}", "ImportQPE"]

    def test_argv_failure_is_trigger_failure(self):
        runner = MagicMock()
        trigger = WorkflowTrigger(self.CONFIG, runner=runner)
        trigger.command = ["run_workflow", "{other}"]
        with pytest.raises(WorkflowTriggerFailed, match="cannot build command"):
            trigger.run("ImportQPE")
        runner.assert_not_called()


class TestWorkflowTriggerRemote:
    CONFIG = {"command": ["run_workflow", "{workflow}", "{host}"], "timeout_s": 60, "connect_timeout_s": 5}

    def _client(self, status=0, finished=True):
        client = MagicMock()
        stdout = MagicMock()
        stdout.channel.status_event.wait.return_value = finished
        stdout.channel.recv_exit_status.return_value = status
        stderr = MagicMock()
        stderr.read.return_value = b"error text"
        client.exec_command.return_value = (MagicMock(), stdout, stderr)
        return client

    def test_runs_over_ssh(self):
        client = self._client()
        store = CredentialStore({"fews-prod01": {"user_id": "fews", "password": "pw"}})
        trigger = WorkflowTrigger(self.CONFIG, credentials=store, ssh_client_factory=lambda: client)

        assert trigger.run("ImportQPE", "fews-prod01") == 0

        client.connect.assert_called_once_with(
            "fews-prod01",
            port=22,
            username="fews",
            password="pw",
            timeout=5.0,
            banner_timeout=5.0,
            auth_timeout=5.0,
        )
        client.exec_command.assert_called_once_with("run_workflow ImportQPE fews-prod01", timeout=60.0)
        client.close.assert_called_once()

    def test_host_key_policy_defaults_to_reject(self):
        client = self._client()
        WorkflowTrigger(self.CONFIG, ssh_client_factory=lambda: client).run("ImportQPE", "fews-prod01")
        [policy] = client.set_missing_host_key_policy.call_args.args
        assert isinstance(policy, paramiko.RejectPolicy)

    def test_arguments_are_quoted(self):
        client = self._client()
        trigger = WorkflowTrigger(self.CONFIG, ssh_client_factory=lambda: client)
        trigger.run("Import QPE; rm -rf /", "fews-prod01")
        command = client.exec_command.call_args.args[0]
        assert command == "run_workflow 'Import QPE; rm -rf /' fews-prod01"

    def test_remote_failure(self):
        client = self._client(status=1)
        trigger = WorkflowTrigger(self.CONFIG, ssh_client_factory=lambda: client)
        with pytest.raises(WorkflowTriggerFailed) as exc_info:
            trigger.run("ImportQPE", "fews-prod01")
        assert exc_info.value.host == "fews-prod01"
        assert exc_info.value.exit_status == 1
        client.close.assert_called_once()

    def test_remote_timeout(self):
        client = self._client(finished=False)
        trigger = WorkflowTrigger(self.CONFIG, ssh_client_factory=lambda: client)
        with pytest.raises(WorkflowTriggerFailed, match="timed out"):
            trigger.run("ImportQPE", "fews-prod01")
        client.close.assert_called_once()

    def test_connection_failure(self):
        client = self._client()
        client.connect.side_effect = paramiko.SSHException("Server 'fews-prod01' not found in known_hosts")
        trigger = WorkflowTrigger(self.CONFIG, ssh_client_factory=lambda: client)
        with pytest.raises(WorkflowTriggerFailed, match="known_hosts"):
            trigger.run("ImportQPE", "fews-prod01")
        client.close.assert_called_once()


class TestNotifier:
    CONFIG = {
        "enabled": True,
        "host": "smtp.example.gov",
        "port": 587,
        "starttls": True,
        "sender": "feedmover@example.gov",
        "recipients": ["ops@example.gov", "oncall@example.gov"],
        "timeout_s": 10,
    }

    def test_disabled_by_default(self):
        with patch("smtplib.SMTP") as mock_smtp:
            assert Notifier({}).notify("subject", "body") is False
        mock_smtp.assert_not_called()

    def test_incomplete_config(self):
        with patch("smtplib.SMTP") as mock_smtp:
            assert Notifier({"enabled": True, "host": "smtp"}).notify("subject", "body") is False
        mock_smtp.assert_not_called()

    def test_build_message(self):
        msg = Notifier(self.CONFIG).build_message("2 feed(s) failed", "qpe: refused")
        assert msg["Subject"] == "[feedmover] 2 feed(s) failed"
        assert msg["From"] == "feedmover@example.gov"
        assert msg["To"] == "ops@example.gov, oncall@example.gov"
        assert msg.get_content().strip() == "qpe: refused"

    def test_sends(self):
        with patch("smtplib.SMTP") as mock_smtp:
            assert Notifier(self.CONFIG).notify("subject", "body") is True
        mock_smtp.assert_called_once_with("smtp.example.gov", 587, timeout=10.0)
        smtp = mock_smtp.return_value.__enter__.return_value
        smtp.starttls.assert_called_once()
        smtp.login.assert_not_called()
        smtp.send_message.assert_called_once()

    def test_login_with_credential(self):
        store = CredentialStore({"smtp_relay": {"user_id": "mailer", "password": "pw"}})
        with patch("smtplib.SMTP") as mock_smtp:
            Notifier({**self.CONFIG, "credential": "smtp_relay"}, store).notify("subject", "body")
        mock_smtp.return_value.__enter__.return_value.login.assert_called_once_with("mailer", "pw")

    def test_failure_is_logged_not_raised(self):
        with patch("smtplib.SMTP", side_effect=OSError("Connection refused")):
            assert Notifier(self.CONFIG).notify("subject", "body") is False
