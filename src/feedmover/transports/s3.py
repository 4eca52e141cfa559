"""
S3 sink for destinations backed by object storage.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

from feedmover.core.types import DestinationDescriptor, PushResult
from feedmover.transports.base import BaseTransportConnection, join_remote, local_matches


class S3Connection(BaseTransportConnection):
    """
    S3 connection wrapper (push only).

    Provides a lazily created boto3 client. Credentials come from the config,
    the environment or an instance role.

    Config example::

        connections:
          archive_bucket:
            type: s3
            config:
              bucket: river-forecast-imports
              region: us-east-1
              base_path: incoming        # optional key prefix
              endpoint_url: ...          # optional (S3-compatible services)
              connect_timeout_s: 15
              read_timeout_s: 60
    """

    can_push = True

    def __init__(self, name: str, config: dict[str, Any]):
        super().__init__(name, config)
        self._client = None
        if not self._cfg.get("bucket"):
            raise ValueError(
                f"S3 connection '{name}' requires 'bucket' in config. "
                f"Example: connections.{name}.config.bucket = 'my-bucket'"
            )

    @property
    def bucket(self) -> str:
        return self._cfg["bucket"]

    @property
    def base_path(self) -> str:
        return str(self._cfg.get("base_path", "")).strip("/")

    def _get_client_kwargs(self) -> dict[str, Any]:
        from botocore.config import Config as BotoConfig

        kwargs: dict[str, Any] = {
            "config": BotoConfig(
                connect_timeout=float(self._cfg.get("connect_timeout_s", 15.0)),
                read_timeout=float(self._cfg.get("read_timeout_s", 60.0)),
                retries={"max_attempts": 1},
            )
        }
        if self._cfg.get("region"):
            kwargs["region_name"] = self._cfg["region"]
        if self._cfg.get("endpoint_url"):
            kwargs["endpoint_url"] = self._cfg["endpoint_url"]

        access_key = self._cfg.get("access_key_id") or self._cfg.get("username")
        secret_key = self._cfg.get("secret_access_key") or self._cfg.get("password")
        if access_key and secret_key:
            kwargs["aws_access_key_id"] = access_key
            kwargs["aws_secret_access_key"] = secret_key
            if self._cfg.get("session_token"):
                kwargs["aws_session_token"] = self._cfg["session_token"]
        return kwargs

    @property
    def client(self):
        """boto3 S3 client (lazy initialization)."""
        if self._client is None:
            import boto3

            self._client = boto3.client("s3", **self._get_client_kwargs())
        return self._client

    def key_for(self, destination: DestinationDescriptor, subpath: str, name: str) -> str:
        return join_remote(self.base_path, destination.root.strip("/"), subpath.strip("/"), name)

    def push(self, local_dir: Path, pattern: str, destination: DestinationDescriptor, subpath: str) -> PushResult:
        from botocore.exceptions import BotoCoreError, ClientError

        sent: list[str] = []
        try:
            for path in local_matches(local_dir, pattern):
                key = self.key_for(destination, subpath, path.name)
                # Readers never see a partial object under the final key
                tmp_key = f"{key}.tmp"
                self.client.upload_file(str(path), self.bucket, tmp_key)
                self.client.copy_object(
                    Bucket=self.bucket,
                    CopySource={"Bucket": self.bucket, "Key": tmp_key},
                    Key=key,
                )
                self.client.delete_object(Bucket=self.bucket, Key=tmp_key)
                sent.append(path.name)
        except (BotoCoreError, ClientError, OSError) as e:
            return PushResult(files_sent=sent, error=f"{type(e).__name__}: {e}")
        return PushResult(files_sent=sent)
