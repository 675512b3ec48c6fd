"""
Environment-driven settings for s3rpc processes.

Configuration precedence:
1. Keyword overrides passed to to_options()
2. Environment variables
3. .env file (if present)
4. Defaults below

Variables
---------
  S3RPC_BUCKET, S3RPC_REGION, S3RPC_ENDPOINT_URL           shared
  S3RPC_SERVER_QUEUE, S3RPC_SERVER_ACCESS_KEY_ID,
  S3RPC_SERVER_SECRET_ACCESS_KEY, S3RPC_SERVER_POLL_INTERVAL server
  S3RPC_CLIENT_QUEUE, S3RPC_CLIENT_ACCESS_KEY_ID,
  S3RPC_CLIENT_SECRET_ACCESS_KEY, S3RPC_CLIENT_TIMEOUT       client

The server and client normally run under different IAM users, hence the
separate key pairs.

Usage:
    from s3rpc.settings import ClientSettings
    client = Client(ClientSettings().to_options())
"""

from __future__ import annotations

from datetime import timedelta
from typing import Any

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from s3rpc.core.options import DEFAULT_REGION, ClientOptions, ServerOptions


class _Settings(BaseSettings):
    bucket: str = Field(default="", validation_alias="S3RPC_BUCKET")
    region: str = Field(default=DEFAULT_REGION, validation_alias="S3RPC_REGION")
    endpoint_url: str | None = Field(
        default=None, validation_alias="S3RPC_ENDPOINT_URL"
    )
    queue: str = ""
    access_key_id: str = ""
    secret_access_key: str = ""

    def _connection(self) -> dict[str, Any]:
        return {
            "bucket": self.bucket,
            "region": self.region,
            "endpoint_url": self.endpoint_url,
            "queue": self.queue,
            "access_key_id": self.access_key_id,
            "secret_access_key": self.secret_access_key,
        }


class ServerSettings(_Settings):
    model_config = SettingsConfigDict(
        env_prefix="S3RPC_SERVER_",
        env_file=".env",
        extra="ignore",
        populate_by_name=True,
    )

    poll_interval: timedelta = timedelta(seconds=10)

    def to_options(self, **overrides: Any) -> ServerOptions:
        """ServerOptions from these settings; overrides win (e.g. handlers=...)."""
        values = self._connection() | {"poll_interval": self.poll_interval}
        return ServerOptions(**(values | overrides))


class ClientSettings(_Settings):
    model_config = SettingsConfigDict(
        env_prefix="S3RPC_CLIENT_",
        env_file=".env",
        extra="ignore",
        populate_by_name=True,
    )

    timeout: timedelta = timedelta(minutes=5)

    def to_options(self, **overrides: Any) -> ClientOptions:
        """ClientOptions from these settings; overrides win (e.g. infof=...)."""
        values = self._connection() | {"timeout": self.timeout}
        return ClientOptions(**(values | overrides))
