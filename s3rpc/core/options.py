"""
Options for Server and Client — Pydantic v2 models.

Options are plain frozen models; nothing is validated until a Server or
Client is built from them, at which point check() fails fast with a
ConfigurationError naming the first missing or invalid field.

Durations are timedelta fields, so integers (seconds) and ISO-8601 strings
from environment settings coerce naturally.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from datetime import timedelta

from pydantic import BaseModel, ConfigDict, Field

from s3rpc.domain.errors import ConfigurationError
from s3rpc.domain.keys import SEPARATOR
from s3rpc.domain.models import Input, Output

DEFAULT_REGION = "eu-north-1"

# Time a received message stays hidden while we decide whether it is ours.
# If it is, it is deleted well before this expires.
VISIBILITY_TIMEOUT = timedelta(seconds=7)
MAX_MESSAGES = 5
WAIT_TIME = timedelta(seconds=20)

# SQS hard limits.
_MAX_BATCH = 10
_MAX_WAIT = timedelta(seconds=20)

Handler = Callable[[Input], Awaitable[Output]]
Handlers = dict[str, Handler]


class AWSConfig(BaseModel):
    """
    Connection parameters shared by Server and Client.

    region       : AWS region (default eu-north-1)
    bucket       : bucket holding request and response objects
    endpoint_url : custom endpoint for S3/SQS-compatible backends (LocalStack)
    """

    model_config = ConfigDict(frozen=True)

    region: str = DEFAULT_REGION
    bucket: str = ""
    access_key_id: str = ""
    secret_access_key: str = ""
    endpoint_url: str | None = None


class _PollOptions(AWSConfig):
    """Queue and receive tuning common to both loops."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    queue: str = ""
    infof: Callable[..., None] | None = None
    max_messages: int = MAX_MESSAGES
    visibility_timeout: timedelta = VISIBILITY_TIMEOUT
    wait_time: timedelta = WAIT_TIME

    def check(self) -> None:
        """Raise ConfigurationError unless every required field is usable."""
        if not self.access_key_id:
            raise ConfigurationError("access key id is required")
        if not self.secret_access_key:
            raise ConfigurationError("secret access key is required")
        if not self.bucket:
            raise ConfigurationError("bucket is required")
        if not self.queue:
            raise ConfigurationError("queue is required")
        if not 1 <= self.max_messages <= _MAX_BATCH:
            raise ConfigurationError(
                f"max_messages must be between 1 and {_MAX_BATCH}, "
                f"got {self.max_messages}"
            )
        if self.visibility_timeout <= timedelta(0):
            raise ConfigurationError("visibility_timeout must be positive")
        if not timedelta(0) <= self.wait_time <= _MAX_WAIT:
            raise ConfigurationError(
                f"wait_time must be between 0 and {_MAX_WAIT.seconds}s"
            )


class ServerOptions(_PollOptions):
    """
    handlers      : operation name → async handler; the operation is also the
                    second path segment of every key
    queue         : URL of the queue notified about to_server/ objects
    poll_interval : pause between receive cycles (default 10s)
    infof         : info logger, printf-style (default: logging, s3rpc.core.server)
    """

    handlers: Handlers = Field(default_factory=dict)
    poll_interval: timedelta = timedelta(seconds=10)

    def check(self) -> None:
        super().check()
        for operation in self.handlers:
            if not operation or SEPARATOR in operation:
                raise ConfigurationError(f"invalid operation name {operation!r}")
        if self.poll_interval < timedelta(0):
            raise ConfigurationError("poll_interval must not be negative")


class ClientOptions(_PollOptions):
    """
    queue   : URL of the queue notified about to_client/ objects
    timeout : how long execute() waits for a response (default 5 minutes)
    infof   : info logger, printf-style (default: logging, s3rpc.core.client)
    """

    timeout: timedelta = timedelta(minutes=5)

    def check(self) -> None:
        super().check()
        if self.timeout <= timedelta(0):
            raise ConfigurationError("timeout must be positive")
