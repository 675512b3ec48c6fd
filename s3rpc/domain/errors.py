"""
Exception hierarchy for s3rpc.

S3RPCError
├── ConfigurationError   — required option missing or invalid at construction
├── TransportError       — queue or object store call failed (wraps original)
├── ProtocolError        — malformed notification, >1 record, unparsable key
│   └── BucketMismatchError — notification came from an unexpected bucket
├── HandlerError         — a registered operation handler raised
├── CallTimeoutError     — no matching response within the call timeout
├── ClosedError          — Client used after close()
└── KeyFormatError       — key parts rejected at call time (also a ValueError)

Anything raised out of Server.listen_and_serve() or Client.execute() ends that
loop. Callers treat it as dead and start over; nothing is retried internally.
"""

from __future__ import annotations

from datetime import timedelta


class S3RPCError(Exception):
    """Base class for all s3rpc exceptions."""


class ConfigurationError(S3RPCError):
    """Raised by Server/Client construction when options are incomplete."""


class TransportError(S3RPCError):
    """
    Wraps an underlying failure from a queue or object store adapter.

    Attributes
    ----------
    cause : Exception
        The original exception from the AWS SDK (or adapter).
    """

    def __init__(self, message: str, cause: Exception) -> None:
        self.cause = cause
        super().__init__(f"{message}: {cause}")


class ProtocolError(S3RPCError):
    """
    The notification stream violated the protocol.

    Signals a systemic misconfiguration (wrong bucket wired to the queue,
    foreign producers writing to the queue), not a single bad message.
    """


class BucketMismatchError(ProtocolError):
    """Raised when a notification names a bucket other than the configured one."""

    def __init__(self, expected: str, actual: str) -> None:
        self.expected = expected
        self.actual = actual
        super().__init__(f"expected bucket {expected!r}, got {actual!r}")


class HandlerError(S3RPCError):
    """Raised when the handler for an operation fails."""

    def __init__(self, operation: str, cause: Exception) -> None:
        self.operation = operation
        self.cause = cause
        super().__init__(f"handle {operation!r}: {cause}")


class CallTimeoutError(S3RPCError, TimeoutError):
    """Raised by Client.execute when no response arrives in time."""

    def __init__(
        self, operation: str, correlation_id: str, timeout: timedelta
    ) -> None:
        self.operation = operation
        self.correlation_id = correlation_id
        self.timeout = timeout
        super().__init__(
            f"no response for {operation!r} ({correlation_id}) "
            f"within {timeout.total_seconds():g}s"
        )


class ClosedError(S3RPCError):
    """Raised when a closed Client is asked to execute, or closes mid-call."""


class KeyFormatError(S3RPCError, ValueError):
    """Raised when an operation, correlation id or filename cannot form a key."""
