"""
Domain models for s3rpc — backed by Pydantic v2.

All models are frozen (immutable). They are value types passed between the
adapters, the key scheme and the server/client loops; none of them is ever
persisted by s3rpc itself.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class Direction(str, Enum):
    """First path segment of every object key."""

    TO_SERVER = "to_server"
    TO_CLIENT = "to_client"


class Input(BaseModel):
    """
    What a handler receives.

    filename — local path of the downloaded request payload
    metadata — user metadata of the request object
    """

    model_config = ConfigDict(frozen=True)

    filename: str
    metadata: dict[str, str] = Field(default_factory=dict)


class Output(BaseModel):
    """
    What a handler returns, and what Client.execute hands back.

    filename — local path of the response payload
    metadata — user metadata attached to (or read from) the response object
    """

    model_config = ConfigDict(frozen=True)

    filename: str
    metadata: dict[str, str] = Field(default_factory=dict)


class RawMessage(BaseModel):
    """A queue message exactly as the queue adapter received it."""

    model_config = ConfigDict(frozen=True)

    body: str
    receipt_handle: str


class Message(BaseModel):
    """
    A decoded object-created notification.

    Only lives for one receive cycle: the loop either deletes it, releases
    it, or aborts.
    """

    model_config = ConfigDict(frozen=True)

    bucket: str
    key: str
    receipt_handle: str


class ObjectKey(BaseModel):
    """The three segments of a key: <direction>/<operation>/<basename>."""

    model_config = ConfigDict(frozen=True)

    direction: Direction
    operation: str
    basename: str

    def __str__(self) -> str:
        return f"{self.direction.value}/{self.operation}/{self.basename}"
