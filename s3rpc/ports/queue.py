"""
QueuePort — the notification queue capability consumed by s3rpc.

One adapter instance is bound to one queue. The protocol needs exactly three
operations from it:

receive(max_messages, visibility_timeout, wait_time)
  - long-polls for up to `wait_time` and returns at most `max_messages`
  - every returned message is leased: hidden from other receivers for
    `visibility_timeout` unless deleted or released first
  - an empty list is a normal result

delete_message(receipt_handle)
  - permanently removes a leased message (the commit point)

change_visibility(receipt_handle, timeout)
  - resets the lease; timeout=0 releases the message so any receiver,
    including this one, can observe it again immediately
"""

from __future__ import annotations

from datetime import timedelta
from typing import Protocol, runtime_checkable

from s3rpc.domain.models import RawMessage


@runtime_checkable
class QueuePort(Protocol):
    """
    Minimal queue interface required by the server and client loops.

    Implementing adapters (built-in):
      - SQSQueue       — AWS SQS (aioboto3)
      - InMemoryQueue  — asyncio-based lease emulation, for testing

    Adapters raise TransportError for any I/O failure.
    """

    async def receive(
        self,
        max_messages: int,
        visibility_timeout: timedelta,
        wait_time: timedelta,
    ) -> list[RawMessage]: ...

    async def delete_message(self, receipt_handle: str) -> None: ...

    async def change_visibility(
        self, receipt_handle: str, timeout: timedelta
    ) -> None: ...
