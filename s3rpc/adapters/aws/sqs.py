"""
SQSQueue — AWS SQS queue adapter using aioboto3.

The queue is expected to receive S3 event notifications for one key prefix
of the bucket (to_server/ for the server queue, to_client/ for the client
queue). The adapter itself is content-agnostic: it hands back raw bodies and
receipt handles, and leaves decoding to the codec.

SQS limits: MaxNumberOfMessages 1-10, WaitTimeSeconds 0-20. Durations are
truncated to whole seconds.
"""

from __future__ import annotations

import dataclasses
from datetime import timedelta
from typing import TYPE_CHECKING

from s3rpc.adapters.aws.session import client_kwargs
from s3rpc.domain.errors import TransportError
from s3rpc.domain.models import RawMessage

if TYPE_CHECKING:
    from aioboto3 import Session as AioBoto3Session


@dataclasses.dataclass
class SQSQueue:
    """
    AWS SQS adapter bound to one queue.

    Parameters
    ----------
    queue_url    : full queue URL
    session      : aioboto3.Session carrying the credentials
    region_name  : AWS region passed to the SQS client
    endpoint_url : custom endpoint (e.g. LocalStack)
    """

    queue_url: str
    session: AioBoto3Session
    region_name: str | None = None
    endpoint_url: str | None = None

    def _client(self):  # type: ignore[no-untyped-def]
        return self.session.client(  # type: ignore[attr-defined]
            "sqs", **client_kwargs(self.region_name, self.endpoint_url)
        )

    async def receive(
        self,
        max_messages: int,
        visibility_timeout: timedelta,
        wait_time: timedelta,
    ) -> list[RawMessage]:
        """Long-poll for up to `wait_time`; every returned message is leased."""
        try:
            async with self._client() as sqs:
                response = await sqs.receive_message(
                    QueueUrl=self.queue_url,
                    MaxNumberOfMessages=max_messages,
                    VisibilityTimeout=int(visibility_timeout.total_seconds()),
                    WaitTimeSeconds=int(wait_time.total_seconds()),
                )
        except Exception as exc:
            raise TransportError("SQS receive failed", exc) from exc

        return [
            RawMessage(body=m["Body"], receipt_handle=m["ReceiptHandle"])
            for m in response.get("Messages", [])
        ]

    async def delete_message(self, receipt_handle: str) -> None:
        try:
            async with self._client() as sqs:
                await sqs.delete_message(
                    QueueUrl=self.queue_url, ReceiptHandle=receipt_handle
                )
        except Exception as exc:
            raise TransportError("SQS delete failed", exc) from exc

    async def change_visibility(self, receipt_handle: str, timeout: timedelta) -> None:
        """Reset the lease. timeout=0 makes the message receivable right away."""
        try:
            async with self._client() as sqs:
                await sqs.change_message_visibility(
                    QueueUrl=self.queue_url,
                    ReceiptHandle=receipt_handle,
                    VisibilityTimeout=int(timeout.total_seconds()),
                )
        except Exception as exc:
            raise TransportError("SQS change visibility failed", exc) from exc
