"""
Client — the caller side of s3rpc.

execute(operation, filename):

  1. correlation id = uuid4
  2. upload filename as to_server/<operation>/<id>_<basename>
  3. until the call timeout expires, receive from the client queue:
       any bucket in the batch ≠ configured bucket → BucketMismatchError
       key without <id>           → release (another call's response)
       key with <id>              → delete message, download object,
                                    drop request + response objects (best effort),
                                    return Output

Several calls, from one Client or many, may share one client queue. Each call
hands back every response that is not its own, so whichever call it belongs
to will see it on a later receive. Nothing bounds how often a response gets
passed around before its owner picks it up.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import os
import posixpath
import uuid

from s3rpc.core.common import _Endpoint
from s3rpc.core.options import ClientOptions
from s3rpc.domain import keys
from s3rpc.domain.errors import CallTimeoutError, ClosedError
from s3rpc.domain.models import Message, Output
from s3rpc.ports.objects import ObjectStorePort
from s3rpc.ports.queue import QueuePort

logger = logging.getLogger(__name__)


class Client(_Endpoint):
    """
    Executes operations on a remote Server.

    Parameters
    ----------
    options : ClientOptions, checked on construction
    queue   : QueuePort override (default: SQSQueue for options.queue)
    objects : ObjectStorePort override (default: S3ObjectStore for options.bucket)

    Output files returned by execute() live in the client's scratch directory
    and are removed by close().
    """

    _scratch_prefix = "s3rpc_client"

    def __init__(
        self,
        options: ClientOptions,
        *,
        queue: QueuePort | None = None,
        objects: ObjectStorePort | None = None,
    ) -> None:
        super().__init__(options, queue, objects, infof=logger.info)
        self.timeout = options.timeout

    async def execute(self, operation: str, filename: str) -> Output:
        """
        Run `operation` on a server with the file as input.

        Blocks until the response arrives. Raises CallTimeoutError when the
        configured timeout passes first, ClosedError if the client is (or
        gets) closed, and TransportError/ProtocolError like the server loop.
        """
        if self.closed:
            raise ClosedError("client is closed")
        self._bind_loop()

        correlation_id = str(uuid.uuid4())
        request = keys.request_key(operation, correlation_id, filename)
        await self._upload(filename, request, None)

        deadline = asyncio.timeout(self.timeout.total_seconds())
        try:
            async with deadline:
                return await self._await_response(correlation_id, request)
        except TimeoutError:
            if deadline.expired():
                raise CallTimeoutError(
                    operation, correlation_id, self.timeout
                ) from None
            raise

    async def _await_response(self, correlation_id: str, request: str) -> Output:
        while True:
            if self._closed:
                raise ClosedError("client closed while waiting for a response")

            messages = await self._receive()
            # Every bucket in the batch is checked before any message is claimed.
            for message in messages:
                self._check_bucket(message)

            for i, message in enumerate(messages):
                if correlation_id not in message.key:
                    await self._release_message(message)
                    continue

                await self._delete_message(message)
                # Whatever is left of the batch belongs to other calls.
                for other in messages[i + 1 :]:
                    await self._release_message(other)
                return await self._fetch(message, request)

    async def _fetch(self, message: Message, request: str) -> Output:
        filename = self._scratch_file(posixpath.basename(message.key))
        try:
            metadata = await self._download(message.key, filename)
        except BaseException:
            with contextlib.suppress(FileNotFoundError):
                os.remove(filename)
            raise

        # Both objects expire eventually anyway.
        await self._delete_object_quietly(message.key)
        await self._delete_object_quietly(request)
        return Output(filename=filename, metadata=metadata)
