"""
Server — the worker side of s3rpc.

listen_and_serve() runs one sequential cycle until close() or cancellation:

  receive ─► for each message ─► sleep(poll_interval) ─► receive ...
                 │
                 ├─ bucket ≠ configured bucket  → BucketMismatchError (abort)
                 ├─ no handler for operation    → release, next message
                 └─ handler registered:
                      1. delete the message  (commit: the request is ours)
                      2. download request    → scratch file
                      3. await handler(Input)    raises → HandlerError (abort)
                      4. upload Output under to_client/<op>/<same basename>
                      5. remove scratch files

Deleting before handling means a crash mid-handler loses that request, but a
slow handler can never outlive its lease and get the request processed twice.

Messages in a batch are handled one after another; a slow handler holds up
the rest of the batch. Any error ends the loop. There is no per-message retry
and no dead-letter path: the caller decides whether to start a new loop.

Usage
-----
    async def shout(input: Input) -> Output:
        ...

    async with Server(ServerOptions(handlers={"shout": shout}, ...)) as server:
        await server.listen_and_serve()
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from types import MappingProxyType

from s3rpc.core.common import _Endpoint
from s3rpc.core.options import Handler, ServerOptions
from s3rpc.domain import keys
from s3rpc.domain.errors import HandlerError, ProtocolError
from s3rpc.domain.models import Direction, Input, Message, ObjectKey
from s3rpc.ports.objects import ObjectStorePort
from s3rpc.ports.queue import QueuePort

logger = logging.getLogger(__name__)


class Server(_Endpoint):
    """
    Processes request objects announced on the server queue.

    Parameters
    ----------
    options : ServerOptions, checked on construction
    queue   : QueuePort override (default: SQSQueue for options.queue)
    objects : ObjectStorePort override (default: S3ObjectStore for options.bucket)
    """

    _scratch_prefix = "s3rpc_server"

    def __init__(
        self,
        options: ServerOptions,
        *,
        queue: QueuePort | None = None,
        objects: ObjectStorePort | None = None,
    ) -> None:
        super().__init__(options, queue, objects, infof=logger.info)
        self.handlers: Mapping[str, Handler] = MappingProxyType(
            dict(options.handlers)
        )
        self.poll_interval = options.poll_interval

    async def listen_and_serve(self) -> None:
        """
        Poll and dispatch until closed.

        Returns None after close(). Raises TransportError, ProtocolError or
        HandlerError on the first failure; the server must not be reused
        after that except to close() it.
        """
        self._bind_loop()
        while True:
            if self._closed:
                self.infof("Closed")
                return

            self.infof("Checking queue %r for new messages", self.options.queue)
            for message in await self._receive():
                await self._dispatch(message)

            await self._sleep(self.poll_interval.total_seconds())

    async def _dispatch(self, message: Message) -> None:
        self._check_bucket(message)
        self.infof("Got message with key %r", message.key)

        key = keys.parse_key(message.key)
        if key.direction is not Direction.TO_SERVER:
            raise ProtocolError(
                f"server queue received response key {message.key!r}"
            )

        handler = self.handlers.get(key.operation)
        if handler is None:
            # Someone else may serve this operation.
            await self._release_message(message)
            return

        await self._delete_message(message)
        await self._serve(message, key, handler)

    async def _serve(self, message: Message, key: ObjectKey, handler: Handler) -> None:
        filename = self._scratch_file(key.basename)
        output_filename: str | None = None
        try:
            metadata = await self._download(message.key, filename)

            try:
                output = await handler(Input(filename=filename, metadata=metadata))
            except Exception as exc:
                raise HandlerError(key.operation, exc) from exc
            output_filename = output.filename

            # The client finds its response by the correlation id in the
            # basename, so the basename is carried over unchanged.
            await self._upload(
                output.filename,
                keys.response_key(key.operation, key.basename),
                output.metadata,
            )
        finally:
            self._discard(filename)
            if output_filename is not None and self._owns(output_filename):
                self._discard(output_filename)

    def _owns(self, filename: str) -> bool:
        return os.path.dirname(os.path.abspath(filename)) == os.path.abspath(
            self.scratch_dir
        )

    @staticmethod
    def _discard(filename: str) -> None:
        try:
            os.remove(filename)
        except FileNotFoundError:
            pass
