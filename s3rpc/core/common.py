"""
Polling primitives shared by Server and Client.

Both sides of the protocol are the same machine pointed at different queues:
receive a leased batch, check where each notification came from, then delete
(claim) or release (hand back) it and move payloads through scratch files.
_Endpoint holds that machinery plus the per-instance scratch directory and
the close guard.

Close guard
-----------
close() may be called any number of times, from any coroutine or thread.
The first call flips a lock-protected flag, wakes sleeping loops and removes
the scratch directory; later calls only report the first call's outcome.
From a thread other than the one running the loop, the wakeup is scheduled
on that loop with call_soon_threadsafe.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import os
import shutil
import tempfile
import threading
from datetime import timedelta
from types import TracebackType
from typing import Protocol, Self

from s3rpc.core import codec
from s3rpc.core.options import _PollOptions
from s3rpc.domain.errors import BucketMismatchError
from s3rpc.domain.models import Message
from s3rpc.ports.objects import ObjectStorePort
from s3rpc.ports.queue import QueuePort

logger = logging.getLogger(__name__)

# Visibility timeout that makes a leased message receivable again at once.
_RELEASE = timedelta(0)


class InfoLogger(Protocol):
    """printf-style logger: infof("Uploading %s to %s", name, key)."""

    def __call__(self, msg: str, /, *args: object) -> None: ...


class _Endpoint:
    """Base for Server and Client. Not part of the public API."""

    _scratch_prefix = "s3rpc_"

    def __init__(
        self,
        options: _PollOptions,
        queue: QueuePort | None,
        objects: ObjectStorePort | None,
        infof: InfoLogger,
    ) -> None:
        options.check()
        self.options = options
        self.bucket = options.bucket
        self.infof: InfoLogger = options.infof or infof

        if queue is None or objects is None:
            from s3rpc.adapters.aws.s3 import S3ObjectStore
            from s3rpc.adapters.aws.session import session_from_config
            from s3rpc.adapters.aws.sqs import SQSQueue

            session = session_from_config(options)
            if queue is None:
                queue = SQSQueue(
                    queue_url=options.queue,
                    session=session,
                    region_name=options.region,
                    endpoint_url=options.endpoint_url,
                )
            if objects is None:
                objects = S3ObjectStore(
                    bucket=options.bucket,
                    session=session,
                    region_name=options.region,
                    endpoint_url=options.endpoint_url,
                )
        self.queue: QueuePort = queue
        self.objects: ObjectStorePort = objects

        self.scratch_dir = tempfile.mkdtemp(prefix=self._scratch_prefix)
        self._quit = asyncio.Event()
        self._loop: asyncio.AbstractEventLoop | None = None
        self._close_lock = threading.Lock()
        self._closed = False
        self._close_error: OSError | None = None

    # ------------------------------------------------------------------ #
    # Lifecycle                                                            #
    # ------------------------------------------------------------------ #

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        """Stop the loop(s) at their next iteration and remove the scratch dir."""
        with self._close_lock:
            if not self._closed:
                self._closed = True
                self._wake()
                try:
                    shutil.rmtree(self.scratch_dir)
                except FileNotFoundError:
                    pass
                except OSError as exc:
                    self._close_error = exc
        if self._close_error is not None:
            raise self._close_error

    def _bind_loop(self) -> None:
        """Remember the loop the polling runs on, so close() can reach it."""
        self._loop = asyncio.get_running_loop()

    def _wake(self) -> None:
        loop = self._loop
        try:
            current = asyncio.get_running_loop()
        except RuntimeError:
            current = None
        if loop is None or loop is current or loop.is_closed():
            self._quit.set()
        else:
            # asyncio.Event is not thread-safe; set it from its own loop.
            loop.call_soon_threadsafe(self._quit.set)

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self.close()

    # ------------------------------------------------------------------ #
    # Queue primitives                                                     #
    # ------------------------------------------------------------------ #

    async def _receive(self) -> list[Message]:
        """One long-poll receive, decoded. Record-less notifications are dropped."""
        raws = await self.queue.receive(
            max_messages=self.options.max_messages,
            visibility_timeout=self.options.visibility_timeout,
            wait_time=self.options.wait_time,
        )
        return codec.decode_batch(raws)

    def _check_bucket(self, message: Message) -> None:
        if message.bucket != self.bucket:
            raise BucketMismatchError(self.bucket, message.bucket)

    async def _delete_message(self, message: Message) -> None:
        await self.queue.delete_message(message.receipt_handle)

    async def _release_message(self, message: Message) -> None:
        """Hand the message back to the queue: visible to everyone right away."""
        await self.queue.change_visibility(message.receipt_handle, _RELEASE)

    # ------------------------------------------------------------------ #
    # Object primitives                                                    #
    # ------------------------------------------------------------------ #

    async def _upload(
        self, filename: str, key: str, metadata: dict[str, str] | None
    ) -> None:
        self.infof("Uploading %s to %s/%s", filename, self.bucket, key)
        await self.objects.upload(key, filename, metadata)

    async def _download(self, key: str, filename: str) -> dict[str, str]:
        self.infof("Downloading %s/%s", self.bucket, key)
        return await self.objects.download(key, filename)

    async def _delete_object_quietly(self, key: str) -> None:
        """Advisory removal: objects expire eventually, so failures are ignored."""
        try:
            await self.objects.delete(key)
        except Exception as exc:  # noqa: BLE001
            logger.debug("Ignoring failed delete of %s/%s: %s", self.bucket, key, exc)

    def _scratch_file(self, basename: str) -> str:
        """Create a uniquely named empty file in the scratch dir."""
        fd, name = tempfile.mkstemp(suffix="_" + basename, dir=self.scratch_dir)
        os.close(fd)
        return name

    async def _sleep(self, seconds: float) -> None:
        """Sleep, but wake early when close() is called."""
        with contextlib.suppress(TimeoutError):
            await asyncio.wait_for(self._quit.wait(), timeout=seconds)
