"""
In-memory object store and queue — S3 + SQS emulation for tests and local runs.

InMemoryBucket keeps objects and their metadata in a dict. Every upload is
announced, as an S3-style ObjectCreated notification, to each InMemoryQueue
subscribed to a matching key prefix — the same wiring S3 event notifications
give a real bucket:

    bucket = InMemoryBucket("rpc")
    server_queue, client_queue = InMemoryQueue(), InMemoryQueue()
    bucket.subscribe("to_server/", server_queue)
    bucket.subscribe("to_client/", client_queue)

InMemoryQueue emulates SQS leases: a received message is hidden until its
visibility deadline, change_visibility(0) makes it receivable again at once,
and each receive issues fresh receipt handles, invalidating older ones.
receive() long-polls for up to `wait_time`.

Zero external dependencies. Safe for multiple concurrent coroutines in a
single event loop. NOT safe across processes or threads.
"""

from __future__ import annotations

import asyncio
import dataclasses
import itertools
from datetime import timedelta

from s3rpc.core.codec import encode_notification
from s3rpc.domain.errors import TransportError
from s3rpc.domain.models import RawMessage


@dataclasses.dataclass
class _Entry:
    body: str
    visible_at: float = 0.0
    receipt_handle: str | None = None


@dataclasses.dataclass
class InMemoryQueue:
    """
    In-process queue with SQS-like visibility timeouts.

    Parameters
    ----------
    name : label used in error messages
    """

    name: str = "memory"

    def __post_init__(self) -> None:
        self._entries: dict[int, _Entry] = {}
        self._ids = itertools.count(1)
        self._handles = itertools.count(1)
        self._changed = asyncio.Event()
        self.deleted: list[str] = []
        self.released: list[str] = []

    def send(self, body: str) -> None:
        """Enqueue a raw message body, immediately visible."""
        self._entries[next(self._ids)] = _Entry(body=body)
        self._changed.set()

    async def receive(
        self,
        max_messages: int,
        visibility_timeout: timedelta,
        wait_time: timedelta,
    ) -> list[RawMessage]:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + wait_time.total_seconds()
        while True:
            now = loop.time()
            batch = self._lease(now, max_messages, visibility_timeout)
            if batch or now >= deadline:
                return batch
            # No await between the lease attempt and clear(): nothing is missed.
            self._changed.clear()
            wake_at = min(deadline, self._next_visible_at(now))
            try:
                await asyncio.wait_for(self._changed.wait(), timeout=wake_at - now)
            except TimeoutError:
                pass

    async def delete_message(self, receipt_handle: str) -> None:
        message_id = self._find(receipt_handle)
        entry = self._entries.pop(message_id)
        self.deleted.append(entry.body)

    async def change_visibility(self, receipt_handle: str, timeout: timedelta) -> None:
        entry = self._entries[self._find(receipt_handle)]
        entry.visible_at = asyncio.get_running_loop().time() + timeout.total_seconds()
        if timeout <= timedelta(0):
            self.released.append(entry.body)
            self._changed.set()

    # ------------------------------------------------------------------ #
    # Introspection for tests                                             #
    # ------------------------------------------------------------------ #

    def __len__(self) -> int:
        """Messages not yet deleted, leased or not."""
        return len(self._entries)

    def visible_count(self) -> int:
        now = asyncio.get_running_loop().time()
        return sum(1 for e in self._entries.values() if e.visible_at <= now)

    def bodies(self) -> list[str]:
        return [e.body for e in self._entries.values()]

    # ------------------------------------------------------------------ #
    # Internals                                                           #
    # ------------------------------------------------------------------ #

    def _lease(
        self, now: float, max_messages: int, visibility_timeout: timedelta
    ) -> list[RawMessage]:
        batch: list[RawMessage] = []
        for entry in self._entries.values():
            if len(batch) >= max_messages:
                break
            if entry.visible_at > now:
                continue
            entry.visible_at = now + visibility_timeout.total_seconds()
            entry.receipt_handle = f"{self.name}-{next(self._handles)}"
            batch.append(
                RawMessage(body=entry.body, receipt_handle=entry.receipt_handle)
            )
        return batch

    def _next_visible_at(self, now: float) -> float:
        pending = [e.visible_at for e in self._entries.values() if e.visible_at > now]
        return min(pending, default=float("inf"))

    def _find(self, receipt_handle: str) -> int:
        for message_id, entry in self._entries.items():
            if entry.receipt_handle == receipt_handle:
                return message_id
        raise TransportError(
            f"queue {self.name!r} rejected receipt handle",
            LookupError(f"ReceiptHandleIsInvalid: {receipt_handle}"),
        )


@dataclasses.dataclass
class InMemoryBucket:
    """
    In-process object store that publishes ObjectCreated notifications.

    Parameters
    ----------
    bucket : bucket name written into every notification
    """

    bucket: str = "memory"

    def __post_init__(self) -> None:
        self._objects: dict[str, tuple[bytes, dict[str, str]]] = {}
        self._subscriptions: list[tuple[str, InMemoryQueue]] = []

    def subscribe(self, prefix: str, queue: InMemoryQueue) -> None:
        """Notify `queue` about every object uploaded under `prefix`."""
        self._subscriptions.append((prefix, queue))

    async def upload(
        self, key: str, filename: str, metadata: dict[str, str] | None = None
    ) -> None:
        try:
            content = await asyncio.to_thread(_read_file, filename)
        except OSError as exc:
            raise TransportError(f"upload of {key!r} failed", exc) from exc
        self._objects[key] = (content, dict(metadata or {}))
        for prefix, queue in self._subscriptions:
            if key.startswith(prefix):
                queue.send(encode_notification(self.bucket, key))

    async def download(self, key: str, filename: str) -> dict[str, str]:
        try:
            content, metadata = self._objects[key]
        except KeyError as exc:
            raise TransportError(f"download of {key!r} failed", exc) from exc
        await asyncio.to_thread(_write_file, filename, content)
        return dict(metadata)

    async def delete(self, key: str) -> None:
        self._objects.pop(key, None)

    def keys(self) -> list[str]:
        return list(self._objects)

    def __contains__(self, key: object) -> bool:
        return key in self._objects

    def content(self, key: str) -> bytes:
        return self._objects[key][0]


def _read_file(filename: str) -> bytes:
    with open(filename, "rb") as fh:
        return fh.read()


def _write_file(filename: str, content: bytes) -> None:
    with open(filename, "wb") as fh:
        fh.write(content)
