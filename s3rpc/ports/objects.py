"""
ObjectStorePort — the object transfer capability consumed by s3rpc.

One adapter instance is bound to one bucket. Payloads are always staged in
local files: upload streams a file out, download streams an object into a
file the caller already created.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable


@runtime_checkable
class ObjectStorePort(Protocol):
    """
    Minimal object store interface required by the server and client loops.

    Implementing adapters (built-in):
      - S3ObjectStore   — AWS S3 (aioboto3)
      - InMemoryBucket  — dict-backed, publishes S3-style notifications

    Adapters raise TransportError for any I/O failure.
    """

    @property
    def bucket(self) -> str:
        """Name of the bucket this adapter writes to and reads from."""
        ...

    async def upload(
        self, key: str, filename: str, metadata: dict[str, str] | None = None
    ) -> None:
        """Stream the local file to `key` with `metadata` as user metadata."""
        ...

    async def download(self, key: str, filename: str) -> dict[str, str]:
        """Stream `key` into the local file and return its user metadata."""
        ...

    async def delete(self, key: str) -> None:
        """Remove `key`. Removing a missing key is not an error."""
        ...
