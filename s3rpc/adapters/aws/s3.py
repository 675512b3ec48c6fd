"""
S3ObjectStore — AWS S3 object transfer using aioboto3.

upload()   → upload_file (managed transfer, multipart for large payloads)
             with the given user metadata
download() → get_object, body streamed into the local file in chunks;
             returns the object's user metadata
delete()   → delete_object (S3 treats a missing key as success)

Note that S3 stores user metadata keys lower-cased.

Every failure is re-raised as TransportError with the botocore exception as
its cause. Works against S3-compatible endpoints (LocalStack, MinIO) via
endpoint_url.
"""

from __future__ import annotations

import dataclasses
from typing import TYPE_CHECKING

from s3rpc.adapters.aws.session import client_kwargs
from s3rpc.domain.errors import TransportError

if TYPE_CHECKING:
    from aioboto3 import Session as AioBoto3Session

_CHUNK_SIZE = 1024 * 1024


@dataclasses.dataclass
class S3ObjectStore:
    """
    AWS S3 adapter bound to one bucket.

    Parameters
    ----------
    bucket       : S3 bucket name
    session      : aioboto3.Session carrying the credentials
    region_name  : AWS region passed to the S3 client
    endpoint_url : custom endpoint for S3-compatible backends
    """

    bucket: str
    session: AioBoto3Session
    region_name: str | None = None
    endpoint_url: str | None = None

    def _client(self):  # type: ignore[no-untyped-def]
        return self.session.client(  # type: ignore[attr-defined]
            "s3", **client_kwargs(self.region_name, self.endpoint_url)
        )

    async def upload(
        self, key: str, filename: str, metadata: dict[str, str] | None = None
    ) -> None:
        """Stream the local file to `key`."""
        try:
            async with self._client() as s3:
                await s3.upload_file(
                    filename,
                    self.bucket,
                    key,
                    ExtraArgs={"Metadata": dict(metadata or {})},
                )
        except Exception as exc:
            raise TransportError(f"S3 upload of {key!r} failed", exc) from exc

    async def download(self, key: str, filename: str) -> dict[str, str]:
        """Stream `key` into the local file. Returns the object's user metadata."""
        try:
            async with self._client() as s3:
                response = await s3.get_object(Bucket=self.bucket, Key=key)
                body = response["Body"]
                with open(filename, "wb") as fh:
                    while chunk := await body.read(_CHUNK_SIZE):
                        fh.write(chunk)
                return dict(response.get("Metadata") or {})
        except Exception as exc:
            raise TransportError(f"S3 download of {key!r} failed", exc) from exc

    async def delete(self, key: str) -> None:
        try:
            async with self._client() as s3:
                await s3.delete_object(Bucket=self.bucket, Key=key)
        except Exception as exc:
            raise TransportError(f"S3 delete of {key!r} failed", exc) from exc
