"""
Codec — decode S3 object-created notifications delivered through SQS.

Only two fields of the S3 event record matter to s3rpc; everything else in
the (large) record is ignored.

Wire format (S3 event notification, abridged):
----------------------------------------------
{
  "Records": [
    {
      "eventSource": "aws:s3",
      "eventName": "ObjectCreated:Put",
      "s3": {
        "bucket": {"name": "my-bucket", ...},
        "object": {"key": "to_server/op/550e8400-..._in.txt", "size": 12, ...}
      }
    }
  ]
}

Rules
-----
  - zero records (or "Records" null or absent, as in s3:TestEvent) → no message
  - exactly one record → one Message
  - more than one record → ProtocolError
  - object keys arrive URL-encoded (spaces as "+") and are decoded here
"""

from __future__ import annotations

import json
from urllib.parse import quote_plus, unquote_plus

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from s3rpc.domain.errors import ProtocolError
from s3rpc.domain.models import Message, RawMessage


class _Bucket(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: str


class _Object(BaseModel):
    model_config = ConfigDict(extra="ignore")

    key: str


class _S3Entity(BaseModel):
    model_config = ConfigDict(extra="ignore")

    bucket: _Bucket
    object: _Object


class _Record(BaseModel):
    model_config = ConfigDict(extra="ignore")

    s3: _S3Entity


class Notification(BaseModel):
    """The subset of an S3 event notification body that s3rpc reads."""

    model_config = ConfigDict(extra="ignore")

    # "Records": null counts as no records.
    records: list[_Record] | None = Field(default=None, alias="Records")


def decode_notification(raw: RawMessage) -> Message | None:
    """
    Turn one queue message into a Message, or None if it carries no record.

    Raises ProtocolError for bodies that are not S3 notifications.
    """
    try:
        notification = Notification.model_validate_json(raw.body)
    except ValidationError as exc:
        raise ProtocolError(f"malformed notification: {exc}") from exc

    records = notification.records or []
    match len(records):
        case 0:
            return None
        case 1:
            s3 = records[0].s3
            return Message(
                bucket=s3.bucket.name,
                key=unquote_plus(s3.object.key),
                receipt_handle=raw.receipt_handle,
            )
        case n:
            raise ProtocolError(f"expected only one record, got {n}")


def encode_notification(bucket: str, key: str) -> str:
    """
    Build a minimal S3-style notification body for `key` in `bucket`.

    Used by the in-memory adapters to emulate S3 → SQS event delivery.
    """
    record = {
        "eventSource": "aws:s3",
        "eventName": "ObjectCreated:Put",
        "s3": {
            "bucket": {"name": bucket},
            "object": {"key": quote_plus(key, safe="/")},
        },
    }
    return json.dumps({"Records": [record]})


def decode_batch(raws: list[RawMessage]) -> list[Message]:
    """Decode a received batch, dropping record-less notifications."""
    messages: list[Message] = []
    for raw in raws:
        message = decode_notification(raw)
        if message is not None:
            messages.append(message)
    return messages
