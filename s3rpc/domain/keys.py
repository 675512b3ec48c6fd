"""
Envelope/key scheme shared by the server and the client.

    request  = to_server/{operation}/{correlation_id}_{basename(filename)}
    response = to_client/{operation}/{correlation_id}_{basename(filename)}

The response reuses the request's basename byte for byte, so the client can
spot its own response with a plain substring test on the key.
"""

from __future__ import annotations

import os

from s3rpc.domain.errors import KeyFormatError, ProtocolError
from s3rpc.domain.models import Direction, ObjectKey

SEPARATOR = "/"


def request_key(operation: str, correlation_id: str, filename: str) -> str:
    """Key a client uploads its request payload under."""
    _check_operation(operation)
    if not correlation_id or SEPARATOR in correlation_id:
        raise KeyFormatError(f"invalid correlation id {correlation_id!r}")
    basename = os.path.basename(filename)
    if not basename:
        raise KeyFormatError(f"filename {filename!r} has no basename")
    return f"{Direction.TO_SERVER.value}/{operation}/{correlation_id}_{basename}"


def response_key(operation: str, basename: str) -> str:
    """Key a server uploads the handler output under."""
    _check_operation(operation)
    if not basename or SEPARATOR in basename:
        raise KeyFormatError(f"invalid basename {basename!r}")
    return f"{Direction.TO_CLIENT.value}/{operation}/{basename}"


def parse_key(key: str) -> ObjectKey:
    """
    Split a key into direction, operation and basename.

    Raises ProtocolError for anything the scheme could not have produced.
    """
    parts = key.split(SEPARATOR)
    if len(parts) != 3 or not all(parts):
        raise ProtocolError(f"malformed object key {key!r}")
    direction, operation, basename = parts
    try:
        return ObjectKey(
            direction=Direction(direction), operation=operation, basename=basename
        )
    except ValueError as exc:
        raise ProtocolError(f"unknown direction in object key {key!r}") from exc


def _check_operation(operation: str) -> None:
    if not operation or SEPARATOR in operation:
        raise KeyFormatError(f"invalid operation name {operation!r}")
