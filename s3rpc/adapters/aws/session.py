"""
aioboto3 session construction from static credentials.

The Server and Client each build one session from their options and share it
between their SQS and S3 adapters.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from aioboto3 import Session as AioBoto3Session

    from s3rpc.core.options import AWSConfig


def session_from_config(config: AWSConfig) -> AioBoto3Session:
    """Session bound to the config's static key pair and region."""
    import aioboto3  # type: ignore[import-untyped]

    return aioboto3.Session(  # type: ignore[return-value]
        aws_access_key_id=config.access_key_id,
        aws_secret_access_key=config.secret_access_key,
        region_name=config.region,
    )


def client_kwargs(region_name: str | None, endpoint_url: str | None) -> dict[str, str]:
    """Build kwargs forwarded to an aioboto3 client constructor."""
    kwargs: dict[str, str] = {}
    if region_name:
        kwargs["region_name"] = region_name
    if endpoint_url:
        kwargs["endpoint_url"] = endpoint_url
    return kwargs
