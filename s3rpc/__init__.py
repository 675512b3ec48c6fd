"""
s3rpc — request/response RPC over an object store and notification queues.

A client and a worker (server) that share no network path exchange files
through an S3 bucket. S3 event notifications, delivered through SQS, tell
each side when the other has written something:

    client ──upload──► s3://bucket/to_server/<op>/<id>_<file>
                          │ ObjectCreated → server queue
    server ◄──receive─────┘
    server ──upload──► s3://bucket/to_client/<op>/<id>_<file>
                          │ ObjectCreated → client queue
    client ◄──receive─────┘  (keeps only keys containing its own <id>)

Queue leases (SQS visibility timeouts) keep a message away from other
receivers while one of them decides: the server deletes requests it has a
handler for and releases the rest; a client deletes its own response and
releases everyone else's.

Quick start
-----------
    import asyncio
    from s3rpc import Client, ClientOptions, Input, Output, Server, ServerOptions
    from s3rpc.adapters.memory import InMemoryBucket, InMemoryQueue

    async def upper(input: Input) -> Output:
        with open(input.filename) as fh:
            text = fh.read().upper()
        out = input.filename + ".out"
        with open(out, "w") as fh:
            fh.write(text)
        return Output(filename=out, metadata={"case": "upper"})

    async def main():
        bucket = InMemoryBucket("rpc")
        requests, responses = InMemoryQueue(), InMemoryQueue()
        bucket.subscribe("to_server/", requests)
        bucket.subscribe("to_client/", responses)

        creds = {"bucket": "rpc", "access_key_id": "k", "secret_access_key": "s"}
        server = Server(
            ServerOptions(handlers={"upper": upper}, queue="requests", **creds),
            queue=requests,
            objects=bucket,
        )
        async with Client(
            ClientOptions(queue="responses", **creds),
            queue=responses,
            objects=bucket,
        ) as client:
            serving = asyncio.create_task(server.listen_and_serve())
            result = await client.execute("upper", "hello.txt")
            print(result.filename, result.metadata)
            server.close()
            await serving

    asyncio.run(main())

Adapters
--------
  - SQSQueue, S3ObjectStore           (aioboto3; used by default)
  - InMemoryQueue, InMemoryBucket     — for tests and local runs

Custom adapters implement the QueuePort / ObjectStorePort Protocols.

Architecture
------------
Follows the Ports & Adapters pattern:
  domain/   — value types, errors and the object key scheme
  ports/    — Protocol interfaces (QueuePort, ObjectStorePort)
  core/     — protocol logic (Server, Client, notification codec, options)
  adapters/ — concrete queue and object store implementations
"""
from __future__ import annotations

from s3rpc.core.client import Client
from s3rpc.core.common import InfoLogger
from s3rpc.core.options import (
    AWSConfig,
    ClientOptions,
    Handler,
    Handlers,
    ServerOptions,
)
from s3rpc.core.server import Server
from s3rpc.domain.errors import (
    BucketMismatchError,
    CallTimeoutError,
    ClosedError,
    ConfigurationError,
    HandlerError,
    KeyFormatError,
    ProtocolError,
    S3RPCError,
    TransportError,
)
from s3rpc.domain.models import Input, Message, Output
from s3rpc.ports.objects import ObjectStorePort
from s3rpc.ports.queue import QueuePort

__all__ = [
    # Domain models
    "Input",
    "Output",
    "Message",
    # Errors
    "S3RPCError",
    "ConfigurationError",
    "TransportError",
    "ProtocolError",
    "BucketMismatchError",
    "HandlerError",
    "CallTimeoutError",
    "ClosedError",
    "KeyFormatError",
    # Ports (for typing custom adapters)
    "QueuePort",
    "ObjectStorePort",
    # Options
    "AWSConfig",
    "ServerOptions",
    "ClientOptions",
    "Handler",
    "Handlers",
    "InfoLogger",
    # High-level API
    "Server",
    "Client",
]
