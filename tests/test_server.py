import asyncio
import json
import logging
import os
import threading
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

import pytest

from conftest import BUCKET, CREDS, FAST, append_changed, wait_until
from s3rpc.adapters.memory import InMemoryBucket, InMemoryQueue
from s3rpc.core import codec
from s3rpc.core.options import ServerOptions
from s3rpc.core.server import Server
from s3rpc.domain.errors import (
    BucketMismatchError,
    ConfigurationError,
    HandlerError,
    ProtocolError,
    TransportError,
)
from s3rpc.domain.models import Input, Output

CID = "550e8400-e29b-41d4-a716-446655440000"
REQUEST = f"to_server/dosomething/{CID}_request.txt"
RESPONSE = f"to_client/dosomething/{CID}_request.txt"

# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


def _server(
    bucket: InMemoryBucket, queue: InMemoryQueue, handlers=None, **options
) -> Server:
    opts = ServerOptions(
        handlers=handlers if handlers is not None else {"dosomething": append_changed},
        queue="server-queue",
        **(CREDS | FAST | options),
    )
    return Server(opts, queue=queue, objects=bucket)


@pytest.fixture
def server(bucket, server_queue):  # type: ignore[no-untyped-def]
    srv = _server(bucket, server_queue)
    yield srv
    srv.close()


async def _serve_until(server: Server, predicate) -> None:
    task = asyncio.create_task(server.listen_and_serve())
    try:
        await wait_until(lambda: predicate() or task.done())
    finally:
        server.close()
    await asyncio.wait_for(task, timeout=2)


# ---------------------------------------------------------------------------
# Construction
# ---------------------------------------------------------------------------


def test_missing_queue_fails_fast(bucket, server_queue):
    opts = ServerOptions(handlers={}, **CREDS)
    with pytest.raises(ConfigurationError):
        Server(opts, queue=server_queue, objects=bucket)


def test_missing_credentials_fail_fast(bucket, server_queue):
    opts = ServerOptions(queue="q", bucket=BUCKET)
    with pytest.raises(ConfigurationError, match="access key id"):
        Server(opts, queue=server_queue, objects=bucket)


def test_handler_table_is_immutable(server):
    with pytest.raises(TypeError):
        server.handlers["other"] = append_changed  # type: ignore[index]


def test_scratch_dir_created(server):
    assert os.path.isdir(server.scratch_dir)
    assert "s3rpc_server" in os.path.basename(server.scratch_dir)


# ---------------------------------------------------------------------------
# Dispatch
# ---------------------------------------------------------------------------


async def test_request_produces_response_under_same_basename(
    server, bucket, request_file
):
    await bucket.upload(REQUEST, str(request_file), {"in": "meta"})

    await _serve_until(server, lambda: RESPONSE in bucket)

    assert bucket.content(RESPONSE).decode().endswith("___changed__")
    metadata = await bucket.download(RESPONSE, str(request_file.with_suffix(".out")))
    assert metadata == {"foo": "bar"}


async def test_handler_receives_request_metadata(bucket, server_queue, request_file):
    seen: list[Input] = []

    async def record(input: Input) -> Output:
        seen.append(input)
        return Output(filename=input.filename)

    server = _server(bucket, server_queue, {"dosomething": record})
    await bucket.upload(REQUEST, str(request_file), {"in": "meta"})

    await _serve_until(server, lambda: RESPONSE in bucket)

    [input] = seen
    assert input.metadata == {"in": "meta"}
    assert input.filename.endswith(f"_{CID}_request.txt")


async def test_message_deleted_before_handler_runs(
    bucket, server_queue, request_file
):
    queue_sizes: list[int] = []

    async def check(input: Input) -> Output:
        queue_sizes.append(len(server_queue))
        return Output(filename=input.filename)

    server = _server(bucket, server_queue, {"dosomething": check})
    await bucket.upload(REQUEST, str(request_file))

    await _serve_until(server, lambda: RESPONSE in bucket)

    assert queue_sizes == [0]
    assert len(server_queue.deleted) == 1


async def test_scratch_files_removed_after_response(server, bucket, request_file):
    await bucket.upload(REQUEST, str(request_file))

    await _serve_until(server, lambda: RESPONSE in bucket)

    # close() removed the directory; nothing may have been left behind before.
    assert not os.path.exists(server.scratch_dir)


async def test_scratch_dir_empty_between_messages(
    server, bucket, server_queue, request_file
):
    await bucket.upload(REQUEST, str(request_file))
    task = asyncio.create_task(server.listen_and_serve())
    try:
        await wait_until(lambda: RESPONSE in bucket)
        await wait_until(lambda: os.listdir(server.scratch_dir) == [])
    finally:
        server.close()
    await task


async def test_unknown_operation_released_not_deleted(
    server, bucket, server_queue, request_file
):
    await bucket.upload(f"to_server/unknown/{CID}_request.txt", str(request_file))

    await _serve_until(server, lambda: bool(server_queue.released))

    assert server_queue.deleted == []
    assert len(server_queue) == 1
    assert server_queue.visible_count() == 1
    assert not any(k.startswith("to_client/") for k in bucket.keys())


async def test_released_message_receivable_by_another_server(
    bucket, server_queue, request_file
):
    other = _server(bucket, server_queue, {"other": append_changed})
    await bucket.upload(f"to_server/unknown/{CID}_request.txt", str(request_file))
    await _serve_until(other, lambda: bool(server_queue.released))

    [raw] = await server_queue.receive(5, FAST["wait_time"], FAST["wait_time"])
    message = codec.decode_notification(raw)
    assert message is not None
    assert message.key == f"to_server/unknown/{CID}_request.txt"


async def test_empty_notifications_are_ignored(server, server_queue):
    server_queue.send(json.dumps({"Records": []}))
    server_queue.send(json.dumps({"Event": "s3:TestEvent", "Bucket": BUCKET}))

    task = asyncio.create_task(server.listen_and_serve())
    await wait_until(lambda: server_queue.visible_count() == 0)
    assert not task.done()
    server.close()

    assert await asyncio.wait_for(task, timeout=2) is None
    assert server_queue.deleted == []
    assert server_queue.released == []


# ---------------------------------------------------------------------------
# Fatal errors
# ---------------------------------------------------------------------------


async def test_bucket_mismatch_aborts_loop(server, server_queue):
    server_queue.send(codec.encode_notification("someone-else", REQUEST))

    with pytest.raises(BucketMismatchError) as info:
        await asyncio.wait_for(server.listen_and_serve(), timeout=2)

    assert BUCKET in str(info.value)
    assert "someone-else" in str(info.value)


async def test_multiple_records_abort_loop(server, server_queue):
    record = json.loads(codec.encode_notification(BUCKET, REQUEST))["Records"][0]
    server_queue.send(json.dumps({"Records": [record, record]}))

    with pytest.raises(ProtocolError, match="expected only one record"):
        await asyncio.wait_for(server.listen_and_serve(), timeout=2)


async def test_response_key_on_server_queue_aborts_loop(server, server_queue):
    server_queue.send(codec.encode_notification(BUCKET, RESPONSE))

    with pytest.raises(ProtocolError):
        await asyncio.wait_for(server.listen_and_serve(), timeout=2)


async def test_handler_failure_aborts_loop(bucket, server_queue, request_file):
    async def broken(input: Input) -> Output:
        raise ValueError("cannot do it")

    server = _server(bucket, server_queue, {"dosomething": broken})
    await bucket.upload(REQUEST, str(request_file))

    with pytest.raises(HandlerError) as info:
        await asyncio.wait_for(server.listen_and_serve(), timeout=2)

    assert info.value.operation == "dosomething"
    assert isinstance(info.value.cause, ValueError)
    # Claimed before handling: the request is gone from the queue.
    assert len(server_queue) == 0
    assert RESPONSE not in bucket
    assert os.listdir(server.scratch_dir) == []
    server.close()


async def test_missing_request_object_raises_transport_error(server, server_queue):
    server_queue.send(codec.encode_notification(BUCKET, REQUEST))

    with pytest.raises(TransportError):
        await asyncio.wait_for(server.listen_and_serve(), timeout=2)


# ---------------------------------------------------------------------------
# Close
# ---------------------------------------------------------------------------


async def test_listen_after_close_returns_immediately(server):
    server.close()
    assert await asyncio.wait_for(server.listen_and_serve(), timeout=1) is None


async def test_close_wakes_sleeping_loop(bucket, server_queue):
    server = _server(bucket, server_queue, poll_interval=60)
    task = asyncio.create_task(server.listen_and_serve())
    await asyncio.sleep(0.1)
    server.close()
    assert await asyncio.wait_for(task, timeout=2) is None


async def test_close_from_another_thread_wakes_sleeping_loop(bucket, server_queue):
    server = _server(bucket, server_queue, poll_interval=30)
    task = asyncio.create_task(server.listen_and_serve())
    await asyncio.sleep(0.2)

    closer = threading.Thread(target=server.close)
    closer.start()
    done, _ = await asyncio.wait({task}, timeout=2)
    closer.join()

    assert task in done
    assert task.result() is None
    assert server.closed


def test_close_is_idempotent(server):
    server.close()
    server.close()
    assert server.closed
    assert not os.path.exists(server.scratch_dir)


def test_concurrent_close_runs_cleanup_once(server, monkeypatch):
    import shutil

    calls: list[str] = []
    real_rmtree = shutil.rmtree

    def counting_rmtree(path, *args, **kwargs):  # type: ignore[no-untyped-def]
        calls.append(path)
        real_rmtree(path, *args, **kwargs)

    monkeypatch.setattr(shutil, "rmtree", counting_rmtree)
    with ThreadPoolExecutor(max_workers=8) as pool:
        results = list(pool.map(lambda _: server.close(), range(16)))

    assert results == [None] * 16
    assert calls == [server.scratch_dir]


def test_close_reports_first_failure_every_time(bucket, server_queue, monkeypatch):
    import shutil

    server = _server(bucket, server_queue)

    def failing_rmtree(path, *args, **kwargs):  # type: ignore[no-untyped-def]
        raise PermissionError("denied")

    monkeypatch.setattr(shutil, "rmtree", failing_rmtree)
    with pytest.raises(PermissionError):
        server.close()
    with pytest.raises(PermissionError):
        server.close()
    monkeypatch.undo()
    Path(server.scratch_dir).rmdir()


async def test_async_context_manager_closes(bucket, server_queue):
    async with _server(bucket, server_queue) as server:
        scratch = server.scratch_dir
    assert server.closed
    assert not os.path.exists(scratch)


# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------


async def test_default_logger_uses_logging(server, caplog):
    caplog.set_level(logging.INFO, logger="s3rpc.core.server")
    server.close()
    await server.listen_and_serve()
    assert "Closed" in caplog.messages


async def test_custom_infof_receives_format_and_args(
    bucket, server_queue, request_file
):
    lines: list[str] = []

    def infof(msg: str, *args: object) -> None:
        lines.append(msg % args)

    server = _server(bucket, server_queue, infof=infof)
    await bucket.upload(REQUEST, str(request_file))
    await _serve_until(server, lambda: RESPONSE in bucket)

    assert "Checking queue 'server-queue' for new messages" in lines
    assert f"Got message with key {REQUEST!r}" in lines
    assert any(line.startswith("Uploading ") and RESPONSE in line for line in lines)
    assert lines[-1] == "Closed"
