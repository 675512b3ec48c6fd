import asyncio
import time
from collections.abc import Callable
from datetime import timedelta
from pathlib import Path

import pytest

from s3rpc.adapters.memory import InMemoryBucket, InMemoryQueue
from s3rpc.domain.models import Input, Output

BUCKET = "s3rpctest"

CREDS = {"bucket": BUCKET, "access_key_id": "id", "secret_access_key": "secret"}

# Short long-polls keep close() and timeouts snappy in tests.
FAST = {"wait_time": timedelta(milliseconds=50)}


@pytest.fixture
def bucket() -> InMemoryBucket:
    return InMemoryBucket(BUCKET)


@pytest.fixture
def server_queue(bucket: InMemoryBucket) -> InMemoryQueue:
    queue = InMemoryQueue("server")
    bucket.subscribe("to_server/", queue)
    return queue


@pytest.fixture
def client_queue(bucket: InMemoryBucket) -> InMemoryQueue:
    queue = InMemoryQueue("client")
    bucket.subscribe("to_client/", queue)
    return queue


@pytest.fixture
def request_file(tmp_path: Path) -> Path:
    path = tmp_path / "request.txt"
    path.write_text("some content")
    return path


async def append_changed(input: Input) -> Output:
    """Append a marker, write to <name>-changed<ext>, tag with foo=bar."""
    src = Path(input.filename)
    changed = src.with_name(f"{src.stem}-changed{src.suffix}")
    changed.write_text(src.read_text() + "\n\n___changed__")
    return Output(filename=str(changed), metadata={"foo": "bar"})


async def wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    deadline = time.monotonic() + timeout
    while not predicate():
        if time.monotonic() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.005)
