#!/usr/bin/env -S uv run
"""
Round-trip smoke test for s3rpc.

Starts a Server and a Client in one process, registers an "append" operation
that appends a marker line to the request file, executes it once and prints
what came back.

By default both sides talk to real AWS, configured through the S3RPC_*
environment variables (see s3rpc.settings). --memory swaps in the in-memory
bucket and queues instead, which needs no credentials at all.

Usage:
    uv run --with-editable . tools/roundtrip.py README.md
    uv run --with-editable . tools/roundtrip.py --memory pyproject.toml
    uv run --with-editable . tools/roundtrip.py --help
"""
# /// script
# requires-python = ">=3.11"
# dependencies = [
#     "typer>=0.9.0",
#     "rich>=13.0",
# ]
# ///

from __future__ import annotations

import asyncio
import os
import time
from datetime import timedelta
from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from s3rpc import Client, Input, Output, S3RPCError, Server
from s3rpc.adapters.memory import InMemoryBucket, InMemoryQueue
from s3rpc.settings import ClientSettings, ServerSettings

app = typer.Typer(
    help="Run one s3rpc client/server round trip",
    add_completion=False,
)
console = Console()


# ---------------------------------------------------------------------------
# Handler
# ---------------------------------------------------------------------------


def make_append(marker: str):  # type: ignore[no-untyped-def]
    async def append(input: Input) -> Output:
        stem, ext = os.path.splitext(input.filename)
        changed = f"{stem}-changed{ext}"
        content = Path(input.filename).read_text() + f"\n\n{marker}"
        Path(changed).write_text(content)
        return Output(filename=changed, metadata={"marker": marker})

    return append


# ---------------------------------------------------------------------------
# Round trip
# ---------------------------------------------------------------------------


async def round_trip(
    filename: str, memory: bool, timeout: timedelta
) -> tuple[Output, str, float]:
    marker = f"___changed__{time.time_ns()}"
    handlers = {"append": make_append(marker)}

    server_settings, client_settings = ServerSettings(), ClientSettings()
    if memory:
        creds = {"bucket": "roundtrip", "access_key_id": "-", "secret_access_key": "-"}
        bucket = InMemoryBucket("roundtrip")
        requests, responses = InMemoryQueue("requests"), InMemoryQueue("responses")
        bucket.subscribe("to_server/", requests)
        bucket.subscribe("to_client/", responses)
        server = Server(
            server_settings.to_options(
                handlers=handlers,
                queue="requests",
                poll_interval=0,
                wait_time=timedelta(seconds=1),
                **creds,
            ),
            queue=requests,
            objects=bucket,
        )
        client = Client(
            client_settings.to_options(queue="responses", timeout=timeout, **creds),
            queue=responses,
            objects=bucket,
        )
    else:
        server = Server(server_settings.to_options(handlers=handlers))
        client = Client(client_settings.to_options(timeout=timeout))

    serving = asyncio.create_task(server.listen_and_serve())
    try:
        started = time.perf_counter()
        output = await client.execute("append", filename)
        elapsed = time.perf_counter() - started
        content = Path(output.filename).read_text()
    finally:
        server.close()
        await serving
        client.close()

    if marker not in content:
        raise typer.BadParameter(f"marker {marker!r} missing from response")
    return output, marker, elapsed


@app.command()
def main(
    filename: Path = typer.Argument(..., exists=True, dir_okay=False),
    memory: bool = typer.Option(
        False, "--memory", help="Use in-memory adapters instead of AWS"
    ),
    timeout: int = typer.Option(120, "--timeout", "-t", help="Call timeout (s)"),
) -> None:
    """Execute the append operation on FILENAME and show the response."""
    try:
        output, marker, elapsed = asyncio.run(
            round_trip(str(filename.resolve()), memory, timedelta(seconds=timeout))
        )
    except S3RPCError as exc:
        console.print(f"[bold red]Round trip failed:[/bold red] {exc}")
        raise typer.Exit(code=1) from exc

    table = Table(title="s3rpc round trip", show_header=False)
    table.add_column("Field", style="cyan")
    table.add_column("Value")
    table.add_row("Backend", "memory" if memory else "aws")
    table.add_row("Marker", marker)
    table.add_row("Metadata", repr(output.metadata))
    table.add_row("Elapsed", f"{elapsed:.2f}s")
    console.print(table)


if __name__ == "__main__":
    app()
