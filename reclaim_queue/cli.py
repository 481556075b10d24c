"""
Command-line interface for reclaim-queue.

Operator commands for inspecting and driving queues by hand.

Usage:
    reclaim-queue push jobs "resize:42" --header attempt=1
    reclaim-queue pop jobs --ack      # Claim one message and acknowledge it
    reclaim-queue reclaim jobs        # Requeue expired claims now
    reclaim-queue stats jobs          # Show list depths
    reclaim-queue worker jobs         # Print and ack messages until interrupted
    reclaim-queue resolve             # Ask Sentinel for the current primary
    reclaim-queue health              # Check Redis connectivity
"""

import asyncio
import json
import signal
import sys

import click

from reclaim_queue.config.settings import get_settings
from reclaim_queue.errors import ConnectionSetupError, MessageDecodeError
from reclaim_queue.observability.logging import setup_logging
from reclaim_queue.observability.metrics import get_metrics
from reclaim_queue.queues import Message, QueueConfig, ReclaimQueue
from reclaim_queue.store import SentinelResolver, StoreClient


@click.group()
@click.option("--debug", is_flag=True, help="Enable debug logging")
def main(debug: bool) -> None:
    """Reclaim Queue - at-least-once queues on Redis lists."""
    if debug:
        import os
        os.environ["LOG_LEVEL"] = "DEBUG"
        get_settings.cache_clear()

    setup_logging()


def _open_queue(store: StoreClient, name: str) -> ReclaimQueue:
    return ReclaimQueue(store, name, QueueConfig.from_settings(get_settings()))


def _parse_headers(values: tuple[str, ...]) -> dict[str, str]:
    headers = {}
    for value in values:
        key, sep, val = value.partition("=")
        if not sep or not key:
            raise click.BadParameter(f"expected KEY=VALUE, got '{value}'", param_hint="--header")
        headers[key] = val
    return headers


def _fail(message: str) -> None:
    click.echo(click.style(message, fg="red"), err=True)
    sys.exit(1)


@main.command()
@click.argument("queue")
@click.argument("body")
@click.option("--header", "headers", multiple=True, help="Header as KEY=VALUE (repeatable)")
def push(queue: str, body: str, headers: tuple[str, ...]) -> None:
    """Append a message to QUEUE."""
    message = Message(body=body, headers=_parse_headers(headers))

    async def run():
        async with StoreClient.from_settings(get_settings()) as store:
            length = await _open_queue(store, queue).enqueue(message)
        click.echo(f"Enqueued to {queue} (length {length}), fingerprint {message.fingerprint}")

    try:
        asyncio.run(run())
    except ConnectionSetupError as e:
        _fail(str(e))


@main.command()
@click.argument("queue")
@click.option("--ttl-ms", type=click.IntRange(min=1), default=None, help="Processing TTL in milliseconds")
@click.option("--timeout-ms", type=click.IntRange(min=0), default=None, help="Blocking timeout in milliseconds")
@click.option("--ack/--no-ack", default=False, help="Acknowledge the message right away")
def pop(queue: str, ttl_ms: int | None, timeout_ms: int | None, ack: bool) -> None:
    """Claim one message from QUEUE and print it as JSON."""

    async def run():
        async with StoreClient.from_settings(get_settings()) as store:
            q = _open_queue(store, queue)
            message = await q.dequeue(ttl_ms, timeout_ms)
            if message is None:
                click.echo("No message available")
                return
            if ack:
                await q.ack(message)

            click.echo(json.dumps({
                "body": message.body,
                "headers": message.headers,
                "fingerprint": message.fingerprint,
                "acked": ack,
            }))

    try:
        asyncio.run(run())
    except (ConnectionSetupError, MessageDecodeError) as e:
        _fail(str(e))


@main.command()
@click.argument("queue")
def reclaim(queue: str) -> None:
    """Requeue expired claims of QUEUE without claiming anything."""

    async def run():
        async with StoreClient.from_settings(get_settings()) as store:
            count = await _open_queue(store, queue).reclaim_scan()
        click.echo(f"Requeued {count} message(s) to {queue}")

    try:
        asyncio.run(run())
    except ConnectionSetupError as e:
        _fail(str(e))


@main.command()
@click.argument("queue")
def stats(queue: str) -> None:
    """Show available and processing depths of QUEUE."""

    async def run():
        async with StoreClient.from_settings(get_settings()) as store:
            q = _open_queue(store, queue)
            available = await q.available_count()
            processing = await q.processing_count()

        click.echo(f"\nQueue: {queue}")
        click.echo("-" * 40)
        click.echo(f"  available:  {available}")
        click.echo(f"  processing: {processing}")

    try:
        asyncio.run(run())
    except ConnectionSetupError as e:
        _fail(str(e))


@main.command()
@click.argument("queue")
@click.option("--ttl-ms", type=click.IntRange(min=1), default=None, help="Processing TTL in milliseconds")
@click.option("--metrics/--no-metrics", default=True, help="Enable metrics server")
@click.option("--metrics-port", default=None, type=int, help="Metrics server port")
def worker(queue: str, ttl_ms: int | None, metrics: bool, metrics_port: int | None) -> None:
    """Run a worker that prints and acknowledges every message of QUEUE.

    Example:
        reclaim-queue worker jobs
        reclaim-queue worker jobs --ttl-ms 30000 --no-metrics
    """
    from reclaim_queue.queues import ReclaimWorker
    from reclaim_queue.queues.backoff import ExponentialBackoff

    async def echo(message: Message) -> None:
        click.echo(message.body)

    async def run():
        settings = get_settings()
        async with StoreClient.from_settings(settings) as store:
            reclaim_worker = ReclaimWorker(
                _open_queue(store, queue),
                echo,
                processing_ttl_ms=ttl_ms,
                backoff=ExponentialBackoff(
                    base_delay=settings.worker_backoff_base_delay,
                    max_delay=settings.worker_backoff_max_delay,
                ),
                max_consecutive_failures=settings.worker_max_consecutive_failures,
            )

            if metrics:
                get_metrics().start_server(port=metrics_port)

            # Handle shutdown signals
            loop = asyncio.get_running_loop()
            for sig in (signal.SIGTERM, signal.SIGINT):
                loop.add_signal_handler(sig, lambda: asyncio.create_task(reclaim_worker.stop()))

            await reclaim_worker.start()

    try:
        asyncio.run(run())
    except ConnectionSetupError as e:
        _fail(str(e))


@main.command()
def resolve() -> None:
    """Ask the configured Sentinels for the current primary."""
    settings = get_settings()
    if not settings.sentinel_configured:
        _fail("SENTINEL_HOSTS is not set")

    resolver = SentinelResolver(
        settings.sentinel_endpoints,
        master_name=settings.sentinel_master_name,
        socket_timeout=settings.sentinel_socket_timeout,
    )

    try:
        address = asyncio.run(resolver.resolve())
    except ConnectionSetupError as e:
        _fail(str(e))
        return

    click.echo(f"{settings.sentinel_master_name}: {address.host}:{address.port}")


@main.command()
def health() -> None:
    """Check Redis connectivity."""

    async def check() -> bool:
        try:
            async with StoreClient.from_settings(get_settings()) as store:
                return await store.ping()
        except ConnectionSetupError as e:
            click.echo(f"  {e}")
            return False

    if asyncio.run(check()):
        click.echo(click.style("  ✓ redis: True", fg="green"))
        sys.exit(0)
    click.echo(click.style("  ✗ redis: False", fg="red"))
    sys.exit(1)


if __name__ == "__main__":
    main()
