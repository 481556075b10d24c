"""
Reclaim worker - runs a handler over messages from a ReclaimQueue.

Runs as a standalone service that:
1. Claims messages from the queue (triggering the reclaim scan)
2. Passes each message to an async handler
3. Acknowledges messages the handler completed
4. Rejects messages the handler raised on, so they are retried
"""

import asyncio
from collections.abc import Awaitable, Callable

import structlog
from redis.exceptions import RedisError

from reclaim_queue.errors import MessageDecodeError
from reclaim_queue.observability.logging import bind_context, clear_context
from reclaim_queue.observability.metrics import get_metrics
from reclaim_queue.queues.backoff import ExponentialBackoff
from reclaim_queue.queues.base import ReclaimQueue
from reclaim_queue.queues.message import Message

logger = structlog.get_logger(__name__)

Handler = Callable[[Message], Awaitable[None]]


class ReclaimWorker:
    """
    Worker that processes messages from one queue.

    Features:
    - Ack on success, reject (immediate requeue) on handler failure
    - Exponential backoff on Redis errors
    - Gives up on the Redis error that follows max_consecutive_failures
      backed-off retries in a row
    - Graceful stop between messages

    Usage:
        async def handle(message: Message) -> None:
            ...

        worker = ReclaimWorker(queue, handle)
        await worker.start()  # Runs until stopped
    """

    def __init__(
        self,
        queue: ReclaimQueue,
        handler: Handler,
        processing_ttl_ms: int | None = None,
        blocking_timeout_ms: int | None = None,
        backoff: ExponentialBackoff | None = None,
        max_consecutive_failures: int = 10,
    ):
        """
        Initialize the worker.

        Args:
            queue: Queue to consume from
            handler: Coroutine called with each claimed message
            processing_ttl_ms: Claim duration (queue default if None)
            blocking_timeout_ms: Wait per poll (queue default if None)
            backoff: Backoff policy for Redis errors
            max_consecutive_failures: Backed-off retries in a row; the next
                Redis error is raised
        """
        self._queue = queue
        self._handler = handler
        self._processing_ttl_ms = processing_ttl_ms
        self._blocking_timeout_ms = blocking_timeout_ms
        self._backoff = backoff or ExponentialBackoff()
        self._max_consecutive_failures = max_consecutive_failures

        self._running = False
        self._stats = {"processed": 0, "failed": 0, "empty_polls": 0}

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def stats(self) -> dict[str, int]:
        """Counts of processed, failed and empty polls since creation."""
        return dict(self._stats)

    async def start(self) -> None:
        """
        Run the consume loop until stop() is called or the task is cancelled.

        Raises:
            RedisError: On the first Redis error once max_consecutive_failures
                backed-off retries have run in a row
        """
        self._running = True
        bind_context(queue=self._queue.name)
        logger.info("Starting reclaim worker")

        try:
            await self._run()
        finally:
            self._running = False
            logger.info("Reclaim worker stopped", **self._stats)
            clear_context()

    async def _run(self) -> None:
        while self._running:
            try:
                await self.process_one()
                self._backoff.reset()
            except asyncio.CancelledError:
                logger.info("Reclaim worker cancelled")
                break
            except RedisError as e:
                if self._backoff.attempt >= self._max_consecutive_failures:
                    logger.error(
                        "Reclaim worker exceeded max consecutive failures",
                        failures=self._backoff.attempt,
                        error=str(e),
                    )
                    raise
                delay = self._backoff.next_delay()
                logger.warning(
                    "Redis error in reclaim worker, backing off",
                    error=str(e),
                    delay=round(delay, 2),
                )
                await asyncio.sleep(delay)

    async def stop(self) -> None:
        """Ask the worker to stop after the current message."""
        self._running = False

    async def process_one(self) -> bool:
        """
        Claim and handle a single message.

        Returns:
            True if a message was claimed, False on an empty poll
        """
        try:
            message = await self._queue.dequeue(
                self._processing_ttl_ms, self._blocking_timeout_ms
            )
        except MessageDecodeError:
            self._stats["failed"] += 1
            return True

        if message is None:
            self._stats["empty_polls"] += 1
            # Idle, so refresh the depth gauges
            get_metrics().set_depths(
                self._queue.name,
                available=await self._queue.available_count(),
                processing=await self._queue.processing_count(),
            )
            return False

        try:
            await self._handler(message)
        except asyncio.CancelledError:
            await self._queue.reject(message)
            raise
        except Exception as e:
            self._stats["failed"] += 1
            logger.warning(
                "Handler failed, rejecting message",
                fingerprint=message.fingerprint,
                error=str(e),
            )
            await self._queue.reject(message)
            return True

        await self._queue.ack(message)
        self._stats["processed"] += 1
        return True
