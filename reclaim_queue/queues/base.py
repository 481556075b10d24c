"""
At-least-once queue on Redis lists with expiring claim markers.

A queue named Q is kept in two Redis lists:
- Q: available messages, pushed at the tail by producers
- Q_processing: messages claimed by a consumer and not yet acknowledged

Claiming a message (dequeue) moves it atomically from the head of Q to the
head of Q_processing and sets a marker key, named by the fingerprint of the
message body, that expires after the processing TTL. While the marker is
alive the claim is honored. Once it is gone (expired because the consumer
crashed or stalled, or force-expired by reject) the next reclaim scan moves
the message back to the tail of Q.

Recovery is lazy: reclaim_scan() runs at the start of every dequeue() call,
so abandoned messages return as soon as any consumer polls again. No
background task is needed.
"""

import asyncio
import logging
import time
from collections.abc import AsyncIterator

from redis.exceptions import RedisError, WatchError

from reclaim_queue.errors import MessageDecodeError
from reclaim_queue.observability.metrics import get_metrics
from reclaim_queue.queues.backoff import ExponentialBackoff
from reclaim_queue.queues.config import QueueConfig
from reclaim_queue.queues.message import (
    Message,
    decode_message,
    encode_message,
    payload_fingerprint,
)
from reclaim_queue.store.client import StoreClient

logger = logging.getLogger(__name__)


class ReclaimQueue:
    """
    At-least-once queue with automatic reclaim of abandoned claims.

    The StoreClient is owned by the caller and must be connected before use.
    Several queues may share one client.

    Usage:
        async with StoreClient() as store:
            queue = ReclaimQueue(store, "jobs")
            await queue.enqueue(Message(body="resize:42"))

            message = await queue.dequeue(processing_ttl_ms=30_000)
            if message is not None:
                try:
                    process(message)
                except Exception:
                    await queue.reject(message)
                else:
                    await queue.ack(message)
    """

    def __init__(
        self,
        store: StoreClient,
        name: str,
        config: QueueConfig | None = None,
    ):
        """
        Initialize the queue.

        Args:
            store: Store client used for every Redis command
            name: Queue name, also the key of the available list
            config: Claim/polling defaults and key suffixes
        """
        if not name:
            raise ValueError("Queue name must not be empty")

        self._store = store
        self._name = name
        self._config = config or QueueConfig()

    @property
    def name(self) -> str:
        return self._name

    @property
    def processing_name(self) -> str:
        """Key of the processing list."""
        return f"{self._name}{self._config.processing_suffix}"

    @property
    def dead_letter_name(self) -> str:
        """Key of the list holding undecodable payloads."""
        return f"{self._name}{self._config.dead_letter_suffix}"

    async def enqueue(self, message: Message) -> int:
        """
        Append a message to the tail of the available list.

        Args:
            message: Message to publish

        Returns:
            Length of the available list after the push
        """
        length = await self._store.push_tail(self._name, encode_message(message))
        get_metrics().messages_enqueued.labels(queue=self._name).inc()
        logger.debug(f"Enqueued message {message.fingerprint} to {self._name}")
        return length

    async def dequeue(
        self,
        processing_ttl_ms: int | None = None,
        blocking_timeout_ms: int | None = None,
    ) -> Message | None:
        """
        Claim the next available message.

        Runs a reclaim scan first, then waits up to blocking_timeout_ms for a
        message, moves it to the processing list and marks it claimed for
        processing_ttl_ms. The caller owns the message until it calls ack()
        or reject(), or until the TTL runs out.

        Args:
            processing_ttl_ms: Claim duration (default from QueueConfig)
            blocking_timeout_ms: Wait for a message (default from QueueConfig)

        Returns:
            The claimed message, or None if none arrived in time

        Raises:
            MessageDecodeError: If the claimed payload is not a valid message;
                the payload is moved to the dead letter list
        """
        if processing_ttl_ms is None:
            processing_ttl_ms = self._config.processing_ttl_ms
        if blocking_timeout_ms is None:
            blocking_timeout_ms = self._config.blocking_timeout_ms
        if processing_ttl_ms <= 0:
            raise ValueError("processing_ttl_ms must be positive")
        if blocking_timeout_ms < 0:
            raise ValueError("blocking_timeout_ms must not be negative")

        metrics = get_metrics()

        await self.reclaim_scan()

        payload = await self._store.move_head_to_head(
            self._name, self.processing_name, blocking_timeout_ms
        )
        if payload is None:
            metrics.empty_polls.labels(queue=self._name).inc()
            return None

        try:
            message = decode_message(payload)
        except MessageDecodeError as e:
            logger.error(f"Failed to decode message from {self._name}: {e.reason}")
            await self._move_to_dead_letter(payload)
            raise

        await self._store.set_marker(message.fingerprint, processing_ttl_ms)

        metrics.messages_dequeued.labels(queue=self._name).inc()
        logger.debug(
            f"Claimed message {message.fingerprint} from {self._name} "
            f"for {processing_ttl_ms}ms"
        )
        return message

    async def ack(self, message: Message) -> bool:
        """
        Acknowledge successful processing of a message.

        Removes one occurrence of the message from the processing list and
        deletes its marker in a single MULTI/EXEC transaction.

        Args:
            message: Message previously returned by dequeue()

        Returns:
            True if the message was still in the processing list
        """
        async with self._store.pipeline() as pipe:
            pipe.lrem(self.processing_name, 1, message.payload)
            pipe.delete(message.fingerprint)
            removed, _ = await pipe.execute()

        metrics = get_metrics()
        if removed:
            metrics.messages_acked.labels(queue=self._name).inc()
        else:
            metrics.stale_acks.labels(queue=self._name).inc()
            logger.warning(
                f"Acknowledged message {message.fingerprint} was not in "
                f"{self.processing_name} (already reclaimed?)"
            )
        return bool(removed)

    async def reject(self, message: Message) -> bool:
        """
        Give a message back to the queue.

        Only the marker is touched: it is expired immediately, and the next
        reclaim scan (on any consumer's next dequeue) requeues the message,
        exactly as if its claim had timed out.

        Args:
            message: Message previously returned by dequeue()

        Returns:
            True if the message still had a live marker
        """
        existed = await self._store.expire_now(message.fingerprint)
        get_metrics().messages_rejected.labels(queue=self._name).inc()
        logger.debug(f"Rejected message {message.fingerprint} on {self._name}")
        return existed

    async def reclaim_scan(self) -> int:
        """
        Return abandoned messages to the available list.

        Reads the whole processing list and, for every entry whose marker is
        missing, expired or has no TTL, deletes the marker, removes one
        occurrence of the entry from the processing list and pushes it to
        the tail of the available list, all in one transaction.

        Returns:
            Number of entries requeued
        """
        started = time.perf_counter()
        pending = await self._store.read_range(self.processing_name)
        if not pending:
            return 0

        keys = [payload_fingerprint(payload) for payload in pending]

        async with self._store.pipeline(transaction=False) as pipe:
            for key in keys:
                pipe.pttl(key)
            ttls = await pipe.execute()

        reclaimed = 0
        for payload, key, ttl in zip(pending, keys, ttls):
            if ttl > 0:
                continue
            if await self._requeue(payload, key):
                reclaimed += 1

        get_metrics().record_scan(
            self._name, time.perf_counter() - started, len(pending), reclaimed
        )
        if reclaimed:
            logger.info(
                f"Reclaimed {reclaimed} expired messages from {self.processing_name}"
            )
        return reclaimed

    async def _requeue(self, payload: str, key: str) -> bool:
        """
        Move one expired entry back to the available list.

        WATCHes the processing list and re-checks the entry before MULTI, so
        two consumers scanning at once cannot both push the same entry back.
        The loser of such a race sees a WatchError or a vanished entry and
        leaves the entry alone.
        """
        async with self._store.pipeline() as pipe:
            try:
                await pipe.watch(self.processing_name)

                # Acknowledged or reclaimed by another consumer since the scan read
                if await pipe.lpos(self.processing_name, payload) is None:
                    return False
                # Claimed again since the scan read
                if await pipe.pttl(key) > 0:
                    return False

                pipe.multi()
                pipe.delete(key)
                pipe.lrem(self.processing_name, 1, payload)
                pipe.rpush(self._name, payload)
                await pipe.execute()
            except WatchError:
                get_metrics().reclaim_conflicts.labels(queue=self._name).inc()
                logger.debug(
                    f"Processing list {self.processing_name} changed while "
                    f"requeueing {key}, leaving it for the next scan"
                )
                return False

        logger.debug(f"Requeued message {key} to {self._name}")
        return True

    async def _move_to_dead_letter(self, payload: str) -> None:
        """Move an undecodable payload from the processing list to the dead letter list."""
        async with self._store.pipeline() as pipe:
            pipe.lrem(self.processing_name, 1, payload)
            pipe.rpush(self.dead_letter_name, payload)
            await pipe.execute()
        logger.warning(f"Moved undecodable payload to {self.dead_letter_name}")

    async def consume(
        self,
        processing_ttl_ms: int | None = None,
        blocking_timeout_ms: int | None = None,
    ) -> AsyncIterator[Message]:
        """
        Yield claimed messages until cancelled.

        Empty polls are skipped. Redis errors are logged and the dequeue is
        retried after an exponential backoff. Undecodable payloads are
        dead-lettered by dequeue() and skipped here.

        Args:
            processing_ttl_ms: Claim duration for each message
            blocking_timeout_ms: Wait per poll

        Yields:
            Claimed messages; each must be passed to ack() or reject()
        """
        backoff = ExponentialBackoff(
            base_delay=self._config.backoff_base_delay,
            max_delay=self._config.backoff_max_delay,
        )

        while True:
            try:
                message = await self.dequeue(processing_ttl_ms, blocking_timeout_ms)
            except asyncio.CancelledError:
                logger.info("Consumer cancelled, stopping gracefully")
                break
            except MessageDecodeError:
                continue
            except RedisError as e:
                delay = backoff.next_delay()
                logger.error(
                    f"Error consuming from {self._name}: {e}, retrying in {delay:.1f}s"
                )
                await asyncio.sleep(delay)
                continue

            backoff.reset()
            if message is not None:
                yield message

    async def available_count(self) -> int:
        """Number of messages waiting in the available list."""
        return await self._store.length(self._name)

    async def processing_count(self) -> int:
        """Number of messages currently claimed."""
        return await self._store.length(self.processing_name)

    async def peek_processing(self) -> list[Message]:
        """Decode the processing list without changing it, skipping bad payloads."""
        messages = []
        for payload in await self._store.read_range(self.processing_name):
            try:
                messages.append(decode_message(payload))
            except MessageDecodeError:
                continue
        return messages

    async def health_check(self) -> bool:
        """Check if Redis connection is healthy."""
        try:
            return bool(await self._store.ping())
        except (RedisError, RuntimeError):
            return False
