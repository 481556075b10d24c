"""Tests for ReclaimWorker."""

from unittest.mock import AsyncMock, MagicMock

import pytest
from prometheus_client import REGISTRY
from redis.exceptions import ConnectionError

from reclaim_queue.errors import MessageDecodeError
from reclaim_queue.queues import Message, ReclaimQueue, ReclaimWorker
from reclaim_queue.queues.backoff import ExponentialBackoff


@pytest.fixture
def mock_queue():
    queue = MagicMock(spec=ReclaimQueue)
    queue.name = "jobs"
    queue.dequeue = AsyncMock(return_value=None)
    queue.ack = AsyncMock(return_value=True)
    queue.reject = AsyncMock(return_value=True)
    queue.available_count = AsyncMock(return_value=4)
    queue.processing_count = AsyncMock(return_value=1)
    return queue


class TestProcessOne:
    """Tests for handling a single message."""

    @pytest.mark.asyncio
    async def test_success_acks(self, mock_queue):
        message = Message(body="A")
        mock_queue.dequeue.return_value = message
        handler = AsyncMock()

        worker = ReclaimWorker(mock_queue, handler, processing_ttl_ms=500, blocking_timeout_ms=50)

        assert await worker.process_one() is True
        mock_queue.dequeue.assert_awaited_once_with(500, 50)
        handler.assert_awaited_once_with(message)
        mock_queue.ack.assert_awaited_once_with(message)
        mock_queue.reject.assert_not_called()
        assert worker.stats["processed"] == 1

    @pytest.mark.asyncio
    async def test_handler_failure_rejects(self, mock_queue):
        message = Message(body="A")
        mock_queue.dequeue.return_value = message
        handler = AsyncMock(side_effect=ValueError("boom"))

        worker = ReclaimWorker(mock_queue, handler)

        assert await worker.process_one() is True
        mock_queue.reject.assert_awaited_once_with(message)
        mock_queue.ack.assert_not_called()
        assert worker.stats["failed"] == 1

    @pytest.mark.asyncio
    async def test_empty_poll(self, mock_queue):
        handler = AsyncMock()
        worker = ReclaimWorker(mock_queue, handler)

        assert await worker.process_one() is False
        handler.assert_not_called()
        assert worker.stats["empty_polls"] == 1
        assert REGISTRY.get_sample_value(
            "reclaim_queue_available_depth", {"queue": "jobs"}
        ) == 4

    @pytest.mark.asyncio
    async def test_undecodable_message_counts_as_failure(self, mock_queue):
        mock_queue.dequeue.side_effect = MessageDecodeError("x", "bad")
        worker = ReclaimWorker(mock_queue, AsyncMock())

        assert await worker.process_one() is True
        assert worker.stats["failed"] == 1


class TestStart:
    """Tests for the supervised loop."""

    @pytest.mark.asyncio
    async def test_stop_ends_loop(self, mock_queue):
        worker = ReclaimWorker(mock_queue, AsyncMock())

        async def dequeue_then_stop(*args):
            await worker.stop()
            return None

        mock_queue.dequeue.side_effect = dequeue_then_stop

        await worker.start()

        assert worker.is_running is False
        assert mock_queue.dequeue.await_count == 1

    @pytest.mark.asyncio
    async def test_redis_errors_back_off_then_recover(self, mock_queue):
        worker = ReclaimWorker(
            mock_queue,
            AsyncMock(),
            backoff=ExponentialBackoff(base_delay=0.001, max_delay=0.001, jitter_range=0.0),
        )
        calls = []

        async def flaky(*args):
            calls.append(1)
            if len(calls) <= 2:
                raise ConnectionError("down")
            await worker.stop()
            return None

        mock_queue.dequeue.side_effect = flaky

        await worker.start()

        assert len(calls) == 3

    @pytest.mark.asyncio
    async def test_gives_up_after_max_consecutive_failures(self, mock_queue):
        mock_queue.dequeue.side_effect = ConnectionError("down")
        worker = ReclaimWorker(
            mock_queue,
            AsyncMock(),
            backoff=ExponentialBackoff(base_delay=0.001, max_delay=0.001, jitter_range=0.0),
            max_consecutive_failures=2,
        )

        with pytest.raises(ConnectionError):
            await worker.start()

        assert worker.is_running is False
        assert mock_queue.dequeue.await_count == 3


class TestWorkerWithRedis:
    """End-to-end behaviour against the in-memory store."""

    @pytest.mark.asyncio
    async def test_failed_message_is_retried(self, queue):
        await queue.enqueue(Message(body="job"))
        attempts = []

        async def handler(message):
            attempts.append(message.body)
            if len(attempts) == 1:
                raise RuntimeError("transient")

        worker = ReclaimWorker(queue, handler, blocking_timeout_ms=0)

        await worker.process_one()  # fails, rejected
        await worker.process_one()  # scan requeues, succeeds

        assert attempts == ["job", "job"]
        assert await queue.available_count() == 0
        assert await queue.processing_count() == 0

    @pytest.mark.asyncio
    async def test_non_utf8_entry_is_dead_lettered(self, queue, fake_redis):
        await fake_redis.rpush("q", b"\xff\xfe".decode("utf-8", "surrogateescape"))
        await queue.enqueue(Message(body="good"))
        handled = []

        async def handler(message):
            handled.append(message.body)

        worker = ReclaimWorker(queue, handler, blocking_timeout_ms=0)

        await worker.process_one()
        await worker.process_one()

        assert handled == ["good"]
        assert worker.stats == {"processed": 1, "failed": 1, "empty_polls": 0}
        assert len(fake_redis.lists["q_dead"]) == 1
