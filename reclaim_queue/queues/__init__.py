"""
At-least-once queues on Redis lists with automatic reclaim of abandoned claims.

Every dequeue() first scans the processing list and returns messages whose
claim marker has expired (crashed consumer) or was force-expired (reject)
to the available list.

Classes:
    ReclaimQueue: enqueue / dequeue / ack / reject / reclaim_scan
    ReclaimWorker: Supervised consume loop around a handler
    Message: Queue message (body + headers)
    QueueConfig: Claim, polling and key-suffix configuration

Example:
    from reclaim_queue.queues import Message, ReclaimQueue
    from reclaim_queue.store import StoreClient

    async with StoreClient() as store:
        queue = ReclaimQueue(store, "jobs")
        await queue.enqueue(Message(body="resize:42"))

        async for message in queue.consume():
            await handle(message)
            await queue.ack(message)
"""

from reclaim_queue.queues.base import ReclaimQueue
from reclaim_queue.queues.config import QueueConfig
from reclaim_queue.queues.fingerprint import fingerprint
from reclaim_queue.queues.message import Message, decode_message, encode_message
from reclaim_queue.queues.worker import ReclaimWorker

__all__ = [
    "ReclaimQueue",
    "ReclaimWorker",
    "Message",
    "QueueConfig",
    "fingerprint",
    "encode_message",
    "decode_message",
]
