"""
Queue configuration for reclaim behavior.

Provides the claim and polling defaults used by ReclaimQueue, the Redis key
suffixes that make up a queue's state, and backoff settings for consume().
"""

from dataclasses import dataclass

from reclaim_queue.config.settings import Settings


@dataclass
class QueueConfig:
    """
    Configuration for a reclaim queue.

    Attributes:
        processing_ttl_ms: How long a claim is honored before the message
            becomes eligible for reclaim, in milliseconds.

        blocking_timeout_ms: How long dequeue() waits for a message before
            returning None. 0 polls once without blocking.

        processing_suffix: Appended to the queue name to form the
            processing list key.

        dead_letter_suffix: Appended to the queue name to form the list that
            receives payloads which cannot be decoded as messages.
    """

    processing_ttl_ms: int = 10_000  # 10 seconds
    blocking_timeout_ms: int = 1_000
    processing_suffix: str = "_processing"
    dead_letter_suffix: str = "_dead"

    # Backoff settings for consume() error recovery
    backoff_base_delay: float = 1.0
    backoff_max_delay: float = 60.0

    @classmethod
    def from_settings(cls, settings: Settings) -> "QueueConfig":
        return cls(
            processing_ttl_ms=settings.processing_ttl_ms,
            blocking_timeout_ms=settings.blocking_timeout_ms,
            backoff_base_delay=settings.worker_backoff_base_delay,
            backoff_max_delay=settings.worker_backoff_max_delay,
        )
