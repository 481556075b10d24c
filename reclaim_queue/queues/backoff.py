"""
Retry pacing for queue consumers.

When Redis is unavailable, consume() and ReclaimWorker wait before the next
dequeue, and the wait doubles after every failure. A successful dequeue
returns the wait to its starting value.
"""

import asyncio
import random


class ExponentialBackoff:
    """
    Growing, randomized wait between failed dequeues.

    The n-th wait (counting from 0) is base_delay * multiplier**n, capped at
    max_delay, then multiplied by a random factor drawn from
    [1 - jitter_range, 1 + jitter_range] so that consumers knocked over by the
    same outage do not all reconnect at the same moment.

    Usage:
        backoff = ExponentialBackoff(base_delay=0.5, max_delay=30.0)
        while True:
            try:
                message = await queue.dequeue()
            except RedisError:
                await backoff.wait()
                continue
            backoff.reset()
    """

    def __init__(
        self,
        base_delay: float = 1.0,
        max_delay: float = 60.0,
        multiplier: float = 2.0,
        jitter_range: float = 0.5,
    ):
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.multiplier = multiplier
        self.jitter_range = jitter_range
        self._attempt = 0

    @property
    def attempt(self) -> int:
        """Failed dequeues since the last reset()."""
        return self._attempt

    def next_delay(self) -> float:
        """Seconds to wait before retrying; counts one more failure."""
        delay = min(self.base_delay * self.multiplier**self._attempt, self.max_delay)
        if self.jitter_range:
            delay *= 1 + random.uniform(-self.jitter_range, self.jitter_range)
        self._attempt += 1
        return max(0.0, delay)

    async def wait(self) -> float:
        """Sleep through the next delay, returning how long it was."""
        delay = self.next_delay()
        await asyncio.sleep(delay)
        return delay

    def reset(self) -> None:
        self._attempt = 0
