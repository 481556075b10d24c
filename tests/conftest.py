"""Pytest fixtures for reclaim-queue tests."""

import asyncio
import math
import time
from typing import Any

import pytest
from redis.exceptions import WatchError

from reclaim_queue.config.settings import Settings
from reclaim_queue.queues import QueueConfig, ReclaimQueue
from reclaim_queue.store import StoreClient


class FakeRedis:
    """
    In-memory stand-in for the redis.asyncio commands StoreClient uses.

    Lists, expiring string keys, and MULTI/EXEC pipelines with WATCH are
    modelled closely enough to exercise the reclaim protocol end to end.
    Every write bumps a per-key version that WATCH compares at EXEC time.
    """

    def __init__(self) -> None:
        self.lists: dict[str, list[str]] = {}
        self.keys: dict[str, tuple[str, float | None]] = {}
        self.versions: dict[str, int] = {}
        self.closed = False

    def _touch(self, name: str) -> None:
        self.versions[name] = self.versions.get(name, 0) + 1

    def _live(self, key: str) -> tuple[str, float | None] | None:
        entry = self.keys.get(key)
        if entry is None:
            return None
        _, expires_at = entry
        if expires_at is not None and expires_at <= time.monotonic():
            del self.keys[key]
            return None
        return entry

    # Connection

    async def ping(self) -> bool:
        return True

    async def aclose(self) -> None:
        self.closed = True

    # Lists

    async def rpush(self, name: str, *values: str) -> int:
        self.lists.setdefault(name, []).extend(values)
        self._touch(name)
        return len(self.lists[name])

    async def lpush(self, name: str, *values: str) -> int:
        items = self.lists.setdefault(name, [])
        for value in values:
            items.insert(0, value)
        self._touch(name)
        return len(items)

    async def lrange(self, name: str, start: int, end: int) -> list[str]:
        items = self.lists.get(name, [])
        stop = len(items) if end == -1 else end + 1
        return list(items[start:stop])

    async def llen(self, name: str) -> int:
        return len(self.lists.get(name, []))

    async def lpos(self, name: str, value: str) -> int | None:
        items = self.lists.get(name, [])
        return items.index(value) if value in items else None

    async def lrem(self, name: str, count: int, value: str) -> int:
        items = self.lists.get(name, [])
        removed = 0
        kept = []
        for item in items:
            if item == value and (count == 0 or removed < count):
                removed += 1
                continue
            kept.append(item)
        if removed:
            self.lists[name] = kept
            self._touch(name)
        return removed

    def _move(self, source: str, destination: str, src: str, dest: str) -> str | None:
        items = self.lists.get(source)
        if not items:
            return None
        value = items.pop() if src == "RIGHT" else items.pop(0)
        target = self.lists.setdefault(destination, [])
        if dest == "LEFT":
            target.insert(0, value)
        else:
            target.append(value)
        self._touch(source)
        self._touch(destination)
        return value

    async def lmove(self, first_list: str, second_list: str, src: str = "LEFT", dest: str = "RIGHT"):
        return self._move(first_list, second_list, src, dest)

    async def blmove(
        self,
        first_list: str,
        second_list: str,
        timeout: float,
        src: str = "LEFT",
        dest: str = "RIGHT",
    ):
        deadline = time.monotonic() + timeout
        while True:
            value = self._move(first_list, second_list, src, dest)
            if value is not None:
                return value
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return None
            await asyncio.sleep(min(0.01, remaining))

    # Keys

    async def set(self, key: str, value: Any, px: int | None = None) -> bool:
        expires_at = time.monotonic() + px / 1000 if px is not None else None
        self.keys[key] = (str(value), expires_at)
        self._touch(key)
        return True

    async def pttl(self, key: str) -> int:
        entry = self._live(key)
        if entry is None:
            return -2
        _, expires_at = entry
        if expires_at is None:
            return -1
        return max(1, math.ceil((expires_at - time.monotonic()) * 1000))

    async def pexpire(self, key: str, ms: int) -> bool:
        entry = self._live(key)
        if entry is None:
            return False
        if ms <= 0:
            del self.keys[key]
        else:
            self.keys[key] = (entry[0], time.monotonic() + ms / 1000)
        self._touch(key)
        return True

    async def delete(self, *keys: str) -> int:
        removed = 0
        for key in keys:
            if self._live(key) is not None:
                del self.keys[key]
                removed += 1
                self._touch(key)
            elif key in self.lists:
                del self.lists[key]
                removed += 1
                self._touch(key)
        return removed

    def pipeline(self, transaction: bool = True) -> "FakePipeline":
        return FakePipeline(self, transaction)


class FakePipeline:
    """Buffered pipeline with WATCH/MULTI/EXEC semantics."""

    def __init__(self, redis: FakeRedis, transaction: bool) -> None:
        self._redis = redis
        self._transaction = transaction
        self.reset()

    def reset(self) -> None:
        self._commands: list[tuple[str, tuple, dict]] = []
        self._watched: dict[str, int] = {}
        self._explicit = False

    async def __aenter__(self) -> "FakePipeline":
        return self

    async def __aexit__(self, *exc_info) -> None:
        self.reset()

    async def watch(self, *names: str) -> bool:
        for name in names:
            self._watched[name] = self._redis.versions.get(name, 0)
        return True

    def multi(self) -> None:
        self._explicit = True

    def __getattr__(self, command: str):
        method = getattr(self._redis, command)

        def call(*args, **kwargs):
            if self._watched and not self._explicit:
                return method(*args, **kwargs)
            self._commands.append((command, args, kwargs))
            return self

        return call

    async def execute(self) -> list[Any]:
        try:
            for name, version in self._watched.items():
                if self._redis.versions.get(name, 0) != version:
                    raise WatchError("Watched variable changed.")
            results = []
            for command, args, kwargs in self._commands:
                results.append(await getattr(self._redis, command)(*args, **kwargs))
            return results
        finally:
            self.reset()


class InMemoryStoreClient(StoreClient):
    """StoreClient whose session is a FakeRedis."""

    def __init__(self, fake: FakeRedis):
        super().__init__()
        self._fake = fake

    async def connect(self) -> None:
        self._redis = self._fake


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture
def store(fake_redis) -> InMemoryStoreClient:
    """Connected store client backed by FakeRedis."""
    client = InMemoryStoreClient(fake_redis)
    client._redis = fake_redis
    return client


@pytest.fixture
def queue_config() -> QueueConfig:
    """Short timeouts so tests that wait stay fast."""
    return QueueConfig(processing_ttl_ms=10_000, blocking_timeout_ms=50)


@pytest.fixture
def queue(store, queue_config) -> ReclaimQueue:
    return ReclaimQueue(store, "q", queue_config)


@pytest.fixture
def test_settings() -> Settings:
    """Settings configured for testing."""
    return Settings(
        environment="development",
        log_level="DEBUG",
        redis_host="localhost",
        redis_port=6379,
        redis_db=1,  # Use DB 1 for tests
    )
