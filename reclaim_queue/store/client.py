"""
Store client facade over a single Redis session.

StoreClient owns one redis.asyncio.Redis connection and exposes the list,
key-expiry and transaction primitives the reclaim protocol is built from.
It adds no queue logic of its own: every method maps to one Redis command.

Blocking reads rely on the server-side timeout of BLMOVE, so the session is
opened without a client-side socket timeout.
"""

import logging
from types import TracebackType

import redis.asyncio as redis
from redis.asyncio.client import Pipeline
from redis.exceptions import RedisError

from reclaim_queue.config.settings import Settings
from reclaim_queue.errors import ConnectionSetupError
from reclaim_queue.store.resolver import SentinelResolver

logger = logging.getLogger(__name__)


class StoreClient:
    """
    Facade over the Redis session used by reclaim queues.

    The address is either given directly or discovered through a
    SentinelResolver at connect time. A client is meant to be created by the
    component that owns it and passed explicitly to the queues using it.

    Usage:
        async with StoreClient(host="127.0.0.1", port=6379) as store:
            queue = ReclaimQueue(store, "jobs")
            await queue.enqueue(Message(body="hello"))
    """

    def __init__(
        self,
        host: str = "127.0.0.1",
        port: int = 6379,
        password: str | None = None,
        db: int = 0,
        resolver: SentinelResolver | None = None,
    ):
        """
        Initialize the store client.

        Args:
            host: Redis host, ignored when a resolver is given
            port: Redis port, ignored when a resolver is given
            password: Optional password sent with AUTH on connect
            db: Redis database number
            resolver: Sentinel resolver used to discover the primary
        """
        self._host = host
        self._port = port
        self._password = password
        self._db = db
        self._resolver = resolver

        self._redis: redis.Redis | None = None

    @classmethod
    def from_settings(cls, settings: Settings) -> "StoreClient":
        """Build a client from application settings."""
        resolver = None
        if settings.sentinel_configured:
            resolver = SentinelResolver(
                settings.sentinel_endpoints,
                master_name=settings.sentinel_master_name,
                socket_timeout=settings.sentinel_socket_timeout,
            )
        return cls(
            host=settings.redis_host,
            port=settings.redis_port,
            password=settings.redis_password,
            db=settings.redis_db,
            resolver=resolver,
        )

    @property
    def address(self) -> tuple[str, int]:
        """Address of the primary (resolved once connected)."""
        return self._host, self._port

    async def connect(self) -> None:
        """
        Open the Redis session.

        Raises:
            ConnectionSetupError: If the primary cannot be resolved, reached,
                or authenticated against
        """
        if self._resolver is not None:
            primary = await self._resolver.resolve()
            self._host, self._port = primary.host, primary.port

        self._redis = redis.Redis(
            host=self._host,
            port=self._port,
            db=self._db,
            password=self._password,
            encoding="utf-8",
            # Non-UTF-8 entries decode to lone surrogates and encode back to the same bytes
            encoding_errors="surrogateescape",
            decode_responses=True,
            socket_timeout=None,
        )

        try:
            await self._redis.ping()
        except RedisError as e:
            await self._redis.aclose()
            self._redis = None
            raise ConnectionSetupError(
                f"Cannot connect to Redis at {self._host}:{self._port}: {e}"
            ) from e

        logger.info(f"Connected to Redis at {self._host}:{self._port}/{self._db}")

    async def close(self) -> None:
        """Close the Redis session."""
        if self._redis:
            await self._redis.aclose()
            self._redis = None
            logger.info(f"Redis connection closed for {self._host}:{self._port}")

    async def __aenter__(self) -> "StoreClient":
        await self.connect()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.close()

    @property
    def redis(self) -> redis.Redis:
        """Get Redis client, raising if not connected."""
        if self._redis is None:
            raise RuntimeError("Not connected to Redis. Call connect() first.")
        return self._redis

    # List primitives

    async def push_tail(self, name: str, value: str) -> int:
        """RPUSH: append value to the tail of a list, returning the new length."""
        return await self.redis.rpush(name, value)

    async def move_head_to_head(
        self,
        source: str,
        destination: str,
        timeout_ms: int,
    ) -> str | None:
        """
        Atomically pop the head of source and push it to the head of destination.

        Blocks up to timeout_ms for source to become non-empty (BLMOVE). A
        timeout of 0 performs a single non-blocking LMOVE instead of the
        server's block-forever semantics.

        Returns:
            The moved value, or None if source stayed empty
        """
        if timeout_ms > 0:
            return await self.redis.blmove(
                source, destination, timeout_ms / 1000, src="LEFT", dest="LEFT"
            )
        return await self.redis.lmove(source, destination, src="LEFT", dest="LEFT")

    async def read_range(self, name: str, start: int = 0, end: int = -1) -> list[str]:
        """LRANGE: read list elements without removing them."""
        return await self.redis.lrange(name, start, end)

    async def remove_value(self, name: str, value: str, count: int = 1) -> int:
        """LREM: remove up to count occurrences of value, head first."""
        return await self.redis.lrem(name, count, value)

    async def position(self, name: str, value: str) -> int | None:
        """LPOS: index of the first occurrence of value, or None."""
        return await self.redis.lpos(name, value)

    async def length(self, name: str) -> int:
        """LLEN: number of elements in a list."""
        return await self.redis.llen(name)

    # Expiring key primitives

    async def set_marker(self, key: str, ttl_ms: int, value: str = "1") -> None:
        """SET with PX: create or replace a key expiring after ttl_ms."""
        await self.redis.set(key, value, px=ttl_ms)

    async def remaining_ttl_ms(self, key: str) -> int:
        """
        PTTL: remaining time to live in milliseconds.

        Returns -2 when the key does not exist and -1 when it has no expiry.
        """
        return await self.redis.pttl(key)

    async def expire_now(self, key: str) -> bool:
        """Give a key an expiry in the past, removing it. Returns whether it existed."""
        return bool(await self.redis.pexpire(key, -1))

    async def delete(self, *keys: str) -> int:
        """DEL: remove keys, returning how many existed."""
        return await self.redis.delete(*keys)

    # Transactions

    def pipeline(self, transaction: bool = True) -> Pipeline:
        """
        Create a pipeline.

        With transaction=True the buffered commands run inside MULTI/EXEC;
        WATCH is available for optimistic check-and-set.
        """
        return self.redis.pipeline(transaction=transaction)

    async def ping(self) -> bool:
        return await self.redis.ping()
