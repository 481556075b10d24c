"""
Redis Sentinel address resolution.

Asks a list of Sentinel coordinators, in order, for the address of the
current primary. Used only while a StoreClient is connecting; the resolver
holds no connection of its own between calls.
"""

import logging
from collections.abc import Sequence
from dataclasses import dataclass

import redis.asyncio as redis
from redis.exceptions import RedisError

from reclaim_queue.config.settings import DEFAULT_SENTINEL_PORT
from reclaim_queue.errors import ConnectionSetupError
from reclaim_queue.store.records import parse_flat_record

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PrimaryAddress:
    """Host and port of the current Redis primary."""

    host: str
    port: int


class SentinelResolver:
    """
    Resolves the current Redis primary through Sentinel coordinators.

    Coordinators are tried in the order given. The first one that answers
    ``SENTINEL MASTER <name>`` with an ip/port pair wins. Unreachable
    coordinators are skipped; there is no retry once the list is exhausted.

    Usage:
        resolver = SentinelResolver([("sentinel-1", 26379), ("sentinel-2", 26379)])
        address = await resolver.resolve()
    """

    def __init__(
        self,
        endpoints: Sequence[tuple[str, int]],
        master_name: str = "mymaster",
        socket_timeout: float = 1.0,
    ):
        """
        Initialize the resolver.

        Args:
            endpoints: (host, port) pairs of Sentinel coordinators
            master_name: Name of the monitored primary
            socket_timeout: Per-coordinator connect/read timeout in seconds
        """
        self._endpoints = [
            (host, port or DEFAULT_SENTINEL_PORT) for host, port in endpoints
        ]
        self._master_name = master_name
        self._socket_timeout = socket_timeout

    @property
    def endpoints(self) -> list[tuple[str, int]]:
        return list(self._endpoints)

    async def resolve(self) -> PrimaryAddress:
        """
        Find the current primary.

        Returns:
            Address of the primary reported by the first reachable coordinator

        Raises:
            ConnectionSetupError: If no coordinator reports a primary
        """
        for host, port in self._endpoints:
            address = await self._query(host, port)
            if address is not None:
                logger.info(
                    f"Sentinel {host}:{port} reports primary "
                    f"'{self._master_name}' at {address.host}:{address.port}"
                )
                return address

        raise ConnectionSetupError(
            f"No Sentinel coordinator reported primary '{self._master_name}' "
            f"(tried {len(self._endpoints)} endpoints)"
        )

    async def _query(self, host: str, port: int) -> PrimaryAddress | None:
        """Ask one coordinator for the primary, returning None if it cannot answer."""
        probe = redis.Redis(
            host=host,
            port=port,
            decode_responses=True,
            socket_timeout=self._socket_timeout,
            socket_connect_timeout=self._socket_timeout,
        )
        try:
            reply = await probe.execute_command("SENTINEL", "MASTER", self._master_name)
        except RedisError as e:
            logger.warning(f"Sentinel {host}:{port} unavailable: {e}")
            return None
        finally:
            await probe.aclose()

        record = reply if isinstance(reply, dict) else parse_flat_record(reply or [])
        try:
            return PrimaryAddress(host=str(record["ip"]), port=int(record["port"]))
        except (KeyError, TypeError, ValueError):
            logger.warning(
                f"Sentinel {host}:{port} returned no address for "
                f"'{self._master_name}': {reply!r}"
            )
            return None
