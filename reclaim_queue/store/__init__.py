"""
Redis store access for reclaim queues.

Classes:
    StoreClient: Facade over the single Redis session
    SentinelResolver: Discovers the current primary through Redis Sentinel
    PrimaryAddress: Host/port reported by Sentinel

Functions:
    parse_flat_record: Rebuild mappings from flat Sentinel replies
"""

from reclaim_queue.store.client import StoreClient
from reclaim_queue.store.records import parse_flat_record
from reclaim_queue.store.resolver import PrimaryAddress, SentinelResolver

__all__ = ["StoreClient", "SentinelResolver", "PrimaryAddress", "parse_flat_record"]
