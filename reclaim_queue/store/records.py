"""
Parser for flat key/value records returned by Redis Sentinel.

Sentinel (RESP2) replies to commands such as ``SENTINEL MASTER`` with a
flat array that alternates field names and values:

    ["name", "mymaster", "ip", "10.0.0.5", "port", "6379", ...]

Replies listing several records (``SENTINEL MASTERS``, ``SENTINEL REPLICAS``)
nest one such array per record:

    [["name", "a", "ip", ...], ["name", "b", "ip", ...]]

parse_flat_record() turns both shapes into dictionaries. Nested arrays become
positional entries keyed 0, 1, 2... in order of appearance.
"""

from collections.abc import Sequence
from typing import Any


def _is_sequence(value: Any) -> bool:
    return isinstance(value, Sequence) and not isinstance(value, (str, bytes, bytearray))


def parse_flat_record(data: Sequence[Any]) -> dict[Any, Any]:
    """
    Rebuild a nested mapping from a flat alternating key/value sequence.

    Args:
        data: Flat reply, possibly containing nested flat replies

    Returns:
        Dict of key -> value, with nested records stored under
        consecutive integer keys

    Example:
        >>> parse_flat_record(["ip", "10.0.0.5", "port", "6379"])
        {'ip': '10.0.0.5', 'port': '6379'}
        >>> parse_flat_record([["name", "a"], ["name", "b"]])
        {0: {'name': 'a'}, 1: {'name': 'b'}}
    """
    result: dict[Any, Any] = {}
    position = 0
    i = 0
    count = len(data)

    while i < count:
        record = data[i]
        if _is_sequence(record):
            result[position] = parse_flat_record(record)
            position += 1
            i += 1
        else:
            # A dangling key at the end of the reply has no value
            result[record] = data[i + 1] if i + 1 < count else None
            i += 2

    return result
