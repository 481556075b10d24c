"""Message fingerprints used as claim marker keys."""

import hashlib


def fingerprint(body: str | bytes) -> str:
    """
    Derive the marker key for a message body.

    The key is the hex md5 digest of the body bytes, so equal bodies always
    map to the same marker. Strings are UTF-8 encoded with surrogateescape:
    a body read from a non-UTF-8 entry hashes to the digest of its original
    bytes. Two in-flight messages with identical bodies share one claim, and
    acknowledging or rejecting either one affects both.

    Args:
        body: Message body

    Returns:
        32-character lowercase hex digest
    """
    if isinstance(body, str):
        body = body.encode("utf-8", "surrogateescape")
    return hashlib.md5(body, usedforsecurity=False).hexdigest()
