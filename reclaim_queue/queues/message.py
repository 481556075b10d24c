"""
Message model and wire encoding.

List entries are JSON objects with a "body" string and a "headers" object,
encoded with sorted keys and compact separators so the same message always
encodes to the same payload. LREM matches payloads byte for byte, so a
message read from Redis keeps the exact payload it came from in ``raw``.
"""

import json
from dataclasses import dataclass, field
from typing import Any

from reclaim_queue.errors import MessageDecodeError
from reclaim_queue.queues.fingerprint import fingerprint


@dataclass
class Message:
    """
    A queue message.

    Attributes:
        body: Message body; the only field that identifies a claim
        headers: Arbitrary JSON-serializable auxiliary fields
        raw: Payload this message was decoded from, None for new messages
    """

    body: str
    headers: dict[str, Any] = field(default_factory=dict)
    raw: str | None = field(default=None, compare=False, repr=False)

    def __post_init__(self) -> None:
        if isinstance(self.body, bytes):
            self.body = self.body.decode("utf-8", "surrogateescape")

    @property
    def fingerprint(self) -> str:
        """Marker key for this message."""
        return fingerprint(self.body)

    @property
    def payload(self) -> str:
        """Payload as stored in Redis."""
        return self.raw if self.raw is not None else encode_message(self)


def encode_message(message: Message) -> str:
    """Serialize a message to its canonical JSON payload."""
    return json.dumps(
        {"body": message.body, "headers": message.headers},
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
    )


def decode_message(payload: str) -> Message:
    """
    Parse a stored payload.

    Raises:
        MessageDecodeError: If the payload is not a JSON object with a
            string body and an object (or missing) headers field
    """
    try:
        data = json.loads(payload)
    except (TypeError, ValueError) as e:
        raise MessageDecodeError(payload, f"invalid JSON ({e})") from e

    if not isinstance(data, dict):
        raise MessageDecodeError(payload, "payload is not an object")
    if not isinstance(data.get("body"), str):
        raise MessageDecodeError(payload, "missing or non-string body")

    headers = data.get("headers", {})
    if not isinstance(headers, dict):
        raise MessageDecodeError(payload, "headers is not an object")

    return Message(body=data["body"], headers=headers, raw=payload)


def payload_fingerprint(payload: str) -> str:
    """
    Marker key for a stored payload.

    Payloads that cannot be decoded are fingerprinted as a whole.
    """
    try:
        return decode_message(payload).fingerprint
    except MessageDecodeError:
        return fingerprint(payload)
