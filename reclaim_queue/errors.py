"""Exception hierarchy for reclaim-queue."""


class ReclaimQueueError(Exception):
    """Base class for all reclaim-queue errors."""


class ConnectionSetupError(ReclaimQueueError):
    """
    Raised when a store session cannot be established.

    Covers unreachable Sentinel coordinators, an unreachable primary and
    authentication failures. Never retried internally.
    """


class MessageDecodeError(ReclaimQueueError):
    """Raised when a stored payload is not a valid message."""

    def __init__(self, payload: str, reason: str):
        super().__init__(f"Cannot decode message payload: {reason}")
        self.payload = payload
        self.reason = reason
