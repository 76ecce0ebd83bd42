"""
Base class for durable queues.

Contract every backend honours:
  * FIFO per group key: messages sharing a group_key are handed out in send order, and a
    group is blocked while one of its messages is in flight (received, not acknowledged,
    visibility timeout not expired). Messages without a group key are unordered.
  * At-least-once: a message that is not acknowledged becomes visible again after the
    visibility timeout and is redelivered.
  * Deduplication: a send() repeating a dedup_key seen within the dedup window is dropped.
"""
import abc
from dataclasses import dataclass


@dataclass(frozen=True)
class Message:
    body: str
    ack_token: str
    group_key: str | None = None
    dedup_key: str | None = None
    receive_count: int = 1


class BaseQueue(abc.ABC):
    """send() / receive() / acknowledge(); close() when done."""

    @abc.abstractmethod
    def send(self, body: str, group_key: str | None = None, dedup_key: str | None = None) -> str | None:
        """Enqueue body. Returns a message id, or None when suppressed as a duplicate."""
        pass

    @abc.abstractmethod
    def receive(self, max_messages: int = 1, wait_seconds: float = 0) -> list[Message]:
        """Return up to max_messages visible messages, blocking up to wait_seconds when none are ready."""
        pass

    @abc.abstractmethod
    def acknowledge(self, ack_token: str) -> None:
        """Remove a received message for good."""
        pass

    def depth(self) -> int:
        """Approximate number of messages not yet acknowledged (visible + in flight)."""
        raise NotImplementedError

    def close(self) -> None:
        pass

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.close()
        return False


def select_deliverable(records, now, enforce_group_order=True):
    """
    Pick the records that may be handed out now, in send order.
    records: iterable of objects with group_key, receipt, visible_at (send order).
    Only the head of each group is eligible, and only when it is not in flight.
    """
    seen_groups = set()
    out = []
    for rec in records:
        available = rec.receipt is None or rec.visible_at <= now
        if enforce_group_order and rec.group_key is not None:
            if rec.group_key in seen_groups:
                continue
            seen_groups.add(rec.group_key)
        if available:
            out.append(rec)
    return out
