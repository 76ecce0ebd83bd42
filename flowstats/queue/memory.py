"""
In-process queue with the full FIFO-group contract.
enforce_group_order=False deliberately breaks grouping (every visible message is
deliverable) so tests can show what goes wrong without it.
"""
import threading
import time
import uuid
from dataclasses import dataclass
from typing import Callable

from flowstats.queue.base import BaseQueue, Message, select_deliverable

DEFAULT_DEDUP_WINDOW_SEC = 300.0


@dataclass
class _Record:
    message_id: str
    body: str
    group_key: str | None
    dedup_key: str | None
    visible_at: float = 0.0
    receipt: str | None = None
    receive_count: int = 0


class InMemoryQueue(BaseQueue):
    def __init__(
        self,
        name: str = "memory",
        visibility_timeout_sec: float = 30.0,
        dedup_window_sec: float = DEFAULT_DEDUP_WINDOW_SEC,
        enforce_group_order: bool = True,
        clock: Callable[[], float] | None = None,
    ):
        self.name = name
        self.visibility_timeout_sec = visibility_timeout_sec
        self.dedup_window_sec = dedup_window_sec
        self.enforce_group_order = enforce_group_order
        self.clock = clock or time.monotonic
        self._records: list[_Record] = []
        self._dedup: dict[str, float] = {}
        self._cond = threading.Condition()

    def send(self, body, group_key=None, dedup_key=None):
        with self._cond:
            now = self.clock()
            self._dedup = {k: t for k, t in self._dedup.items() if now - t < self.dedup_window_sec}
            if dedup_key is not None:
                if dedup_key in self._dedup:
                    return None
                self._dedup[dedup_key] = now
            rec = _Record(uuid.uuid4().hex, body, group_key, dedup_key)
            self._records.append(rec)
            self._cond.notify_all()
            return rec.message_id

    def _take(self, max_messages):
        now = self.clock()
        out = []
        for rec in select_deliverable(self._records, now, self.enforce_group_order)[:max_messages]:
            rec.receipt = uuid.uuid4().hex
            rec.visible_at = now + self.visibility_timeout_sec
            rec.receive_count += 1
            out.append(Message(rec.body, rec.receipt, rec.group_key, rec.dedup_key, rec.receive_count))
        return out

    def receive(self, max_messages=1, wait_seconds=0):
        deadline = time.monotonic() + max(0.0, wait_seconds)
        with self._cond:
            while True:
                out = self._take(max_messages)
                remaining = deadline - time.monotonic()
                if out or remaining <= 0:
                    return out
                # in-flight messages may become visible again without a notify
                self._cond.wait(timeout=min(remaining, 0.2))

    def acknowledge(self, ack_token):
        with self._cond:
            self._records = [r for r in self._records if r.receipt != ack_token]
            self._cond.notify_all()

    def depth(self):
        with self._cond:
            return len(self._records)

    def expire_in_flight(self) -> None:
        """Make every in-flight message visible again, as if its visibility timeout ran out."""
        with self._cond:
            for rec in self._records:
                if rec.receipt is not None:
                    rec.visible_at = 0.0
            self._cond.notify_all()
