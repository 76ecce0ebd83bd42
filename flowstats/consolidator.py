"""
Consolidator worker: fold each IntermediateSummary into the durable TrafficState of its pair.

Per notification, in order:
  1. fetch the interim summary (missing -> MissingReferenceError, message dropped)
  2. load the pair's state, or start from an empty one
  3. count += 1, sums += x, sums of squares += x^2 (x clamped to >= 0)
  4. overwrite the state
  5. delete the interim blob
  6. acknowledge, only after 2-5 succeeded

There is no transaction spanning store and queue. A crash after step 4 and before step 6
redelivers the message and applies the summary twice. With idempotent_updates enabled the
state remembers the dedup key it last applied and a redelivery of that key is skipped;
FIFO-per-source-IP delivery means the last applied key is the only one that can repeat.
Writes to a pair are serialized by that grouping, not by locks.
"""
import sys

from flowstats import metrics_prometheus as metrics
from flowstats.errors import BlobNotFoundError, MissingReferenceError, StateCorruptError
from flowstats.queue import BaseQueue, Message
from flowstats.store import BaseBlobStore
from flowstats_core.errors import CodecError
from flowstats_core.stats import TrafficState
from flowstats_core.summary import IntermediateSummary, decode_summary

WORKER_NAME = "consolidator"
STATE_PREFIX = "state/"


def state_key(src_ip: str, dst_ip: str) -> str:
    """Addresses are assumed free of "_"; load_state rejects a key shared by two pairs."""
    return f"{STATE_PREFIX}{src_ip}_{dst_ip}.json"


class ConsolidatorWorker:
    def __init__(
        self,
        store: BaseBlobStore,
        queue: BaseQueue,
        interim_bucket: str,
        state_bucket: str,
        idempotent_updates: bool = False,
    ):
        self.store = store
        self.queue = queue
        self.interim_bucket = interim_bucket
        self.state_bucket = state_bucket
        self.idempotent_updates = idempotent_updates

    @classmethod
    def from_transport(cls, transport) -> "ConsolidatorWorker":
        config = transport.config
        config.require("bucket.interim", "bucket.state", "queue.consolidate")
        return cls(
            transport.store,
            transport.consolidate_queue,
            interim_bucket=config.bucket_interim,
            state_bucket=config.bucket_state,
            idempotent_updates=config.idempotent_updates,
        )

    def fetch_summary(self, key: str) -> IntermediateSummary:
        try:
            data = self.store.get(self.interim_bucket, key)
        except BlobNotFoundError:
            raise MissingReferenceError(self.interim_bucket, key) from None
        return decode_summary(data)

    def load_state(self, src_ip: str, dst_ip: str) -> TrafficState:
        key = state_key(src_ip, dst_ip)
        try:
            data = self.store.get(self.state_bucket, key)
        except BlobNotFoundError:
            return TrafficState.empty(src_ip, dst_ip)
        try:
            state = TrafficState.from_json(data)
        except CodecError as e:
            raise StateCorruptError(f"state {self.state_bucket}/{key} is unreadable: {e}") from e
        if (state.src_ip, state.dst_ip) != (src_ip, dst_ip):
            raise StateCorruptError(
                f"state {self.state_bucket}/{key} belongs to {state.src_ip}->{state.dst_ip}, not {src_ip}->{dst_ip}"
            )
        return state

    def save_state(self, state: TrafficState) -> None:
        self.store.put(self.state_bucket, state_key(state.src_ip, state.dst_ip), state.to_json())

    def consolidate(self, interim_key: str, dedup_key: str | None = None) -> tuple[TrafficState, bool]:
        """
        Steps 1-5 for one interim blob. Returns (state, applied); applied is False only when
        idempotent mode recognised a redelivery.
        """
        summary = self.fetch_summary(interim_key)
        current = self.load_state(summary.src_ip, summary.dst_ip)
        applied = True
        if self.idempotent_updates:
            marker = dedup_key or interim_key
            if current.last_applied == marker:
                applied = False
                new_state = current
            else:
                new_state = current.apply(summary, applied_key=marker)
        else:
            new_state = current.apply(summary)
        if applied:
            self.save_state(new_state)
        self.store.delete(self.interim_bucket, interim_key)
        return new_state, applied

    def handle(self, msg: Message) -> str:
        interim_key = (msg.body or "").strip()
        try:
            state, applied = self.consolidate(interim_key, msg.dedup_key)
        except (MissingReferenceError, CodecError) as e:
            # nothing to recover: retrying would fail the same way forever
            reason = "missing_reference" if isinstance(e, MissingReferenceError) else "undecodable"
            print(f"{WORKER_NAME}: dropping notification {interim_key!r}: {e}", file=sys.stderr)
            metrics.message_dropped(WORKER_NAME, reason)
            self.queue.acknowledge(msg.ack_token)
            return "dropped"
        except Exception as e:
            print(f"{WORKER_NAME}: failed to consolidate {interim_key}, left for redelivery: {e}", file=sys.stderr)
            metrics.consolidate_failure()
            return "retry"
        self.queue.acknowledge(msg.ack_token)
        metrics.consolidated(skipped_duplicate=not applied)
        verb = "updated" if applied else "already applied"
        print(f"{WORKER_NAME}: {interim_key} -> {state.src_ip}->{state.dst_ip} {verb} (count={state.count})")
        return "consolidated" if applied else "duplicate"
