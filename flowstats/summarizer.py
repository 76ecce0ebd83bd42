"""
Summarize worker: raw CSV upload -> one IntermediateSummary blob + one notification per
(src, dst, day) key. Notifications are grouped by source IP so every update for a source
reaches the consolidator in the order it was produced.
"""
import json
import sys
import uuid
from urllib.parse import unquote_plus

from flowstats import metrics_prometheus as metrics
from flowstats.errors import BlobNotFoundError
from flowstats.queue import BaseQueue, Message
from flowstats.store import BaseBlobStore
from flowstats_core.aggregate import CsvAggregator
from flowstats_core.errors import SchemaError
from flowstats_core.summary import IntermediateSummary, encode_summary

WORKER_NAME = "summarizer"


def summary_blob_name() -> str:
    return f"summary-{uuid.uuid4()}.json"


def parse_notification(body: str, default_bucket: str) -> list[tuple[str, str]]:
    """
    Message body -> [(bucket, key)]. Accepts an S3 event notification, {"bucket", "key"},
    or a bare key in default_bucket. Raises ValueError for anything else.
    """
    text = (body or "").strip()
    if not text:
        raise ValueError("empty message body")
    if not text.startswith("{"):
        return [(default_bucket, text)]
    payload = json.loads(text)
    if not isinstance(payload, dict):
        raise ValueError("notification must be a JSON object")
    if "Records" in payload:
        records = payload.get("Records") or []
        if not isinstance(records, list):
            raise ValueError("S3 event Records must be a list")
        refs = []
        for record in records:
            s3 = record.get("s3") if isinstance(record, dict) else None
            if not isinstance(s3, dict):
                raise ValueError("S3 event record without an s3 object")
            bucket_info = s3.get("bucket")
            object_info = s3.get("object")
            bucket = bucket_info.get("name") if isinstance(bucket_info, dict) else None
            key = object_info.get("key") if isinstance(object_info, dict) else None
            if not bucket or not key:
                raise ValueError("S3 event record without bucket/key")
            refs.append((bucket, unquote_plus(key)))
        return refs
    if payload.get("Event") == "s3:TestEvent":
        return []
    if payload.get("key"):
        return [(payload.get("bucket") or default_bucket, str(payload["key"]))]
    raise ValueError("unrecognised notification body")


class SummarizeWorker:
    def __init__(
        self,
        store: BaseBlobStore,
        source_queue: BaseQueue,
        consolidate_queue: BaseQueue,
        raw_bucket: str,
        interim_bucket: str,
        aggregator: CsvAggregator | None = None,
    ):
        self.store = store
        self.source_queue = source_queue
        self.consolidate_queue = consolidate_queue
        self.raw_bucket = raw_bucket
        self.interim_bucket = interim_bucket
        self.aggregator = aggregator or CsvAggregator()

    @classmethod
    def from_transport(cls, transport) -> "SummarizeWorker":
        config = transport.config
        config.require("bucket.raw", "bucket.interim", "queue.summarize", "queue.consolidate")
        return cls(
            transport.store,
            transport.summarize_queue,
            transport.consolidate_queue,
            raw_bucket=config.bucket_raw,
            interim_bucket=config.bucket_interim,
            aggregator=CsvAggregator(config.csv_columns),
        )

    def emit(self, summary: IntermediateSummary) -> str:
        """Persist one summary under a fresh name, then notify the consolidator."""
        name = summary_blob_name()
        self.store.put(self.interim_bucket, name, encode_summary(summary))
        self.consolidate_queue.send(name, group_key=summary.src_ip, dedup_key=name)
        return name

    def process_file(self, bucket: str, key: str) -> list[str]:
        """Aggregate one raw file and emit its summaries. SchemaError means nothing was emitted."""
        data = self.store.get(bucket, key)
        result = self.aggregator.aggregate_bytes(data)
        metrics.rows_processed(result.rows_read, result.rows_skipped)
        names = [self.emit(summary) for summary in result.summaries]
        metrics.summaries_emitted(len(names))
        print(
            f"{WORKER_NAME}: {bucket}/{key}: rows={result.rows_read} skipped={result.rows_skipped} "
            f"summaries={len(names)}"
        )
        return names

    def handle(self, msg: Message) -> str:
        """
        Process one upload notification. Acknowledged unless a transient failure means a retry
        could succeed.
        """
        try:
            refs = parse_notification(msg.body, self.raw_bucket)
        except ValueError as e:
            print(f"{WORKER_NAME}: dropping unreadable notification: {e}", file=sys.stderr)
            metrics.message_dropped(WORKER_NAME, "bad_body")
            self.source_queue.acknowledge(msg.ack_token)
            return "dropped"

        for bucket, key in refs:
            try:
                self.process_file(bucket, key)
            except SchemaError as e:
                print(f"{WORKER_NAME}: skipping file {bucket}/{key}: {e}", file=sys.stderr)
                metrics.file_rejected("schema")
            except BlobNotFoundError as e:
                print(f"{WORKER_NAME}: skipping file {bucket}/{key}: {e}", file=sys.stderr)
                metrics.file_rejected("missing")
            except Exception as e:
                print(f"{WORKER_NAME}: failed to process {bucket}/{key}, will retry: {e}", file=sys.stderr)
                return "retry"
        self.source_queue.acknowledge(msg.ack_token)
        return "processed"
