"""
Upload a local CSV export to the raw bucket under a unique name.
On AWS the bucket's event notification feeds the summarize queue; the local backends
have no such hook, so the caller passes the queue to notify directly.
"""
import json
import os
import uuid

from flowstats.queue import BaseQueue
from flowstats.store import BaseBlobStore, S3BlobStore


def raw_object_name() -> str:
    return f"traffic-data-{uuid.uuid4()}.csv"


def upload_file(path: str, store: BaseBlobStore, raw_bucket: str, notify_queue: BaseQueue | None = None) -> str:
    """Returns the object key. FileNotFoundError when path does not exist."""
    if not os.path.isfile(path):
        raise FileNotFoundError(path)
    key = raw_object_name()
    if isinstance(store, S3BlobStore):
        store.upload_file(path, raw_bucket, key)
    else:
        with open(path, "rb") as f:
            store.put(raw_bucket, key, f.read())
    if notify_queue is not None:
        notify_queue.send(json.dumps({"bucket": raw_bucket, "key": key}), dedup_key=key)
    return key
