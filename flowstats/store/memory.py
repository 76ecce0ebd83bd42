"""In-process blob store (tests, single-process demos)."""
import threading

from flowstats.errors import BlobNotFoundError
from flowstats.store.base import BaseBlobStore


class InMemoryBlobStore(BaseBlobStore):
    def __init__(self):
        self._buckets: dict[str, dict[str, bytes]] = {}
        self._lock = threading.Lock()

    def get(self, bucket, key):
        with self._lock:
            try:
                return self._buckets[bucket][key]
            except KeyError:
                raise BlobNotFoundError(bucket, key) from None

    def put(self, bucket, key, data):
        if isinstance(data, str):
            data = data.encode("utf-8")
        with self._lock:
            self._buckets.setdefault(bucket, {})[key] = bytes(data)

    def delete(self, bucket, key):
        with self._lock:
            self._buckets.get(bucket, {}).pop(key, None)

    def list(self, bucket, prefix=""):
        with self._lock:
            # insertion order, like a listing that is not sorted by the store
            return [k for k in self._buckets.get(bucket, {}) if k.startswith(prefix)]
