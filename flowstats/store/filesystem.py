"""
Filesystem blob store: <root>/<bucket>/<key>. Keys may contain "/" (e.g. state/a_b.json).
Writes go to a temp file in the same directory and are moved into place with os.replace.
"""
import os
import tempfile

from flowstats.errors import BlobNotFoundError, TransientStoreError
from flowstats.store.base import BaseBlobStore


class FilesystemBlobStore(BaseBlobStore):
    def __init__(self, root: str):
        self.root = os.path.abspath(root)

    def _path(self, bucket, key):
        if not bucket or not key:
            raise ValueError("bucket and key are required")
        path = os.path.abspath(os.path.join(self.root, bucket, key))
        bucket_root = os.path.join(self.root, bucket)
        if os.path.commonpath([path, bucket_root]) != bucket_root:
            raise ValueError(f"key escapes bucket: {key}")
        return path

    def get(self, bucket, key):
        path = self._path(bucket, key)
        try:
            with open(path, "rb") as f:
                return f.read()
        except FileNotFoundError:
            raise BlobNotFoundError(bucket, key) from None
        except OSError as e:
            raise TransientStoreError(f"read {bucket}/{key} failed: {e}") from e

    def put(self, bucket, key, data):
        if isinstance(data, str):
            data = data.encode("utf-8")
        path = self._path(bucket, key)
        try:
            os.makedirs(os.path.dirname(path), exist_ok=True)
            fd, tmp = tempfile.mkstemp(dir=os.path.dirname(path), prefix=".tmp-")
            try:
                with os.fdopen(fd, "wb") as f:
                    f.write(data)
                os.replace(tmp, path)
            except BaseException:
                if os.path.exists(tmp):
                    os.unlink(tmp)
                raise
        except OSError as e:
            raise TransientStoreError(f"write {bucket}/{key} failed: {e}") from e

    def delete(self, bucket, key):
        path = self._path(bucket, key)
        try:
            os.unlink(path)
        except FileNotFoundError:
            pass
        except OSError as e:
            raise TransientStoreError(f"delete {bucket}/{key} failed: {e}") from e

    def list(self, bucket, prefix=""):
        bucket_root = os.path.join(self.root, bucket)
        if not os.path.isdir(bucket_root):
            return []
        keys = []
        for dirpath, _, filenames in os.walk(bucket_root):
            for name in filenames:
                if name.startswith(".tmp-"):
                    continue
                rel = os.path.relpath(os.path.join(dirpath, name), bucket_root).replace(os.sep, "/")
                if rel.startswith(prefix):
                    keys.append(rel)
        return sorted(keys)
