"""
Blob stores: registry and backends.
Use get_blob_store(name) for memory, filesystem, s3.
"""
import os

from flowstats.store.base import BaseBlobStore
from flowstats.store.filesystem import FilesystemBlobStore
from flowstats.store.memory import InMemoryBlobStore
from flowstats.store.s3 import S3BlobStore

_STORES = {
    "memory": InMemoryBlobStore,
    "filesystem": FilesystemBlobStore,
    "s3": S3BlobStore,
}

# config backend -> blob store name
_BACKEND_STORE = {"memory": "memory", "local": "filesystem", "aws": "s3"}


def get_blob_store(name: str, **kwargs) -> BaseBlobStore:
    """Return a blob store instance. name: memory, filesystem, s3."""
    if name not in _STORES:
        raise ValueError(f"unknown blob store: {name}. Available: {list(_STORES)}")
    return _STORES[name](**kwargs)


def blob_store_from_config(config) -> BaseBlobStore:
    name = _BACKEND_STORE[config.backend]
    if name == "filesystem":
        return get_blob_store(name, root=os.path.join(config.data_dir, "buckets"))
    if name == "s3":
        return get_blob_store(name, region=config.aws_region)
    return get_blob_store(name)


__all__ = [
    "BaseBlobStore",
    "FilesystemBlobStore",
    "InMemoryBlobStore",
    "S3BlobStore",
    "blob_store_from_config",
    "get_blob_store",
]
