"""
Base class for blob stores. Keys are flat strings inside a named bucket.
get() raises BlobNotFoundError for a missing key; backend failures surface as TransientStoreError.
"""
import abc


class BaseBlobStore(abc.ABC):
    """put()/get()/delete()/list() against bucket + key; close() when done."""

    @abc.abstractmethod
    def get(self, bucket: str, key: str) -> bytes:
        pass

    @abc.abstractmethod
    def put(self, bucket: str, key: str, data: bytes) -> None:
        pass

    @abc.abstractmethod
    def delete(self, bucket: str, key: str) -> None:
        """Remove key. Deleting a key that does not exist is not an error."""
        pass

    @abc.abstractmethod
    def list(self, bucket: str, prefix: str = "") -> list[str]:
        pass

    def exists(self, bucket: str, key: str) -> bool:
        return key in self.list(bucket, prefix=key)

    def close(self) -> None:
        pass

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.close()
        return False
