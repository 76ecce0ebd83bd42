"""
S3 blob store. Requires: pip install boto3 (flowstats[aws]).
"""
from flowstats.errors import BlobNotFoundError, TransientStoreError
from flowstats.store.base import BaseBlobStore

_NOT_FOUND_CODES = {"NoSuchKey", "404", "NotFound"}


def _boto3():
    try:
        import boto3
    except ImportError:
        raise RuntimeError("boto3 not installed; pip install boto3")
    return boto3


def _error_code(exc) -> str | None:
    response = getattr(exc, "response", None) or {}
    return (response.get("Error") or {}).get("Code")


class S3BlobStore(BaseBlobStore):
    """Bucket names map 1:1 to S3 buckets. Pass client= to reuse or fake a boto3 S3 client."""

    def __init__(self, region: str = "us-east-1", client=None):
        self.region = region
        self._client = client

    @property
    def client(self):
        if self._client is None:
            self._client = _boto3().client("s3", region_name=self.region)
        return self._client

    def _translate(self, exc, bucket, key, action):
        if _error_code(exc) in _NOT_FOUND_CODES:
            return BlobNotFoundError(bucket, key)
        return TransientStoreError(f"s3 {action} {bucket}/{key} failed: {exc}")

    def get(self, bucket, key):
        try:
            response = self.client.get_object(Bucket=bucket, Key=key)
            return response["Body"].read()
        except Exception as e:
            raise self._translate(e, bucket, key, "get") from e

    def put(self, bucket, key, data):
        if isinstance(data, str):
            data = data.encode("utf-8")
        try:
            self.client.put_object(Bucket=bucket, Key=key, Body=data)
        except Exception as e:
            raise TransientStoreError(f"s3 put {bucket}/{key} failed: {e}") from e

    def delete(self, bucket, key):
        try:
            self.client.delete_object(Bucket=bucket, Key=key)
        except Exception as e:
            raise TransientStoreError(f"s3 delete {bucket}/{key} failed: {e}") from e

    def list(self, bucket, prefix=""):
        keys = []
        kwargs = {"Bucket": bucket, "Prefix": prefix}
        try:
            while True:
                response = self.client.list_objects_v2(**kwargs)
                keys.extend(obj["Key"] for obj in response.get("Contents") or [])
                if not response.get("IsTruncated"):
                    break
                kwargs["ContinuationToken"] = response["NextContinuationToken"]
        except Exception as e:
            raise TransientStoreError(f"s3 list {bucket}/{prefix} failed: {e}") from e
        return keys

    def upload_file(self, path: str, bucket: str, key: str) -> None:
        """Streamed upload of a local file (multipart for large files)."""
        try:
            self.client.upload_file(path, bucket, key)
        except Exception as e:
            raise TransientStoreError(f"s3 upload {path} -> {bucket}/{key} failed: {e}") from e
