"""
Error taxonomy for the workers and transports.
Per-row and per-file errors live in flowstats_core.errors.
"""


class ConfigError(ValueError):
    """Required configuration is missing or invalid; raised at process startup."""

    def __init__(self, message, keys=None):
        super().__init__(message)
        self.keys = list(keys or [])


class TransientStoreError(RuntimeError):
    """Blob store or queue unavailable. The current message stays un-acknowledged and is retried."""


class BlobNotFoundError(KeyError):
    """get() on a key that does not exist."""

    def __init__(self, bucket, key):
        super().__init__(f"{bucket}/{key}")
        self.bucket = bucket
        self.key = key

    def __str__(self):
        return f"blob not found: {self.bucket}/{self.key}"


class MissingReferenceError(LookupError):
    """A notification points at a blob that no longer exists. The message is dropped, not retried."""

    def __init__(self, bucket, key):
        super().__init__(f"notification references missing blob {bucket}/{key}")
        self.bucket = bucket
        self.key = key


class StateCorruptError(RuntimeError):
    """A persisted TrafficState cannot be decoded. Never overwritten; the message is retried."""
