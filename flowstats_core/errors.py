"""
Errors raised by the pure aggregation core. Transport errors live in flowstats.errors.
"""


class SchemaError(ValueError):
    """CSV header is missing one or more required columns; the whole file is rejected."""

    def __init__(self, missing, message=None):
        self.missing = list(missing)
        super().__init__(message or f"SCHEMA_ERROR: missing required columns: {', '.join(self.missing)}")


class RowParseError(ValueError):
    """A single data row could not be used. Callers skip the row and keep going."""


class CodecError(ValueError):
    """A persisted summary or state object could not be decoded."""
