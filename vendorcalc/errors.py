"""
Exception taxonomy for VendorCalc.

Local failures (validation, missing records, storage) propagate to the
caller. Remote failures are caught at the mirroring boundary and logged.
"""


class LedgerError(Exception):
    """Base class for all VendorCalc errors."""
    pass


class ValidationError(LedgerError):
    """Raised when input is rejected before any write happens."""
    pass


class NotFoundError(LedgerError):
    """Raised when updating a record that does not exist locally."""

    def __init__(self, collection: str, record_id):
        super().__init__(f"No {collection} record with id {record_id}")
        self.collection = collection
        self.record_id = record_id


class StorageError(LedgerError):
    """Raised when the local SQLite store fails."""
    pass


class RemoteUnavailableError(LedgerError):
    """Raised when the remote replica is unconfigured or unreachable."""
    pass


class RemoteConnectionError(RemoteUnavailableError):
    """Raised when the remote cannot be reached (after retries)."""
    pass


class RemoteResponseError(RemoteUnavailableError):
    """Raised when the remote answers with a non-retryable error."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class ImportFormatError(LedgerError):
    """Raised when a snapshot is malformed; nothing has been modified."""
    pass
