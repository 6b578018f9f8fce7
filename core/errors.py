"""Storage error taxonomy shared by the core and the HTTP layer."""

from __future__ import annotations


class StorageError(Exception):
    """Base class for every storage-layer failure."""


class ConfigurationError(StorageError):
    """Storage credentials or endpoint are missing.

    Callers treat this as "feature unavailable": reads degrade to empty
    results, writes report that nothing was saved.
    """


class NotFoundError(StorageError):
    """A path or record is absent."""

    def __init__(self, path: str) -> None:
        self.path = path
        super().__init__(f"Not found: {path}")


class InvalidRecordIdError(StorageError, ValueError):
    """A record id that cannot name a file inside its entity directory."""

    def __init__(self, record_id: str) -> None:
        self.record_id = record_id
        super().__init__(f"Invalid record id: {record_id!r}")


class ConflictError(StorageError):
    """The content hash supplied for a write no longer matches the remote file."""

    def __init__(self, path: str, message: str = "") -> None:
        self.path = path
        self.message = message
        super().__init__(f"Conflicting write to {path}: {message or 'stale content hash'}")


class UpstreamError(StorageError):
    """Non-2xx or unexpected response from the remote file service."""

    def __init__(self, status_code: int, message: str) -> None:
        self.status_code = status_code
        self.message = message
        super().__init__(f"Remote storage error {status_code}: {message}")


class StorageExhaustedError(StorageError):
    """Every image shard is at capacity or unavailable."""


class PartialFailure(StorageError):
    """A batch operation finished with some items failing.

    The successful subset has been applied; ``failures`` maps item id to the
    error message.
    """

    def __init__(self, succeeded: list[str], failures: dict[str, str]) -> None:
        self.succeeded = succeeded
        self.failures = failures
        super().__init__(f"{len(failures)} of {len(succeeded) + len(failures)} item(s) failed")

    def to_response_body(self) -> dict:
        return {
            "detail": "Some items could not be processed",
            "succeeded": self.succeeded,
            "failed": self.failures,
        }
