"""Error taxonomy for thread appends and storage/ledger I/O.

Validation errors are final: the same request will fail the same way again.
Transient errors mean a collaborator (object store, ledger RPC) could not be
reached; the caller decides whether and when to retry.
"""

from typing import Any, Optional


class CourierError(Exception):
    """Base exception for courier errors."""

    error_code = "COURIER_ERROR"

    def __init__(self, message: str, **details: Any):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict:
        """Render error as a JSON-serializable body."""
        return {"error_code": self.error_code, "message": self.message, **self.details}


class ValidationError(CourierError):
    """Raised when a submitted entry is rejected. Never retryable."""

    error_code = "VALIDATION_FAILED"


class IndexMismatch(ValidationError):
    """Entry index is not the next confirmed position."""

    error_code = "INDEX_MISMATCH"

    def __init__(self, expected: int, actual: int):
        super().__init__(
            f"Index mismatch: expected {expected}, got {actual}",
            expected=expected,
            actual=actual,
        )
        self.expected = expected
        self.actual = actual


class ChainBroken(ValidationError):
    """Entry prevHash does not link to the last confirmed entry."""

    error_code = "CHAIN_BROKEN"

    def __init__(self, message: str, expected: Optional[str] = None, actual: Optional[str] = None):
        super().__init__(message, expected=expected, actual=actual)
        self.expected = expected
        self.actual = actual


class InvalidSignature(ValidationError):
    """Signature is malformed or does not recover to the sender."""

    error_code = "INVALID_SIGNATURE"


class HashMismatch(ValidationError):
    """Entry hash is not the digest of the entry content."""

    error_code = "HASH_MISMATCH"


class ThreadIdMismatch(ValidationError):
    """Thread id is not derived from the submitted participant set."""

    error_code = "THREAD_ID_MISMATCH"


class NotAParticipant(ValidationError):
    """Sender is not one of the thread participants."""

    error_code = "NOT_A_PARTICIPANT"


class CorruptThreadLog(ValidationError):
    """Stored thread log bytes cannot be decoded."""

    error_code = "CORRUPT_THREAD_LOG"


class ThreadNotFound(CourierError):
    """No thread log is stored under the requested id."""

    error_code = "THREAD_NOT_FOUND"


class TransientIOError(CourierError):
    """A backing service was unreachable. Safe for the caller to retry."""

    error_code = "SERVICE_UNAVAILABLE"
    retry_after_seconds = 30


class StorageUnavailable(TransientIOError):
    """Object store request failed."""

    error_code = "STORAGE_UNAVAILABLE"


class LedgerUnavailable(TransientIOError):
    """Ledger RPC request failed."""

    error_code = "LEDGER_UNAVAILABLE"


class RequestExpired(ValidationError):
    """Signed request timestamp is outside the accepted window."""

    error_code = "REQUEST_EXPIRED"


class AlreadyConfirmed(ValidationError):
    """Write is confirmed on-chain and can no longer be reclaimed."""

    error_code = "ALREADY_CONFIRMED"


class WriteNotTracked(CourierError):
    """No tracked write has the requested content id."""

    error_code = "WRITE_NOT_TRACKED"


class PermissionDenied(CourierError):
    """Requester is not allowed to act on the tracked write."""

    error_code = "PERMISSION_DENIED"
