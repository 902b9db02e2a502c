"""
Error taxonomy for account merges.

Two families share the ``MergeError`` base: expected outcomes detected by
validation (``MergeValidationError`` and subclasses) and infrastructure
faults raised by the store while the merge transaction is open
(``TransactionFailedError``, which keeps the original exception as ``cause``).
"""

from __future__ import annotations

from enum import Enum

from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError


class MergeErrorCode(str, Enum):
    SAME_USER = "SAME_USER"
    TARGET_NOT_FOUND = "TARGET_NOT_FOUND"
    SOURCE_NOT_FOUND = "SOURCE_NOT_FOUND"
    ADMIN_NOT_FOUND = "ADMIN_NOT_FOUND"
    ADMIN_NOT_AUTHORIZED = "ADMIN_NOT_AUTHORIZED"
    USER_DELETED_DURING_MERGE = "USER_DELETED_DURING_MERGE"
    SESSION_HAS_PENDING_CHANGES = "SESSION_HAS_PENDING_CHANGES"
    TRANSACTION_FAILED = "TRANSACTION_FAILED"


class MergeError(Exception):
    """Base class for every error the merge engine raises deliberately."""

    code: MergeErrorCode = MergeErrorCode.TRANSACTION_FAILED

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict[str, str]:
        return {"code": self.code.value, "error": self.message}


class MergeValidationError(MergeError):
    """Expected business outcome; safe to retry once the input is corrected."""


class SameAccountError(MergeValidationError):
    code = MergeErrorCode.SAME_USER

    def __init__(self, message: str = "Cannot merge a user with themselves"):
        super().__init__(message)


class AccountNotFoundError(MergeValidationError):
    """Either side of the merge does not exist."""

    def __init__(self, account_id: int, message: str):
        super().__init__(message)
        self.account_id = account_id


class TargetNotFoundError(AccountNotFoundError):
    code = MergeErrorCode.TARGET_NOT_FOUND

    def __init__(self, account_id: int):
        super().__init__(account_id, f"Target user with ID {account_id} not found")


class SourceNotFoundError(AccountNotFoundError):
    code = MergeErrorCode.SOURCE_NOT_FOUND

    def __init__(self, account_id: int):
        super().__init__(account_id, f"Source user with ID {account_id} not found")


class AdminNotFoundError(MergeValidationError):
    code = MergeErrorCode.ADMIN_NOT_FOUND

    def __init__(self, account_id: int):
        super().__init__(f"Admin user with ID {account_id} not found")
        self.account_id = account_id


class AdminNotAuthorizedError(MergeValidationError):
    code = MergeErrorCode.ADMIN_NOT_AUTHORIZED

    def __init__(self, message: str = "Only admins can perform user merges"):
        super().__init__(message)


class AccountDeletedDuringMergeError(MergeValidationError):
    """A concurrent session removed one of the accounts after pre-flight."""

    code = MergeErrorCode.USER_DELETED_DURING_MERGE

    def __init__(self, message: str = "One or both users were deleted during the merge operation"):
        super().__init__(message)


class PendingChangesError(MergeError):
    """The session handed to the executor holds uncommitted work it would have to discard."""

    code = MergeErrorCode.SESSION_HAS_PENDING_CHANGES

    def __init__(
        self, message: str = "Session has uncommitted changes; commit or roll back before merging accounts"
    ):
        super().__init__(message)


class TransactionFailedError(MergeError):
    """The store rejected or aborted the merge transaction; nothing was applied."""

    code = MergeErrorCode.TRANSACTION_FAILED

    FOREIGN_KEY = "foreign_key"
    UNIQUE = "unique"
    SERIALIZATION = "serialization"
    TIMEOUT = "timeout"
    UNKNOWN = "unknown"

    def __init__(self, message: str, *, reason: str = UNKNOWN, cause: BaseException | None = None):
        super().__init__(message)
        self.reason = reason
        self.cause = cause


# PostgreSQL SQLSTATE codes carried by the driver exception.
_SQLSTATE_REASONS = {
    "23503": TransactionFailedError.FOREIGN_KEY,
    "23505": TransactionFailedError.UNIQUE,
    "40001": TransactionFailedError.SERIALIZATION,
    "40P01": TransactionFailedError.SERIALIZATION,
    "57014": TransactionFailedError.TIMEOUT,
}

_FOREIGN_KEY_MARKERS = ("foreign key constraint",)
_UNIQUE_MARKERS = ("unique constraint", "duplicate key value")
_SERIALIZATION_MARKERS = ("could not serialize access", "deadlock detected")
_TIMEOUT_MARKERS = ("timeout", "timed out")

_REASON_MESSAGES = {
    TransactionFailedError.FOREIGN_KEY: (
        "Cannot complete merge: some data references could not be transferred. "
        "This may be due to database constraints. Please try again or contact support."
    ),
    TransactionFailedError.UNIQUE: (
        "Cannot complete merge: duplicate data conflict detected. Please refresh and try again."
    ),
    TransactionFailedError.SERIALIZATION: (
        "Cannot complete merge: the users were modified by another operation. Please refresh and try again."
    ),
    TransactionFailedError.TIMEOUT: (
        "Merge operation timed out. The users may have too much data to merge. "
        "Please contact support for assistance."
    ),
}


def _sqlstate(exc: BaseException) -> str | None:
    if not isinstance(exc, DBAPIError):
        return None
    orig = exc.orig
    return getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)


def _has_marker(message: str, markers: tuple[str, ...]) -> bool:
    return any(marker in message for marker in markers)


def _failure_reason(exc: BaseException, message: str) -> str:
    reason = _SQLSTATE_REASONS.get(_sqlstate(exc))
    if reason:
        return reason

    if isinstance(exc, IntegrityError):
        if _has_marker(message, _UNIQUE_MARKERS):
            return TransactionFailedError.UNIQUE
        if _has_marker(message, _FOREIGN_KEY_MARKERS):
            return TransactionFailedError.FOREIGN_KEY
        return TransactionFailedError.UNKNOWN
    if isinstance(exc, TimeoutError):
        return TransactionFailedError.TIMEOUT
    if isinstance(exc, OperationalError) and _has_marker(message, _SERIALIZATION_MARKERS):
        return TransactionFailedError.SERIALIZATION

    # Drivers that wrap constraint failures in other exception types.
    if _has_marker(message, _FOREIGN_KEY_MARKERS):
        return TransactionFailedError.FOREIGN_KEY
    if _has_marker(message, _UNIQUE_MARKERS):
        return TransactionFailedError.UNIQUE
    if _has_marker(message, _SERIALIZATION_MARKERS):
        return TransactionFailedError.SERIALIZATION
    if _has_marker(message, _TIMEOUT_MARKERS):
        return TransactionFailedError.TIMEOUT
    return TransactionFailedError.UNKNOWN


def classify_transaction_error(exc: BaseException) -> TransactionFailedError:
    """
    Translate an arbitrary storage failure into a ``TransactionFailedError``.

    The PostgreSQL SQLSTATE wins when the driver exposes one; otherwise the
    SQLAlchemy exception type and the lower-cased message decide between
    constraint, serialization and timeout failures.
    """
    reason = _failure_reason(exc, str(exc).lower())
    message = _REASON_MESSAGES.get(reason, f"Merge transaction failed: {str(exc) or type(exc).__name__}")
    return TransactionFailedError(message, reason=reason, cause=exc)
