# flask_app/user_merge/__init__.py
"""
Account merge engine: preview and execute consolidation of a duplicate
account into the account that survives.
"""

from .errors import (
    AccountDeletedDuringMergeError,
    AccountNotFoundError,
    AdminNotAuthorizedError,
    AdminNotFoundError,
    MergeError,
    MergeErrorCode,
    MergeValidationError,
    PendingChangesError,
    SameAccountError,
    SourceNotFoundError,
    TargetNotFoundError,
    TransactionFailedError,
    classify_transaction_error,
)
from .preview import AccountSummary, MergePreview, MergePreviewService
from .relations import MERGE_RELATIONS, get_relation
from .service import MergeResult, TargetAccountRef, UserMergeService
from .strategies import (
    BulkReattribute,
    KindEstimate,
    MergeStats,
    MergeStrategy,
    SingletonEstimate,
    SingletonOutcome,
    SingletonPrecedence,
    SymmetricRelationship,
    TransferCount,
    UniquePairDedup,
)

__all__ = [
    "AccountDeletedDuringMergeError",
    "AccountNotFoundError",
    "AccountSummary",
    "AdminNotAuthorizedError",
    "AdminNotFoundError",
    "BulkReattribute",
    "KindEstimate",
    "MERGE_RELATIONS",
    "MergeError",
    "MergeErrorCode",
    "MergePreview",
    "MergePreviewService",
    "MergeResult",
    "MergeStats",
    "MergeStrategy",
    "MergeValidationError",
    "PendingChangesError",
    "SameAccountError",
    "SingletonEstimate",
    "SingletonOutcome",
    "SingletonPrecedence",
    "SourceNotFoundError",
    "SymmetricRelationship",
    "TargetAccountRef",
    "TargetNotFoundError",
    "TransactionFailedError",
    "TransferCount",
    "UniquePairDedup",
    "UserMergeService",
    "classify_transaction_error",
    "get_relation",
]
