"""
Account merge executor.

Consolidates a source account into a target account inside a single
transaction: every record kind in the relation registry is moved or
de-duplicated, an audit note is attached to the target, and the source
account is deleted. Either all of it commits or none of it does.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Sequence

from flask import current_app
from sqlalchemy import delete, event, select, text
from sqlalchemy.orm import Session

from flask_app.models import AdminNote, User, db

from . import metrics
from .audit import compose_audit_note
from .errors import (
    AccountDeletedDuringMergeError,
    AdminNotAuthorizedError,
    AdminNotFoundError,
    MergeError,
    PendingChangesError,
    SameAccountError,
    SourceNotFoundError,
    TargetNotFoundError,
    classify_transaction_error,
)
from .preview import MergePreview, MergePreviewService
from .relations import MERGE_RELATIONS
from .strategies import MergeStats, MergeStrategy

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 60
DEFAULT_ISOLATION_LEVEL = "SERIALIZABLE"

# Set while the session holds writes that reached the database but are not committed.
_UNCOMMITTED_WRITES = "user_merge.uncommitted_writes"


@event.listens_for(Session, "after_flush")
def _mark_flushed_writes(session, flush_context):
    session.info[_UNCOMMITTED_WRITES] = True


@event.listens_for(Session, "do_orm_execute")
def _mark_statement_writes(orm_execute_state):
    if orm_execute_state.is_insert or orm_execute_state.is_update or orm_execute_state.is_delete:
        orm_execute_state.session.info[_UNCOMMITTED_WRITES] = True


@event.listens_for(Session, "after_transaction_end")
def _clear_uncommitted_writes(session, transaction):
    if transaction.parent is None:
        session.info.pop(_UNCOMMITTED_WRITES, None)


@dataclass(frozen=True)
class TargetAccountRef:
    id: int
    email: str
    name: str | None

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "email": self.email, "name": self.name}


@dataclass(frozen=True)
class MergeResult:
    """Outcome of a committed merge."""

    success: bool
    stats: MergeStats
    target: TargetAccountRef
    deleted_source_email: str
    audit_note_id: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "stats": self.stats.to_dict(),
            "target_user": self.target.to_dict(),
            "deleted_source_email": self.deleted_source_email,
            "audit_note_id": self.audit_note_id,
        }


class UserMergeService:
    """Service for previewing and executing account merges."""

    def __init__(
        self,
        session: Session | None = None,
        *,
        relations: Sequence[MergeStrategy] = MERGE_RELATIONS,
        preview_service: MergePreviewService | None = None,
        timeout_seconds: float | None = None,
        isolation_level: str | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.session = session or db.session
        self.relations = tuple(relations)
        self.preview_service = preview_service or MergePreviewService(self.session, self.relations)
        self._timeout_seconds = timeout_seconds
        self._isolation_level = isolation_level
        self._clock = clock

    @property
    def timeout_seconds(self) -> float:
        if self._timeout_seconds is not None:
            return self._timeout_seconds
        return current_app.config.get("USER_MERGE_TIMEOUT_SECONDS", DEFAULT_TIMEOUT_SECONDS)

    @property
    def isolation_level(self) -> str | None:
        if self._isolation_level is not None:
            return self._isolation_level
        return current_app.config.get("USER_MERGE_ISOLATION_LEVEL", DEFAULT_ISOLATION_LEVEL)

    def preview(self, target_id: int, source_id: int) -> MergePreview:
        return self.preview_service.preview(target_id, source_id)

    def execute(self, target_id: int, source_id: int, admin_id: int) -> MergeResult:
        """
        Merge ``source_id`` into ``target_id`` on behalf of ``admin_id``.

        Args:
            target_id: Account that survives and receives the records
            source_id: Account that is emptied and deleted
            admin_id: Account performing the merge; must hold the admin role

        Returns:
            MergeResult with per-kind statistics

        Raises:
            MergeValidationError subclasses: Pre-flight or in-transaction checks failed
            PendingChangesError: The session already holds uncommitted work
            TransactionFailedError: The store rejected the transaction; nothing was applied
        """
        started = self._clock()
        try:
            result = self._execute(target_id, source_id, admin_id)
        except MergeError as exc:
            metrics.record_merge(exc.code.value, duration_seconds=self._clock() - started)
            raise
        except Exception:
            metrics.record_merge("error", duration_seconds=self._clock() - started)
            raise
        metrics.record_merge("succeeded", duration_seconds=self._clock() - started)
        metrics.record_kind_outcomes(result.stats)
        return result

    def _execute(self, target_id: int, source_id: int, admin_id: int) -> MergeResult:
        self._ensure_no_pending_changes()
        target_ref, source_email = self._preflight(target_id, source_id, admin_id)
        self._release_preflight_snapshot()

        timeout_seconds = self.timeout_seconds
        deadline = self._clock() + timeout_seconds
        logger.info("Merging user %s into user %s (admin %s)", source_id, target_id, admin_id)

        try:
            self._begin(timeout_seconds)
            self._revalidate(target_id, source_id)

            stats = MergeStats()
            for relation in self.relations:
                self._check_deadline(deadline, timeout_seconds)
                outcome = relation.apply(self.session, target_id, source_id)
                logger.debug("Merge %s <- %s: %s %s", target_id, source_id, relation.kind, outcome)
                stats = stats.record(relation.kind, outcome)

            self._check_deadline(deadline, timeout_seconds)
            note = AdminNote(
                volunteer_id=target_id,
                created_by_id=admin_id,
                content=compose_audit_note(source_email, source_id, stats, self.relations),
            )
            self.session.add(note)
            self.session.flush()
            audit_note_id = note.id

            # Last write: every row referencing the source is gone or re-pointed by now.
            self.session.execute(
                delete(User).where(User.id == source_id),
                execution_options={"synchronize_session": False},
            )
            self.session.commit()
        except MergeError:
            self.session.rollback()
            raise
        except Exception as exc:
            self.session.rollback()
            failure = classify_transaction_error(exc)
            logger.error(
                "Merge of user %s into user %s rolled back (%s): %s",
                source_id,
                target_id,
                failure.reason,
                exc,
                exc_info=True,
            )
            raise failure from exc

        logger.info(
            "Merged user %s (%s) into user %s: %d rows transferred, %d duplicates skipped",
            source_id,
            source_email,
            target_id,
            stats.total_transferred,
            stats.total_skipped,
        )
        return MergeResult(
            success=True,
            stats=stats,
            target=target_ref,
            deleted_source_email=source_email,
            audit_note_id=audit_note_id,
        )

    def _preflight(self, target_id: int, source_id: int, admin_id: int) -> tuple[TargetAccountRef, str]:
        if target_id == source_id:
            raise SameAccountError()

        target = self.session.get(User, target_id)
        if target is None:
            raise TargetNotFoundError(target_id)
        source = self.session.get(User, source_id)
        if source is None:
            raise SourceNotFoundError(source_id)
        admin = self.session.get(User, admin_id)
        if admin is None:
            raise AdminNotFoundError(admin_id)
        if not admin.is_admin:
            raise AdminNotAuthorizedError()
        if admin.id == source_id:
            # The audit note would be attributed to the account being deleted.
            raise AdminNotAuthorizedError("Admins cannot merge away their own account")

        return TargetAccountRef(id=target.id, email=target.email, name=target.name), source.email

    def _ensure_no_pending_changes(self) -> None:
        session = self.session
        modified = any(session.is_modified(instance) for instance in session.dirty)
        if session.new or session.deleted or modified or session.info.get(_UNCOMMITTED_WRITES):
            raise PendingChangesError()

    def _release_preflight_snapshot(self) -> None:
        """End the read-only pre-flight transaction so the merge starts on a fresh one."""
        self.session.rollback()

    def _begin(self, timeout_seconds: float) -> None:
        execution_options = {}
        if self.isolation_level:
            execution_options["isolation_level"] = self.isolation_level
        connection = self.session.connection(execution_options=execution_options)
        if connection.dialect.name == "postgresql":
            self.session.execute(text(f"SET LOCAL statement_timeout = {int(timeout_seconds * 1000)}"))

    def _revalidate(self, target_id: int, source_id: int) -> None:
        present = set(
            self.session.scalars(select(User.id).where(User.id.in_([target_id, source_id])).with_for_update())
        )
        if target_id not in present or source_id not in present:
            logger.warning(
                "Merge of user %s into user %s aborted: account deleted after pre-flight", source_id, target_id
            )
            raise AccountDeletedDuringMergeError()

    def _check_deadline(self, deadline: float, timeout_seconds: float) -> None:
        if self._clock() > deadline:
            raise TimeoutError(f"Merge transaction timed out after {timeout_seconds} seconds")
