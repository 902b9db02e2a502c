"""
Read-only merge preview.

The preview is advisory: it is rendered on the confirmation screen and the
executor re-derives every number inside its own transaction.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Mapping, Sequence

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from flask_app.models import Friendship, Signup, User, UserAchievement, db

from . import metrics
from .errors import MergeError, SameAccountError, SourceNotFoundError, TargetNotFoundError
from .relations import MERGE_RELATIONS
from .strategies import KindEstimate, KindPreview, MergeStrategy

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AccountSummary:
    """Identity and headline counts for one side of the merge."""

    id: int
    email: str
    name: str | None
    first_name: str | None
    last_name: str | None
    profile_photo_url: str | None
    role: str
    signup_count: int
    achievement_count: int
    friendship_count: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "email": self.email,
            "name": self.name,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "profile_photo_url": self.profile_photo_url,
            "role": self.role,
            "signup_count": self.signup_count,
            "achievement_count": self.achievement_count,
            "friendship_count": self.friendship_count,
        }


@dataclass(frozen=True)
class MergePreview:
    target: AccountSummary
    source: AccountSummary
    estimates: Mapping[str, KindPreview]

    def __getitem__(self, kind: str) -> KindPreview:
        return self.estimates[kind]

    @property
    def self_references(self) -> int:
        return sum(e.self_references for e in self.estimates.values() if isinstance(e, KindEstimate))

    @property
    def conflicts(self) -> dict[str, int]:
        """Duplicate counts for every kind that can collide."""
        return {
            kind: estimate.duplicates
            for kind, estimate in self.estimates.items()
            if isinstance(estimate, KindEstimate) and estimate.duplicates
        }

    def to_dict(self) -> dict[str, Any]:
        return {
            "target_user": self.target.to_dict(),
            "source_user": self.source.to_dict(),
            "conflicts": {**self.conflicts, "self_references": self.self_references},
            "estimated_stats": {kind: estimate.to_dict() for kind, estimate in self.estimates.items()},
        }


class MergePreviewService:
    """Computes what a merge of ``source`` into ``target`` would do."""

    def __init__(self, session: Session | None = None, relations: Sequence[MergeStrategy] = MERGE_RELATIONS):
        self.session = session or db.session
        self.relations = tuple(relations)

    def preview(self, target_id: int, source_id: int) -> MergePreview:
        """
        Build a preview for merging ``source_id`` into ``target_id``.

        Args:
            target_id: Account that survives the merge
            source_id: Account whose records move and which is then deleted

        Returns:
            MergePreview with account summaries and per-kind estimates

        Raises:
            SameAccountError: If both ids are the same
            TargetNotFoundError / SourceNotFoundError: If an account is missing
        """
        try:
            preview = self._build(target_id, source_id)
        except MergeError as exc:
            metrics.record_preview(exc.code.value)
            raise
        metrics.record_preview("succeeded")
        return preview

    def _build(self, target_id: int, source_id: int) -> MergePreview:
        if target_id == source_id:
            raise SameAccountError()

        target = self.session.get(User, target_id)
        if target is None:
            raise TargetNotFoundError(target_id)
        source = self.session.get(User, source_id)
        if source is None:
            raise SourceNotFoundError(source_id)

        estimates: dict[str, KindPreview] = {}
        for relation in self.relations:
            estimates[relation.kind] = relation.preview(self.session, target_id, source_id)

        preview = MergePreview(
            target=self._summarize(target),
            source=self._summarize(source),
            estimates=MappingProxyType(estimates),
        )
        logger.debug(
            "Merge preview %s <- %s: conflicts=%s self_references=%d",
            target_id,
            source_id,
            preview.conflicts,
            preview.self_references,
        )
        return preview

    def _count(self, model, column, account_id: int) -> int:
        return self.session.scalar(select(func.count()).select_from(model).where(column == account_id)) or 0

    def _summarize(self, user: User) -> AccountSummary:
        return AccountSummary(
            id=user.id,
            email=user.email,
            name=user.name,
            first_name=user.first_name,
            last_name=user.last_name,
            profile_photo_url=user.profile_photo_url,
            role=user.role.value,
            signup_count=self._count(Signup, Signup.user_id, user.id),
            achievement_count=self._count(UserAchievement, UserAchievement.user_id, user.id),
            friendship_count=self._count(Friendship, Friendship.user_id, user.id),
        )
