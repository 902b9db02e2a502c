"""
Merge strategies for the record kinds that reference an account.

Every kind falls into one of four shapes, each implemented once here and
parameterised per kind in ``relations.py``:

* ``UniquePairDedup``: rows keyed by (owner, other entity); source rows whose
  key the target already owns, or whose key names one of the merged accounts,
  are deleted, the rest are re-pointed.
* ``BulkReattribute``: attribution columns without uniqueness; one update per
  column re-points everything.
* ``SymmetricRelationship``: friendships stored as two directed rows; both
  directions are re-pointed without creating self-references or duplicates.
* ``SingletonPrecedence``: at most one row per account; the target's row wins.

Strategies only read and write through the session they are handed and never
commit; the caller owns the transaction.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Any, Iterable, Iterator, Mapping, Sequence, Union

from sqlalchemy import delete, func, select, update
from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)

# Keeps IN (...) lists under SQLite's bound-parameter limit.
ID_BATCH_SIZE = 500

_NO_SYNC = {"synchronize_session": False}


@dataclass(frozen=True)
class TransferCount:
    """Rows re-pointed to the target vs. rows discarded as duplicates."""

    transferred: int = 0
    skipped: int = 0

    def to_dict(self) -> dict[str, int]:
        return {"transferred": self.transferred, "skipped": self.skipped}


@dataclass(frozen=True)
class SingletonOutcome:
    transferred: bool = False
    kept: bool = False

    def to_dict(self) -> dict[str, bool]:
        return {"transferred": self.transferred, "kept": self.kept}


KindOutcome = Union[TransferCount, SingletonOutcome]


@dataclass(frozen=True)
class KindEstimate:
    """Predicted outcome for a multi-row kind."""

    total: int
    duplicates: int = 0
    self_references: int = 0

    @property
    def to_transfer(self) -> int:
        return self.total - self.duplicates

    @property
    def to_skip(self) -> int:
        return self.duplicates

    def to_dict(self) -> dict[str, int]:
        payload = {
            "total": self.total,
            "duplicates": self.duplicates,
            "to_transfer": self.to_transfer,
            "to_skip": self.to_skip,
        }
        if self.self_references:
            payload["self_references"] = self.self_references
        return payload


@dataclass(frozen=True)
class SingletonEstimate:
    target_has: bool
    source_has: bool

    @property
    def will_transfer(self) -> bool:
        return not self.target_has and self.source_has

    @property
    def will_keep(self) -> bool:
        return self.target_has

    def to_dict(self) -> dict[str, bool]:
        return {
            "target_has": self.target_has,
            "source_has": self.source_has,
            "will_transfer": self.will_transfer,
            "will_keep": self.will_keep,
        }


KindPreview = Union[KindEstimate, SingletonEstimate]


@dataclass(frozen=True)
class MergeStats:
    """
    Immutable per-kind outcome accumulator.

    ``record`` returns a new instance, so the executor threads the value
    through each strategy and the final instance goes into ``MergeResult``.
    """

    outcomes: Mapping[str, KindOutcome] = field(default_factory=lambda: MappingProxyType({}))

    def record(self, kind: str, outcome: KindOutcome) -> "MergeStats":
        updated = dict(self.outcomes)
        updated[kind] = outcome
        return replace(self, outcomes=MappingProxyType(updated))

    def __getitem__(self, kind: str) -> KindOutcome:
        return self.outcomes[kind]

    def __contains__(self, kind: object) -> bool:
        return kind in self.outcomes

    def get(self, kind: str, default: KindOutcome | None = None) -> KindOutcome | None:
        return self.outcomes.get(kind, default)

    @property
    def total_transferred(self) -> int:
        return sum(o.transferred for o in self.outcomes.values() if isinstance(o, TransferCount))

    @property
    def total_skipped(self) -> int:
        return sum(o.skipped for o in self.outcomes.values() if isinstance(o, TransferCount))

    def to_dict(self) -> dict[str, dict[str, Any]]:
        return {kind: outcome.to_dict() for kind, outcome in self.outcomes.items()}


def _chunked(ids: Sequence[int], size: int = ID_BATCH_SIZE) -> Iterator[Sequence[int]]:
    for start in range(0, len(ids), size):
        yield ids[start : start + size]


def _normalize_key(value):
    return value.strip().lower() if isinstance(value, str) else value


def _delete_ids(session: Session, model, ids: Sequence[int]) -> None:
    for batch in _chunked(ids):
        session.execute(delete(model).where(model.id.in_(batch)), execution_options=_NO_SYNC)


def _repoint_ids(session: Session, model, column, ids: Sequence[int], new_owner_id: int) -> None:
    for batch in _chunked(ids):
        session.execute(
            update(model).where(model.id.in_(batch)).values({column: new_owner_id}),
            execution_options=_NO_SYNC,
        )


class MergeStrategy(ABC):
    """Common interface; ``kind`` is the stats key and ``label`` the audit-note label."""

    kind: str
    label: str

    @abstractmethod
    def preview(self, session: Session, target_id: int, source_id: int) -> KindPreview:
        """Predict the outcome without writing."""

    @abstractmethod
    def apply(self, session: Session, target_id: int, source_id: int) -> KindOutcome:
        """Move the source's rows to the target inside the caller's transaction."""


@dataclass(frozen=True)
class UniquePairDedup(MergeStrategy):
    kind: str
    label: str
    model: type
    owner_attr: str
    key_attr: str
    # Account column whose value, used as the key, would point a row at its own owner.
    self_key: Any = field(default=None, compare=False)

    @property
    def owner(self):
        return getattr(self.model, self.owner_attr)

    @property
    def key(self):
        return getattr(self.model, self.key_attr)

    def _target_keys(self, session: Session, target_id: int) -> set:
        return set(session.scalars(select(self.key).where(self.owner == target_id)))

    def _own_keys(self, session: Session, target_id: int, source_id: int) -> set:
        if self.self_key is None:
            return set()
        account_model = self.self_key.class_
        values = session.scalars(select(self.self_key).where(account_model.id.in_([target_id, source_id])))
        return {_normalize_key(value) for value in values if value is not None}

    def preview(self, session: Session, target_id: int, source_id: int) -> KindEstimate:
        target_keys = self._target_keys(session, target_id)
        own_keys = self._own_keys(session, target_id, source_id)
        source_keys = list(session.scalars(select(self.key).where(self.owner == source_id)))

        self_references = sum(1 for key in source_keys if _normalize_key(key) in own_keys)
        duplicates = sum(1 for key in source_keys if key in target_keys or _normalize_key(key) in own_keys)
        return KindEstimate(total=len(source_keys), duplicates=duplicates, self_references=self_references)

    def apply(self, session: Session, target_id: int, source_id: int) -> TransferCount:
        target_keys = self._target_keys(session, target_id)
        own_keys = self._own_keys(session, target_id, source_id)
        source_rows = session.execute(select(self.model.id, self.key).where(self.owner == source_id)).all()

        def dropped(key) -> bool:
            return key in target_keys or _normalize_key(key) in own_keys

        duplicate_ids = [row_id for row_id, key in source_rows if dropped(key)]
        transfer_ids = [row_id for row_id, key in source_rows if not dropped(key)]

        _delete_ids(session, self.model, duplicate_ids)
        _repoint_ids(session, self.model, self.owner, transfer_ids, target_id)

        return TransferCount(transferred=len(transfer_ids), skipped=len(duplicate_ids))


@dataclass(frozen=True)
class BulkReattribute(MergeStrategy):
    kind: str
    label: str
    model: type
    owner_attrs: tuple[str, ...]

    def _columns(self) -> Iterable:
        return (getattr(self.model, attr) for attr in self.owner_attrs)

    def preview(self, session: Session, target_id: int, source_id: int) -> KindEstimate:
        total = 0
        for column in self._columns():
            total += session.scalar(select(func.count()).select_from(self.model).where(column == source_id)) or 0
        return KindEstimate(total=total)

    def apply(self, session: Session, target_id: int, source_id: int) -> TransferCount:
        transferred = 0
        for column in self._columns():
            result = session.execute(
                update(self.model).where(column == source_id).values({column: target_id}),
                execution_options=_NO_SYNC,
            )
            transferred += result.rowcount or 0
        return TransferCount(transferred=transferred)


@dataclass(frozen=True)
class SymmetricRelationship(MergeStrategy):
    kind: str
    label: str
    model: type
    owner_attr: str
    other_attr: str
    initiator_attr: str | None = None

    @property
    def owner(self):
        return getattr(self.model, self.owner_attr)

    @property
    def other(self):
        return getattr(self.model, self.other_attr)

    def _others_of(self, session: Session, account_id: int) -> set:
        return set(session.scalars(select(self.other).where(self.owner == account_id)))

    def preview(self, session: Session, target_id: int, source_id: int) -> KindEstimate:
        target_others = self._others_of(session, target_id)
        source_others = list(session.scalars(select(self.other).where(self.owner == source_id)))
        own_ids = {target_id, source_id}

        self_references = sum(1 for other_id in source_others if other_id in own_ids)
        duplicates = sum(1 for other_id in source_others if other_id in own_ids or other_id in target_others)
        return KindEstimate(total=len(source_others), duplicates=duplicates, self_references=self_references)

    def apply(self, session: Session, target_id: int, source_id: int) -> TransferCount:
        own_ids = {target_id, source_id}

        # Outgoing rows: source -> X becomes target -> X.
        target_others = self._others_of(session, target_id)
        outgoing = session.execute(select(self.model.id, self.other).where(self.owner == source_id)).all()
        drop_ids = [row_id for row_id, other_id in outgoing if other_id in own_ids or other_id in target_others]
        move_ids = [row_id for row_id, other_id in outgoing if not (other_id in own_ids or other_id in target_others)]
        _delete_ids(session, self.model, drop_ids)
        _repoint_ids(session, self.model, self.owner, move_ids, target_id)

        if self.initiator_attr:
            initiator = getattr(self.model, self.initiator_attr)
            session.execute(
                update(self.model).where(initiator == source_id).values({initiator: target_id}),
                execution_options=_NO_SYNC,
            )

        # Incoming rows: X -> source becomes X -> target, checked from the
        # target's side after the outgoing pass.
        already_linked = set(session.scalars(select(self.owner).where(self.other == target_id)))
        incoming = session.execute(select(self.model.id, self.owner).where(self.other == source_id)).all()
        reverse_drop = [row_id for row_id, owner_id in incoming if owner_id == target_id or owner_id in already_linked]
        reverse_move = [
            row_id for row_id, owner_id in incoming if not (owner_id == target_id or owner_id in already_linked)
        ]
        _delete_ids(session, self.model, reverse_drop)
        _repoint_ids(session, self.model, self.other, reverse_move, target_id)

        logger.debug(
            "%s: outgoing moved=%d dropped=%d, incoming moved=%d dropped=%d",
            self.kind,
            len(move_ids),
            len(drop_ids),
            len(reverse_move),
            len(reverse_drop),
        )
        return TransferCount(transferred=len(move_ids), skipped=len(drop_ids))


@dataclass(frozen=True)
class SingletonPrecedence(MergeStrategy):
    kind: str
    label: str
    model: type
    owner_attr: str

    @property
    def owner(self):
        return getattr(self.model, self.owner_attr)

    def _row_id(self, session: Session, account_id: int) -> int | None:
        return session.scalar(select(self.model.id).where(self.owner == account_id))

    def preview(self, session: Session, target_id: int, source_id: int) -> SingletonEstimate:
        return SingletonEstimate(
            target_has=self._row_id(session, target_id) is not None,
            source_has=self._row_id(session, source_id) is not None,
        )

    def apply(self, session: Session, target_id: int, source_id: int) -> SingletonOutcome:
        target_row_id = self._row_id(session, target_id)
        source_row_id = self._row_id(session, source_id)

        if target_row_id is not None:
            if source_row_id is not None:
                _delete_ids(session, self.model, [source_row_id])
            return SingletonOutcome(kept=True)

        if source_row_id is not None:
            _repoint_ids(session, self.model, self.owner, [source_row_id], target_id)
            return SingletonOutcome(transferred=True)

        return SingletonOutcome()
