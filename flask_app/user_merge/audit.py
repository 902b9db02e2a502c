"""
Audit note written to the target account after a merge.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Sequence

from .strategies import (
    MergeStats,
    MergeStrategy,
    SingletonOutcome,
    SymmetricRelationship,
    TransferCount,
    UniquePairDedup,
)


def _format_timestamp(moment: datetime) -> str:
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _format_line(relation: MergeStrategy, outcome) -> str | None:
    if isinstance(outcome, SingletonOutcome):
        if outcome.transferred:
            return f"- {relation.label} status transferred"
        if outcome.kept:
            return f"- {relation.label} status kept (target already had one)"
        return None

    if not isinstance(outcome, TransferCount):
        return None

    if isinstance(relation, (UniquePairDedup, SymmetricRelationship)):
        if outcome.transferred == 0 and outcome.skipped == 0:
            return None
        line = f"- {relation.label}: {outcome.transferred} transferred"
        if outcome.skipped > 0:
            what = "duplicates/self-refs" if isinstance(relation, SymmetricRelationship) else "duplicates"
            line += f" ({outcome.skipped} {what} skipped)"
        return line

    if outcome.transferred > 0:
        return f"- {relation.label}: {outcome.transferred}"
    return None


def compose_audit_note(
    source_email: str,
    source_id: int,
    stats: MergeStats,
    relations: Sequence[MergeStrategy],
    *,
    merged_at: datetime | None = None,
) -> str:
    """
    Build the fixed-format merge summary.

    Only kinds with something to report get a line, in registry order.
    """
    merged_at = merged_at or datetime.now(timezone.utc)
    lines = [
        f"Account merged from {source_email} (ID: {source_id}) on {_format_timestamp(merged_at)}.",
        "",
        "Stats transferred:",
    ]
    for relation in relations:
        outcome = stats.get(relation.kind)
        if outcome is None:
            continue
        line = _format_line(relation, outcome)
        if line:
            lines.append(line)
    return "\n".join(lines)
