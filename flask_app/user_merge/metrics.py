"""Prometheus metrics helpers for account merges."""

from __future__ import annotations

from prometheus_client import Counter, Histogram

from .strategies import MergeStats, TransferCount

_merge_counter = Counter(
    "user_merge_executions_total",
    "Account merge executions by outcome (succeeded or the merge error code).",
    ["outcome"],
)
_merge_duration = Histogram(
    "user_merge_duration_seconds",
    "Wall-clock duration of account merge executions in seconds.",
    buckets=(0.1, 0.25, 0.5, 1, 2, 5, 10, 30, 60, 120),
)
_preview_counter = Counter(
    "user_merge_previews_total",
    "Account merge previews by outcome.",
    ["outcome"],
)
_rows_counter = Counter(
    "user_merge_rows_total",
    "Rows handled by account merges, per record kind and action.",
    ["kind", "action"],
)


def record_merge(outcome: str, *, duration_seconds: float) -> None:
    """Count one merge attempt and observe its duration."""

    _merge_counter.labels(outcome=outcome).inc()
    _merge_duration.observe(max(duration_seconds, 0.0))


def record_preview(outcome: str) -> None:
    _preview_counter.labels(outcome=outcome).inc()


def record_kind_outcomes(stats: MergeStats) -> None:
    """Add transferred/skipped row counts for every multi-row kind."""

    for kind, outcome in stats.outcomes.items():
        if not isinstance(outcome, TransferCount):
            continue
        if outcome.transferred:
            _rows_counter.labels(kind=kind, action="transferred").inc(outcome.transferred)
        if outcome.skipped:
            _rows_counter.labels(kind=kind, action="skipped").inc(outcome.skipped)
