"""
Operator commands for account merges.

    flask users merge-preview TARGET_ID SOURCE_ID [--json]
    flask users merge TARGET_ID SOURCE_ID --admin-id ID [--yes]
"""

from __future__ import annotations

import json

import click
from flask.cli import AppGroup

from .errors import MergeError
from .preview import MergePreview
from .service import MergeResult, UserMergeService
from .strategies import KindEstimate, SingletonEstimate

users_cli = AppGroup("users", help="Account maintenance commands.")


def _format_preview(preview: MergePreview) -> str:
    lines = [
        f"Target: {preview.target.email} (ID {preview.target.id})",
        f"Source: {preview.source.email} (ID {preview.source.id}) - will be deleted",
        "",
    ]
    for kind, estimate in preview.estimates.items():
        if isinstance(estimate, SingletonEstimate):
            if estimate.will_transfer:
                lines.append(f"  {kind:<28}: transfer")
            elif estimate.will_keep and estimate.source_has:
                lines.append(f"  {kind:<28}: keep target's, discard source's")
            continue
        if isinstance(estimate, KindEstimate) and estimate.total:
            lines.append(f"  {kind:<28}: {estimate.to_transfer} to transfer, {estimate.to_skip} to skip")
    if len(lines) == 3:
        lines.append("  Source account owns no records.")
    return "\n".join(lines)


def _format_result(result: MergeResult) -> str:
    lines = [f"Merged {result.deleted_source_email} into {result.target.email}."]
    for kind, outcome in result.stats.outcomes.items():
        payload = outcome.to_dict()
        if any(payload.values()):
            details = ", ".join(f"{key}={value}" for key, value in payload.items())
            lines.append(f"  {kind:<28}: {details}")
    return "\n".join(lines)


def _merge_error(exc: MergeError) -> click.ClickException:
    return click.ClickException(f"[{exc.code.value}] {exc.message}")


@users_cli.command("merge-preview")
@click.argument("target_id", type=int)
@click.argument("source_id", type=int)
@click.option("--json", "as_json", is_flag=True, help="Emit the preview as JSON.")
def merge_preview_command(target_id: int, source_id: int, as_json: bool):
    """Show what merging SOURCE_ID into TARGET_ID would do."""
    try:
        preview = UserMergeService().preview(target_id, source_id)
    except MergeError as exc:
        raise _merge_error(exc) from exc

    if as_json:
        click.echo(json.dumps(preview.to_dict(), indent=2, sort_keys=True))
    else:
        click.echo(_format_preview(preview))


@users_cli.command("merge")
@click.argument("target_id", type=int)
@click.argument("source_id", type=int)
@click.option("--admin-id", type=int, required=True, help="Admin account recorded on the audit note.")
@click.option("--yes", "assume_yes", is_flag=True, help="Skip the confirmation prompt.")
def merge_command(target_id: int, source_id: int, admin_id: int, assume_yes: bool):
    """Merge SOURCE_ID into TARGET_ID and delete SOURCE_ID."""
    service = UserMergeService()
    try:
        preview = service.preview(target_id, source_id)
    except MergeError as exc:
        raise _merge_error(exc) from exc

    if not assume_yes:
        click.echo(_format_preview(preview))
        click.confirm(f"Permanently delete {preview.source.email} after merging?", abort=True)

    try:
        result = service.execute(target_id, source_id, admin_id)
    except MergeError as exc:
        raise _merge_error(exc) from exc

    click.echo(_format_result(result))
