# flask_app/routes/admin_merge.py

"""
Admin JSON endpoints for previewing and executing account merges
"""

from flask import current_app, jsonify, request
from flask_login import current_user

from flask_app.forms import MergeUsersForm
from flask_app.models import User, db
from flask_app.user_merge import MergeError, MergeErrorCode, SourceNotFoundError, UserMergeService
from flask_app.utils.permissions import admin_required

ERROR_STATUS = {
    MergeErrorCode.SAME_USER: 400,
    MergeErrorCode.TARGET_NOT_FOUND: 404,
    MergeErrorCode.SOURCE_NOT_FOUND: 404,
    MergeErrorCode.ADMIN_NOT_FOUND: 404,
    MergeErrorCode.ADMIN_NOT_AUTHORIZED: 403,
    MergeErrorCode.USER_DELETED_DURING_MERGE: 409,
    MergeErrorCode.SESSION_HAS_PENDING_CHANGES: 500,
    MergeErrorCode.TRANSACTION_FAILED: 500,
}


def _error_response(message, code, status):
    return jsonify({"success": False, "error": message, "code": code}), status


def _merge_error_response(error):
    return _error_response(error.message, error.code.value, ERROR_STATUS.get(error.code, 500))


def _form_errors(form):
    messages = []
    for field_errors in form.errors.values():
        messages.extend(str(message) for message in field_errors)
    return "; ".join(messages) or "Invalid request"


def register_admin_merge_routes(app):
    """Register account merge routes"""

    @app.route("/api/admin/users/merge/preview", methods=["GET"])
    @admin_required
    def admin_merge_preview():
        """Preview what merging source_id into target_id would do."""
        target_id = request.args.get("target_id", type=int)
        source_id = request.args.get("source_id", type=int)
        if target_id is None or source_id is None:
            return _error_response("target_id and source_id are required integers", "INVALID_REQUEST", 400)

        try:
            preview = UserMergeService().preview(target_id, source_id)
        except MergeError as e:
            current_app.logger.info(f"Merge preview {source_id} -> {target_id} rejected: {e.code.value}")
            return _merge_error_response(e)
        except Exception as e:
            current_app.logger.error(f"Error previewing merge {source_id} -> {target_id}: {str(e)}", exc_info=True)
            return _error_response("An error occurred while previewing the merge", "INTERNAL_ERROR", 500)

        return jsonify({"success": True, "preview": preview.to_dict()})

    @app.route("/api/admin/users/merge", methods=["POST"])
    @admin_required
    def admin_merge_users():
        """Merge source_id into target_id after the admin confirms the source email."""
        form = MergeUsersForm()
        if not form.validate_on_submit():
            return _error_response(_form_errors(form), "INVALID_REQUEST", 400)

        target_id = form.target_id.data
        source_id = form.source_id.data

        if current_app.config.get("USER_MERGE_REQUIRE_CONFIRM_EMAIL", True) and target_id != source_id:
            source = db.session.get(User, source_id)
            if source is None:
                return _merge_error_response(SourceNotFoundError(source_id))
            if not form.confirmation_matches(source.email):
                return _error_response(
                    "Email confirmation does not match source user email", "EMAIL_CONFIRMATION_MISMATCH", 400
                )

        admin_id = current_user.id
        current_app.logger.info(f"Admin {admin_id} merging user {source_id} into user {target_id}")

        try:
            result = UserMergeService().execute(target_id, source_id, admin_id)
        except MergeError as e:
            if ERROR_STATUS.get(e.code, 500) >= 500:
                current_app.logger.error(f"Merge {source_id} -> {target_id} failed: {e.message}")
            else:
                current_app.logger.info(f"Merge {source_id} -> {target_id} rejected: {e.code.value}")
            return _merge_error_response(e)
        except Exception as e:
            current_app.logger.error(f"Error merging users {source_id} -> {target_id}: {str(e)}", exc_info=True)
            return _error_response("An error occurred while merging users", "INTERNAL_ERROR", 500)

        payload = result.to_dict()
        payload["message"] = f"Successfully merged {result.deleted_source_email} into {result.target.email}"
        return jsonify(payload)
