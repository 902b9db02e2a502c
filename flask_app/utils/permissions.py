# flask_app/utils/permissions.py

from functools import wraps

from flask import current_app, jsonify
from flask_login import current_user


def is_admin_user(user):
    """Check if user is an authenticated admin"""
    if not user or not user.is_authenticated:
        return False
    return user.is_admin


def admin_required(f):
    """
    Decorator for admin JSON endpoints.

    Anonymous callers get 401 and authenticated non-admins get 403, both as
    JSON bodies shaped like the merge error responses.
    """

    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not current_user.is_authenticated:
            return jsonify({"success": False, "error": "Authentication required", "code": "UNAUTHENTICATED"}), 401

        if not is_admin_user(current_user):
            current_app.logger.warning(f"Non-admin user {current_user.id} denied access to admin endpoint")
            return (
                jsonify({"success": False, "error": "Admin privileges required", "code": "ADMIN_NOT_AUTHORIZED"}),
                403,
            )

        return f(*args, **kwargs)

    return decorated_function
