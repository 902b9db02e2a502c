# config/validation.py

"""
Environment variable validation for the volunteer portal.
Validates required environment variables at startup.
"""

import os
import sys
from typing import List, Tuple

from .base import ALLOWED_ISOLATION_LEVELS, _normalize_isolation_level


def _validate_merge_settings(errors: List[str]) -> None:
    isolation_level = _normalize_isolation_level(os.environ.get("USER_MERGE_ISOLATION_LEVEL"))
    if isolation_level not in ALLOWED_ISOLATION_LEVELS:
        errors.append(
            f"USER_MERGE_ISOLATION_LEVEL '{isolation_level}' is not supported. "
            f"Use one of: {', '.join(ALLOWED_ISOLATION_LEVELS)}"
        )

    raw_timeout = os.environ.get("USER_MERGE_TIMEOUT_SECONDS")
    if raw_timeout is not None and raw_timeout.strip():
        try:
            timeout = int(raw_timeout)
        except ValueError:
            errors.append("USER_MERGE_TIMEOUT_SECONDS must be an integer number of seconds")
        else:
            if timeout < 1:
                errors.append("USER_MERGE_TIMEOUT_SECONDS must be at least 1")


def validate_environment(flask_env: str = None) -> Tuple[bool, List[str]]:
    """
    Validate required environment variables.

    Merge settings are checked in every environment; secrets and the
    database URL only in production.

    Args:
        flask_env: Flask environment (development, production, testing)
                  If None, reads from FLASK_ENV environment variable

    Returns:
        Tuple of (is_valid, list_of_errors)
    """
    if flask_env is None:
        flask_env = os.environ.get("FLASK_ENV", "development")

    errors = []
    _validate_merge_settings(errors)

    if flask_env == "production":
        secret_key = os.environ.get("SECRET_KEY", "")
        if not secret_key or secret_key in ("your-secret-key", "your_secret_key"):
            errors.append(
                "SECRET_KEY is required in production and must not be the default value. "
                'Generate a secure key: python -c "import secrets; print(secrets.token_hex(32))"'
            )

        if not os.environ.get("DATABASE_URL"):
            errors.append(
                "DATABASE_URL is required in production. "
                "Set it to your PostgreSQL connection string."
            )

    is_valid = len(errors) == 0
    return is_valid, errors


def validate_and_exit(flask_env: str = None) -> None:
    """
    Validate environment variables and exit with error if validation fails.
    Intended to be called at application startup.

    Args:
        flask_env: Flask environment (development, production, testing)
    """
    is_valid, errors = validate_environment(flask_env)

    if not is_valid:
        print("=" * 80, file=sys.stderr)
        print("ENVIRONMENT VALIDATION FAILED", file=sys.stderr)
        print("=" * 80, file=sys.stderr)
        print("\nThe following environment variables are missing or invalid:\n", file=sys.stderr)

        for i, error in enumerate(errors, 1):
            print(f"{i}. {error}", file=sys.stderr)

        print("\n" + "=" * 80, file=sys.stderr)
        print("Please check your .env file or environment variables.", file=sys.stderr)
        print("=" * 80, file=sys.stderr)

        sys.exit(1)
