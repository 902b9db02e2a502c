# flask_app/forms/__init__.py
"""
WTForms package
"""

from .merge import MergeUsersForm

__all__ = [
    "MergeUsersForm",
]
