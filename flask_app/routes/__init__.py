# flask_app/routes/__init__.py
"""
Application routes package
"""

from .admin_merge import register_admin_merge_routes


def init_routes(app):
    """Initialize all application routes"""
    register_admin_merge_routes(app)
