# config/__init__.py
"""
Application configuration package
"""

from .base import (
    ALLOWED_ISOLATION_LEVELS,
    Config,
    DevelopmentConfig,
    ProductionConfig,
    TestingConfig,
)

__all__ = [
    "ALLOWED_ISOLATION_LEVELS",
    "Config",
    "DevelopmentConfig",
    "ProductionConfig",
    "TestingConfig",
]
