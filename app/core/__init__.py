"""
Core module initialization.
Exports configuration, logging utilities and domain exceptions.
"""

from app.core.config import get_settings, Settings, EnvironmentMode
from app.core.exceptions import (
    OrderingError,
    ValidationError,
    NotFoundError,
    InvalidTransitionError,
    PersistenceError,
    MirrorError,
)

__all__ = [
    "get_settings",
    "Settings",
    "EnvironmentMode",
    "OrderingError",
    "ValidationError",
    "NotFoundError",
    "InvalidTransitionError",
    "PersistenceError",
    "MirrorError",
]
