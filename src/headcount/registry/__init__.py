"""
In-process Session Registry

This package provides:
1. SessionRegistry — lock-guarded session/membership store with expiry
2. Session — a single logged-in presence
3. InvalidArgument / HeadcountError — errors for bad caller input
"""

from .session_registry import (
    DEFAULT_SESSION_TTL,
    DEFAULT_SWEEP_INTERVAL,
    HeadcountError,
    InvalidArgument,
    Session,
    SessionRegistry,
)

__all__ = [
    'DEFAULT_SESSION_TTL',
    'DEFAULT_SWEEP_INTERVAL',
    'HeadcountError',
    'InvalidArgument',
    'Session',
    'SessionRegistry',
]
