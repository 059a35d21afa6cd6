"""headcount: online user tracking over heartbeated sessions."""

from .registry import HeadcountError, InvalidArgument, Session, SessionRegistry

__version__ = '0.1.0'
__all__ = [
    'HeadcountError',
    'InvalidArgument',
    'Session',
    'SessionRegistry',
]
