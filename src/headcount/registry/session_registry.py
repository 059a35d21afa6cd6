#!/usr/bin/env python3
"""
In-process Session Registry and Online Tracking

This module provides:
- Session: a single logged-in presence (session id, user id, activity stamp)
- SessionRegistry: a lock-guarded, time-bounded membership store that maps
  session ids to users, counts each user once across sessions, and evicts
  sessions that stop sending heartbeats
- InvalidArgument / HeadcountError: errors raised for bad caller input
"""

import logging
import random
import threading
import time
from dataclasses import dataclass, replace
from typing import Callable, Dict, Optional, Any

from ..sweeper import SessionSweeper

logger = logging.getLogger(__name__)

DEFAULT_SESSION_TTL = 60.0
DEFAULT_SWEEP_INTERVAL = 30.0

SESSION_ID_PREFIX = "sess_"


class HeadcountError(Exception):
    """Base class for headcount errors."""


class InvalidArgument(HeadcountError, ValueError):
    """A required field was empty or missing."""


@dataclass
class Session:
    """Session information dataclass"""
    session_id: str
    user_id: str
    last_active: float
    created_at: float = None

    def __post_init__(self):
        if self.created_at is None:
            self.created_at = self.last_active

    def idle_for(self, now: float) -> float:
        return now - self.last_active


def _require(value: Any, name: str) -> str:
    if not isinstance(value, str) or not value:
        raise InvalidArgument(f"{name} must be a non-empty string")
    return value


# ---------------------------------------------------------------------------
# Session registry
# ---------------------------------------------------------------------------

class SessionRegistry:
    """Thread-safe, dict-backed session registry.

    Every state transition happens under a single lock.  Users are tracked
    with a per-user reference count so that a user with several live sessions
    stays online until the last one is gone.  The online count is cached in
    ``_online_count`` and only ever written while the lock is held, so
    ``online_count()`` can read it without contending with writers.

    Expired sessions are removed by ``sweep()``, which a background
    ``SessionSweeper`` calls every ``sweep_interval`` seconds between
    ``start()`` and ``stop()``.  Reads never expire sessions on their own.
    """

    def __init__(self, session_ttl: float = DEFAULT_SESSION_TTL,
                 sweep_interval: float = DEFAULT_SWEEP_INTERVAL,
                 clock: Callable[[], float] = time.monotonic):
        if session_ttl <= 0:
            raise ValueError("session_ttl must be positive")
        if sweep_interval <= 0:
            raise ValueError("sweep_interval must be positive")
        self.session_ttl = float(session_ttl)
        self.sweep_interval = float(sweep_interval)
        self._clock = clock
        self._random = random.SystemRandom()
        self._lock = threading.Lock()
        self._sessions: Dict[str, Session] = {}
        self._user_refs: Dict[str, int] = {}  # user_id -> live session count
        self._online_count = 0
        self._sweeper = None

    # -- lifecycle ---------------------------------------------------------

    def start(self) -> "SessionRegistry":
        """Start the background sweep task."""
        if self._sweeper is None:
            self._sweeper = SessionSweeper(self, interval=self.sweep_interval)
            self._sweeper.start()
        return self

    def stop(self, timeout: Optional[float] = None) -> None:
        """Stop the background sweep task and wait for it to exit."""
        if self._sweeper is None:
            return
        self._sweeper.stop(timeout=timeout)
        if not self._sweeper.is_alive():
            self._sweeper = None

    @property
    def running(self) -> bool:
        return self._sweeper is not None and self._sweeper.is_alive()

    def __enter__(self):
        return self.start()

    def __exit__(self, exc_type, exc, tb):
        self.stop()

    # -- mutations ---------------------------------------------------------

    def login(self, user_id: str) -> str:
        _require(user_id, "user_id")
        with self._lock:
            session_id = self._new_session_id()
            self._sessions[session_id] = Session(
                session_id=session_id,
                user_id=user_id,
                last_active=self._clock(),
            )
            self._user_refs[user_id] = self._user_refs.get(user_id, 0) + 1
            self._online_count = len(self._user_refs)
        logger.debug("login user=%s session=%s", user_id, session_id)
        return session_id

    def heartbeat(self, session_id: str) -> bool:
        _require(session_id, "session_id")
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                return False
            session.last_active = self._clock()
        return True

    def logout(self, session_id: str) -> None:
        _require(session_id, "session_id")
        with self._lock:
            session = self._sessions.pop(session_id, None)
            if session is None:
                return
            self._release_user(session.user_id)
            self._online_count = len(self._user_refs)
        logger.debug("logout user=%s session=%s", session.user_id, session_id)

    def sweep(self, now: Optional[float] = None) -> int:
        """Remove every session idle for longer than ``session_ttl``.

        Returns the number of sessions removed.
        """
        with self._lock:
            if now is None:
                now = self._clock()
            expired = [
                s for s in self._sessions.values()
                if s.idle_for(now) > self.session_ttl
            ]
            for s in expired:
                del self._sessions[s.session_id]
                self._release_user(s.user_id)
            self._online_count = len(self._user_refs)
            remaining = len(self._sessions)
        if expired:
            logger.info(
                "expired %d session(s), %d remaining", len(expired), remaining,
            )
        return len(expired)

    # -- reads -------------------------------------------------------------

    def is_valid_session(self, session_id: str) -> bool:
        _require(session_id, "session_id")
        with self._lock:
            return session_id in self._sessions

    def online_count(self) -> int:
        return self._online_count

    def online_users(self) -> set[str]:
        with self._lock:
            return set(self._user_refs)

    def session_count(self) -> int:
        with self._lock:
            return len(self._sessions)

    def get_session(self, session_id: str) -> Optional[Session]:
        with self._lock:
            session = self._sessions.get(session_id)
            return replace(session) if session is not None else None

    def stats(self) -> Dict[str, int]:
        with self._lock:
            return {
                "sessions": len(self._sessions),
                "online_count": self._online_count,
            }

    # -- internals (caller holds the lock) ---------------------------------

    def _release_user(self, user_id: str) -> None:
        refs = self._user_refs.get(user_id, 0) - 1
        if refs > 0:
            self._user_refs[user_id] = refs
        else:
            self._user_refs.pop(user_id, None)

    def _new_session_id(self) -> str:
        while True:
            millis = int(time.time() * 1000)
            session_id = f"{SESSION_ID_PREFIX}{millis}_{self._random.getrandbits(64):016x}"
            if session_id not in self._sessions:
                return session_id
