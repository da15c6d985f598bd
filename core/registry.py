"""
ScrapeGuard Session Registry

In-memory map of active detection sessions for the HTTP host.
Each entry is an independent DetectionEngine; the registry never shares
state between sessions. Sessions without client input for their
session_idle_ttl_ms are evicted by evict_idle(), and also on demand when
create() hits MAX_SESSIONS.
"""

from __future__ import annotations

import logging
import threading
from typing import Callable, Dict, List, Optional

from core.dispatcher import TickKind
from core.engine import DetectionEngine


logger = logging.getLogger(__name__)


class SessionNotFoundError(Exception):
    """Raised when a session id is not registered."""
    pass


class SessionExistsError(Exception):
    """Raised when creating a session id that is already registered."""
    pass


EngineFactory = Callable[[str, Optional[str]], DetectionEngine]


class SessionRegistry:
    """
    Thread-safe container for per-session engines.

    Attributes:
        MAX_SESSIONS: Upper bound on concurrently registered sessions.
    """

    MAX_SESSIONS: int = 10_000

    def __init__(
        self,
        factory: EngineFactory,
        on_evict: Optional[Callable[[str], None]] = None,
    ) -> None:
        self._factory = factory
        self.on_evict = on_evict
        self._engines: Dict[str, DetectionEngine] = {}
        self._lock = threading.Lock()

    def create(self, session_id: str, user_agent: Optional[str] = None) -> DetectionEngine:
        """Register and start a new engine for `session_id`."""
        with self._lock:
            if session_id in self._engines:
                raise SessionExistsError(f"Session already exists: {session_id}")
            if len(self._engines) >= self.MAX_SESSIONS:
                evicted = self._pop_idle()
                if not evicted:
                    raise RuntimeError(f"Session capacity reached ({self.MAX_SESSIONS})")
            else:
                evicted = []
            engine = self._factory(session_id, user_agent)
            self._engines[session_id] = engine

        self._stop_evicted(evicted)
        engine.start()
        return engine

    def evict_idle(self) -> List[str]:
        """
        Stop and remove sessions with no client input for their idle TTL.

        Returns:
            Ids of the evicted sessions.
        """
        with self._lock:
            evicted = self._pop_idle()
        self._stop_evicted(evicted)
        return [engine.session_id for engine in evicted]

    def _pop_idle(self) -> List[DetectionEngine]:
        idle = [sid for sid, engine in self._engines.items() if engine.is_idle]
        return [self._engines.pop(sid) for sid in idle]

    def _stop_evicted(self, evicted: List[DetectionEngine]) -> None:
        for engine in evicted:
            engine.stop()
            if self.on_evict is not None:
                self.on_evict(engine.session_id)
        if evicted:
            logger.info(f"Evicted {len(evicted)} idle session(s)")

    def get(self, session_id: str) -> DetectionEngine:
        with self._lock:
            engine = self._engines.get(session_id)
        if engine is None:
            raise SessionNotFoundError(f"Unknown session: {session_id}")
        return engine

    def discard(self, session_id: str) -> None:
        """Stop and remove a session."""
        with self._lock:
            engine = self._engines.pop(session_id, None)
        if engine is None:
            raise SessionNotFoundError(f"Unknown session: {session_id}")
        engine.stop()

    def engines(self) -> List[DetectionEngine]:
        with self._lock:
            return list(self._engines.values())

    def tick_all(self, kind: TickKind) -> None:
        """Deliver one tick to every session; a failing session does not stop the rest."""
        for engine in self.engines():
            try:
                engine.on_tick(kind)
            except Exception as e:
                logger.error(f"Tick {kind.value} failed for session {engine.session_id}: {e}")

    def clear(self) -> None:
        with self._lock:
            engines = list(self._engines.values())
            self._engines.clear()
        for engine in engines:
            engine.stop()

    def __len__(self) -> int:
        with self._lock:
            return len(self._engines)

    def __contains__(self, session_id: str) -> bool:
        with self._lock:
            return session_id in self._engines
