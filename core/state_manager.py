"""
ScrapeGuard Session State Store

Holds the mutable per-session record that detector rules read and write.
Each engine owns exactly one store; nothing here is shared across sessions.

Usage:
    store = SessionStateStore(config, clock=clock)
    state = store.get()
    # state is passed to every detector rule call
"""

from __future__ import annotations

import copy
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Callable, Deque, Dict, Iterable, Optional, Set, Tuple

from core.config import EngineConfig
from core.schemas.inputs import TargetTag


Clock = Callable[[], float]


def wall_clock_ms() -> float:
    """Current wall-clock time in milliseconds."""
    return time.time() * 1000.0


@dataclass
class SessionState:
    """
    Per-session detection record.

    Timestamps are milliseconds. "last_*" timestamps start at 0 so the
    first comparison measures the gap from the epoch.
    """

    session_started_at: float
    """Set once at session creation."""

    has_moved: bool = False
    """True after the first pointer-move event, never reverts."""

    last_pointer_move_at: float = 0.0
    last_pointer_position: Tuple[float, float] = (0.0, 0.0)
    consecutive_linear_steps: int = 0

    last_hover_at: Dict[TargetTag, float] = field(default_factory=dict)
    """Per target-category hover timestamps."""

    last_click_at: float = 0.0
    click_sequence: Deque[Optional[str]] = field(default_factory=lambda: deque(maxlen=50))
    """Recently clicked element ids, oldest first (bounded)."""

    last_form_edit_at: float = 0.0
    last_scroll_at: float = 0.0

    last_key_pressed: str = ""
    repetitive_key_press_streak: int = 0

    cumulative_score: float = 0.0
    """The single authoritative suspicion metric. Never negative."""

    last_activity_at: float = 0.0
    """Latest resolved event time, used to keep timestamps monotonic."""

    timestamp_offset: Optional[float] = None
    """Engine time minus client time, fixed by the first accepted client timestamp."""

    recent_reasons: Deque[str] = field(default_factory=lambda: deque(maxlen=100))
    fired_tick_conditions: Set[str] = field(default_factory=set)
    mitigation_count: int = 0
    visitor_id: Optional[str] = None


class SessionStateStore:
    """
    Single-owner container for one session's SessionState.

    Besides get()/reset() it can snapshot and restore the record so that
    a failing event leaves no partial mutation behind.
    """

    def __init__(self, config: Optional[EngineConfig] = None, clock: Clock = wall_clock_ms) -> None:
        self._config = config or EngineConfig()
        self._clock = clock
        self._state = self._new_state()

    def _new_state(self) -> SessionState:
        return SessionState(
            session_started_at=self._clock(),
            click_sequence=deque(maxlen=self._config.click_history_size),
            recent_reasons=deque(maxlen=self._config.reason_history_size),
        )

    def get(self) -> SessionState:
        """Return the current mutable record."""
        return self._state

    def reset(self) -> None:
        """Re-initialize for a new session (counters zeroed, started now)."""
        self._state = self._new_state()

    def snapshot(self) -> SessionState:
        """Deep copy of the current record."""
        return copy.deepcopy(self._state)

    def snapshot_fields(self, names: Iterable[str]) -> Dict[str, Any]:
        """Copy only the named fields, for rollback of a single event."""
        return {name: copy.copy(getattr(self._state, name)) for name in names}

    def restore_fields(self, saved: Dict[str, Any]) -> None:
        """Put back fields taken with snapshot_fields()."""
        for name, value in saved.items():
            setattr(self._state, name, value)
