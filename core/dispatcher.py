"""
ScrapeGuard Event Dispatcher

Routes interaction events and timer ticks to detector rules and hands
the collected signals to the scoring aggregator.

Routing (fixed order within a kind):
    pointer_move        -> RapidPointerMovement, LinearPathDetection
    hover               -> RapidHover
    click               -> RapidClick
    form_change         -> RapidFormEdit
    scroll              -> RapidScroll
    key_down            -> RepetitiveKeyPress
    element_interaction -> HiddenElementInteraction

Ticks:
    SESSION_CHECK -> SessionLengthAnomaly, NoMovementAfterLoad
    DECAY         -> aggregator decay

Error isolation:
    A malformed event (schema failure or a rule raising) is logged and
    dropped. The session state is restored to its pre-event snapshot so
    no partial update survives.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

from pydantic import BaseModel, ValidationError

from core.config import EngineConfig, TickSignalPolicy
from core.detectors import (
    detect_hidden_element_interaction,
    detect_known_bot_fingerprint,
    detect_linear_path,
    detect_no_movement,
    detect_rapid_click,
    detect_rapid_form_edit,
    detect_rapid_hover,
    detect_rapid_movement,
    detect_rapid_scroll,
    detect_repetitive_key_press,
    detect_session_length_anomaly,
    detect_suspicious_environment,
)
from core.detectors.common import Signals
from core.schemas.inputs import EventKind, detection_event_adapter
from core.scoring import ScoringAggregator
from core.state_manager import Clock, SessionState, SessionStateStore, wall_clock_ms


logger = logging.getLogger(__name__)


Rule = Callable[[Any, SessionState, EngineConfig, float], Signals]


class TickKind(str, Enum):
    """Which periodic timer fired."""
    SESSION_CHECK = "session_check"
    DECAY = "decay"


# =============================================================================
# Routing Table
# =============================================================================

EVENT_ROUTES: Dict[EventKind, Tuple[Rule, ...]] = {
    EventKind.POINTER_MOVE: (detect_rapid_movement, detect_linear_path),
    EventKind.HOVER: (detect_rapid_hover,),
    EventKind.CLICK: (detect_rapid_click,),
    EventKind.FORM_CHANGE: (detect_rapid_form_edit,),
    EventKind.SCROLL: (detect_rapid_scroll,),
    EventKind.KEY_DOWN: (detect_repetitive_key_press,),
    EventKind.ELEMENT_INTERACTION: (detect_hidden_element_interaction,),
}

# State fields written while handling each kind; only these are saved for rollback
CLOCK_FIELDS: Tuple[str, ...] = ("last_activity_at", "timestamp_offset")

EVENT_STATE_FIELDS: Dict[EventKind, Tuple[str, ...]] = {
    EventKind.POINTER_MOVE: (
        "has_moved",
        "last_pointer_move_at",
        "last_pointer_position",
        "consecutive_linear_steps",
    ),
    EventKind.HOVER: ("last_hover_at",),
    EventKind.CLICK: ("last_click_at", "click_sequence"),
    EventKind.FORM_CHANGE: ("last_form_edit_at",),
    EventKind.SCROLL: ("last_scroll_at",),
    EventKind.KEY_DOWN: ("last_key_pressed", "repetitive_key_press_streak"),
    EventKind.ELEMENT_INTERACTION: (),
}


class EventDispatcher:
    """
    Single-session router between the event source and the aggregator.

    All methods are synchronous and must be called serially by the host
    loop; the dispatcher performs no locking.
    """

    def __init__(
        self,
        store: SessionStateStore,
        aggregator: ScoringAggregator,
        config: EngineConfig,
        clock: Clock = wall_clock_ms,
        user_agent: Optional[str] = None,
    ) -> None:
        self.store = store
        self.aggregator = aggregator
        self.config = config
        self.clock = clock
        self.user_agent = user_agent
        self._initialized = False
        self._fingerprint_checked = False

    # -------------------------------------------------------------------------
    # Interaction Events
    # -------------------------------------------------------------------------

    def on_event(self, event: Union[BaseModel, Dict[str, Any]]) -> Signals:
        """
        Route one event to its rules and apply the combined signals.

        Args:
            event: A DetectionEvent model or its raw dict form.

        Returns:
            Signals emitted for this event (empty when dropped).
        """
        try:
            if not isinstance(event, BaseModel):
                event = detection_event_adapter.validate_python(event)
            kind = EventKind(event.kind)
        except (ValidationError, AttributeError, ValueError) as e:
            logger.warning(f"[{self.aggregator.session_id}] Dropped malformed event: {e}")
            return []

        saved = self.store.snapshot_fields(CLOCK_FIELDS + EVENT_STATE_FIELDS[kind])
        signals: Signals = []
        try:
            state = self.store.get()
            now = self._resolve_now(event.timestamp, state)
            state.last_activity_at = now
            if kind == EventKind.POINTER_MOVE:
                state.has_moved = True
            for rule in EVENT_ROUTES[kind]:
                signals.extend(rule(event, state, self.config, now))
        except Exception as e:
            self.store.restore_fields(saved)
            logger.warning(f"[{self.aggregator.session_id}] Dropped {kind.value} event: {e}")
            return []

        self.aggregator.apply(signals)
        return signals

    def _resolve_now(self, timestamp: Optional[float], state: SessionState) -> float:
        """
        Map an event onto the engine timeline.

        Client timestamps keep their relative spacing: the first one fixes
        `timestamp_offset` and later ones are shifted by it, so client and
        engine clocks are never compared directly. A timestamp landing
        further than max_timestamp_drift_ms from the engine clock is
        ignored and the offset is re-anchored on the engine clock. The
        result never moves backwards.
        """
        engine_now = self.clock()
        if timestamp is None:
            now = engine_now
        elif state.timestamp_offset is None:
            state.timestamp_offset = engine_now - timestamp
            now = engine_now
        else:
            now = timestamp + state.timestamp_offset
            if abs(now - engine_now) > self.config.max_timestamp_drift_ms:
                logger.warning(
                    f"[{self.aggregator.session_id}] Client timestamp {timestamp:.0f} drifted "
                    f"{now - engine_now:+.0f}ms; re-anchoring on the engine clock"
                )
                state.timestamp_offset = engine_now - timestamp
                now = engine_now
        return max(now, state.last_activity_at)

    # -------------------------------------------------------------------------
    # Timer Ticks
    # -------------------------------------------------------------------------

    def on_tick(self, kind: Optional[TickKind] = None) -> Signals:
        """
        Handle a timer tick.

        Args:
            kind: SESSION_CHECK, DECAY, or None for both.

        Returns:
            Signals emitted by the session-check rules.
        """
        signals: Signals = []
        if kind in (None, TickKind.SESSION_CHECK):
            signals = self._run_session_checks()
        if kind in (None, TickKind.DECAY):
            try:
                self.aggregator.decay()
            except Exception as e:
                logger.error(f"[{self.aggregator.session_id}] Decay step failed: {e}")
        return signals

    def _run_session_checks(self) -> Signals:
        state = self.store.get()
        now = self.clock()
        collected: Signals = []

        for rule in (detect_session_length_anomaly, detect_no_movement):
            try:
                emitted = rule(state, self.config, now)
            except Exception as e:
                logger.error(f"[{self.aggregator.session_id}] {rule.__name__} failed: {e}")
                continue
            collected.extend(self._apply_tick_policy(emitted, state))

        self.aggregator.apply(collected)
        return collected

    def _apply_tick_policy(self, signals: Signals, state: SessionState) -> Signals:
        if self.config.tick_signal_policy == TickSignalPolicy.EVERY_TICK:
            return signals
        fresh = [s for s in signals if self._condition_key(s) not in state.fired_tick_conditions]
        state.fired_tick_conditions.update(self._condition_key(s) for s in fresh)
        return fresh

    @staticmethod
    def _condition_key(signal) -> str:
        return signal.condition or signal.reason

    # -------------------------------------------------------------------------
    # One-shot Hooks
    # -------------------------------------------------------------------------

    def on_init(self) -> Signals:
        """Session-start hook. Runs SuspiciousEnvironment exactly once."""
        if self._initialized:
            logger.warning(f"[{self.aggregator.session_id}] on_init called more than once; ignored")
            return []
        self._initialized = True

        signals = detect_suspicious_environment(self.user_agent, self.config)
        self.aggregator.apply(signals)
        return signals

    def on_fingerprint(self, visitor_id: str, known_bot: bool = False) -> Signals:
        """
        Cross-check the fingerprint provider's visitor id, once per session.

        Args:
            visitor_id: Stable per-device identifier.
            known_bot: Set when an external deny-list already matched the id.
        """
        if self._fingerprint_checked:
            logger.info(f"[{self.aggregator.session_id}] Fingerprint already checked; ignored")
            return []
        self._fingerprint_checked = True
        self.store.get().visitor_id = visitor_id

        signals = detect_known_bot_fingerprint(visitor_id, self.config, known_bot=known_bot)
        self.aggregator.apply(signals)
        return signals
