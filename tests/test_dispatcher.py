"""
Event Dispatcher Unit Tests

Tests for routing order, malformed-event isolation, timestamp
monotonicity, tick routing, the tick signal policy and the one-shot hooks.
"""

import pytest

from core.config import EngineConfig, TickSignalPolicy
from core.dispatcher import EVENT_ROUTES, EVENT_STATE_FIELDS, EventDispatcher, TickKind
from core.detectors.environment import (
    NO_MOVEMENT_REASON,
    SESSION_LENGTH_REASON,
    SESSION_TOO_LONG,
    SESSION_TOO_SHORT,
)
from core.detectors.pointer import detect_linear_path, detect_rapid_movement
from core.schemas.inputs import (
    ClickEvent,
    ElementTarget,
    EventKind,
    KeyDownEvent,
    PointerMoveEvent,
)
from core.scoring import ScoringAggregator
from core.state_manager import SessionStateStore


@pytest.fixture
def dispatcher(store, aggregator, config, clock):
    return EventDispatcher(store, aggregator, config, clock=clock, user_agent=None)


def build_dispatcher(clock, sink, user_agent=None, **overrides):
    config = EngineConfig(**overrides)
    store = SessionStateStore(config, clock=clock)
    aggregator = ScoringAggregator(store, config, sink=sink, session_id="test_session")
    return EventDispatcher(store, aggregator, config, clock=clock, user_agent=user_agent)


# =============================================================================
# Routing Tests
# =============================================================================

class TestRouting:

    def test_every_kind_is_routed(self):
        assert set(EVENT_ROUTES) == set(EventKind)

    def test_pointer_move_order(self):
        """RapidPointerMovement runs before LinearPathDetection."""
        assert EVENT_ROUTES[EventKind.POINTER_MOVE] == (detect_rapid_movement, detect_linear_path)

    def test_pointer_move_marks_has_moved(self, dispatcher, store):
        assert store.get().has_moved is False
        dispatcher.on_event(PointerMoveEvent(x=10, y=10))
        assert store.get().has_moved is True

    def test_dict_events_are_parsed(self, dispatcher, store, clock):
        clock.set(10_000.0)
        signals = dispatcher.on_event({"kind": "key_down", "key": "Enter"})
        assert signals == []
        assert store.get().last_key_pressed == "Enter"

    def test_signals_reach_aggregator(self, dispatcher, store, clock):
        clock.set(0.0)
        signals = dispatcher.on_event(PointerMoveEvent(x=0, y=0))
        assert sum(s.weight for s in signals) == store.get().cumulative_score


# =============================================================================
# Error Isolation Tests
# =============================================================================

class TestMalformedEvents:
    """Malformed events are dropped and leave the state untouched."""

    @pytest.mark.parametrize("raw", [
        {"kind": "pointer_move", "x": 10},           # missing y
        {"kind": "teleport", "x": 1, "y": 2},        # unknown kind
        {"kind": "key_down", "key": ""},             # empty key
        {"kind": "hover"},                           # missing target
        {"x": 1, "y": 2},                            # no discriminator
    ])
    def test_schema_failures_dropped(self, dispatcher, store, raw):
        before = store.snapshot()
        assert dispatcher.on_event(raw) == []
        assert store.get() == before

    def test_rule_failure_rolls_back_partial_updates(self, dispatcher, store, clock):
        """RapidPointerMovement mutates state before LinearPathDetection raises."""
        clock.set(10_000.0)
        dispatcher.on_event(PointerMoveEvent(x=5, y=5))
        before = store.snapshot()

        clock.set(10_010.0)
        bad = PointerMoveEvent.model_construct(x=float("inf"), y=5.0, timestamp=None)
        assert dispatcher.on_event(bad) == []

        state = store.get()
        assert state == before
        assert state.last_pointer_move_at == 10_000.0
        assert state.cumulative_score == before.cumulative_score

    def test_rollback_covers_every_kind(self):
        assert set(EVENT_STATE_FIELDS) == set(EventKind)

    def test_rollback_keeps_untouched_history(self, dispatcher, store, clock):
        """Only the fields of the failing kind are restored; other history survives."""
        clock.set(10_000.0)
        dispatcher.on_event(ClickEvent(target=ElementTarget(element_id="buy")))
        dispatcher.on_event(PointerMoveEvent.model_construct(x=float("nan"), y=0.0, timestamp=None))

        state = store.get()
        assert list(state.click_sequence) == ["buy"]
        assert state.click_sequence.maxlen == 50
        assert state.has_moved is False

    def test_saved_fields_are_independent(self, store):
        store.get().click_sequence.append("a")
        saved = store.snapshot_fields(["click_sequence", "last_click_at"])
        store.get().click_sequence.append("b")
        store.get().last_click_at = 5.0

        store.restore_fields(saved)
        assert list(store.get().click_sequence) == ["a"]
        assert store.get().last_click_at == 0

    def test_processing_continues_after_drop(self, dispatcher, store):
        dispatcher.on_event({"kind": "key_down"})
        dispatcher.on_event({"kind": "key_down", "key": "q"})
        assert store.get().last_key_pressed == "q"


# =============================================================================
# Timestamp Tests
# =============================================================================

class TestTimestamps:

    def test_client_spacing_preserved(self, dispatcher, store, clock):
        """The first client timestamp anchors on the engine clock; later gaps are kept."""
        clock.set(99_999.0)
        dispatcher.on_event(PointerMoveEvent(x=1, y=1, timestamp=12_345.0))
        assert store.get().last_pointer_move_at == 99_999.0

        dispatcher.on_event(PointerMoveEvent(x=50, y=90, timestamp=12_445.0))
        assert store.get().last_pointer_move_at == 100_099.0

    def test_timestamps_never_move_backwards(self, dispatcher, store, clock):
        clock.set(50_000.0)
        dispatcher.on_event(PointerMoveEvent(x=1, y=1, timestamp=20_000.0))
        signals = dispatcher.on_event(PointerMoveEvent(x=9, y=9, timestamp=15_000.0))

        state = store.get()
        assert state.last_pointer_move_at == 50_000.0
        # Clamped gap is 0ms, which is rapid
        assert any(s.weight == 2 for s in signals)

    def test_lagging_client_clock_after_untimed_event(self, dispatcher, store, clock):
        """A client clock behind the server does not make slow clicks look rapid."""
        clock.set(100_000.0)
        dispatcher.on_event(PointerMoveEvent(x=1, y=1))

        for i in range(5):
            clock.advance(2000.0)
            dispatcher.on_event(ClickEvent(timestamp=40_000.0 + i * 2000))

        assert store.get().cumulative_score == 0

    def test_far_future_timestamp_does_not_poison_session(self, dispatcher, store, clock):
        clock.set(100_000.0)
        timestamps = [40_000.0, 1e15, 44_000.0, 46_000.0, 48_000.0]
        for ts in timestamps:
            clock.advance(2000.0)
            dispatcher.on_event(ClickEvent(timestamp=ts))

        state = store.get()
        assert state.cumulative_score == 0
        assert state.last_click_at == clock()

    def test_untimed_events_use_engine_clock(self, dispatcher, store, clock):
        clock.set(7_000.0)
        dispatcher.on_event(ClickEvent())
        assert store.get().last_click_at == 7_000.0
        assert store.get().timestamp_offset is None


# =============================================================================
# Tick Tests
# =============================================================================

class TestTicks:

    def test_session_check_runs_both_rules(self, dispatcher, clock):
        clock.set(1000.0)
        reasons = [s.reason for s in dispatcher.on_tick(TickKind.SESSION_CHECK)]
        assert reasons == [SESSION_LENGTH_REASON, NO_MOVEMENT_REASON]

    def test_decay_tick_only_decays(self, dispatcher, store, clock):
        store.get().cumulative_score = 4
        clock.set(1000.0)
        assert dispatcher.on_tick(TickKind.DECAY) == []
        assert store.get().cumulative_score == 3

    def test_untyped_tick_runs_everything(self, dispatcher, store, clock):
        clock.set(1000.0)
        signals = dispatcher.on_tick()
        # +2 from the rules, -1 from decay
        assert len(signals) == 2
        assert store.get().cumulative_score == 1

    def test_every_tick_policy_repeats(self, clock, sink):
        dispatcher = build_dispatcher(clock, sink)
        for _ in range(3):
            clock.advance(1000.0)
            dispatcher.on_tick(TickKind.SESSION_CHECK)
        assert dispatcher.store.get().cumulative_score == 6

    def test_fire_once_policy_suppresses_repeats(self, clock, sink):
        dispatcher = build_dispatcher(clock, sink, tick_signal_policy=TickSignalPolicy.FIRE_ONCE)
        for _ in range(3):
            clock.advance(1000.0)
            dispatcher.on_tick(TickKind.SESSION_CHECK)

        state = dispatcher.store.get()
        assert state.cumulative_score == 2
        assert state.fired_tick_conditions == {SESSION_TOO_SHORT, NO_MOVEMENT_REASON}

    def test_fire_once_keeps_short_and_long_apart(self, clock, sink):
        """A short session flagged at start is flagged again once it runs too long."""
        dispatcher = build_dispatcher(clock, sink, tick_signal_policy=TickSignalPolicy.FIRE_ONCE)
        dispatcher.on_event(PointerMoveEvent(x=1, y=1))

        clock.set(1000.0)
        first = dispatcher.on_tick(TickKind.SESSION_CHECK)
        clock.set(3_600_001.0)
        second = dispatcher.on_tick(TickKind.SESSION_CHECK)
        clock.set(3_700_000.0)
        third = dispatcher.on_tick(TickKind.SESSION_CHECK)

        assert [s.condition for s in first] == [SESSION_TOO_SHORT]
        assert [s.condition for s in second] == [SESSION_TOO_LONG]
        assert third == []


# =============================================================================
# One-shot Hook Tests
# =============================================================================

class TestOneShotHooks:

    def test_on_init_runs_once(self, clock, sink):
        dispatcher = build_dispatcher(
            clock, sink,
            user_agent="HeadlessBot/1.0",
            suspicious_user_agents=frozenset({"HeadlessBot/1.0"}),
        )
        assert len(dispatcher.on_init()) == 1
        assert dispatcher.on_init() == []
        assert dispatcher.store.get().cumulative_score == 1

    def test_on_fingerprint_runs_once_and_records_visitor(self, clock, sink):
        dispatcher = build_dispatcher(clock, sink, known_bot_fingerprints=frozenset({"fp_1"}))
        assert len(dispatcher.on_fingerprint("fp_1")) == 1
        assert dispatcher.on_fingerprint("fp_1") == []

        state = dispatcher.store.get()
        assert state.visitor_id == "fp_1"
        assert state.cumulative_score == 1

    def test_key_event_not_routed_to_pointer_rules(self, dispatcher, store):
        dispatcher.on_event(KeyDownEvent(key="a"))
        assert store.get().has_moved is False
        assert store.get().consecutive_linear_steps == 0
