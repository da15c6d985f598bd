"""
ScrapeGuard Test Suite - Shared Pytest Fixtures

This conftest.py provides fixtures for all test categories including:
- A manual millisecond clock for deterministic timing
- Engine configuration and engine factories
- A recording mitigation sink

Usage:
    pytest tests/ -v -s
"""

import pytest
from typing import Callable, List, Optional

from core.config import EngineConfig
from core.engine import DetectionEngine
from core.mitigation import ThresholdCrossed
from core.scoring import ScoringAggregator
from core.state_manager import SessionStateStore


# =============================================================================
# Clock & Sink Helpers
# =============================================================================

class ManualClock:
    """Millisecond clock advanced explicitly by tests."""

    def __init__(self, start: float = 0.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, ms: float) -> float:
        self.now += ms
        return self.now

    def set(self, ms: float) -> float:
        self.now = ms
        return self.now


class RecordingSink:
    """Mitigation sink that remembers every invocation."""

    def __init__(self) -> None:
        self.calls: List[ThresholdCrossed] = []

    def __call__(self, event: ThresholdCrossed) -> None:
        self.calls.append(event)

    @property
    def call_count(self) -> int:
        return len(self.calls)


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def clock() -> ManualClock:
    """Clock starting at t=0ms."""
    return ManualClock()


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def config() -> EngineConfig:
    """Default engine configuration."""
    return EngineConfig()


@pytest.fixture
def store(config, clock) -> SessionStateStore:
    return SessionStateStore(config, clock=clock)


@pytest.fixture
def state(store):
    """The mutable SessionState of the `store` fixture."""
    return store.get()


@pytest.fixture
def aggregator(store, config, sink) -> ScoringAggregator:
    return ScoringAggregator(store, config, sink=sink, session_id="test_session")


@pytest.fixture
def make_engine(clock, sink) -> Callable[..., DetectionEngine]:
    """
    Factory for engines wired to the manual clock and recording sink.

    Usage:
        engine = make_engine(bot_score_threshold=5, user_agent="curl/8.0")
    """
    def _make_engine(user_agent: Optional[str] = None, **overrides) -> DetectionEngine:
        return DetectionEngine(
            config=EngineConfig.create(**overrides),
            threshold_crossed_action=sink,
            session_id="test_session",
            user_agent=user_agent,
            clock=clock,
        )
    return _make_engine


@pytest.fixture
def engine(make_engine) -> DetectionEngine:
    """Engine with default configuration."""
    return make_engine()
