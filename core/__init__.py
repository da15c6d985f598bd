"""
ScrapeGuard Core

Central module exports for the behavioral anomaly-scoring engine.
"""

from core.config import ConfigurationError, EngineConfig, TickSignalPolicy
from core.dispatcher import EventDispatcher, TickKind
from core.engine import DetectionEngine
from core.scoring import ScoringAggregator
from core.state_manager import SessionState, SessionStateStore

__all__ = [
    "ConfigurationError",
    "DetectionEngine",
    "EngineConfig",
    "EventDispatcher",
    "ScoringAggregator",
    "SessionState",
    "SessionStateStore",
    "TickKind",
    "TickSignalPolicy",
]
