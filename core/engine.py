"""
ScrapeGuard Detection Engine

Composes one session's pipeline:

    event -> EventDispatcher -> detector rules -> ScoringAggregator -> sink

The engine validates its configuration before anything else, so an
invalid threshold or interval stops it from starting at all. After
stop() every call is ignored and the session state is discarded.
"""

from __future__ import annotations

import logging
import uuid
from typing import Any, Dict, Optional, Union

from pydantic import BaseModel

from core.config import ConfigurationError, EngineConfig
from core.detectors.common import Signals
from core.dispatcher import EventDispatcher, TickKind
from core.mitigation import MitigationSink
from core.schemas.outputs import SessionDecision, SessionSnapshot
from core.scoring import ScoringAggregator
from core.state_manager import Clock, SessionState, SessionStateStore, wall_clock_ms


logger = logging.getLogger(__name__)


class DetectionEngine:
    """
    In-process heuristic accumulator for a single session.

    Args:
        config: Engine configuration (defaults when omitted).
        threshold_crossed_action: Mitigation sink callback.
        session_id: Identifier used in logs, sinks and reports.
        user_agent: Reporting environment identifier, checked once on start().
        clock: Millisecond clock; injectable for tests.
    """

    def __init__(
        self,
        config: Optional[EngineConfig] = None,
        threshold_crossed_action: Optional[MitigationSink] = None,
        session_id: Optional[str] = None,
        user_agent: Optional[str] = None,
        clock: Clock = wall_clock_ms,
    ) -> None:
        self.config = self._validate_config(config)
        self.session_id = session_id or uuid.uuid4().hex
        self.clock = clock

        self.store = SessionStateStore(self.config, clock=clock)
        self.aggregator = ScoringAggregator(
            self.store,
            self.config,
            sink=threshold_crossed_action,
            session_id=self.session_id,
        )
        self.dispatcher = EventDispatcher(
            self.store,
            self.aggregator,
            self.config,
            clock=clock,
            user_agent=user_agent,
        )
        self._started = False
        self._stopped = False
        self.last_seen_at = clock()

    @staticmethod
    def _validate_config(config: Optional[EngineConfig]) -> EngineConfig:
        if config is None:
            return EngineConfig.create()
        if not isinstance(config, EngineConfig):
            raise ConfigurationError(f"Expected EngineConfig, got {type(config).__name__}")
        # Re-validate: model_construct() and model_copy() skip field checks
        return EngineConfig.create(**config.model_dump())

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def start(self) -> Signals:
        """Run the session-start hook. Calling it again is a no-op."""
        if self._stopped:
            logger.warning(f"[{self.session_id}] start() after stop(); ignored")
            return []
        if self._started:
            return []
        self._started = True
        logger.info(f"[{self.session_id}] Detection session started")
        return self.dispatcher.on_init()

    def stop(self) -> None:
        """Tear the session down and discard its state."""
        if self._stopped:
            return
        self._stopped = True
        self.store.reset()
        logger.info(f"[{self.session_id}] Detection session stopped")

    @property
    def is_running(self) -> bool:
        return self._started and not self._stopped

    @property
    def is_idle(self) -> bool:
        """No client input for at least session_idle_ttl_ms. Ticks do not count."""
        return self.clock() - self.last_seen_at >= self.config.session_idle_ttl_ms

    # -------------------------------------------------------------------------
    # Event Source Interface
    # -------------------------------------------------------------------------

    def on_event(self, event: Union[BaseModel, Dict[str, Any]]) -> Signals:
        if self._stopped:
            return []
        self.last_seen_at = self.clock()
        return self.dispatcher.on_event(event)

    def on_tick(self, kind: Optional[TickKind] = None) -> Signals:
        if self._stopped:
            return []
        return self.dispatcher.on_tick(kind)

    def on_fingerprint(self, visitor_id: str, known_bot: bool = False) -> Signals:
        if self._stopped:
            return []
        self.last_seen_at = self.clock()
        return self.dispatcher.on_fingerprint(visitor_id, known_bot=known_bot)

    # -------------------------------------------------------------------------
    # Inspection
    # -------------------------------------------------------------------------

    @property
    def state(self) -> SessionState:
        return self.store.get()

    @property
    def score(self) -> float:
        return self.aggregator.score

    def snapshot(self, decision: SessionDecision = SessionDecision.ALLOW) -> SessionSnapshot:
        state = self.store.get()
        return SessionSnapshot(
            session_id=self.session_id,
            score=state.cumulative_score,
            threshold=self.config.bot_score_threshold,
            flagged=self.aggregator.is_flagged,
            decision=decision,
            mitigation_count=state.mitigation_count,
            reasons=list(state.recent_reasons),
            visitor_id=state.visitor_id,
        )
