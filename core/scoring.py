"""
ScrapeGuard Scoring Aggregator

Owns the cumulative suspicion score of one session.

    apply(signals)  - add the summed weights, then check the threshold
    decay()         - leaky-bucket step: subtract decay_step, floored at 0

The score is never reset by a crossing: while it stays at or above the
threshold every non-empty apply invokes the mitigation sink again.
Sink failures are logged here and never reach the dispatcher.
"""

from __future__ import annotations

import logging
from typing import Optional, Sequence

from core.config import EngineConfig
from core.mitigation import LoggingSink, MitigationSink, ThresholdCrossed
from core.schemas.outputs import SuspicionSignal
from core.state_manager import SessionStateStore


logger = logging.getLogger(__name__)


class ScoringAggregator:
    """Applies suspicion signals and periodic decay to a session's score."""

    def __init__(
        self,
        store: SessionStateStore,
        config: EngineConfig,
        sink: Optional[MitigationSink] = None,
        session_id: str = "default",
    ) -> None:
        self.store = store
        self.config = config
        self.sink: MitigationSink = sink or LoggingSink()
        self.session_id = session_id

    @property
    def score(self) -> float:
        return self.store.get().cumulative_score

    @property
    def is_flagged(self) -> bool:
        return self.score >= self.config.bot_score_threshold

    def apply(self, signals: Sequence[SuspicionSignal]) -> bool:
        """
        Add all signal weights to the score and evaluate the threshold.

        Returns:
            True if the mitigation sink was invoked.
        """
        if not signals:
            return False

        state = self.store.get()
        state.cumulative_score += sum(signal.weight for signal in signals)
        for signal in signals:
            state.recent_reasons.append(signal.reason)
            logger.debug(
                f"[{self.session_id}] +{signal.weight:g} {signal.reason} "
                f"(score={state.cumulative_score:g})"
            )

        if state.cumulative_score < self.config.bot_score_threshold:
            return False

        state.mitigation_count += 1
        event = ThresholdCrossed(
            session_id=self.session_id,
            score=state.cumulative_score,
            threshold=self.config.bot_score_threshold,
            reasons=list(state.recent_reasons),
            triggering_reasons=[signal.reason for signal in signals],
            visitor_id=state.visitor_id,
        )
        try:
            self.sink(event)
        except Exception as e:
            logger.error(f"[{self.session_id}] Mitigation sink failed: {e}")
        return True

    def decay(self) -> float:
        """Subtract one decay step if the score is positive. Returns the new score."""
        state = self.store.get()
        if state.cumulative_score > 0:
            state.cumulative_score = max(0.0, state.cumulative_score - self.config.decay_step)
        return state.cumulative_score
