"""
ScrapeGuard Mitigation Sinks

A mitigation sink is any callable taking a ThresholdCrossed event. The
aggregator calls it every time an apply leaves the score at or above the
threshold, so every sink here tolerates repeated invocation.

Sinks:
    LoggingSink   - logs the detection
    DecisionSink  - records BLOCK or CHALLENGE for the session
    ReportingSink - forwards {identifier, score, reasons} once per session
    DenyListSink  - adds the visitor id of a crossing session to the deny-list
    CompositeSink - fans out to several sinks, isolating failures
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Protocol, Sequence, Set

from core.schemas.outputs import ScoreReport, SessionDecision


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ThresholdCrossed:
    """Handed to the mitigation sink when the score reaches the threshold."""
    session_id: str
    score: float
    threshold: float
    reasons: List[str] = field(default_factory=list)
    """Accumulated reason labels, oldest first."""
    triggering_reasons: List[str] = field(default_factory=list)
    """Reasons of the apply that crossed (or stayed above) the threshold."""
    visitor_id: Optional[str] = None


MitigationSink = Callable[[ThresholdCrossed], None]


class ScoreReporterLike(Protocol):
    def report(self, report: ScoreReport) -> None: ...


class DenyListLike(Protocol):
    def add_bot_fingerprint(self, visitor_id: str) -> None: ...


# Runs a side effect, e.g. inline or on a worker thread
Submitter = Callable[..., Any]


class LoggingSink:
    """Log every threshold crossing."""

    def __init__(self, level: int = logging.WARNING) -> None:
        self.level = level

    def __call__(self, event: ThresholdCrossed) -> None:
        latest = event.triggering_reasons[-1] if event.triggering_reasons else "unknown"
        logger.log(
            self.level,
            f"Possible bot detected: {latest} "
            f"(session={event.session_id}, score={event.score:.1f}/{event.threshold:.1f})"
        )


class DecisionSink:
    """
    Record a mitigation decision per session.

    The first crossing moves the session from ALLOW to the configured
    action; later crossings leave it unchanged.
    """

    def __init__(self, action: SessionDecision = SessionDecision.BLOCK) -> None:
        if action == SessionDecision.ALLOW:
            raise ValueError("DecisionSink action must be BLOCK or CHALLENGE")
        self.action = action
        self._decisions: Dict[str, SessionDecision] = {}
        self._lock = threading.Lock()

    def __call__(self, event: ThresholdCrossed) -> None:
        with self._lock:
            if event.session_id in self._decisions:
                return
            self._decisions[event.session_id] = self.action
        logger.warning(f"Session {event.session_id} marked {self.action.value}")

    def decision_for(self, session_id: str) -> SessionDecision:
        with self._lock:
            return self._decisions.get(session_id, SessionDecision.ALLOW)

    def forget(self, session_id: str) -> None:
        with self._lock:
            self._decisions.pop(session_id, None)


def call_inline(fn: Callable[..., Any], *args: Any) -> Any:
    """Default submitter: run the side effect on the calling thread."""
    return fn(*args)


class ReportingSink:
    """
    Forward the first crossing of each session to the reporting channel.

    Later crossings of the same session are not re-reported. The insert is
    handed to `submit` so the host can run it off the event loop.
    """

    def __init__(self, reporter: ScoreReporterLike, submit: Submitter = call_inline) -> None:
        self.reporter = reporter
        self.submit = submit
        self._reported: Set[str] = set()
        self._lock = threading.Lock()

    def __call__(self, event: ThresholdCrossed) -> None:
        with self._lock:
            if event.session_id in self._reported:
                return
            self._reported.add(event.session_id)
        self.submit(self.reporter.report, ScoreReport(
            identifier=event.visitor_id or event.session_id,
            current_score=event.score,
            reasons=list(event.reasons),
        ))

    def forget(self, session_id: str) -> None:
        with self._lock:
            self._reported.discard(session_id)


class DenyListSink:
    """
    Add the visitor id of a crossing session to the shared bot deny-list.

    Crossings before the fingerprint arrives carry no visitor id and are
    skipped. Each visitor id is submitted once.
    """

    def __init__(self, deny_list: DenyListLike, submit: Submitter = call_inline) -> None:
        self.deny_list = deny_list
        self.submit = submit
        self._listed: Set[str] = set()
        self._lock = threading.Lock()

    def __call__(self, event: ThresholdCrossed) -> None:
        if event.visitor_id:
            self.add(event.visitor_id, event.session_id)

    def add(self, visitor_id: str, session_id: str) -> bool:
        """Submit `visitor_id` unless already submitted. Returns True if submitted."""
        with self._lock:
            if visitor_id in self._listed:
                return False
            self._listed.add(visitor_id)
        logger.info(f"Deny-listing fingerprint {visitor_id} (session={session_id})")
        self.submit(self.deny_list.add_bot_fingerprint, visitor_id)
        return True


class CompositeSink:
    """Invoke several sinks in order; one failing sink does not stop the rest."""

    def __init__(self, sinks: Sequence[MitigationSink]) -> None:
        self.sinks = list(sinks)

    def __call__(self, event: ThresholdCrossed) -> None:
        for sink in self.sinks:
            try:
                sink(event)
            except Exception as e:
                logger.error(f"Mitigation sink {type(sink).__name__} failed: {e}")
