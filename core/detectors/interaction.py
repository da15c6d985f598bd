"""
Interaction Cadence Detector Rules

Click, form-edit and scroll cadence share one policy: an event arriving
sooner than rapid_interaction_threshold_ms after the previous one of the
same family emits a weight-1 signal. The family timestamp is updated on
every event.

HiddenElementInteraction has no rate component: any click or focus on a
honeypot target is suspicious.
"""

from core.config import EngineConfig
from core.detectors.common import Signals, is_rapid
from core.schemas.inputs import (
    ClickEvent,
    ElementInteractionEvent,
    FormChangeEvent,
    ScrollEvent,
)
from core.schemas.outputs import SuspicionSignal
from core.state_manager import SessionState


# =============================================================================
# Constants
# =============================================================================

CADENCE_WEIGHT = 1.0
HIDDEN_ELEMENT_WEIGHT = 1.0

RAPID_CLICK_REASON = "rapid clicking"
RAPID_FORM_EDIT_REASON = "rapid form interaction"
RAPID_SCROLL_REASON = "rapid scrolling"
HIDDEN_ELEMENT_REASON = "interaction with hidden element"


# =============================================================================
# Cadence Rules
# =============================================================================

def detect_rapid_click(
    event: ClickEvent,
    state: SessionState,
    config: EngineConfig,
    now: float,
) -> Signals:
    """Flag clicks closer together than the interaction threshold."""
    signals: Signals = []
    if is_rapid(now, state.last_click_at, config.rapid_interaction_threshold_ms):
        signals.append(SuspicionSignal(reason=RAPID_CLICK_REASON, weight=CADENCE_WEIGHT))
    state.last_click_at = now
    state.click_sequence.append(event.target.element_id)
    return signals


def detect_rapid_form_edit(
    event: FormChangeEvent,
    state: SessionState,
    config: EngineConfig,
    now: float,
) -> Signals:
    """Flag form value changes closer together than the interaction threshold."""
    signals: Signals = []
    if is_rapid(now, state.last_form_edit_at, config.rapid_interaction_threshold_ms):
        signals.append(SuspicionSignal(reason=RAPID_FORM_EDIT_REASON, weight=CADENCE_WEIGHT))
    state.last_form_edit_at = now
    return signals


def detect_rapid_scroll(
    event: ScrollEvent,
    state: SessionState,
    config: EngineConfig,
    now: float,
) -> Signals:
    """Flag scroll events closer together than the interaction threshold."""
    signals: Signals = []
    if is_rapid(now, state.last_scroll_at, config.rapid_interaction_threshold_ms):
        signals.append(SuspicionSignal(reason=RAPID_SCROLL_REASON, weight=CADENCE_WEIGHT))
    state.last_scroll_at = now
    return signals


# =============================================================================
# Honeypot Rule
# =============================================================================

def detect_hidden_element_interaction(
    event: ElementInteractionEvent,
    state: SessionState,
    config: EngineConfig,
    now: float,
) -> Signals:
    """Any interaction with a hidden-tagged target emits one signal."""
    if event.target.is_hidden:
        return [SuspicionSignal(reason=HIDDEN_ELEMENT_REASON, weight=HIDDEN_ELEMENT_WEIGHT)]
    return []
