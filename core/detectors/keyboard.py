"""
Keyboard Detector Rules

RepetitiveKeyPress: the same key pressed over and over.

The streak counts repeats after the first press of a run, so a run of
N identical presses carries streak N - 1. The rule fires once the run is
longer than repetitive_key_press_threshold presses.
"""

from core.config import EngineConfig
from core.detectors.common import Signals
from core.schemas.inputs import KeyDownEvent
from core.schemas.outputs import SuspicionSignal
from core.state_manager import SessionState


REPETITIVE_KEY_WEIGHT = 1.0
REPETITIVE_KEY_REASON = "repetitive key presses"


def detect_repetitive_key_press(
    event: KeyDownEvent,
    state: SessionState,
    config: EngineConfig,
    now: float,
) -> Signals:
    """Flag long runs of the same key value."""
    signals: Signals = []

    if event.key == state.last_key_pressed:
        state.repetitive_key_press_streak += 1
        run_length = state.repetitive_key_press_streak + 1
        if run_length > config.repetitive_key_press_threshold:
            signals.append(SuspicionSignal(reason=REPETITIVE_KEY_REASON, weight=REPETITIVE_KEY_WEIGHT))
    else:
        state.repetitive_key_press_streak = 0

    state.last_key_pressed = event.key
    return signals
