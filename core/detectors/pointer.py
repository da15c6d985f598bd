"""
Pointer Detector Rules

Rules evaluated on pointer motion and hover events:
- RapidPointerMovement: inter-move gap below the rapid movement threshold
- LinearPathDetection: long runs of axis-aligned steps
- RapidHover: clickable elements hovered in quick succession

Every rule updates its timestamps whether or not it fires, so the next
comparison always measures the true inter-event gap.
"""

import logging
import math

from core.config import EngineConfig
from core.detectors.common import MalformedEventError, Signals, is_rapid
from core.schemas.inputs import HoverEvent, PointerMoveEvent, TargetTag
from core.schemas.outputs import SuspicionSignal
from core.state_manager import SessionState


logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

# A step is linear when either axis moved less than this many pixels
LINEAR_STEP_TOLERANCE_PX = 2.0

RAPID_MOVEMENT_WEIGHT = 2.0
LINEAR_PATH_WEIGHT = 1.0
RAPID_HOVER_WEIGHT = 3.0

RAPID_MOVEMENT_REASON = "very rapid pointer movement"
LINEAR_PATH_REASON = "extended linear movement"
RAPID_HOVER_REASON = "rapid hovering over clickable elements"


# =============================================================================
# Rules
# =============================================================================

def detect_rapid_movement(
    event: PointerMoveEvent,
    state: SessionState,
    config: EngineConfig,
    now: float,
) -> Signals:
    """Flag pointer moves arriving faster than rapid_movement_threshold_ms."""
    signals: Signals = []
    if is_rapid(now, state.last_pointer_move_at, config.rapid_movement_threshold_ms):
        signals.append(SuspicionSignal(reason=RAPID_MOVEMENT_REASON, weight=RAPID_MOVEMENT_WEIGHT))
    state.last_pointer_move_at = now
    return signals


def detect_linear_path(
    event: PointerMoveEvent,
    state: SessionState,
    config: EngineConfig,
    now: float,
) -> Signals:
    """
    Track consecutive axis-aligned steps.

    A step is linear when |dx| < 2 OR |dy| < 2 relative to the previous
    position. The counter resets to 0 on the first non-linear step.
    """
    if not (math.isfinite(event.x) and math.isfinite(event.y)):
        raise MalformedEventError(f"Non-finite pointer coordinates: ({event.x}, {event.y})")

    last_x, last_y = state.last_pointer_position
    is_linear = (
        abs(event.x - last_x) < LINEAR_STEP_TOLERANCE_PX
        or abs(event.y - last_y) < LINEAR_STEP_TOLERANCE_PX
    )
    state.consecutive_linear_steps = state.consecutive_linear_steps + 1 if is_linear else 0

    signals: Signals = []
    if state.consecutive_linear_steps > config.linear_movement_threshold:
        logger.debug(f"Linear run of {state.consecutive_linear_steps} steps at ({event.x}, {event.y})")
        signals.append(SuspicionSignal(reason=LINEAR_PATH_REASON, weight=LINEAR_PATH_WEIGHT))

    state.last_pointer_position = (event.x, event.y)
    return signals


def detect_rapid_hover(
    event: HoverEvent,
    state: SessionState,
    config: EngineConfig,
    now: float,
) -> Signals:
    """Flag hovers over clickable elements closer together than rapid_hover_threshold_ms."""
    if not event.target.is_clickable:
        return []

    signals: Signals = []
    last_hover_at = state.last_hover_at.get(TargetTag.CLICKABLE, 0.0)
    if is_rapid(now, last_hover_at, config.rapid_hover_threshold_ms):
        signals.append(SuspicionSignal(reason=RAPID_HOVER_REASON, weight=RAPID_HOVER_WEIGHT))
    state.last_hover_at[TargetTag.CLICKABLE] = now
    return signals
