"""
ScrapeGuard Detector Rules

Public exports for the rule families. Each rule maps one event plus the
session state to zero or more SuspicionSignals.
"""

from core.detectors.common import MalformedEventError
from core.detectors.environment import (
    detect_known_bot_fingerprint,
    detect_no_movement,
    detect_session_length_anomaly,
    detect_suspicious_environment,
)
from core.detectors.interaction import (
    detect_hidden_element_interaction,
    detect_rapid_click,
    detect_rapid_form_edit,
    detect_rapid_scroll,
)
from core.detectors.keyboard import detect_repetitive_key_press
from core.detectors.pointer import (
    detect_linear_path,
    detect_rapid_hover,
    detect_rapid_movement,
)

__all__ = [
    "MalformedEventError",
    # Pointer
    "detect_rapid_movement",
    "detect_linear_path",
    "detect_rapid_hover",
    # Cadence
    "detect_rapid_click",
    "detect_rapid_form_edit",
    "detect_rapid_scroll",
    "detect_hidden_element_interaction",
    # Keyboard
    "detect_repetitive_key_press",
    # Environment
    "detect_suspicious_environment",
    "detect_known_bot_fingerprint",
    "detect_session_length_anomaly",
    "detect_no_movement",
]
