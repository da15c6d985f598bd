"""
Shared helpers for detector rules.
"""

from typing import List

from core.schemas.outputs import SuspicionSignal


Signals = List[SuspicionSignal]


class MalformedEventError(Exception):
    """Raised when an event payload cannot be evaluated."""
    pass


def is_rapid(now: float, last_at: float, threshold_ms: float) -> bool:
    """True when the gap since `last_at` is below `threshold_ms`."""
    return (now - last_at) < threshold_ms
