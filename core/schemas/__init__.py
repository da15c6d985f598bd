"""
ScrapeGuard Core Schemas

Public exports for input and output Pydantic models.
"""

# Input schemas - Detection events
from core.schemas.inputs import (
    ClickEvent,
    DetectionEvent,
    ElementInteractionEvent,
    ElementTarget,
    EventKind,
    FormChangeEvent,
    HoverEvent,
    InteractionType,
    KeyDownEvent,
    PointerMoveEvent,
    ScrollEvent,
    TargetTag,
    detection_event_adapter,
)

# Input schemas - HTTP payloads
from core.schemas.inputs import (
    CreateSessionPayload,
    EventBatchPayload,
    FingerprintPayload,
)

# Output schemas
from core.schemas.outputs import (
    ScoreReport,
    SessionDecision,
    SessionSnapshot,
    SuspicionSignal,
)

__all__ = [
    # Input - Events
    "EventKind",
    "TargetTag",
    "InteractionType",
    "ElementTarget",
    "PointerMoveEvent",
    "HoverEvent",
    "ClickEvent",
    "FormChangeEvent",
    "ScrollEvent",
    "KeyDownEvent",
    "ElementInteractionEvent",
    "DetectionEvent",
    "detection_event_adapter",
    # Input - HTTP
    "CreateSessionPayload",
    "EventBatchPayload",
    "FingerprintPayload",
    # Output
    "SuspicionSignal",
    "ScoreReport",
    "SessionDecision",
    "SessionSnapshot",
]
