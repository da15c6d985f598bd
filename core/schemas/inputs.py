"""
ScrapeGuard Input Schemas - Interaction Events

This module defines Pydantic V2 models for:
- Element targets with capability tags resolved at construction time
- The DetectionEvent tagged union (one model per event kind)
- HTTP ingestion payloads (session creation, event batches, fingerprints)
"""

from __future__ import annotations

from enum import Enum
from typing import Annotated, Any, Dict, FrozenSet, Iterable, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter


# =============================================================================
# Enums
# =============================================================================

class EventKind(str, Enum):
    """Discriminator for the DetectionEvent union."""
    POINTER_MOVE = "pointer_move"
    HOVER = "hover"
    CLICK = "click"
    FORM_CHANGE = "form_change"
    SCROLL = "scroll"
    KEY_DOWN = "key_down"
    ELEMENT_INTERACTION = "element_interaction"


class TargetTag(str, Enum):
    """Capability tags attached to an interaction target."""
    CLICKABLE = "clickable"
    HIDDEN = "hidden"


class InteractionType(str, Enum):
    """How an element interaction was performed."""
    CLICK = "click"
    FOCUS = "focus"


# Presentation class names mapped onto capability tags
CLASS_NAME_TAGS = {
    "clickable": TargetTag.CLICKABLE,
    "hidden-element": TargetTag.HIDDEN,
    "hidden-input": TargetTag.HIDDEN,
}


# =============================================================================
# Element Target
# =============================================================================

class ElementTarget(BaseModel):
    """The element an event was dispatched on."""
    model_config = ConfigDict(frozen=True)

    element_id: Optional[str] = Field(None, description="Stable element identifier")
    tags: FrozenSet[TargetTag] = Field(
        default_factory=frozenset,
        description="Capability tags (clickable, hidden)"
    )

    @classmethod
    def from_class_list(
        cls,
        class_list: Iterable[str],
        element_id: Optional[str] = None,
    ) -> ElementTarget:
        """Resolve capability tags once from the element's class names."""
        tags = frozenset(
            CLASS_NAME_TAGS[name] for name in class_list if name in CLASS_NAME_TAGS
        )
        return cls(element_id=element_id, tags=tags)

    @property
    def is_clickable(self) -> bool:
        return TargetTag.CLICKABLE in self.tags

    @property
    def is_hidden(self) -> bool:
        return TargetTag.HIDDEN in self.tags


# =============================================================================
# Detection Events
# =============================================================================

class _BaseEvent(BaseModel):
    model_config = ConfigDict(frozen=True)

    timestamp: Optional[float] = Field(
        None,
        ge=0,
        description="Client timestamp in milliseconds (engine clock if omitted)"
    )


class PointerMoveEvent(_BaseEvent):
    """Pointer moved to (x, y) in client coordinates."""
    kind: Literal["pointer_move"] = "pointer_move"
    x: float = Field(..., allow_inf_nan=False, description="X coordinate in client space")
    y: float = Field(..., allow_inf_nan=False, description="Y coordinate in client space")


class HoverEvent(_BaseEvent):
    """Pointer entered an element."""
    kind: Literal["hover"] = "hover"
    target: ElementTarget = Field(..., description="Hovered element")


class ClickEvent(_BaseEvent):
    """A click on any element."""
    kind: Literal["click"] = "click"
    target: ElementTarget = Field(default_factory=ElementTarget)


class FormChangeEvent(_BaseEvent):
    """Value change on an input, textarea or select."""
    kind: Literal["form_change"] = "form_change"
    target: ElementTarget = Field(default_factory=ElementTarget)


class ScrollEvent(_BaseEvent):
    """Page scrolled."""
    kind: Literal["scroll"] = "scroll"


class KeyDownEvent(_BaseEvent):
    """A key was pressed."""
    kind: Literal["key_down"] = "key_down"
    key: str = Field(..., min_length=1, description="Key value pressed")


class ElementInteractionEvent(_BaseEvent):
    """Click or focus on an element, used for honeypot checks."""
    kind: Literal["element_interaction"] = "element_interaction"
    target: ElementTarget = Field(..., description="Interacted element")
    interaction: InteractionType = InteractionType.CLICK


DetectionEvent = Annotated[
    Union[
        PointerMoveEvent,
        HoverEvent,
        ClickEvent,
        FormChangeEvent,
        ScrollEvent,
        KeyDownEvent,
        ElementInteractionEvent,
    ],
    Field(discriminator="kind"),
]

detection_event_adapter: TypeAdapter = TypeAdapter(DetectionEvent)


# =============================================================================
# HTTP Payloads
# =============================================================================

class CreateSessionPayload(BaseModel):
    """Start a new detection session."""
    session_id: Optional[str] = Field(
        None,
        min_length=1,
        max_length=128,
        description="Client supplied session id (generated if omitted)"
    )
    user_agent: Optional[str] = Field(
        None,
        description="Reporting environment identifier (request header if omitted)"
    )


class EventBatchPayload(BaseModel):
    """
    Ordered batch of interaction events for one session.

    Events stay raw here so one malformed entry is dropped by the
    dispatcher instead of rejecting the whole batch.
    """
    events: List[Dict[str, Any]] = Field(..., max_length=500, description="Events in arrival order")


class FingerprintPayload(BaseModel):
    """Visitor identifier returned by the fingerprint provider."""
    visitor_id: str = Field(..., min_length=1, description="Stable per-device identifier")
