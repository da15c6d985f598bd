"""
ScrapeGuard Output Schemas

This module defines Pydantic V2 models for everything the engine emits:
suspicion signals, score reports for the reporting channel and the
session snapshot returned by the HTTP surface.
"""

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


# =============================================================================
# Enums
# =============================================================================

class SessionDecision(str, Enum):
    """Mitigation decision recorded for a session."""
    ALLOW = "ALLOW"
    CHALLENGE = "CHALLENGE"
    BLOCK = "BLOCK"


# =============================================================================
# Suspicion Signal
# =============================================================================

class SuspicionSignal(BaseModel):
    """A single suspicion increment emitted by a detector rule."""
    model_config = ConfigDict(frozen=True)

    reason: str = Field(..., min_length=1, description="Human readable reason label")
    weight: float = Field(..., ge=0, description="Score increment")
    condition: Optional[str] = Field(
        None,
        description="Finer-grained condition behind the reason, when a rule has several"
    )


# =============================================================================
# Reporting Channel
# =============================================================================

class ScoreReport(BaseModel):
    """Payload accepted by the reporting channel for server-side correlation."""
    identifier: str = Field(..., description="Visitor or session identifier")
    current_score: float = Field(..., ge=0, description="Cumulative suspicion score")
    reasons: List[str] = Field(default_factory=list, description="Recent reason labels")


# =============================================================================
# Session Snapshot
# =============================================================================

class SessionSnapshot(BaseModel):
    """
    Read-only view of a detection session.

    - score: current cumulative suspicion score
    - flagged: score is at or above the threshold
    - decision: decision recorded by the mitigation sink, if any
    """
    session_id: str = Field(..., description="Session identifier")
    score: float = Field(..., ge=0, description="Cumulative suspicion score")
    threshold: float = Field(..., gt=0, description="Bot score threshold")
    flagged: bool = Field(..., description="Score has reached the threshold")
    decision: SessionDecision = Field(SessionDecision.ALLOW, description="Mitigation decision")
    mitigation_count: int = Field(0, ge=0, description="Times the sink was invoked")
    reasons: List[str] = Field(default_factory=list, description="Recent reason labels")
    visitor_id: Optional[str] = Field(None, description="Fingerprint visitor id, once known")
