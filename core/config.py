"""
ScrapeGuard Engine Configuration

Tunable thresholds and intervals for the anomaly-scoring engine.
Every option carries its documented default; thresholds and intervals
must be strictly positive or the engine refuses to start.

Usage:
    config = EngineConfig.from_env()
    engine = DetectionEngine(config=config)
"""

from __future__ import annotations

import os
from enum import Enum
from typing import Dict, FrozenSet, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError


# =============================================================================
# Exceptions
# =============================================================================

class ConfigurationError(Exception):
    """Raised when the engine is configured with invalid values."""
    pass


# =============================================================================
# Enums
# =============================================================================

class TickSignalPolicy(str, Enum):
    """Whether timer-driven rules re-emit on every tick or only once."""
    EVERY_TICK = "every_tick"
    FIRE_ONCE = "fire_once"


# =============================================================================
# Engine Configuration
# =============================================================================

ENV_PREFIX = "SCRAPEGUARD_"


class EngineConfig(BaseModel):
    """Recognized configuration options for the whole engine."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    # Pointer
    rapid_movement_threshold_ms: float = Field(50.0, gt=0)
    linear_movement_threshold: int = Field(20, gt=0)

    # Interaction cadence
    rapid_interaction_threshold_ms: float = Field(500.0, gt=0)
    rapid_hover_threshold_ms: float = Field(500.0, gt=0)
    repetitive_key_press_threshold: int = Field(5, gt=0)

    # Scoring
    bot_score_threshold: float = Field(10.0, gt=0)
    decay_step: float = Field(1.0, gt=0)

    # Timers
    session_length_check_interval_ms: float = Field(5000.0, gt=0)
    decay_interval_ms: float = Field(60000.0, gt=0)

    # Session length window
    min_session_length_ms: float = Field(5000.0, gt=0)
    max_session_length_ms: float = Field(3_600_000.0, gt=0)

    # Bounded histories
    click_history_size: int = Field(50, gt=0)
    reason_history_size: int = Field(100, gt=0)

    # Client clock handling
    max_timestamp_drift_ms: float = Field(60_000.0, gt=0)

    # Host session housekeeping
    session_idle_ttl_ms: float = Field(1_800_000.0, gt=0)

    tick_signal_policy: TickSignalPolicy = TickSignalPolicy.EVERY_TICK

    # Deny-lists
    suspicious_user_agents: FrozenSet[str] = frozenset()
    known_bot_fingerprints: FrozenSet[str] = frozenset()
    flag_parsed_bots: bool = True

    @classmethod
    def create(cls, **overrides) -> EngineConfig:
        """
        Build a validated config, converting validation failures into
        ConfigurationError so callers only handle one error type.
        """
        try:
            config = cls(**overrides)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid engine configuration: {e}") from e

        if config.max_session_length_ms <= config.min_session_length_ms:
            raise ConfigurationError(
                "max_session_length_ms must be greater than min_session_length_ms "
                f"(got {config.max_session_length_ms} <= {config.min_session_length_ms})"
            )
        return config

    @classmethod
    def from_env(cls, environ: Optional[Dict[str, str]] = None) -> EngineConfig:
        """
        Read overrides from SCRAPEGUARD_* environment variables.

        Example:
            SCRAPEGUARD_BOT_SCORE_THRESHOLD=15
            SCRAPEGUARD_SUSPICIOUS_USER_AGENTS=curl/8.0,python-requests/2.31
        """
        env = os.environ if environ is None else environ
        overrides: Dict[str, object] = {}

        for name in cls.model_fields:
            raw = env.get(f"{ENV_PREFIX}{name.upper()}")
            if raw is None or raw.strip() == "":
                continue
            if name in ("suspicious_user_agents", "known_bot_fingerprints"):
                overrides[name] = frozenset(
                    item.strip() for item in raw.split(",") if item.strip()
                )
            elif name == "flag_parsed_bots":
                overrides[name] = raw.strip().lower() in ("1", "true", "yes", "on")
            else:
                overrides[name] = raw.strip()

        return cls.create(**overrides)
