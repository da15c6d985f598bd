"""
Environment & Session Detector Rules

Rules that are not driven by interaction events:
- SuspiciousEnvironment: once at session start, from the user agent
- KnownBotFingerprint: once, when the fingerprint provider answers
- SessionLengthAnomaly: every session-check tick
- NoMovementAfterLoad: every session-check tick

User agents are checked against the configured deny-list first and then
classified with the `user-agents` parser, which recognises crawlers,
headless clients and scripting libraries.
"""

import logging
from typing import Optional

from user_agents import parse as parse_user_agent

from core.config import EngineConfig
from core.detectors.common import Signals
from core.schemas.outputs import SuspicionSignal
from core.state_manager import SessionState


logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

ENVIRONMENT_WEIGHT = 1.0
TICK_RULE_WEIGHT = 1.0

SUSPICIOUS_USER_AGENT_REASON = "suspicious user agent"
KNOWN_BOT_FINGERPRINT_REASON = "matching known bot fingerprint"
SESSION_LENGTH_REASON = "suspicious session length"
SESSION_TOO_SHORT = "session_too_short"
SESSION_TOO_LONG = "session_too_long"
NO_MOVEMENT_REASON = "no pointer movement since load"


# =============================================================================
# One-shot Rules
# =============================================================================

def detect_suspicious_environment(user_agent: Optional[str], config: EngineConfig) -> Signals:
    """
    Check the reporting environment identifier once at session start.

    Emits at most one signal, whether the agent is deny-listed, parsed as
    a bot, or both.
    """
    if not user_agent:
        return []

    if user_agent in config.suspicious_user_agents:
        logger.info(f"Deny-listed user agent: {user_agent!r}")
        return [SuspicionSignal(reason=SUSPICIOUS_USER_AGENT_REASON, weight=ENVIRONMENT_WEIGHT)]

    if config.flag_parsed_bots and parse_user_agent(user_agent).is_bot:
        logger.info(f"User agent classified as bot: {user_agent!r}")
        return [SuspicionSignal(reason=SUSPICIOUS_USER_AGENT_REASON, weight=ENVIRONMENT_WEIGHT)]

    return []


def detect_known_bot_fingerprint(visitor_id: str, config: EngineConfig, known_bot: bool = False) -> Signals:
    """
    Cross-check a visitor id from the fingerprint provider against the
    configured deny-list. `known_bot` carries the answer of an external
    deny-list (e.g. the Redis fingerprint set).
    """
    if known_bot or visitor_id in config.known_bot_fingerprints:
        return [SuspicionSignal(reason=KNOWN_BOT_FINGERPRINT_REASON, weight=ENVIRONMENT_WEIGHT)]
    return []


# =============================================================================
# Tick Rules
# =============================================================================

def detect_session_length_anomaly(state: SessionState, config: EngineConfig, now: float) -> Signals:
    """Flag sessions shorter than the floor or longer than the ceiling."""
    elapsed = now - state.session_started_at
    if elapsed < config.min_session_length_ms:
        condition = SESSION_TOO_SHORT
    elif elapsed > config.max_session_length_ms:
        condition = SESSION_TOO_LONG
    else:
        return []
    return [SuspicionSignal(reason=SESSION_LENGTH_REASON, weight=TICK_RULE_WEIGHT, condition=condition)]


def detect_no_movement(state: SessionState, config: EngineConfig, now: float) -> Signals:
    """Flag sessions with no pointer movement yet."""
    if not state.has_moved:
        return [SuspicionSignal(reason=NO_MOVEMENT_REASON, weight=TICK_RULE_WEIGHT)]
    return []
