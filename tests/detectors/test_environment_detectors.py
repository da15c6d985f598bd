"""
Environment & Session Detector Unit Tests

Tests for SuspiciousEnvironment, KnownBotFingerprint,
SessionLengthAnomaly and NoMovementAfterLoad.
"""

import pytest

from core.config import EngineConfig
from core.detectors.environment import (
    KNOWN_BOT_FINGERPRINT_REASON,
    NO_MOVEMENT_REASON,
    SESSION_LENGTH_REASON,
    SESSION_TOO_LONG,
    SESSION_TOO_SHORT,
    SUSPICIOUS_USER_AGENT_REASON,
    detect_known_bot_fingerprint,
    detect_no_movement,
    detect_session_length_anomaly,
    detect_suspicious_environment,
)


CHROME_UA = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)
GOOGLEBOT_UA = "Mozilla/5.0 (compatible; Googlebot/2.1; +http://www.google.com/bot.html)"


# =============================================================================
# Suspicious Environment Tests
# =============================================================================

class TestSuspiciousEnvironment:
    """User agents are matched against the deny-list and the UA parser."""

    def test_deny_listed_agent_fires(self):
        config = EngineConfig(suspicious_user_agents=frozenset({"curl/8.4.0"}))
        signals = detect_suspicious_environment("curl/8.4.0", config)

        assert len(signals) == 1
        assert signals[0].weight == 1
        assert signals[0].reason == SUSPICIOUS_USER_AGENT_REASON

    def test_regular_browser_passes(self, config):
        assert detect_suspicious_environment(CHROME_UA, config) == []

    def test_parsed_crawler_fires(self, config):
        assert len(detect_suspicious_environment(GOOGLEBOT_UA, config)) == 1

    def test_parser_check_can_be_disabled(self):
        config = EngineConfig(flag_parsed_bots=False)
        assert detect_suspicious_environment(GOOGLEBOT_UA, config) == []

    def test_deny_listed_crawler_fires_once(self):
        """Deny-list and parser matches do not double count."""
        config = EngineConfig(suspicious_user_agents=frozenset({GOOGLEBOT_UA}))
        assert len(detect_suspicious_environment(GOOGLEBOT_UA, config)) == 1

    @pytest.mark.parametrize("user_agent", [None, ""])
    def test_missing_agent_ignored(self, config, user_agent):
        assert detect_suspicious_environment(user_agent, config) == []


# =============================================================================
# Fingerprint Tests
# =============================================================================

class TestKnownBotFingerprint:

    def test_configured_fingerprint_fires(self):
        config = EngineConfig(known_bot_fingerprints=frozenset({"fp_bad"}))
        signals = detect_known_bot_fingerprint("fp_bad", config)
        assert [s.reason for s in signals] == [KNOWN_BOT_FINGERPRINT_REASON]

    def test_external_match_fires(self, config):
        assert len(detect_known_bot_fingerprint("fp_any", config, known_bot=True)) == 1

    def test_unknown_fingerprint_passes(self, config):
        assert detect_known_bot_fingerprint("fp_good", config) == []


# =============================================================================
# Tick Rule Tests
# =============================================================================

class TestSessionLengthAnomaly:
    """Sessions shorter than 5s or longer than 1h are suspicious."""

    @pytest.mark.parametrize("elapsed,fires", [
        (0.0, True),
        (4000.0, True),
        (4999.0, True),
        (5000.0, False),
        (1_800_000.0, False),
        (3_600_000.0, False),
        (3_600_001.0, True),
    ])
    def test_window_bounds(self, state, config, elapsed, fires):
        now = state.session_started_at + elapsed
        signals = detect_session_length_anomaly(state, config, now)

        assert bool(signals) is fires
        if fires:
            assert signals[0].reason == SESSION_LENGTH_REASON
            assert signals[0].weight == 1

    @pytest.mark.parametrize("elapsed,condition", [
        (4000.0, SESSION_TOO_SHORT),
        (3_600_001.0, SESSION_TOO_LONG),
    ])
    def test_condition_names_which_bound(self, state, config, elapsed, condition):
        signals = detect_session_length_anomaly(state, config, state.session_started_at + elapsed)
        assert signals[0].condition == condition


class TestNoMovement:

    def test_fires_until_moved(self, state, config):
        assert [s.reason for s in detect_no_movement(state, config, 5000.0)] == [NO_MOVEMENT_REASON]
        assert len(detect_no_movement(state, config, 10_000.0)) == 1

        state.has_moved = True
        assert detect_no_movement(state, config, 15_000.0) == []
