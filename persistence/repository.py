"""
ScrapeGuard Guard Repository

Redis-backed lookups used by the HTTP host around the engine.

Key Schemas:
    BOT_FINGERPRINTS             # Redis SET of known-bot visitor ids
    EVENT_RATE:{session_id}:{s}  # Per-second event batch counter

Every operation fails open: a Redis outage never blocks detection.
"""

import logging
import time
from typing import Optional

import redis
from redis.exceptions import RedisError

from .connection import get_redis_client


logger = logging.getLogger(__name__)


class GuardRepository:
    """
    Data Access Object for fingerprint deny-lists and ingestion rate guards.
    """

    BOT_FINGERPRINTS_KEY: str = "BOT_FINGERPRINTS"
    EVENT_RATE_LIMIT: int = 20  # batches per second per session

    def __init__(self, client: Optional[redis.Redis] = None) -> None:
        self.client = client if client is not None else get_redis_client()

    # -------------------------------------------------------------------------
    # Fingerprint Deny-list
    # -------------------------------------------------------------------------

    def is_known_bot_fingerprint(self, visitor_id: str) -> bool:
        """Check the shared deny-list of bot visitor ids."""
        try:
            return bool(self.client.sismember(self.BOT_FINGERPRINTS_KEY, visitor_id))
        except RedisError as e:
            logger.warning(f"Fingerprint lookup failed: {e}")
            return False  # Fail open

    def add_bot_fingerprint(self, visitor_id: str) -> None:
        """Add a visitor id to the shared deny-list."""
        try:
            self.client.sadd(self.BOT_FINGERPRINTS_KEY, visitor_id)
        except RedisError as e:
            logger.error(f"Failed to add bot fingerprint {visitor_id}: {e}")

    # -------------------------------------------------------------------------
    # Rate Guard
    # -------------------------------------------------------------------------

    def check_event_rate_limit(self, session_id: str) -> bool:
        """Per-second counter for event batches (20/sec)."""
        key = f"EVENT_RATE:{session_id}:{int(time.time())}"
        try:
            count = self.client.incr(key)
            if count == 1:
                self.client.expire(key, 2)  # Auto-cleanup
            return count <= self.EVENT_RATE_LIMIT
        except RedisError as e:
            logger.warning(f"Rate limit check failed: {e}")
            return True  # Fail open
