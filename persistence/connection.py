import os
import logging
from functools import lru_cache

import redis
from redis.exceptions import RedisError, AuthenticationError

# Configure module-level logger
logger = logging.getLogger(__name__)


@lru_cache(maxsize=1)
def get_redis_client() -> redis.Redis:
    """
    Creates a cached Redis client backed by a small connection pool.

    Reads configuration from environment variables:
    - REDIS_URL: Full connection URL (takes precedence when set)
    - REDIS_HOST: Hostname (default: localhost)
    - REDIS_PORT: Port (default: 6379)
    - REDIS_DB: Database index (default: 0)
    - REDIS_PASSWORD: Password (optional for local development)
    """
    url = os.getenv("REDIS_URL")
    host = os.getenv("REDIS_HOST", "localhost")
    port = int(os.getenv("REDIS_PORT", 6379))
    db = int(os.getenv("REDIS_DB", 0))
    password = os.getenv("REDIS_PASSWORD") or None

    if password is None and url is None:
        logger.warning("REDIS_PASSWORD is not set; connecting without authentication.")

    try:
        if url:
            pool = redis.ConnectionPool.from_url(
                url,
                decode_responses=True,
                max_connections=20,
                socket_timeout=2.0,
            )
        else:
            pool = redis.ConnectionPool(
                host=host,
                port=port,
                db=db,
                password=password,
                decode_responses=True,  # Fingerprints and counters as str
                max_connections=20,
                socket_timeout=2.0      # Detection must not stall on Redis
            )

        client = redis.Redis(connection_pool=pool)
        client.ping()
        logger.info(f"Connected to Redis ({url or f'{host}:{port}/{db}'})")

        return client

    except AuthenticationError:
        logger.critical("Redis authentication failed. Check REDIS_PASSWORD.")
        raise
    except RedisError as e:
        logger.critical(f"Could not connect to Redis: {e}")
        raise
