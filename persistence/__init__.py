"""
ScrapeGuard Persistence Layer

Public exports for the Redis connection, guard repository and the
Supabase reporting channel.
"""

from .connection import get_redis_client
from .repository import GuardRepository
from .reporter import ScoreReporter

__all__ = [
    "get_redis_client",
    "GuardRepository",
    "ScoreReporter",
]
