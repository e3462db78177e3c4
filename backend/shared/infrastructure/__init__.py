"""
Infrastructure module: Database, Redis/events, caching and retries.

Provides:
- Database sessions and transactions (db.py)
- Redis pub/sub broadcaster for real-time events (events/)
- Process-local TTL cache (cache/)
- Transient DB error retry (retry.py)
"""

from shared.infrastructure.db import (
    engine,
    SessionLocal,
    get_db_context,
    safe_commit,
)
from shared.infrastructure.events import (
    get_redis_pool,
    close_redis_pool,
    Broadcaster,
    RedisBroadcaster,
    InMemoryBroadcaster,
)

__all__ = [
    # db
    "engine",
    "SessionLocal",
    "get_db_context",
    "safe_commit",
    # events (Redis)
    "get_redis_pool",
    "close_redis_pool",
    "Broadcaster",
    "RedisBroadcaster",
    "InMemoryBroadcaster",
]
