"""
cache.py — Redis caching layer for BoltX.

Namespace conventions:
  prediction:{session_id}   → latest persisted prediction record   TTL 1h (settings)

Design:
  - Uses redis.asyncio (async client, part of redis-py 5.x)
  - Pool created once in lifespan, stored on app.state.redis
  - Helper functions take the client as a param — no module-level global state
  - Redis is a read-through cache; PostgreSQL stays the source of truth
"""
import logging
from typing import Optional

import redis.asyncio as aioredis

from boltx.config import settings
from boltx.risk.schemas import PersistedPredictionRecord

logger = logging.getLogger(__name__)

PREDICTION_PREFIX = "prediction"


def make_prediction_key(session_id: str) -> str:
    """Build Redis key for a session's latest prediction: prediction:{session_id}"""
    return f"{PREDICTION_PREFIX}:{session_id}"


# ---------------------------------------------------------------------------
# Pool factory — called once in lifespan
# ---------------------------------------------------------------------------

async def create_redis_pool() -> aioredis.Redis:
    """
    Create and return an async Redis connection pool.
    Verifies connectivity with PING before returning.
    """
    client = aioredis.from_url(
        settings.redis_url,
        encoding="utf-8",
        decode_responses=True,
        max_connections=20,
    )
    await client.ping()
    logger.info("Redis connection pool established at %s", settings.redis_url)
    return client


# ---------------------------------------------------------------------------
# Latest-prediction helpers
# ---------------------------------------------------------------------------

async def get_cached_prediction(
    client: aioredis.Redis, session_id: str
) -> Optional[PersistedPredictionRecord]:
    """Return the cached latest prediction, or None on a cache miss."""
    raw = await client.get(make_prediction_key(session_id))
    if raw is None:
        return None
    return PersistedPredictionRecord.model_validate_json(raw)


async def set_cached_prediction(
    client: aioredis.Redis, record: PersistedPredictionRecord
) -> None:
    """Store a session's latest prediction. Overwrites and resets the TTL."""
    key = make_prediction_key(record.session_id)
    await client.setex(
        key,
        settings.latest_prediction_ttl,
        record.model_dump_json(by_alias=True),
    )
    logger.debug("Latest prediction cached key=%s ttl=%ds", key, settings.latest_prediction_ttl)
