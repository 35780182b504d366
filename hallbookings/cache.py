import json
from uuid import UUID

from loguru import logger
from redis.asyncio import Redis

from hallbookings.settings import REDIS_URL

_redis: Redis | None = None
UNAVAILABLE_TTL = 60  # 1 minute


def get_redis() -> Redis:
    global _redis
    if _redis is None:
        _redis = Redis.from_url(REDIS_URL, decode_responses=True)
    return _redis


def _unavailable_prefix(hall_owner_id: UUID) -> str:
    return f"unavailable:{hall_owner_id}:"


def _unavailable_key(hall_owner_id: UUID, suffix: str) -> str:
    return f"{_unavailable_prefix(hall_owner_id)}{suffix}"


async def get_unavailable_cache(hall_owner_id: UUID, suffix: str) -> dict | None:
    try:
        data = await get_redis().get(_unavailable_key(hall_owner_id, suffix))
        return json.loads(data) if data else None
    except Exception:
        logger.warning("Redis get failed, skipping unavailable-dates cache", exc_info=True)
        return None


async def set_unavailable_cache(hall_owner_id: UUID, suffix: str, payload: dict) -> None:
    try:
        await get_redis().setex(
            _unavailable_key(hall_owner_id, suffix), UNAVAILABLE_TTL, json.dumps(payload)
        )
    except Exception:
        logger.warning("Redis set failed, skipping unavailable-dates cache", exc_info=True)


async def invalidate_unavailable_cache(hall_owner_id: UUID) -> None:
    """Drop every cached filter combination for the owner."""
    try:
        redis = get_redis()
        keys = [k async for k in redis.scan_iter(match=f"{_unavailable_prefix(hall_owner_id)}*")]
        if keys:
            await redis.delete(*keys)
    except Exception:
        logger.warning("Redis invalidate failed for unavailable-dates cache", exc_info=True)
