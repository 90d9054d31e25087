from redis.asyncio import Redis
from redis.exceptions import RedisError

from authcore.logging import get_logger

logger = get_logger("auth.rate_limit")


async def allow(redis: Redis, scope: str, *keys: str, max_attempts: int, window_sec: int) -> bool:
    """Fixed-window counter per (scope, keys). Fails open if Redis is unavailable."""
    key = "rl:" + ":".join([scope, *(str(k).lower() for k in keys)])
    try:
        attempts = await redis.incr(key)
        if attempts == 1:
            await redis.expire(key, window_sec)
    except RedisError as e:
        logger.warning("Rate limiter unavailable", scope=scope, error=str(e))
        return True
    return attempts <= max_attempts
