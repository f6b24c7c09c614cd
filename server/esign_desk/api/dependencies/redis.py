from redis.asyncio import Redis

from esign_desk.core.config import Settings
from esign_desk.core.logging import get_logger

logger = get_logger(__name__)


def create_redis_client(settings: Settings) -> Redis:
    if not settings.redis_url:
        raise ValueError("redis_url is not configured")
    logger.info("redis.client.created", backend=settings.esign_rate_limiter_backend)
    return Redis.from_url(settings.redis_url)
