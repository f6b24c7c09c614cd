from esign_desk.api.dependencies.redis import create_redis_client
from esign_desk.core.config import Settings, get_settings
from esign_desk.core.logging import get_logger
from esign_desk.integrations.esign.client import EsignClient
from esign_desk.integrations.esign.provider import TencentEsignProvider
from esign_desk.integrations.esign.rate_limiter import (
    RateLimiter,
    RedisSlidingWindowRateLimiter,
    SlidingWindowRateLimiter,
)

logger = get_logger(__name__)

_provider: TencentEsignProvider | None = None


def build_rate_limiter(settings: Settings) -> RateLimiter:
    if settings.esign_rate_limiter_backend == "redis":
        return RedisSlidingWindowRateLimiter(
            create_redis_client(settings),
            settings.esign_rate_limit_per_window,
            settings.esign_rate_limit_window_seconds,
        )
    return SlidingWindowRateLimiter(
        settings.esign_rate_limit_per_window,
        settings.esign_rate_limit_window_seconds,
    )


def build_esign_provider(settings: Settings) -> TencentEsignProvider:
    client = EsignClient.from_settings(settings, rate_limiter=build_rate_limiter(settings))
    return TencentEsignProvider.from_settings(settings, client=client)


def get_esign_provider() -> TencentEsignProvider:
    """Process-wide provider; every request shares its session and rate limiter."""
    global _provider
    if _provider is None:
        settings = get_settings()
        _provider = build_esign_provider(settings)
        logger.info(
            "esign.provider.created",
            host=settings.tencent_esign_host,
            limiter=settings.esign_rate_limiter_backend,
            configured=settings.esign_configured,
        )
    return _provider


async def close_esign_provider() -> None:
    global _provider
    if _provider is not None:
        await _provider.close()
        _provider = None
