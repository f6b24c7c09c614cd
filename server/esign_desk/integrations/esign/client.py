"""
Rate-limited, retrying client for the Tencent E-Sign API.

One ``call`` is one logical provider action. Every attempt first takes a slot
from the injected rate limiter, is freshly signed, and is sent as a JSON POST.
Only provider error codes on the retry whitelist are retried, with capped
exponential backoff; every other failure is raised at once.
"""

import asyncio
from typing import Any, Awaitable, Callable, Dict, Optional

import aiohttp
from aiohttp import ClientTimeout

from esign_desk.core.config import Settings
from esign_desk.core.logging import get_logger

from .errors import DataShapeError, EsignError, NetworkError, ProviderError
from .rate_limiter import RateLimiter, SlidingWindowRateLimiter
from .signer import SignedRequest, sign_request

logger = get_logger(__name__)


class EsignClient:
    """Signs, rate-limits and retries calls to one provider endpoint."""

    def __init__(
        self,
        *,
        secret_id: str,
        secret_key: str,
        host: str = "ess.tencentcloudapi.com",
        service: str = "ess",
        version: str = "2020-11-11",
        region: str = "",
        rate_limiter: Optional[RateLimiter] = None,
        max_retries: int = 3,
        base_delay_seconds: float = 1.0,
        max_delay_seconds: float = 10.0,
        timeout_seconds: float = 30.0,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
    ):
        self.secret_id = secret_id
        self.secret_key = secret_key
        self.host = host
        self.service = service
        self.version = version
        self.region = region
        self.rate_limiter = rate_limiter or SlidingWindowRateLimiter()
        self.max_retries = max_retries
        self.base_delay_seconds = base_delay_seconds
        self.max_delay_seconds = max_delay_seconds
        self._sleep = sleep or asyncio.sleep

        # Session is created lazily to avoid event loop issues during initialization
        self._session: Optional[aiohttp.ClientSession] = None
        self._timeout = ClientTimeout(total=timeout_seconds)

    @classmethod
    def from_settings(cls, settings: Settings, rate_limiter: Optional[RateLimiter] = None) -> "EsignClient":
        return cls(
            secret_id=settings.tencent_secret_id,
            secret_key=settings.tencent_secret_key,
            host=settings.tencent_esign_host,
            service=settings.tencent_esign_service,
            version=settings.tencent_esign_api_version,
            region=settings.tencent_esign_region,
            rate_limiter=rate_limiter or SlidingWindowRateLimiter(
                settings.esign_rate_limit_per_window,
                settings.esign_rate_limit_window_seconds,
            ),
            max_retries=settings.esign_max_retries,
            base_delay_seconds=settings.esign_retry_base_delay_seconds,
            max_delay_seconds=settings.esign_retry_max_delay_seconds,
            timeout_seconds=settings.esign_timeout_seconds,
        )

    @property
    def session(self) -> aiohttp.ClientSession:
        """Get or create the HTTP session."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
        return self._session

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    def backoff_delay(self, attempt: int) -> float:
        return min(self.base_delay_seconds * (2 ** attempt), self.max_delay_seconds)

    def _sign(self, action: str, payload: Dict[str, Any]) -> SignedRequest:
        return sign_request(
            action=action,
            version=self.version,
            payload=payload,
            secret_id=self.secret_id,
            secret_key=self.secret_key,
            host=self.host,
            service=self.service,
            region=self.region,
        )

    async def _send(self, signed: SignedRequest) -> Dict[str, Any]:
        """Send one signed request and return the provider ``Response`` object."""
        try:
            async with self.session.request(
                signed.method,
                signed.url,
                data=signed.body.encode("utf-8"),
                headers=signed.headers,
            ) as response:
                if response.status < 200 or response.status >= 300:
                    error_text = await response.text()
                    raise NetworkError(
                        f"HTTP {response.status}: {error_text[:500]}",
                        status_code=response.status,
                    )
                data = await response.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise NetworkError(f"network error: {e!s}") from e
        except ValueError as e:
            raise DataShapeError("INVALID_RESPONSE", f"provider returned a non-JSON body: {e!s}") from e

        body = data.get("Response") if isinstance(data, dict) else None
        if not isinstance(body, dict):
            raise DataShapeError("INVALID_RESPONSE", "provider response has no 'Response' object")

        error = body.get("Error")
        if error:
            raise ProviderError(
                str(error.get("Code") or "UnknownError"),
                str(error.get("Message") or ""),
                str(body.get("RequestId") or ""),
            )
        return body

    async def call(self, action: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        """
        Perform one provider action.

        Returns:
            The provider ``Response`` object, including ``RequestId``.

        Raises:
            EsignError: terminal failure, or the last retryable failure once
                retries are exhausted.
        """
        last_error: Optional[ProviderError] = None

        for attempt in range(self.max_retries + 1):
            await self.rate_limiter.acquire()
            signed = self._sign(action, payload)
            try:
                response = await self._send(signed)
            except ProviderError as exc:
                if not exc.retryable:
                    logger.warning(
                        "esign.call.failed",
                        action=action,
                        code=exc.code,
                        provider_message=exc.message,
                        request_id=exc.request_id,
                    )
                    raise exc.with_friendly_message() from exc
                last_error = exc
            except EsignError as exc:
                logger.warning("esign.call.failed", action=action, code=exc.code, error=exc.message)
                raise
            else:
                logger.debug("esign.call.succeeded", action=action, request_id=response.get("RequestId"), attempt=attempt + 1)
                return response

            if attempt < self.max_retries:
                delay = self.backoff_delay(attempt)
                logger.warning(
                    "esign.call.retry",
                    action=action,
                    code=last_error.code,
                    attempt=attempt + 1,
                    max_retries=self.max_retries,
                    delay_seconds=delay,
                )
                await self._sleep(delay)

        if last_error is None:  # pragma: no cover - loop always runs at least once
            raise RuntimeError(f"{action} made no attempts")
        logger.error(
            "esign.call.exhausted",
            action=action,
            code=last_error.code,
            request_id=last_error.request_id,
            attempts=self.max_retries + 1,
        )
        raise last_error.with_friendly_message() from last_error
