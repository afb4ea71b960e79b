import time

import redis.asyncio as redis
from fastapi import HTTPException, Request, status

from yumyum.core.config import get_settings
from yumyum.core.logging import get_logger

logger = get_logger(__name__)


class RateLimiter:
    def __init__(self):
        settings = get_settings()
        self.redis_client = redis.from_url(settings.RATE_LIMIT_REDIS_URL)

    async def check_rate_limit(
        self,
        key: str,
        limit: int,
        window: int,
        request: Request
    ) -> bool:
        """
        Check if request is within rate limit using sliding window.

        Args:
            key: Rate limit key (e.g., IP address, owner id)
            limit: Number of requests allowed
            window: Time window in seconds
            request: FastAPI request object

        Returns:
            True if within limit, raises HTTPException if exceeded
        """
        now = time.time()
        window_start = now - window

        try:
            pipe = self.redis_client.pipeline()
            pipe.zremrangebyscore(key, 0, window_start)
            pipe.zadd(key, {f"{now:.6f}": now})
            pipe.zcard(key)
            pipe.expire(key, window)

            results = await pipe.execute()
            request_count = results[2]

            if request_count > limit:
                host = request.client.host if request.client else "unknown"
                logger.warning(
                    f"Rate limit exceeded for {key}: {request_count}/{limit} "
                    f"requests in {window}s window. IP: {host}"
                )

                raise HTTPException(
                    status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                    detail=f"Rate limit exceeded. Try again in {window} seconds.",
                    headers={"Retry-After": str(window)}
                )

            return True

        except redis.RedisError as e:
            logger.error(f"Redis error in rate limiting: {e}")
            # Fail open: a Redis outage must not lock admins out
            return True

    async def check_otp_request_limit(self, request: Request) -> bool:
        """Passcode issuance: 5 per 15 minutes per IP."""
        host = request.client.host if request.client else "unknown"
        return await self.check_rate_limit(f"otp_request:{host}", 5, 900, request)

    async def check_otp_verify_limit(self, request: Request) -> bool:
        """Passcode verification: 10 per 15 minutes per IP."""
        host = request.client.host if request.client else "unknown"
        return await self.check_rate_limit(f"otp_verify:{host}", 10, 900, request)
