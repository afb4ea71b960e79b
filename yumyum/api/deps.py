from functools import lru_cache
from typing import Optional

import redis.asyncio as redis
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from yumyum.core.config import get_settings
from yumyum.core.rate_limit import RateLimiter
from yumyum.core.security import verify_session_token, verify_shared_secret
from yumyum.pipelines.aggregate import AggregationPipeline, build_pipeline
from yumyum.services.auth.otp import OTPService
from yumyum.services.auth.otp_store import InMemoryOTPStore, OTPStore, RedisOTPStore
from yumyum.services.auth.telegram import TelegramSender
from yumyum.services.http.fetcher import BoundedFetcher

security = HTTPBearer(auto_error=False)
rate_limiter = RateLimiter()


@lru_cache()
def get_pipeline() -> AggregationPipeline:
    """Process-wide pipeline; adapters share one HTTP client."""
    return build_pipeline()


def _build_otp_store() -> OTPStore:
    settings = get_settings()
    if settings.OTP_BACKEND == "redis":
        return RedisOTPStore(redis.from_url(settings.RATE_LIMIT_REDIS_URL), settings.OTP_TTL_SECONDS)
    return InMemoryOTPStore()


@lru_cache()
def get_otp_service() -> OTPService:
    """Single instance so the in-memory store survives between requests."""
    return OTPService(_build_otp_store(), TelegramSender(BoundedFetcher()))


async def require_admin_session(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> int:
    """Owner id from the session cookie, or from a bearer token when no cookie is sent."""
    settings = get_settings()
    token = request.cookies.get(settings.SESSION_COOKIE_NAME)
    if not token and credentials:
        token = credentials.credentials

    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required",
            headers={"WWW-Authenticate": "Bearer"},
        )

    payload = verify_session_token(token)
    try:
        owner_id = int(payload["sub"])
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token"
        )

    if owner_id not in settings.admin_owner_ids:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin privileges required"
        )
    return owner_id


async def require_cron_secret(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> None:
    """Scheduler calls carry ``Authorization: Bearer <CRON_SECRET>``."""
    provided = credentials.credentials if credentials else None
    if not verify_shared_secret(provided, get_settings().CRON_SECRET):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized"
        )


async def limit_otp_requests(request: Request) -> bool:
    return await rate_limiter.check_otp_request_limit(request)


async def limit_otp_verifications(request: Request) -> bool:
    return await rate_limiter.check_otp_verify_limit(request)
