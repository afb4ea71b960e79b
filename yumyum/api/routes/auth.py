import logging

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status

from yumyum.api.deps import get_otp_service, limit_otp_requests, limit_otp_verifications
from yumyum.core.config import get_settings
from yumyum.core.errors import DeliveryError
from yumyum.core.security import create_session_token
from yumyum.schemas.auth import AuthResponse, OTPRequest, OTPVerify
from yumyum.services.auth.otp import OTPService

router = APIRouter()
logger = logging.getLogger(__name__)


def _host(request: Request) -> str:
    return request.client.host if request.client else "unknown"


@router.post("/request-otp", response_model=AuthResponse)
async def request_otp(
    payload: OTPRequest,
    request: Request,
    _: bool = Depends(limit_otp_requests),
    otp_service: OTPService = Depends(get_otp_service),
):
    """Send a one-time passcode to an allow-listed owner over Telegram."""
    if not otp_service.is_allowed(payload.owner_id):
        logger.warning(f"Passcode requested for unknown owner {payload.owner_id} from {_host(request)}")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Not authorized"
        )

    try:
        await otp_service.request_code(payload.owner_id)
    except DeliveryError as e:
        logger.error(f"Passcode delivery failed for owner {payload.owner_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to send code: {e.message}"
        )

    return AuthResponse(success=True, message="Code sent via Telegram")


@router.post("/verify-otp", response_model=AuthResponse)
async def verify_otp(
    payload: OTPVerify,
    request: Request,
    response: Response,
    _: bool = Depends(limit_otp_verifications),
    otp_service: OTPService = Depends(get_otp_service),
):
    """Exchange a passcode for a 7-day session cookie."""
    if not otp_service.is_allowed(payload.owner_id):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Not authorized"
        )

    if not await otp_service.verify_code(payload.owner_id, payload.code):
        logger.warning(f"Failed passcode check for owner {payload.owner_id} from {_host(request)}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired code"
        )

    settings = get_settings()
    is_secure = settings.ENV != "dev"
    response.set_cookie(
        key=settings.SESSION_COOKIE_NAME,
        value=create_session_token(payload.owner_id),
        httponly=True,
        secure=is_secure,
        samesite="strict" if is_secure else "lax",
        max_age=settings.SESSION_EXPIRE_DAYS * 24 * 60 * 60,
    )

    logger.info(f"Owner {payload.owner_id} signed in from {_host(request)}")
    return AuthResponse(success=True, message="Authentication successful")


@router.post("/logout", response_model=AuthResponse)
async def logout(response: Response):
    """Drop the session cookie; the token itself stays valid until expiry."""
    response.delete_cookie(get_settings().SESSION_COOKIE_NAME)
    return AuthResponse(success=True)
