import logging
import secrets
from datetime import datetime, timedelta
from typing import Callable, List, Optional

from yumyum.core.config import get_settings
from yumyum.core.errors import DeliveryError
from yumyum.core.security import generate_otp_code
from yumyum.services.auth.otp_store import OneTimePasscode, OTPStore
from yumyum.services.auth.telegram import TelegramSender

logger = logging.getLogger(__name__)


class OTPService:
    """
    Issue and check single-use admin passcodes.

    A stored code is deleted by the first verification attempt whatever its
    outcome, so a wrong guess burns the code.
    """

    def __init__(
        self,
        store: OTPStore,
        sender: TelegramSender,
        ttl_seconds: Optional[int] = None,
        allowed_owner_ids: Optional[List[int]] = None,
        clock: Callable[[], datetime] = datetime.utcnow,
    ):
        settings = get_settings()
        self.store = store
        self.sender = sender
        self.ttl_seconds = ttl_seconds if ttl_seconds is not None else settings.OTP_TTL_SECONDS
        self.allowed_owner_ids = (
            allowed_owner_ids if allowed_owner_ids is not None else settings.admin_owner_ids
        )
        self._clock = clock

    def is_allowed(self, owner_id: int) -> bool:
        return owner_id in self.allowed_owner_ids

    async def request_code(self, owner_id: int) -> OneTimePasscode:
        """
        Store a fresh code for ``owner_id`` and deliver it.

        Raises:
            DeliveryError: the code could not be sent; it is not left behind
        """
        otp = OneTimePasscode(
            owner_id=owner_id,
            code=generate_otp_code(),
            expires_at=self._clock() + timedelta(seconds=self.ttl_seconds),
        )
        await self.store.put(otp)

        try:
            await self.sender.send_code(owner_id, otp.code, max(1, self.ttl_seconds // 60))
        except DeliveryError:
            await self.store.delete(owner_id)
            raise

        logger.info(f"Issued passcode for owner {owner_id}")
        return otp

    async def verify_code(self, owner_id: int, code: str) -> bool:
        entry = await self.store.pop(owner_id)
        if entry is None:
            logger.warning(f"Passcode check for owner {owner_id} with no pending code")
            return False

        if entry.is_expired(self._clock()):
            logger.warning(f"Expired passcode presented by owner {owner_id}")
            return False

        if not secrets.compare_digest(entry.code.encode("utf-8"), code.encode("utf-8")):
            logger.warning(f"Wrong passcode presented by owner {owner_id}")
            return False

        logger.info(f"Passcode verified for owner {owner_id}")
        return True
