import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Dict, Optional

import redis.asyncio as redis

logger = logging.getLogger(__name__)


@dataclass
class OneTimePasscode:
    owner_id: int
    code: str
    expires_at: datetime

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at


class OTPStore(ABC):
    """Pending passcodes keyed by owner id; at most one per owner."""

    @abstractmethod
    async def put(self, otp: OneTimePasscode) -> None:
        pass

    @abstractmethod
    async def get(self, owner_id: int) -> Optional[OneTimePasscode]:
        pass

    @abstractmethod
    async def pop(self, owner_id: int) -> Optional[OneTimePasscode]:
        """Remove and return the pending code in one step."""
        pass

    @abstractmethod
    async def delete(self, owner_id: int) -> None:
        pass


class InMemoryOTPStore(OTPStore):
    """Process-local store; enough for a handful of admins on one instance."""

    def __init__(self, clock: Callable[[], datetime] = datetime.utcnow):
        self._clock = clock
        self._entries: Dict[int, OneTimePasscode] = {}

    async def put(self, otp: OneTimePasscode) -> None:
        self._purge_expired()
        self._entries[otp.owner_id] = otp

    async def get(self, owner_id: int) -> Optional[OneTimePasscode]:
        return self._entries.get(owner_id)

    async def pop(self, owner_id: int) -> Optional[OneTimePasscode]:
        return self._entries.pop(owner_id, None)

    async def delete(self, owner_id: int) -> None:
        self._entries.pop(owner_id, None)

    def _purge_expired(self) -> None:
        now = self._clock()
        for owner_id in [o for o, entry in self._entries.items() if entry.is_expired(now)]:
            del self._entries[owner_id]

    def __len__(self) -> int:
        return len(self._entries)


class RedisOTPStore(OTPStore):
    """Shared store for multi-instance deployments; Redis TTL mirrors the expiry."""

    def __init__(self, redis_client: redis.Redis, ttl_seconds: int, prefix: str = "otp"):
        self.redis_client = redis_client
        self.ttl_seconds = ttl_seconds
        self.prefix = prefix

    def _key(self, owner_id: int) -> str:
        return f"{self.prefix}:{owner_id}"

    async def put(self, otp: OneTimePasscode) -> None:
        payload = json.dumps({"code": otp.code, "expires_at": otp.expires_at.isoformat()})
        await self.redis_client.set(self._key(otp.owner_id), payload, ex=self.ttl_seconds)

    def _decode(self, owner_id: int, raw) -> Optional[OneTimePasscode]:
        if raw is None:
            return None
        data = json.loads(raw)
        return OneTimePasscode(
            owner_id=owner_id,
            code=data["code"],
            expires_at=datetime.fromisoformat(data["expires_at"]),
        )

    async def get(self, owner_id: int) -> Optional[OneTimePasscode]:
        raw = await self.redis_client.get(self._key(owner_id))
        return self._decode(owner_id, raw)

    async def pop(self, owner_id: int) -> Optional[OneTimePasscode]:
        # GETDEL is atomic; two concurrent verifies cannot both see the code
        raw = await self.redis_client.getdel(self._key(owner_id))
        return self._decode(owner_id, raw)

    async def delete(self, owner_id: int) -> None:
        await self.redis_client.delete(self._key(owner_id))
