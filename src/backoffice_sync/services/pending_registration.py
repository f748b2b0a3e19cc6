"""Short-lived store bridging registration pre-validation and account sync.

The back office needs the plaintext password, but the commerce platform only
emits the "user registered" event after it has hashed it. The validator
parks the password (and the accepted referral) here for a few minutes, keyed
by a digest of the email, and the dispatcher takes it exactly once.
"""

import hashlib
import time
from dataclasses import dataclass

import structlog

from backoffice_sync.infrastructure.redis import CacheService
from shared.constants import PENDING_REGISTRATION_PREFIX, PENDING_REGISTRATION_TTL_SECONDS

logger = structlog.get_logger()


@dataclass(frozen=True)
class PendingRegistration:
    """Details accepted by the back office while the account did not exist yet."""

    password: str
    referral: str | None = None


def email_key(email: str) -> str:
    """Stable cache key for an email address."""
    digest = hashlib.sha256(email.strip().lower().encode("utf-8")).hexdigest()
    return f"{PENDING_REGISTRATION_PREFIX}{digest}"


class PendingRegistrationStore:
    """Password parking lot with read-time expiry on top of the cache TTL."""

    def __init__(
        self,
        cache: CacheService,
        ttl_seconds: int = PENDING_REGISTRATION_TTL_SECONDS,
    ):
        self.cache = cache
        self.ttl_seconds = ttl_seconds

    async def put(self, email: str, password: str, referral: str | None = None) -> bool:
        entry = {
            "password": password,
            "referral": referral or None,
            "expires_at": time.time() + self.ttl_seconds,
        }
        stored = await self.cache.set(email_key(email), entry, ttl_seconds=self.ttl_seconds)
        if not stored:
            logger.warning("Pending registration could not be stored")
        return stored

    async def take(self, email: str) -> PendingRegistration | None:
        """Return the parked registration and delete the entry, whatever it held."""
        key = email_key(email)
        entry = await self.cache.get(key)
        await self.cache.delete(key)

        if not isinstance(entry, dict):
            return None
        if entry.get("expires_at", 0) <= time.time():
            logger.info("Pending registration expired before it was consumed")
            return None
        password = entry.get("password")
        if not password:
            return None
        return PendingRegistration(password=password, referral=entry.get("referral") or None)
