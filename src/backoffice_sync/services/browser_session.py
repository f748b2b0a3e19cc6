"""Server-side browser sessions: login state and captured referral."""

import hashlib
from datetime import datetime

import structlog
from starlette.requests import Request

from backoffice_sync.config import Settings
from backoffice_sync.infrastructure.database.models import BrowserSession
from backoffice_sync.infrastructure.database.repositories import BrowserSessionRepository
from backoffice_sync.middleware.session import new_session_token

logger = structlog.get_logger()


def hash_token(token: str) -> str:
    """Only token digests are stored, so a leaked table cannot be replayed."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


class BrowserSessionService:
    """Reads and writes the session behind the request's cookie token."""

    def __init__(self, repository: BrowserSessionRepository, settings: Settings):
        self.repository = repository
        self.settings = settings

    async def current(self, request: Request) -> BrowserSession | None:
        if not getattr(request.state, "session_has_cookie", False):
            return None
        return await self.repository.get_active(hash_token(request.state.session_token))

    async def current_user_id(self, request: Request) -> int | None:
        record = await self.current(request)
        return record.user_id if record else None

    async def remember_referral(self, request: Request, username: str) -> None:
        record = await self.current(request)
        if record is None:
            await self.repository.create(
                hash_token(request.state.session_token),
                self.settings.session_max_age_seconds,
                referral_username=username,
            )
        else:
            record.referral_username = username
            record.referral_captured_at = datetime.now()
        await self.repository.session.commit()
        request.state.session_has_cookie = True
        request.state.session_touched = True

    async def login(self, request: Request, user_id: int) -> BrowserSession:
        """Bind a fresh session token to `user_id`; the old token is discarded."""
        await self.repository.purge_expired()
        if getattr(request.state, "session_has_cookie", False):
            await self.repository.delete(hash_token(request.state.session_token))

        token = new_session_token()
        record = await self.repository.create(
            hash_token(token), self.settings.session_max_age_seconds, user_id=user_id
        )
        await self.repository.session.commit()

        request.state.session_token = token
        request.state.session_has_cookie = True
        request.state.session_touched = True
        logger.info("Session established", user_id=user_id)
        return record

    async def logout(self, request: Request) -> None:
        """Forget the session, including any captured referral."""
        if getattr(request.state, "session_has_cookie", False):
            await self.repository.delete(hash_token(request.state.session_token))
            await self.repository.session.commit()
        request.state.session_cleared = True
