"""Single sign-on between the back office and the storefront.

Inbound: the back office sends the browser here with an opaque token. The
token is the only proof of identity, so nothing else (CSRF token, cookie) is
checked; the back office verifies it and names the local user.

Outbound: a logged-in customer asks for a back-office token and is sent to
the back-office frontend with it.
"""

from urllib.parse import quote, urlencode

import structlog
from starlette.requests import Request

from backoffice_sync.config import Settings
from backoffice_sync.exceptions import BackOfficeError, TransportFailure
from backoffice_sync.infrastructure.backoffice_client import BackOfficeClient
from backoffice_sync.infrastructure.database.repositories import CommerceRepository
from backoffice_sync.infrastructure.sync_log import SyncLog
from backoffice_sync.services.browser_session import BrowserSessionService

logger = structlog.get_logger()

UNREACHABLE_MESSAGE = "Unable to reach the back office to verify your login."
VERIFICATION_FAILED_MESSAGE = "Token verification failed."
USER_NOT_FOUND_MESSAGE = "User not found."
FRONTEND_UNAVAILABLE_MESSAGE = "Unable to open the back office right now."


class SSOError(Exception):
    """Stops the SSO request with a user-facing message."""

    def __init__(self, message: str, status_code: int):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class SSOHandoff:
    def __init__(
        self,
        repository: CommerceRepository,
        client: BackOfficeClient,
        sessions: BrowserSessionService,
        settings: Settings,
        sync_log: SyncLog,
    ):
        self.repository = repository
        self.client = client
        self.sessions = sessions
        self.settings = settings
        self.sync_log = sync_log

    async def verify(self, request: Request, token: str | None) -> str:
        """
        Exchange a back-office token for a local session.

        Returns:
            The URL to redirect to: the site root, or root + "#<sponsor>".

        Raises:
            SSOError: verification failed; no session was created.
        """
        if not token:
            raise SSOError(VERIFICATION_FAILED_MESSAGE, 401)

        try:
            response = await self.client.verify_token(token)
        except TransportFailure as e:
            await self.sync_log.error(f"SSO token verification failed: {e}")
            raise SSOError(UNREACHABLE_MESSAGE, 502) from e
        except BackOfficeError as e:
            await self.sync_log.error(f"SSO token verification failed: {e}")
            raise SSOError(VERIFICATION_FAILED_MESSAGE, 401) from e

        wp_user_id = response.body.get("wp_user_id")
        if wp_user_id in (None, ""):
            await self.sync_log.error(
                f"SSO token verification failed: HTTP {response.status_code} - no wp_user_id"
            )
            raise SSOError(VERIFICATION_FAILED_MESSAGE, 401)

        try:
            user = await self.repository.get_user(int(wp_user_id))
        except (TypeError, ValueError):
            user = None
        if user is None:
            await self.sync_log.error(f"SSO user not found for ID: {wp_user_id}")
            raise SSOError(USER_NOT_FOUND_MESSAGE, 404)

        await self.sessions.login(request, user.id)
        await self.sync_log.success(f"SSO login for user {user.id} ({user.username})")

        target = f"{self.settings.site_url}/"
        sponsor = response.body.get("sponsor")
        if sponsor:
            target = f"{target}#{quote(str(sponsor), safe='')}"
        return target

    async def frontend_login_url(self, user_id: int) -> str:
        """Back-office frontend URL carrying a fresh token for `user_id`."""
        try:
            response = await self.client.get_user_token(user_id)
        except BackOfficeError as e:
            await self.sync_log.error(f"Token request failed for user {user_id}: {e}")
            raise SSOError(FRONTEND_UNAVAILABLE_MESSAGE, 502) from e

        token = response.body.get("token")
        if response.status_code != 200 or not token:
            await self.sync_log.error(
                f"Token request error for user {user_id}: "
                f"HTTP {response.status_code} - {response.message}"
            )
            raise SSOError(FRONTEND_UNAVAILABLE_MESSAGE, 502)

        base = self.settings.backoffice_frontend_url or self.settings.backoffice_api_base_url
        return f"{base}?{urlencode({'token': token})}"
