"""Browser session cookie middleware."""

import secrets

import structlog
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from backoffice_sync.config import Settings

logger = structlog.get_logger()


def new_session_token() -> str:
    return secrets.token_urlsafe(32)


class SessionCookieMiddleware(BaseHTTPMiddleware):
    """
    Hands every request a session token and writes the cookie back.

    Route code never touches cookies: it flags `request.state.session_touched`
    when it stored something under the token (or rotated it), and
    `request.state.session_cleared` on logout.
    """

    def __init__(self, app, settings: Settings):
        super().__init__(app)
        self.settings = settings

    async def dispatch(self, request: Request, call_next) -> Response:
        cookie_token = request.cookies.get(self.settings.session_cookie_name)
        request.state.session_token = cookie_token or new_session_token()
        request.state.session_has_cookie = cookie_token is not None
        request.state.session_touched = False
        request.state.session_cleared = False

        response = await call_next(request)

        if request.state.session_cleared:
            response.delete_cookie(self.settings.session_cookie_name, path="/")
        elif request.state.session_touched:
            response.set_cookie(
                self.settings.session_cookie_name,
                request.state.session_token,
                max_age=self.settings.session_max_age_seconds,
                path="/",
                secure=self.settings.session_cookie_secure,
                httponly=True,
                samesite="lax",
            )
            logger.debug("Session cookie issued", path=request.url.path)

        return response
