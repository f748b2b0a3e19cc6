"""Referral capture and share links."""

import json
import re
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

import structlog
from starlette.requests import Request

from backoffice_sync.exceptions import BackOfficeError
from backoffice_sync.infrastructure.backoffice_client import BackOfficeClient
from backoffice_sync.services.browser_session import BrowserSessionService
from shared.constants import REFERRAL_MAX_LENGTH, REFERRAL_QUERY_PARAM, REFERRAL_STORAGE_KEYS

logger = structlog.get_logger()

_TAGS = re.compile(r"<[^>]*>")
_CONTROL = re.compile(r"[\x00-\x1f\x7f]")
_SPACES = re.compile(r"\s+")


def sanitize_referral(raw: str | None) -> str:
    """Plain single-line text: tags, control characters and extra spaces removed."""
    if not raw:
        return ""
    text = _TAGS.sub("", raw)
    text = _CONTROL.sub(" ", text)
    text = _SPACES.sub(" ", text).strip()
    return text[:REFERRAL_MAX_LENGTH]


def build_referral_url(url: str, username: str) -> str:
    """`url` with its `u` parameter set to `username`."""
    parts = urlsplit(url)
    query = [(k, v) for k, v in parse_qsl(parts.query, keep_blank_values=True) if k != REFERRAL_QUERY_PARAM]
    query.append((REFERRAL_QUERY_PARAM, username))
    return urlunsplit(parts._replace(query=urlencode(query)))


def storage_script(username: str | None) -> str:
    """Script mirroring the session's referral into sessionStorage."""
    keys = json.dumps(list(REFERRAL_STORAGE_KEYS))
    if not username:
        return f"/* no referral */\nwindow.referralStorageKeys = {keys};\n"
    # json.dumps output is a valid JS string literal; "</" is escaped for inline use.
    value = json.dumps(username).replace("</", "<\\/")
    return (
        f"window.referralStorageKeys = {keys};\n"
        f"{keys}.forEach(function (key) {{ sessionStorage.setItem(key, {value}); }});\n"
    )


def clear_storage_script() -> str:
    keys = json.dumps(list(REFERRAL_STORAGE_KEYS))
    return f"{keys}.forEach(function (key) {{ sessionStorage.removeItem(key); }});\n"


class ReferralCapture:
    """Validates `?u=` sponsors and keeps the accepted one in the session."""

    def __init__(self, client: BackOfficeClient, sessions: BrowserSessionService):
        self.client = client
        self.sessions = sessions

    async def capture(self, request: Request) -> str | None:
        """Store the request's sponsor if the back office accepts it; return it."""
        username = sanitize_referral(request.query_params.get(REFERRAL_QUERY_PARAM))
        if not username:
            return None

        try:
            valid = await self.client.validate_sponsor(username)
        except BackOfficeError as e:
            logger.warning("Sponsor validation failed", sponsor=username, error=str(e))
            return None

        if not valid:
            logger.info("Sponsor rejected", sponsor=username)
            return None

        await self.sessions.remember_referral(request, username)
        logger.info("Referral captured", sponsor=username, path=request.url.path)
        return username

    async def current(self, request: Request) -> str | None:
        record = await self.sessions.current(request)
        return record.referral_username if record else None
