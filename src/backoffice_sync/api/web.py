"""Browser-facing routes: SSO, logout and referral helpers."""

import html
import json
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import HTMLResponse, RedirectResponse, Response

from backoffice_sync.api.deps import (
    BrowserSessionsDep,
    RepositoryDep,
    SettingsDep,
    get_referral_capture,
    get_sso_handoff,
)
from backoffice_sync.services import ReferralCapture, SSOHandoff
from backoffice_sync.services.referral import (
    build_referral_url,
    clear_storage_script,
    storage_script,
)
from backoffice_sync.services.sso import SSOError

router = APIRouter()

SSODep = Annotated[SSOHandoff, Depends(get_sso_handoff)]
ReferralDep = Annotated[ReferralCapture, Depends(get_referral_capture)]

LOGIN_REQUIRED_MESSAGE = "Please login to get your referral link."


def error_page(message: str, status_code: int) -> HTMLResponse:
    """Minimal blocking error page."""
    body = (
        "<!DOCTYPE html><html><head><meta charset=\"utf-8\"><title>Error</title></head>"
        f"<body><h1>{html.escape(message)}</h1></body></html>"
    )
    return HTMLResponse(body, status_code=status_code)


@router.get("/sso/verify")
async def sso_verify(request: Request, sso: SSODep, token: str | None = None) -> Response:
    """Public landing route for back-office logins."""
    try:
        target = await sso.verify(request, token)
    except SSOError as e:
        return error_page(e.message, e.status_code)
    return RedirectResponse(target, status_code=302)


@router.get("/sso/frontend")
async def sso_frontend(
    request: Request,
    sso: SSODep,
    sessions: BrowserSessionsDep,
    settings: SettingsDep,
) -> Response:
    """Send a logged-in customer to the back-office frontend."""
    user_id = await sessions.current_user_id(request)
    if user_id is None:
        return RedirectResponse(f"{settings.site_url}/", status_code=302)
    try:
        target = await sso.frontend_login_url(user_id)
    except SSOError as e:
        return error_page(e.message, e.status_code)
    return RedirectResponse(target, status_code=302)


@router.api_route("/auth/logout", methods=["GET", "POST"], response_class=HTMLResponse)
async def logout(
    request: Request,
    sessions: BrowserSessionsDep,
    settings: SettingsDep,
) -> HTMLResponse:
    """Drop the session server-side and the stored referral client-side."""
    await sessions.logout(request)
    target = f"{settings.site_url}/"
    js_target = json.dumps(target).replace("</", "<\\/")
    body = (
        "<!DOCTYPE html><html><head><meta charset=\"utf-8\"><title>Logged out</title>"
        f"<script>{clear_storage_script()}window.location.replace({js_target});</script>"
        f"</head><body><a href=\"{html.escape(target, quote=True)}\">Continue</a></body></html>"
    )
    return HTMLResponse(body)


@router.get("/referral/storage.js")
async def referral_storage(request: Request, referrals: ReferralDep) -> Response:
    """Script that copies the session's referral into sessionStorage."""
    username = await referrals.current(request)
    return Response(
        storage_script(username),
        media_type="application/javascript",
        headers={"Cache-Control": "no-store"},
    )


@router.get("/referral/link")
async def referral_link(
    request: Request,
    sessions: BrowserSessionsDep,
    repository: RepositoryDep,
    settings: SettingsDep,
    url: str | None = None,
) -> dict[str, str]:
    """Share link for the current page, crediting the logged-in customer."""
    user_id = await sessions.current_user_id(request)
    user = await repository.get_user(user_id) if user_id is not None else None
    if user is None:
        raise HTTPException(status_code=401, detail=LOGIN_REQUIRED_MESSAGE)
    return {"url": build_referral_url(url or f"{settings.site_url}/", user.username)}
