"""FastAPI dependency providers.

Everything a route needs is built per request from the injected settings,
so tests can swap settings, the database session, the HTTP transport or the
cache through `app.dependency_overrides`.
"""

import secrets
from typing import Annotated

from fastapi import Depends, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice_sync.config import Settings, get_settings
from backoffice_sync.infrastructure.backoffice_client import BackOfficeClient
from backoffice_sync.infrastructure.database.connection import get_session
from backoffice_sync.infrastructure.database.repositories import (
    BrowserSessionRepository,
    CommerceRepository,
)
from backoffice_sync.infrastructure.redis import CacheService, get_redis_client
from backoffice_sync.infrastructure.sync_log import SyncLog
from backoffice_sync.services import (
    BrowserSessionService,
    PendingRegistrationStore,
    ReferralCapture,
    RegistrationValidator,
    SSOHandoff,
    SyncDispatcher,
)

SettingsDep = Annotated[Settings, Depends(get_settings)]
SessionDep = Annotated[AsyncSession, Depends(get_session)]


async def get_cache() -> CacheService:
    return CacheService(await get_redis_client())


def get_backoffice_client(settings: SettingsDep) -> BackOfficeClient:
    return BackOfficeClient(settings)


def get_sync_log(settings: SettingsDep) -> SyncLog:
    return SyncLog(settings.sync_log_path)


def get_pending_registrations(
    settings: SettingsDep,
    cache: Annotated[CacheService, Depends(get_cache)],
) -> PendingRegistrationStore:
    return PendingRegistrationStore(cache, settings.pending_registration_ttl_seconds)


def get_commerce_repository(session: SessionDep) -> CommerceRepository:
    return CommerceRepository(session)


def get_browser_sessions(session: SessionDep, settings: SettingsDep) -> BrowserSessionService:
    return BrowserSessionService(BrowserSessionRepository(session), settings)


ClientDep = Annotated[BackOfficeClient, Depends(get_backoffice_client)]
SyncLogDep = Annotated[SyncLog, Depends(get_sync_log)]
PendingDep = Annotated[PendingRegistrationStore, Depends(get_pending_registrations)]
RepositoryDep = Annotated[CommerceRepository, Depends(get_commerce_repository)]
BrowserSessionsDep = Annotated[BrowserSessionService, Depends(get_browser_sessions)]


def get_sync_dispatcher(
    repository: RepositoryDep,
    client: ClientDep,
    sync_log: SyncLogDep,
    pending: PendingDep,
) -> SyncDispatcher:
    return SyncDispatcher(repository, client, sync_log, pending)


def get_registration_validator(
    repository: RepositoryDep,
    client: ClientDep,
    pending: PendingDep,
) -> RegistrationValidator:
    return RegistrationValidator(repository, client, pending)


def get_sso_handoff(
    repository: RepositoryDep,
    client: ClientDep,
    sessions: BrowserSessionsDep,
    settings: SettingsDep,
    sync_log: SyncLogDep,
) -> SSOHandoff:
    return SSOHandoff(repository, client, sessions, settings, sync_log)


def get_referral_capture(client: ClientDep, sessions: BrowserSessionsDep) -> ReferralCapture:
    return ReferralCapture(client, sessions)


async def capture_referral(
    request: Request,
    capture: Annotated[ReferralCapture, Depends(get_referral_capture)],
) -> None:
    """App-wide dependency: record a valid `?u=` sponsor on any page view."""
    await capture.capture(request)


def require_api_key(request: Request, settings: SettingsDep) -> None:
    """Guard for webhook and admin routes; disabled while no inbound key is set."""
    expected = settings.inbound_api_key
    if not expected:
        return
    supplied = request.headers.get(settings.api_key_header, "")
    if not secrets.compare_digest(supplied.encode(), expected.encode()):
        raise HTTPException(status_code=401, detail="Invalid API key")
