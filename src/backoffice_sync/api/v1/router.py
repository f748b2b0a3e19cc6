"""API v1 router that aggregates all endpoint routers."""

from fastapi import APIRouter

from backoffice_sync.api.v1 import (
    admin,
    events,
    health,
    registration,
)

api_router = APIRouter()

# Include all routers
api_router.include_router(
    health.router,
    tags=["Health"],
)

api_router.include_router(
    events.router,
    prefix="/events",
    tags=["Events"],
)

api_router.include_router(
    registration.router,
    tags=["Registration"],
)

api_router.include_router(
    admin.router,
    prefix="/admin",
    tags=["Admin"],
)
