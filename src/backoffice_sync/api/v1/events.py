"""Webhook endpoints for commerce lifecycle events.

The commerce platform calls these after the fact; the answer is always 202
so a back-office outage never turns into a failed product save or checkout.
"""

from typing import Annotated

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from backoffice_sync.api.deps import get_sync_dispatcher, require_api_key
from backoffice_sync.domain import OrderSyncStatus
from backoffice_sync.services import SyncDispatcher

router = APIRouter(dependencies=[Depends(require_api_key)])

DispatcherDep = Annotated[SyncDispatcher, Depends(get_sync_dispatcher)]


# =============================================================================
# Models
# =============================================================================


class UserSnapshot(BaseModel):
    """Account fields as they were before an update."""

    email: str | None = None
    username: str | None = None


class UserRegisteredEvent(BaseModel):
    referral: str | None = Field(None, description="Sponsor entered on the registration form")


class UserUpdatedEvent(BaseModel):
    previous: UserSnapshot | None = None


class EventAccepted(BaseModel):
    """Acknowledgement; `synced` tells whether the back office took the record."""

    accepted: bool = True
    event: str
    synced: bool


# =============================================================================
# Endpoints
# =============================================================================


@router.post("/products/{product_id}", status_code=202, response_model=EventAccepted)
async def product_saved(product_id: int, dispatcher: DispatcherDep) -> EventAccepted:
    """Product created or updated."""
    synced = await dispatcher.sync_product(product_id)
    return EventAccepted(event="product_saved", synced=synced)


@router.post("/orders/{order_id}/completed", status_code=202, response_model=EventAccepted)
async def order_completed(order_id: int, dispatcher: DispatcherDep) -> EventAccepted:
    """
    Order completed.

    Safe to deliver more than once: an order whose items were all accepted
    is not sent again.
    """
    status = await dispatcher.sync_purchase(order_id)
    return EventAccepted(
        event="order_completed",
        synced=status is OrderSyncStatus.SYNCED,
    )


@router.post("/users/{user_id}/registered", status_code=202, response_model=EventAccepted)
async def user_registered(
    user_id: int,
    dispatcher: DispatcherDep,
    event: UserRegisteredEvent | None = None,
) -> EventAccepted:
    referral = event.referral if event else None
    synced = await dispatcher.sync_user_registration(user_id, referral=referral)
    return EventAccepted(event="user_registered", synced=synced)


@router.post("/users/{user_id}/updated", status_code=202, response_model=EventAccepted)
async def user_updated(
    user_id: int,
    dispatcher: DispatcherDep,
    event: UserUpdatedEvent | None = None,
) -> EventAccepted:
    previous = event.previous.model_dump() if event and event.previous else None
    synced = await dispatcher.sync_user_update(user_id, previous)
    return EventAccepted(event="user_updated", synced=synced)


@router.post("/users/{user_id}/deleted", status_code=202, response_model=EventAccepted)
async def user_deleted(user_id: int, dispatcher: DispatcherDep) -> EventAccepted:
    synced = await dispatcher.sync_user_deletion(user_id)
    return EventAccepted(event="user_deleted", synced=synced)
