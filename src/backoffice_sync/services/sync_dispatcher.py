"""Forwards commerce lifecycle events to the back office.

Every failure in here is logged to the sync log and swallowed: a product
save, an order completion or an account change must never fail because the
back office is down or rejects the record.
"""

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any

import structlog

from backoffice_sync.domain import SYNC_TARGETS, OrderSyncStatus, SyncKind
from backoffice_sync.exceptions import (
    BackOfficeError,
    ConfigMissing,
    RemoteRejection,
    TransportFailure,
)
from backoffice_sync.infrastructure.backoffice_client import ApiResponse, BackOfficeClient
from backoffice_sync.infrastructure.database.models import Product
from backoffice_sync.infrastructure.database.repositories import CommerceRepository
from backoffice_sync.infrastructure.sync_log import SyncLog
from backoffice_sync.services.pending_registration import PendingRegistrationStore
from shared.constants import PRODUCT_SUCCESS_CODES

logger = structlog.get_logger()


@dataclass(frozen=True)
class SyncSummary:
    """Outcome of a bulk product sync."""

    total: int
    success_count: int
    error_count: int

    @property
    def message(self) -> str:
        return (
            f"Synced {self.success_count} of {self.total} products successfully. "
            f"{self.error_count} errors."
        )


def parse_price(raw: str | None) -> float | None:
    """Regular price as a float, or None when it is empty or not a number."""
    if raw is None or not str(raw).strip():
        return None
    try:
        return float(Decimal(str(raw).strip()))
    except InvalidOperation:
        return None


class SyncDispatcher:
    """Maps local records to back-office calls and keeps order sync state."""

    def __init__(
        self,
        repository: CommerceRepository,
        client: BackOfficeClient,
        sync_log: SyncLog,
        pending_registrations: PendingRegistrationStore,
    ):
        self.repository = repository
        self.client = client
        self.sync_log = sync_log
        self.pending_registrations = pending_registrations

    async def _send(self, kind: SyncKind, payload: dict[str, Any]) -> ApiResponse:
        target = SYNC_TARGETS[kind]
        target.check(payload)
        return await self.client.post(target.path, payload)

    async def _config_ok(self) -> bool:
        if not self.client.configured:
            await self.sync_log.error(str(ConfigMissing()))
            return False
        return True

    # -------------------------------------------------------------------------
    # Products
    # -------------------------------------------------------------------------

    async def sync_product(self, product_id: int) -> bool:
        """Upsert one product in the back office. Returns whether it was accepted."""
        if not await self._config_ok():
            return False

        product = await self.repository.get_product(product_id)
        if product is None:
            await self.sync_log.error(f"Product not found for ID: {product_id}")
            return False

        return await self._push_product(product)

    async def _push_product(self, product: Product) -> bool:
        price = parse_price(product.regular_price)
        if price is None:
            await self.sync_log.error(f"Product ID {product.id} has no regular price defined.")
            return False

        payload = {"name": product.name, "product_id": str(product.id), "price": price}
        try:
            response = await self._send(SyncKind.PRODUCT, payload)
        except BackOfficeError as e:
            await self.sync_log.error(f"Product sync failed for ID {product.id}: {e}")
            return False

        if response.status_code in PRODUCT_SUCCESS_CODES:
            await self.sync_log.success(
                f"Product synced: ID {product.id}, Name: {product.name}, "
                f"Price: {product.regular_price}"
            )
            return True

        await self.sync_log.error(
            f"Product sync error for ID {product.id}: "
            f"HTTP {response.status_code} - {response.message}"
        )
        return False

    async def sync_all_products(self) -> SyncSummary:
        """
        Push every published product, one call each.

        Raises:
            ConfigMissing: the back office is not configured; nothing is sent.
        """
        if not self.client.configured:
            raise ConfigMissing()

        products = await self.repository.list_published_products()
        success_count = 0
        error_count = 0
        for product in products:
            if await self._push_product(product):
                success_count += 1
            else:
                error_count += 1

        summary = SyncSummary(len(products), success_count, error_count)
        logger.info(
            "Bulk product sync finished",
            total=summary.total,
            success_count=success_count,
            error_count=error_count,
        )
        return summary

    # -------------------------------------------------------------------------
    # Orders
    # -------------------------------------------------------------------------

    async def sync_purchase(self, order_id: int) -> OrderSyncStatus | None:
        """
        Report every line item of a completed order as a purchase.

        The order is marked synced only when all items were accepted; a single
        failure leaves it unsynced so the next completion event retries the
        whole order. Returns the resulting sync status, or None when the order
        could not be processed at all.
        """
        if not await self._config_ok():
            return None

        order = await self.repository.get_order(order_id)
        if order is None:
            await self.sync_log.error(f"Order not found for ID: {order_id}")
            return None

        state = await self.repository.lock_order_sync_state(order_id)
        if state.status is OrderSyncStatus.SYNCED:
            await self.sync_log.success(f"Order {order_id} already synced, skipping.")
            return state.status

        username = order.user.username if order.user is not None else ""
        all_items_synced = True

        for item in order.items:
            payload = {
                "product_id": item.product_id,
                "username": username,
                "order_id": order_id,
            }
            try:
                response = await self._send(SyncKind.ORDER, payload)
                if response.status_code != 200 or not response.status_flag:
                    raise RemoteRejection.from_body(response.status_code, response.data)
            except TransportFailure as e:
                await self.sync_log.error(
                    f"Purchase sync failed for product ID {item.product_id}, order {order_id}: {e}"
                )
                all_items_synced = False
                continue
            except BackOfficeError as e:
                await self.sync_log.error(
                    f"Purchase sync error for product ID {item.product_id}, order {order_id}: {e}"
                )
                all_items_synced = False
                continue

            await self.sync_log.success(
                f"Purchase synced for product ID {item.product_id}, "
                f"user {username or '(guest)'}, order {order_id}"
            )

        if all_items_synced:
            await self.repository.mark_order_synced(state)
            await self.sync_log.success(f"Order {order_id} fully synced.")
        else:
            await self.sync_log.error(f"Order {order_id} left unsynced; some items failed.")
        await self.repository.session.commit()
        return state.status

    # -------------------------------------------------------------------------
    # Users
    # -------------------------------------------------------------------------

    async def sync_user_registration(self, user_id: int, referral: str | None = None) -> bool:
        """
        Create the account in the back office with the pre-validated password.

        The parked password is consumed before anything else is tried, so a
        failed call cannot be repeated from it. A referral sent with the event
        wins over the one accepted at validation.
        """
        user = await self.repository.get_user(user_id)
        if user is None:
            await self.sync_log.error(f"User not found for ID: {user_id}")
            return False

        pending = await self.pending_registrations.take(user.email)
        if pending is None:
            await self.sync_log.error(f"No pending registration password found for user {user_id}")
            return False

        if not await self._config_ok():
            return False

        payload: dict[str, Any] = {
            "username": user.username,
            "email": user.email,
            "password": pending.password,
            "wp_user_id": user.id,
        }
        if user.full_name:
            payload["name"] = user.full_name
        referral = referral or pending.referral
        if referral:
            payload["referral"] = referral

        try:
            response = await self._send(SyncKind.USER_REGISTER, payload)
        except BackOfficeError as e:
            await self.sync_log.error(f"User registration sync failed for user {user_id}: {e}")
            return False

        if response.status_code == 200 and response.status_flag:
            await self.sync_log.success(f"User registered: ID {user_id}, username {user.username}")
            return True

        await self.sync_log.error(
            f"User registration sync error for user {user_id}: "
            f"HTTP {response.status_code} - {response.message}"
        )
        return False

    async def sync_user_update(
        self, user_id: int, previous_snapshot: dict[str, Any] | None = None
    ) -> bool:
        if not await self._config_ok():
            return False

        user = await self.repository.get_user(user_id)
        if user is None:
            await self.sync_log.error(f"User not found for ID: {user_id}")
            return False

        payload = {"wp_user_id": user.id, "email": user.email, "username": user.username}
        try:
            response = await self._send(SyncKind.USER_UPDATE, payload)
        except BackOfficeError as e:
            await self.sync_log.error(f"User update sync failed for user {user_id}: {e}")
            return False

        previous = previous_snapshot or {}
        await self.sync_log.success(
            f"User updated: ID {user_id}, "
            f"email {previous.get('email', '?')} -> {user.email}, "
            f"username {previous.get('username', '?')} -> {user.username} "
            f"(HTTP {response.status_code})"
        )
        return True

    async def sync_user_deletion(self, user_id: int) -> bool:
        if not await self._config_ok():
            return False

        try:
            response = await self._send(SyncKind.USER_DELETE, {"wp_user_id": user_id})
        except BackOfficeError as e:
            await self.sync_log.error(f"User deactivation sync failed for user {user_id}: {e}")
            return False

        await self.sync_log.success(f"User deactivated: ID {user_id} (HTTP {response.status_code})")
        return True
