"""Unit tests for the sync dispatcher."""

import json

import httpx
import pytest
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession

from backoffice_sync.config import Settings
from backoffice_sync.domain import OrderSyncStatus
from backoffice_sync.exceptions import ConfigMissing
from backoffice_sync.infrastructure.backoffice_client import BackOfficeClient
from backoffice_sync.infrastructure.database.connection import build_session_factory
from backoffice_sync.infrastructure.database.models import OrderSyncState, Product
from backoffice_sync.infrastructure.database.repositories import CommerceRepository
from backoffice_sync.infrastructure.sync_log import SyncLog
from backoffice_sync.services import PendingRegistrationStore, SyncDispatcher
from backoffice_sync.services.sync_dispatcher import parse_price
from shared.constants import (
    DEACTIVATE_USER_ENDPOINT,
    PRODUCT_ENDPOINT,
    PURCHASE_ENDPOINT,
    REGISTER_USER_ENDPOINT,
    UPDATE_USER_ENDPOINT,
)

from conftest import FakeBackOffice


def errors_in(sync_log: SyncLog) -> list[str]:
    return [line for line in sync_log.lines() if "] ERROR: " in line]


class TestParsePrice:
    def test_decimal_string(self) -> None:
        assert parse_price("49.90") == pytest.approx(49.9)

    def test_integer_string(self) -> None:
        assert parse_price("5") == 5.0

    @pytest.mark.parametrize("raw", [None, "", "   ", "free"])
    def test_missing_or_invalid(self, raw: str | None) -> None:
        assert parse_price(raw) is None


class TestSyncProduct:
    @pytest.mark.asyncio
    async def test_posts_mapped_fields(
        self, dispatcher: SyncDispatcher, backoffice: FakeBackOffice, sync_log: SyncLog
    ) -> None:
        backoffice.respond("POST", PRODUCT_ENDPOINT, 201, {"status": True})

        assert await dispatcher.sync_product(10) is True

        (request,) = backoffice.calls(PRODUCT_ENDPOINT)
        assert json.loads(request.content) == {
            "name": "Starter Kit",
            "product_id": "10",
            "price": 49.9,
        }
        assert request.headers["X-API-KEY"] == "test-api-key"
        assert request.headers["Content-Type"] == "application/json"
        assert "Product synced: ID 10" in sync_log.read()

    @pytest.mark.asyncio
    async def test_empty_price_skips_call_and_logs_one_error(
        self, dispatcher: SyncDispatcher, backoffice: FakeBackOffice, sync_log: SyncLog
    ) -> None:
        assert await dispatcher.sync_product(11) is False

        assert backoffice.requests == []
        errors = errors_in(sync_log)
        assert len(errors) == 1
        assert "Product ID 11 has no regular price defined." in errors[0]

    @pytest.mark.asyncio
    async def test_rejection_logs_remote_message(
        self, dispatcher: SyncDispatcher, backoffice: FakeBackOffice, sync_log: SyncLog
    ) -> None:
        backoffice.respond("POST", PRODUCT_ENDPOINT, 422, {"message": "Duplicate product"})

        assert await dispatcher.sync_product(10) is False
        assert "Product sync error for ID 10: HTTP 422 - Duplicate product" in sync_log.read()

    @pytest.mark.asyncio
    async def test_rejection_without_message(
        self, dispatcher: SyncDispatcher, backoffice: FakeBackOffice, sync_log: SyncLog
    ) -> None:
        backoffice.respond(
            "POST", PRODUCT_ENDPOINT, handler=lambda r: httpx.Response(500, text="oops")
        )

        assert await dispatcher.sync_product(10) is False
        assert "HTTP 500 - Unknown error" in sync_log.read()

    @pytest.mark.asyncio
    async def test_transport_failure_is_swallowed(
        self, dispatcher: SyncDispatcher, backoffice: FakeBackOffice, sync_log: SyncLog
    ) -> None:
        backoffice.fail("POST", PRODUCT_ENDPOINT)

        assert await dispatcher.sync_product(10) is False
        assert "Product sync failed for ID 10" in sync_log.read()

    @pytest.mark.asyncio
    async def test_missing_product(
        self, dispatcher: SyncDispatcher, backoffice: FakeBackOffice, sync_log: SyncLog
    ) -> None:
        assert await dispatcher.sync_product(999) is False
        assert backoffice.requests == []
        assert "Product not found for ID: 999" in sync_log.read()

    @pytest.mark.asyncio
    async def test_unconfigured_backoffice_makes_no_call(
        self,
        db_session: AsyncSession,
        test_settings: Settings,
        backoffice: FakeBackOffice,
        sync_log: SyncLog,
        pending: PendingRegistrationStore,
    ) -> None:
        settings = test_settings.model_copy(update={"backoffice_api_key": ""})
        dispatcher = SyncDispatcher(
            CommerceRepository(db_session),
            BackOfficeClient(settings, transport=backoffice.transport),
            sync_log,
            pending,
        )

        assert await dispatcher.sync_product(10) is False
        assert backoffice.requests == []
        assert "API URL or API Key not configured." in sync_log.read()

        with pytest.raises(ConfigMissing):
            await dispatcher.sync_all_products()


class TestSyncAllProducts:
    @pytest.mark.asyncio
    async def test_summary_counts_published_products(
        self, dispatcher: SyncDispatcher, backoffice: FakeBackOffice
    ) -> None:
        backoffice.respond("POST", PRODUCT_ENDPOINT, 200, {"status": True})

        summary = await dispatcher.sync_all_products()

        # 10 and 12 are sent, 11 has no price, 13 is a draft
        assert summary.total == 3
        assert summary.success_count == 2
        assert summary.error_count == 1
        assert summary.message == "Synced 2 of 3 products successfully. 1 errors."
        assert len(backoffice.calls(PRODUCT_ENDPOINT)) == 2

    @pytest.mark.asyncio
    async def test_ten_products_two_without_price(
        self, db_session: AsyncSession, dispatcher: SyncDispatcher, backoffice: FakeBackOffice
    ) -> None:
        # Replace the seeded catalog with 10 products, 2 of them unpriced.
        for product in await CommerceRepository(db_session).list_published_products():
            product.status = "draft"
        db_session.add_all(
            Product(
                id=200 + i,
                name=f"Bulk {i}",
                regular_price="" if i in (3, 7) else "9.99",
                status="publish",
            )
            for i in range(10)
        )
        await db_session.commit()
        backoffice.respond("POST", PRODUCT_ENDPOINT, 201, {})

        summary = await dispatcher.sync_all_products()

        assert (summary.total, summary.success_count, summary.error_count) == (10, 8, 2)
        assert "Synced 8 of 10 products" in summary.message
        assert len(backoffice.calls(PRODUCT_ENDPOINT)) == 8


class TestSyncPurchase:
    @pytest.mark.asyncio
    async def test_all_items_accepted_marks_order_synced(
        self,
        dispatcher: SyncDispatcher,
        backoffice: FakeBackOffice,
        db_session: AsyncSession,
    ) -> None:
        backoffice.respond("POST", PURCHASE_ENDPOINT, 200, {"status": True})

        status = await dispatcher.sync_purchase(100)

        assert status is OrderSyncStatus.SYNCED
        bodies = [json.loads(r.content) for r in backoffice.calls(PURCHASE_ENDPOINT)]
        assert bodies == [
            {"product_id": 10, "username": "alice", "order_id": 100},
            {"product_id": 12, "username": "alice", "order_id": 100},
        ]
        state = await db_session.get(OrderSyncState, 100)
        assert state is not None
        assert state.status is OrderSyncStatus.SYNCED
        assert state.synced_at is not None

    @pytest.mark.asyncio
    async def test_second_call_is_a_no_op(
        self, dispatcher: SyncDispatcher, backoffice: FakeBackOffice, sync_log: SyncLog
    ) -> None:
        backoffice.respond("POST", PURCHASE_ENDPOINT, 200, {"status": True})
        await dispatcher.sync_purchase(100)
        calls_after_first = len(backoffice.requests)

        status = await dispatcher.sync_purchase(100)

        assert status is OrderSyncStatus.SYNCED
        assert len(backoffice.requests) == calls_after_first
        assert "Order 100 already synced, skipping." in sync_log.read()

    @pytest.mark.asyncio
    async def test_one_failed_item_leaves_order_unsynced(
        self, dispatcher: SyncDispatcher, backoffice: FakeBackOffice
    ) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            if json.loads(request.content)["product_id"] == 12:
                return httpx.Response(200, json={"status": False, "message": "Unknown product"})
            return httpx.Response(200, json={"status": True})

        backoffice.respond("POST", PURCHASE_ENDPOINT, handler=handler)

        status = await dispatcher.sync_purchase(100)

        assert status is OrderSyncStatus.UNSYNCED

    @pytest.mark.asyncio
    async def test_failed_order_is_resubmitted_in_full(
        self, dispatcher: SyncDispatcher, backoffice: FakeBackOffice
    ) -> None:
        backoffice.fail("POST", PURCHASE_ENDPOINT)
        assert await dispatcher.sync_purchase(100) is OrderSyncStatus.UNSYNCED

        backoffice.respond("POST", PURCHASE_ENDPOINT, 200, {"status": True})
        assert await dispatcher.sync_purchase(100) is OrderSyncStatus.SYNCED

        # Both items were sent on both attempts; there is no per-item memory.
        assert len(backoffice.calls(PURCHASE_ENDPOINT)) == 4

    @pytest.mark.asyncio
    async def test_http_200_without_status_flag_is_a_failure(
        self, dispatcher: SyncDispatcher, backoffice: FakeBackOffice, sync_log: SyncLog
    ) -> None:
        backoffice.respond("POST", PURCHASE_ENDPOINT, 200, {"message": "queued"})

        assert await dispatcher.sync_purchase(100) is OrderSyncStatus.UNSYNCED
        assert "HTTP 200 - queued" in sync_log.read()

    @pytest.mark.asyncio
    async def test_guest_order_sends_empty_username(
        self, dispatcher: SyncDispatcher, backoffice: FakeBackOffice
    ) -> None:
        backoffice.respond("POST", PURCHASE_ENDPOINT, 200, {"status": True})

        await dispatcher.sync_purchase(101)

        (request,) = backoffice.calls(PURCHASE_ENDPOINT)
        assert json.loads(request.content)["username"] == ""

    @pytest.mark.asyncio
    async def test_missing_order(
        self, dispatcher: SyncDispatcher, backoffice: FakeBackOffice, sync_log: SyncLog
    ) -> None:
        assert await dispatcher.sync_purchase(404) is None
        assert backoffice.requests == []
        assert "Order not found for ID: 404" in sync_log.read()


class TestOrderSyncStateRace:
    """Another delivery of the same order committed its state row first."""

    @staticmethod
    async def commit_state_elsewhere(engine: AsyncEngine, status: OrderSyncStatus) -> None:
        async with build_session_factory(engine)() as other:
            other.add(OrderSyncState(order_id=100, status=status))
            await other.commit()

    @pytest.mark.asyncio
    async def test_existing_unsynced_row_is_reused(
        self,
        engine: AsyncEngine,
        db_session: AsyncSession,
        dispatcher: SyncDispatcher,
        backoffice: FakeBackOffice,
    ) -> None:
        # The dispatcher's session has already read the order, as a racing delivery would.
        assert await CommerceRepository(db_session).get_order(100) is not None
        await self.commit_state_elsewhere(engine, OrderSyncStatus.UNSYNCED)
        backoffice.respond("POST", PURCHASE_ENDPOINT, 200, {"status": True})

        assert await dispatcher.sync_purchase(100) is OrderSyncStatus.SYNCED
        assert len(backoffice.calls(PURCHASE_ENDPOINT)) == 2

    @pytest.mark.asyncio
    async def test_row_synced_by_other_delivery_is_not_resent(
        self,
        engine: AsyncEngine,
        dispatcher: SyncDispatcher,
        backoffice: FakeBackOffice,
        sync_log: SyncLog,
    ) -> None:
        await self.commit_state_elsewhere(engine, OrderSyncStatus.SYNCED)

        assert await dispatcher.sync_purchase(100) is OrderSyncStatus.SYNCED
        assert backoffice.requests == []
        assert "Order 100 already synced, skipping." in sync_log.read()

    @pytest.mark.asyncio
    async def test_lock_is_idempotent_within_a_session(self, db_session: AsyncSession) -> None:
        repository = CommerceRepository(db_session)

        first = await repository.lock_order_sync_state(101)
        second = await repository.lock_order_sync_state(101)

        assert first is second
        assert second.status is OrderSyncStatus.UNSYNCED


class TestUserSync:
    @pytest.mark.asyncio
    async def test_registration_forwards_pending_password(
        self,
        dispatcher: SyncDispatcher,
        backoffice: FakeBackOffice,
        pending: PendingRegistrationStore,
    ) -> None:
        await pending.put("alice@example.com", "s3cret!")
        backoffice.respond("POST", REGISTER_USER_ENDPOINT, 200, {"status": True})

        assert await dispatcher.sync_user_registration(1, referral="carol") is True

        (request,) = backoffice.calls(REGISTER_USER_ENDPOINT)
        assert json.loads(request.content) == {
            "username": "alice",
            "email": "alice@example.com",
            "password": "s3cret!",
            "wp_user_id": 1,
            "name": "Alice Smith",
            "referral": "carol",
        }
        assert await pending.take("alice@example.com") is None

    @pytest.mark.asyncio
    async def test_registration_uses_referral_parked_at_validation(
        self,
        dispatcher: SyncDispatcher,
        backoffice: FakeBackOffice,
        pending: PendingRegistrationStore,
    ) -> None:
        await pending.put("alice@example.com", "s3cret!", referral="carol")
        backoffice.respond("POST", REGISTER_USER_ENDPOINT, 200, {"status": True})

        assert await dispatcher.sync_user_registration(1) is True

        (request,) = backoffice.calls(REGISTER_USER_ENDPOINT)
        assert json.loads(request.content)["referral"] == "carol"

    @pytest.mark.asyncio
    async def test_event_referral_wins_over_parked_one(
        self,
        dispatcher: SyncDispatcher,
        backoffice: FakeBackOffice,
        pending: PendingRegistrationStore,
    ) -> None:
        await pending.put("alice@example.com", "s3cret!", referral="carol")
        backoffice.respond("POST", REGISTER_USER_ENDPOINT, 200, {"status": True})

        await dispatcher.sync_user_registration(1, referral="dave")

        (request,) = backoffice.calls(REGISTER_USER_ENDPOINT)
        assert json.loads(request.content)["referral"] == "dave"

    @pytest.mark.asyncio
    async def test_registration_failure_still_consumes_password(
        self,
        dispatcher: SyncDispatcher,
        backoffice: FakeBackOffice,
        pending: PendingRegistrationStore,
        sync_log: SyncLog,
    ) -> None:
        await pending.put("alice@example.com", "s3cret!")
        backoffice.respond("POST", REGISTER_USER_ENDPOINT, 200, {"status": False, "message": "Exists"})

        assert await dispatcher.sync_user_registration(1) is False
        assert await pending.take("alice@example.com") is None
        assert "HTTP 200 - Exists" in sync_log.read()

    @pytest.mark.asyncio
    async def test_registration_without_pending_password_aborts(
        self, dispatcher: SyncDispatcher, backoffice: FakeBackOffice, sync_log: SyncLog
    ) -> None:
        assert await dispatcher.sync_user_registration(1) is False
        assert backoffice.requests == []
        assert "No pending registration password found for user 1" in sync_log.read()

    @pytest.mark.asyncio
    async def test_update_posts_current_identity(
        self, dispatcher: SyncDispatcher, backoffice: FakeBackOffice, sync_log: SyncLog
    ) -> None:
        backoffice.respond("POST", UPDATE_USER_ENDPOINT, 500, {"message": "ignored"})

        ok = await dispatcher.sync_user_update(2, {"email": "old@example.com", "username": "bob"})

        # Anything but a transport error counts as delivered.
        assert ok is True
        (request,) = backoffice.calls(UPDATE_USER_ENDPOINT)
        assert json.loads(request.content) == {
            "wp_user_id": 2,
            "email": "bob@example.com",
            "username": "bob",
        }
        assert "old@example.com -> bob@example.com" in sync_log.read()

    @pytest.mark.asyncio
    async def test_deletion_does_not_need_local_user(
        self, dispatcher: SyncDispatcher, backoffice: FakeBackOffice
    ) -> None:
        backoffice.respond("POST", DEACTIVATE_USER_ENDPOINT, 200, {"status": True})

        assert await dispatcher.sync_user_deletion(77) is True
        (request,) = backoffice.calls(DEACTIVATE_USER_ENDPOINT)
        assert json.loads(request.content) == {"wp_user_id": 77}

    @pytest.mark.asyncio
    async def test_deletion_transport_failure(
        self, dispatcher: SyncDispatcher, backoffice: FakeBackOffice, sync_log: SyncLog
    ) -> None:
        backoffice.fail("POST", DEACTIVATE_USER_ENDPOINT)

        assert await dispatcher.sync_user_deletion(2) is False
        assert "User deactivation sync failed for user 2" in sync_log.read()
