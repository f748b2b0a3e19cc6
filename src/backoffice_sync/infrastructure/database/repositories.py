"""Data access for commerce records, order sync state and browser sessions."""

from collections.abc import Sequence
from datetime import datetime, timedelta

import structlog
from sqlalchemy import delete, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice_sync.domain import OrderSyncStatus
from backoffice_sync.infrastructure.database.models import (
    BrowserSession,
    Order,
    OrderSyncState,
    Product,
    User,
)

logger = structlog.get_logger()

# INSERT ... ON CONFLICT DO NOTHING builders per supported backend
_UPSERT_INSERTS = {"postgresql": postgresql.insert, "sqlite": sqlite.insert}


class CommerceRepository:
    """Reads commerce records and keeps the per-order sync state."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_product(self, product_id: int) -> Product | None:
        return await self.session.get(Product, product_id)

    async def list_published_products(self) -> Sequence[Product]:
        result = await self.session.execute(
            select(Product).where(Product.status == "publish").order_by(Product.id)
        )
        return result.scalars().all()

    async def get_order(self, order_id: int) -> Order | None:
        return await self.session.get(Order, order_id)

    async def get_user(self, user_id: int) -> User | None:
        return await self.session.get(User, user_id)

    async def usernames_starting_with(self, prefix: str) -> set[str]:
        result = await self.session.execute(
            select(User.username).where(User.username.like(f"{prefix}%"))
        )
        return set(result.scalars().all())

    async def lock_order_sync_state(self, order_id: int) -> OrderSyncState:
        """
        Load (or create) the sync state of an order, locking its row.

        The row is created with an insert that ignores an existing one, so two
        deliveries racing on a new order both end up reading the same row.
        On PostgreSQL the row stays locked until the surrounding transaction
        ends, so two completions of the same order cannot both submit it.
        SQLite ignores the lock.
        """
        insert = _UPSERT_INSERTS[self.session.bind.dialect.name]
        await self.session.execute(
            insert(OrderSyncState)
            .values(order_id=order_id, status=OrderSyncStatus.UNSYNCED)
            .on_conflict_do_nothing(index_elements=[OrderSyncState.order_id])
        )
        result = await self.session.execute(
            select(OrderSyncState)
            .where(OrderSyncState.order_id == order_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return result.scalar_one()

    async def mark_order_synced(self, state: OrderSyncState) -> bool:
        """Apply the UNSYNCED -> SYNCED transition; False if it is not legal."""
        if not state.status.can_transition_to(OrderSyncStatus.SYNCED):
            return False
        state.status = OrderSyncStatus.SYNCED
        state.synced_at = datetime.now()
        await self.session.flush()
        return True


class BrowserSessionRepository:
    """CRUD for server-side browser sessions."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_active(self, token: str) -> BrowserSession | None:
        record = await self.session.get(BrowserSession, token)
        if record is None:
            return None
        if record.expires_at <= datetime.now():
            await self.session.delete(record)
            await self.session.flush()
            return None
        return record

    async def create(
        self,
        token: str,
        max_age_seconds: int,
        user_id: int | None = None,
        referral_username: str | None = None,
    ) -> BrowserSession:
        now = datetime.now()
        record = BrowserSession(
            token=token,
            user_id=user_id,
            referral_username=referral_username,
            referral_captured_at=now if referral_username else None,
            created_at=now,
            expires_at=now + timedelta(seconds=max_age_seconds),
        )
        self.session.add(record)
        await self.session.flush()
        return record

    async def delete(self, token: str) -> None:
        await self.session.execute(delete(BrowserSession).where(BrowserSession.token == token))

    async def purge_expired(self) -> int:
        result = await self.session.execute(
            delete(BrowserSession).where(BrowserSession.expires_at <= datetime.now())
        )
        count = result.rowcount or 0
        if count:
            logger.info("Purged expired browser sessions", count=count)
        return count
