"""SQLAlchemy models for the sync adapter.

Commerce tables (users, products, orders, order items) belong to the commerce
platform and are only read here. The adapter owns `order_sync_state` and
`browser_sessions`.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import (
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from backoffice_sync.domain import OrderSyncStatus


class Base(DeclarativeBase):
    """Base class for all models."""


# =============================================================================
# Commerce Platform Tables
# =============================================================================


class User(Base):
    """A customer account on the commerce platform."""

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    username: Mapped[str] = mapped_column(String(60), unique=True, nullable=False)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    first_name: Mapped[Optional[str]] = mapped_column(String(255))
    last_name: Mapped[Optional[str]] = mapped_column(String(255))
    display_name: Mapped[Optional[str]] = mapped_column(String(255))
    created_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), nullable=False
    )

    @property
    def full_name(self) -> str:
        name = " ".join(part for part in (self.first_name, self.last_name) if part)
        return name or (self.display_name or "")


class Product(Base):
    """A catalog product. Prices are stored as text, as the platform keeps them."""

    __tablename__ = "products"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(500), nullable=False)
    regular_price: Mapped[Optional[str]] = mapped_column(String(32))
    status: Mapped[str] = mapped_column(String(20), default="publish", nullable=False)

    __table_args__ = (Index("ix_products_status", "status"),)


class Order(Base):
    """A checkout order; `user_id` is empty for guest checkouts."""

    __tablename__ = "orders"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[Optional[int]] = mapped_column(ForeignKey("users.id"))
    billing_email: Mapped[Optional[str]] = mapped_column(String(255))
    status: Mapped[str] = mapped_column(String(20), default="pending", nullable=False)

    user: Mapped[Optional[User]] = relationship(lazy="selectin")
    items: Mapped[list["OrderItem"]] = relationship(
        back_populates="order", lazy="selectin", order_by="OrderItem.id"
    )


class OrderItem(Base):
    """A line item of an order."""

    __tablename__ = "order_items"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    order_id: Mapped[int] = mapped_column(ForeignKey("orders.id"), nullable=False)
    product_id: Mapped[int] = mapped_column(Integer, nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, default=1, nullable=False)

    order: Mapped[Order] = relationship(back_populates="items")


# =============================================================================
# Adapter Tables
# =============================================================================


class OrderSyncState(Base):
    """Whether an order's purchases were accepted by the back office."""

    __tablename__ = "order_sync_state"

    order_id: Mapped[int] = mapped_column(Integer, primary_key=True)
    status: Mapped[OrderSyncStatus] = mapped_column(
        Enum(OrderSyncStatus, name="order_sync_status", native_enum=False),
        default=OrderSyncStatus.UNSYNCED,
        nullable=False,
    )
    synced_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), onupdate=func.now(), nullable=False
    )


class BrowserSession(Base):
    """Server side of a browser session cookie.

    Anonymous sessions only carry a captured referral; authenticated ones
    also carry the local user id.
    """

    __tablename__ = "browser_sessions"

    token: Mapped[str] = mapped_column(String(64), primary_key=True)
    user_id: Mapped[Optional[int]] = mapped_column(Integer, index=True)
    referral_username: Mapped[Optional[str]] = mapped_column(String(60))
    referral_captured_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), nullable=False
    )
    expires_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    __table_args__ = (Index("ix_browser_sessions_expires_at", "expires_at"),)
