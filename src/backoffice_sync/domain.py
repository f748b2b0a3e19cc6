"""Outbound sync targets and the order sync state machine."""

from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping

from backoffice_sync.exceptions import LocalPreconditionFailure
from shared.constants import (
    DEACTIVATE_USER_ENDPOINT,
    PRODUCT_ENDPOINT,
    PURCHASE_ENDPOINT,
    REGISTER_USER_ENDPOINT,
    UPDATE_USER_ENDPOINT,
)


class SyncKind(str, Enum):
    """Kinds of records forwarded to the back office."""

    PRODUCT = "product"
    ORDER = "order"
    USER_REGISTER = "user_register"
    USER_UPDATE = "user_update"
    USER_DELETE = "user_delete"


@dataclass(frozen=True)
class SyncTarget:
    """Where a record kind is sent and which body fields it must carry."""

    kind: SyncKind
    path: str
    required_fields: tuple[str, ...]

    def missing_fields(self, payload: Mapping[str, Any]) -> list[str]:
        return [name for name in self.required_fields if payload.get(name) is None]

    def check(self, payload: Mapping[str, Any]) -> None:
        missing = self.missing_fields(payload)
        if missing:
            raise LocalPreconditionFailure(
                f"{self.kind.value} payload is missing {', '.join(missing)}"
            )


SYNC_TARGETS: Mapping[SyncKind, SyncTarget] = MappingProxyType(
    {
        SyncKind.PRODUCT: SyncTarget(
            SyncKind.PRODUCT, PRODUCT_ENDPOINT, ("name", "product_id", "price")
        ),
        SyncKind.ORDER: SyncTarget(
            SyncKind.ORDER, PURCHASE_ENDPOINT, ("product_id", "username", "order_id")
        ),
        SyncKind.USER_REGISTER: SyncTarget(
            SyncKind.USER_REGISTER,
            REGISTER_USER_ENDPOINT,
            ("username", "email", "password", "wp_user_id"),
        ),
        SyncKind.USER_UPDATE: SyncTarget(
            SyncKind.USER_UPDATE, UPDATE_USER_ENDPOINT, ("wp_user_id", "email", "username")
        ),
        SyncKind.USER_DELETE: SyncTarget(
            SyncKind.USER_DELETE, DEACTIVATE_USER_ENDPOINT, ("wp_user_id",)
        ),
    }
)


class OrderSyncStatus(str, Enum):
    """Per-order sync state. The only legal transition is UNSYNCED -> SYNCED."""

    UNSYNCED = "unsynced"
    SYNCED = "synced"

    def can_transition_to(self, target: "OrderSyncStatus") -> bool:
        return self is OrderSyncStatus.UNSYNCED and target is OrderSyncStatus.SYNCED
