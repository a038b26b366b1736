"""Order status transitions.

    pending ──▶ processing ──▶ confirmed ──▶ shipped ──▶ delivered ──▶ refunded
       │  └──────────────────▶ confirmed      ▲
       │            └──────────────────────────┘ (processing → shipped)
       └──▶ cancelled  (from pending, processing or confirmed)
"""
from datetime import datetime

from src.mk_common.enums import OrderStatus
from src.mk_common.errors import InvalidOrderTransitionError
from src.mk_order.domain.models import Order, StatusHistoryEntry

ORDER_TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.PENDING: frozenset(
        {OrderStatus.PROCESSING, OrderStatus.CONFIRMED, OrderStatus.CANCELLED}
    ),
    OrderStatus.PROCESSING: frozenset(
        {OrderStatus.CONFIRMED, OrderStatus.SHIPPED, OrderStatus.CANCELLED}
    ),
    OrderStatus.CONFIRMED: frozenset({OrderStatus.SHIPPED, OrderStatus.CANCELLED}),
    OrderStatus.SHIPPED: frozenset({OrderStatus.DELIVERED}),
    OrderStatus.DELIVERED: frozenset({OrderStatus.REFUNDED}),
    OrderStatus.CANCELLED: frozenset(),
    OrderStatus.REFUNDED: frozenset(),
}


def can_move(current: str, target: str) -> bool:
    return OrderStatus(target) in ORDER_TRANSITIONS[OrderStatus(current)]


def apply_order_transition(
    order: Order,
    target: OrderStatus,
    now: datetime,
    actor_id: str | None = None,
    note: str | None = None,
) -> StatusHistoryEntry:
    if not can_move(order.status, target.value):
        raise InvalidOrderTransitionError(order.id, order.status, target.value)
    order.status = target.value
    order.updated_at = now
    entry = StatusHistoryEntry(status=target.value, created_at=now, note=note, actor_id=actor_id)
    order.history.append(entry)
    return entry
