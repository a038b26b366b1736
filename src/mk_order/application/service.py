"""OrderService: order reads and post-settlement lifecycle.

Who may do what:
  view          buyer, any seller with a line in the order, admin
  update_status seller with a line in the order, admin
  cancel        buyer, admin (before shipping)
  refund        admin
"""
import logging
from collections.abc import Callable
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession

from src.mk_common.datetime_utils import utc_now
from src.mk_common.enums import EventType, OrderStatus
from src.mk_common.errors import (
    ForbiddenError,
    InvalidOrderTransitionError,
    InvalidRefundError,
    OrderNotFoundError,
)
from src.mk_common.money import Money
from src.mk_events.domain.models import DomainEvent
from src.mk_events.domain.repository import EventRepositoryProtocol
from src.mk_events.infrastructure.outbox import OutboxRepository
from src.mk_order.domain.models import Order
from src.mk_order.domain.repository import OrderRepositoryProtocol
from src.mk_order.domain.state_machine import apply_order_transition
from src.mk_order.infrastructure.persistence import OrderRepository

logger = logging.getLogger(__name__)

_BUYER_CANCELLABLE = (OrderStatus.PENDING, OrderStatus.PROCESSING, OrderStatus.CONFIRMED)


class OrderService:
    def __init__(
        self,
        repo: OrderRepositoryProtocol | None = None,
        events: EventRepositoryProtocol | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._repo: OrderRepositoryProtocol = repo or OrderRepository()
        self._events: EventRepositoryProtocol = events or OutboxRepository()
        self._clock = clock

    async def get_order(
        self, db: AsyncSession, order_id: str, actor_id: str, is_admin: bool = False
    ) -> Order:
        order = await self._repo.get_by_id(order_id, db)
        if order is None:
            raise OrderNotFoundError(order_id)
        if not (is_admin or order.buyer_id == actor_id or actor_id in order.seller_ids):
            raise ForbiddenError("Not authorized to view this order")
        return order

    async def list_orders(
        self,
        db: AsyncSession,
        buyer_id: str,
        status: str | None = None,
        limit: int = 20,
        cursor: str | None = None,
    ) -> tuple[list[Order], str | None]:
        # Fetch limit+1 to detect has_more without COUNT(*)
        orders = await self._repo.list_by_buyer(buyer_id, status, limit + 1, cursor, db)
        return _page(orders, limit)

    async def list_seller_orders(
        self,
        db: AsyncSession,
        seller_id: str,
        status: str | None = None,
        limit: int = 20,
        cursor: str | None = None,
    ) -> tuple[list[Order], str | None]:
        orders = await self._repo.list_by_seller(seller_id, status, limit + 1, cursor, db)
        return _page(orders, limit)

    async def update_status(
        self,
        db: AsyncSession,
        order_id: str,
        target: OrderStatus,
        actor_id: str,
        is_admin: bool = False,
        note: str | None = None,
    ) -> Order:
        if target is OrderStatus.REFUNDED:
            return await self.refund_order(db, order_id, actor_id, is_admin, note=note)
        async with db.begin_nested():
            order = await self._load_for_update(db, order_id)
            if not (is_admin or actor_id in order.seller_ids):
                raise ForbiddenError("Only a seller of this order or an admin can update it")
            await self._move(db, order, target, actor_id, note)
        return order

    async def cancel_order(
        self,
        db: AsyncSession,
        order_id: str,
        actor_id: str,
        is_admin: bool = False,
        reason: str | None = None,
    ) -> Order:
        """Buyer cancellation. Stock is not returned to the listing."""
        async with db.begin_nested():
            order = await self._load_for_update(db, order_id)
            if not (is_admin or order.buyer_id == actor_id):
                raise ForbiddenError("Only the buyer or an admin can cancel this order")
            if order.status not in _BUYER_CANCELLABLE:
                raise InvalidOrderTransitionError(order.id, order.status, OrderStatus.CANCELLED.value)
            await self._move(db, order, OrderStatus.CANCELLED, actor_id, reason or "Cancelled by buyer")
        return order

    async def refund_order(
        self,
        db: AsyncSession,
        order_id: str,
        actor_id: str,
        is_admin: bool = False,
        amount_cents: int | None = None,
        note: str | None = None,
    ) -> Order:
        if not is_admin:
            raise ForbiddenError("Admin account required")
        async with db.begin_nested():
            order = await self._load_for_update(db, order_id)
            total = order.breakdown.total
            amount = total if amount_cents is None else Money(amount_cents, order.currency)
            if amount.cents <= 0:
                raise InvalidRefundError("amount must be greater than 0")
            if amount > total:
                raise InvalidRefundError(
                    f"amount {amount.display()} exceeds order total {total.display()}"
                )
            if order.status != OrderStatus.DELIVERED:
                raise InvalidOrderTransitionError(order.id, order.status, OrderStatus.REFUNDED.value)
            order.refunded_amount = amount
            await self._move(
                db, order, OrderStatus.REFUNDED, actor_id, note or f"Refunded {amount.display()}"
            )
        return order

    async def _load_for_update(self, db: AsyncSession, order_id: str) -> Order:
        order = await self._repo.get_for_update(order_id, db)
        if order is None:
            raise OrderNotFoundError(order_id)
        return order

    async def _move(
        self,
        db: AsyncSession,
        order: Order,
        target: OrderStatus,
        actor_id: str | None,
        note: str | None,
    ) -> None:
        previous = order.status
        now = self._clock()
        entry = apply_order_transition(order, target, now, actor_id=actor_id, note=note)
        await self._repo.update(order, db)
        await self._repo.append_history(order.id, entry, db)
        await self._events.append(
            DomainEvent(
                event_type=EventType.ORDER_STATUS_CHANGED.value,
                aggregate_id=order.id,
                payload={
                    "order_id": order.id,
                    "order_number": order.order_number,
                    "buyer_id": order.buyer_id,
                    "from_status": previous,
                    "to_status": order.status,
                },
                created_at=now,
            ),
            db,
        )
        logger.info("Order %s: %s -> %s by %s", order.order_number, previous, order.status, actor_id)


def _page(orders: list[Order], limit: int) -> tuple[list[Order], str | None]:
    has_more = len(orders) > limit
    page = orders[:limit]
    next_cursor = page[-1].id if has_more and page else None
    return page, next_cursor
