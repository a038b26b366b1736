"""SettlementService: turns a checkout cart or a won auction into an order.

A settlement holds the keyed locks of every listing involved, plus the coupon
key when a code is applied (sorted, so two overlapping carts cannot
deadlock), and runs in one savepoint: reservation
commits, coupon usage, the redemption row, the order with its lines and
history, listing transitions and the outbox event are all-or-nothing.
"""
import logging
from collections.abc import Callable, Sequence
from datetime import datetime

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from src.mk_bidding.domain.repository import BidRepositoryProtocol
from src.mk_bidding.infrastructure.persistence import BidRepository
from src.mk_common.datetime_utils import utc_now
from src.mk_common.enums import BidStatus, EventType, ListingAction, ListingStatus, OrderStatus
from src.mk_common.errors import (
    AlreadySettledError,
    BidNotFoundError,
    BidNotWonError,
    EmptyCartError,
    ForbiddenError,
    InvalidQuantityError,
    ListingNotClosedError,
    ReservationExpiredError,
    ReservationMismatchError,
    ReservationNotFoundError,
)
from src.mk_common.id_generator import generate_id, generate_order_number
from src.mk_common.locks import KeyedLockRegistry
from src.mk_common.money import Money
from src.mk_coupon.application.service import CouponService, coupon_lock_key
from src.mk_events.domain.models import DomainEvent
from src.mk_events.domain.repository import EventRepositoryProtocol
from src.mk_events.infrastructure.outbox import OutboxRepository
from src.mk_inventory.application.service import InventoryService
from src.mk_inventory.domain.models import Reservation
from src.mk_listing.application.service import ListingService
from src.mk_order.domain.models import (
    CartItem,
    Order,
    OrderLine,
    ShippingAddress,
    StatusHistoryEntry,
)
from src.mk_order.domain.pricing import PricingPolicy, price_order, subtotal_of
from src.mk_order.domain.repository import OrderRepositoryProtocol
from src.mk_order.infrastructure.persistence import OrderRepository

logger = logging.getLogger(__name__)


class SettlementService:
    def __init__(
        self,
        listings: ListingService,
        inventory: InventoryService,
        coupons: CouponService,
        order_repo: OrderRepositoryProtocol | None = None,
        bid_repo: BidRepositoryProtocol | None = None,
        events: EventRepositoryProtocol | None = None,
        locks: KeyedLockRegistry | None = None,
        clock: Callable[[], datetime] = utc_now,
        pricing: PricingPolicy | None = None,
    ) -> None:
        self._listings = listings
        self._inventory = inventory
        self._coupons = coupons
        self._orders: OrderRepositoryProtocol = order_repo or OrderRepository()
        self._bids: BidRepositoryProtocol = bid_repo or BidRepository()
        self._events: EventRepositoryProtocol = events or OutboxRepository()
        self._locks = locks if locks is not None else KeyedLockRegistry()
        self._clock = clock
        self._pricing = pricing or PricingPolicy.from_settings()

    async def settle_from_checkout(
        self,
        db: AsyncSession,
        buyer_id: str,
        cart_items: Sequence[CartItem],
        shipping_address: ShippingAddress,
        payment_method: str,
        coupon_code: str | None = None,
    ) -> Order:
        if not cart_items:
            raise EmptyCartError()
        seen: set[str] = set()
        for item in cart_items:
            if item.quantity < 1:
                raise InvalidQuantityError(item.quantity)
            if item.reservation_id in seen:
                raise ReservationMismatchError(item.reservation_id, "listed twice in the cart")
            seen.add(item.reservation_id)

        order_id = generate_id()
        items = sorted(cart_items, key=lambda i: (i.listing_id, i.reservation_id))
        lock_keys = [i.listing_id for i in items]
        if coupon_code:
            lock_keys.append(coupon_lock_key(coupon_code))
        async with self._locks.hold(*lock_keys):
            async with db.begin_nested():
                now = self._clock()
                reservations = [
                    await self._claim_reservation(db, item, buyer_id, now) for item in items
                ]
                lines = [_line_from_reservation(r) for r in reservations]
                currency = lines[0].unit_price.currency
                subtotal = subtotal_of(lines, currency)

                discount = Money.zero(currency)
                coupon_id: str | None = None
                applied_code: str | None = None
                if coupon_code:
                    coupon, discount = await self._coupons.redeem(
                        db,
                        coupon_code,
                        buyer_id,
                        order_id,
                        subtotal,
                        [line.listing_id for line in lines],
                        [line.category_id for line in lines if line.category_id],
                    )
                    coupon_id, applied_code = coupon.id, coupon.code

                breakdown = price_order(lines, discount, self._pricing)
                for reservation in reservations:
                    await self._inventory.commit_locked(db, reservation)

                order = Order(
                    id=order_id,
                    order_number=generate_order_number(order_id),
                    buyer_id=buyer_id,
                    lines=lines,
                    breakdown=breakdown,
                    status=OrderStatus.PENDING.value,
                    payment_method=payment_method,
                    shipping_address=shipping_address,
                    coupon_id=coupon_id,
                    coupon_code=applied_code,
                    history=[
                        StatusHistoryEntry(
                            OrderStatus.PENDING.value, now, "Order placed", actor_id=buyer_id
                        )
                    ],
                    created_at=now,
                    updated_at=now,
                )
                await self._orders.insert(order, db)
                await self._emit_created(db, order, now)

        logger.info(
            "Order %s settled from checkout for %s: %d lines, total %s%s",
            order.order_number, buyer_id, len(lines), breakdown.total.display(),
            f" (coupon {applied_code})" if applied_code else "",
        )
        return order

    async def settle_from_auction_win(
        self,
        db: AsyncSession,
        bid_id: str,
        payment_method: str,
        shipping_address: ShippingAddress | None = None,
        actor_id: str | None = None,
        is_admin: bool = False,
    ) -> Order:
        bid = await self._bids.get_by_id(bid_id, db)
        if bid is None:
            raise BidNotFoundError(bid_id)
        if actor_id is not None and not is_admin and bid.bidder_id != actor_id:
            raise ForbiddenError("Only the winning bidder can settle this bid")

        try:
            async with self._locks.hold(bid.listing_id):
                async with db.begin_nested():
                    order = await self._settle_auction_locked(
                        db, bid_id, payment_method, shipping_address
                    )
        except IntegrityError:
            # Unique index on orders.source_bid_id: another process settled first.
            raise AlreadySettledError(bid_id) from None

        logger.info(
            "Order %s settled from auction win %s, total %s",
            order.order_number, bid_id, order.breakdown.total.display(),
        )
        return order

    async def _settle_auction_locked(
        self,
        db: AsyncSession,
        bid_id: str,
        payment_method: str,
        shipping_address: ShippingAddress | None,
    ) -> Order:
        bid = await self._bids.get_for_update(bid_id, db)
        if bid is None:
            raise BidNotFoundError(bid_id)
        if await self._orders.exists_for_bid(bid_id, db):
            raise AlreadySettledError(bid_id)
        if bid.status != BidStatus.WON:
            raise BidNotWonError(bid_id, bid.status)
        listing = await self._listings.load_for_update(db, bid.listing_id)
        if listing.status != ListingStatus.CLOSED:
            raise ListingNotClosedError(listing.id, listing.status)

        now = self._clock()
        line = OrderLine(
            listing_id=listing.id,
            seller_id=listing.seller_id,
            title=listing.title,
            category_id=listing.category_id,
            quantity=1,
            unit_price=bid.amount,
            shipping=listing.shipping,
        )
        order_id = generate_id()
        order = Order(
            id=order_id,
            order_number=generate_order_number(order_id),
            buyer_id=bid.bidder_id,
            lines=[line],
            breakdown=price_order([line], Money.zero(bid.amount.currency), self._pricing),
            status=OrderStatus.PENDING.value,
            payment_method=payment_method,
            shipping_address=shipping_address,
            source_bid_id=bid_id,
            history=[StatusHistoryEntry(OrderStatus.PENDING.value, now, "Auction won")],
            created_at=now,
            updated_at=now,
        )
        await self._orders.insert(order, db)
        listing.sold_quantity = listing.total_quantity
        await self._listings.transition(
            db, listing, ListingAction.SELL, note=f"order {order.order_number}"
        )
        await self._emit_created(db, order, now)
        return order

    async def _claim_reservation(
        self, db: AsyncSession, item: CartItem, buyer_id: str, now: datetime
    ) -> Reservation:
        reservation = await self._inventory.repo.get_for_update(item.reservation_id, db)
        if reservation is None:
            raise ReservationNotFoundError(item.reservation_id)
        if reservation.holder_id != buyer_id:
            raise ReservationMismatchError(reservation.id, "held by another buyer")
        if reservation.listing_id != item.listing_id:
            raise ReservationMismatchError(reservation.id, "listing differs")
        if reservation.quantity != item.quantity:
            raise ReservationMismatchError(
                reservation.id, f"reserved {reservation.quantity}, cart has {item.quantity}"
            )
        if reservation.is_expired(now):
            raise ReservationExpiredError(reservation.id)
        return reservation

    async def _emit_created(self, db: AsyncSession, order: Order, now: datetime) -> None:
        await self._events.append(
            DomainEvent(
                event_type=EventType.ORDER_CREATED.value,
                aggregate_id=order.id,
                payload={
                    "order_id": order.id,
                    "order_number": order.order_number,
                    "buyer_id": order.buyer_id,
                    "seller_ids": sorted(order.seller_ids),
                    "total_cents": order.breakdown.total.cents,
                    "source_bid_id": order.source_bid_id,
                },
                created_at=now,
            ),
            db,
        )


def _line_from_reservation(reservation: Reservation) -> OrderLine:
    return OrderLine(
        listing_id=reservation.listing_id,
        seller_id=reservation.seller_id,
        title=reservation.title,
        category_id=reservation.category_id,
        quantity=reservation.quantity,
        unit_price=reservation.unit_price,
        shipping=reservation.shipping,
    )
