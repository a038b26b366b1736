"""Service container: explicit wiring of repositories, services and shared state.

Built once in the app lifespan and stored on `app.state.container`. Every
service that touches a listing gets the same KeyedLockRegistry, so bidding,
reservations and settlement serialize on the same per-listing lock.
"""
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime

from fastapi import Request

from config.settings import settings
from src.mk_bidding.application.engine import BidLedger
from src.mk_bidding.infrastructure.persistence import BidRepository
from src.mk_common.datetime_utils import utc_now
from src.mk_common.locks import KeyedLockRegistry
from src.mk_coupon.application.service import CouponService
from src.mk_coupon.infrastructure.persistence import CouponRepository
from src.mk_events.application.relay import EventRelay, PublisherProtocol
from src.mk_events.infrastructure.outbox import OutboxRepository
from src.mk_inventory.application.service import InventoryService
from src.mk_inventory.infrastructure.persistence import ReservationRepository
from src.mk_listing.application.service import ListingService
from src.mk_listing.infrastructure.persistence import ListingRepository
from src.mk_order.application.service import OrderService
from src.mk_order.application.settlement import SettlementService
from src.mk_order.domain.pricing import PricingPolicy
from src.mk_order.infrastructure.persistence import OrderRepository


@dataclass
class ServiceContainer:
    locks: KeyedLockRegistry
    listings: ListingService
    bids: BidLedger
    inventory: InventoryService
    coupons: CouponService
    settlement: SettlementService
    orders: OrderService
    outbox: OutboxRepository
    relay: EventRelay | None = None
    clock: Callable[[], datetime] = utc_now


def build_container(
    publisher: PublisherProtocol | None = None,
    clock: Callable[[], datetime] = utc_now,
) -> ServiceContainer:
    locks = KeyedLockRegistry()
    outbox = OutboxRepository()
    listing_repo = ListingRepository()
    bid_repo = BidRepository()

    listings = ListingService(listing_repo, bid_repo, locks, clock)
    bids = BidLedger(listings, bid_repo, outbox, locks, clock)
    inventory = InventoryService(
        listings, ReservationRepository(), outbox, locks, clock, settings.RESERVATION_TTL_SECONDS
    )
    coupons = CouponService(CouponRepository(), clock)
    order_repo = OrderRepository()
    settlement = SettlementService(
        listings,
        inventory,
        coupons,
        order_repo=order_repo,
        bid_repo=bid_repo,
        events=outbox,
        locks=locks,
        clock=clock,
        pricing=PricingPolicy.from_settings(),
    )
    orders = OrderService(order_repo, outbox, clock)
    relay = (
        EventRelay(outbox, publisher, settings.EVENTS_CHANNEL) if publisher is not None else None
    )
    return ServiceContainer(
        locks=locks,
        listings=listings,
        bids=bids,
        inventory=inventory,
        coupons=coupons,
        settlement=settlement,
        orders=orders,
        outbox=outbox,
        relay=relay,
        clock=clock,
    )


def get_container(request: Request) -> ServiceContainer:
    """FastAPI dependency: the container built by the app lifespan."""
    container: ServiceContainer = request.app.state.container
    return container
