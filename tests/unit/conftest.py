"""In-memory repositories and a savepoint-aware session for service tests.

FakeSession.begin_nested() snapshots the whole MemoryState and restores it
when the block raises, so "nothing was written" assertions mean the same
thing they would against PostgreSQL. Every fake repository yields to the
event loop on each call, which lets concurrent tests interleave the way two
requests would.
"""
import asyncio
import copy
from collections.abc import Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any
from unittest.mock import AsyncMock

import pytest
from sqlalchemy.exc import IntegrityError

from src.container import ServiceContainer
from src.mk_bidding.application.engine import BidLedger
from src.mk_bidding.domain.models import Bid
from src.mk_common.enums import BidStatus, ListingStatus
from src.mk_common.errors import ConcurrencyConflictError
from src.mk_common.locks import KeyedLockRegistry
from src.mk_common.money import Money
from src.mk_coupon.application.service import CouponService
from src.mk_coupon.domain.models import Coupon, CouponRedemption
from src.mk_events.domain.models import DomainEvent
from src.mk_inventory.application.service import InventoryService
from src.mk_inventory.domain.models import Reservation
from src.mk_listing.application.service import ListingService
from src.mk_listing.domain.models import Listing, ListingTransition
from src.mk_order.application.service import OrderService
from src.mk_order.application.settlement import SettlementService
from src.mk_order.domain.models import Order, StatusHistoryEntry
from src.mk_order.domain.pricing import PricingPolicy

NOW = datetime(2026, 3, 2, 12, 0, tzinfo=UTC)

TEST_PRICING = PricingPolicy(
    tax_rate_bps=1000, default_shipping_cents=599, free_shipping_threshold_cents=5000
)


class FrozenClock:
    def __init__(self, now: datetime = NOW) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now = self.now + timedelta(**kwargs)


@dataclass
class MemoryState:
    listings: dict[str, Listing] = field(default_factory=dict)
    transitions: list[ListingTransition] = field(default_factory=list)
    bids: dict[str, Bid] = field(default_factory=dict)
    reservations: dict[str, Reservation] = field(default_factory=dict)
    coupons: dict[str, Coupon] = field(default_factory=dict)
    redemptions: list[CouponRedemption] = field(default_factory=list)
    orders: dict[str, Order] = field(default_factory=dict)
    events: list[DomainEvent] = field(default_factory=list)

    def event_types(self) -> list[str]:
        return [e.event_type for e in self.events]


class FakeSession:
    def __init__(self, state: MemoryState) -> None:
        self.state = state
        self.commit = AsyncMock()
        self.rollback = AsyncMock()

    @asynccontextmanager
    async def begin_nested(self):  # type: ignore[no-untyped-def]
        snapshot = copy.deepcopy(self.state.__dict__)
        try:
            yield self
        except BaseException:
            self.state.__dict__.update(snapshot)
            raise

    async def __aenter__(self) -> "FakeSession":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        return None


def _duplicate(detail: str) -> IntegrityError:
    return IntegrityError("INSERT", {}, Exception(detail))


# ---------------------------------------------------------------------------
# Repositories
# ---------------------------------------------------------------------------


class FakeListingRepository:
    def __init__(self, state: MemoryState) -> None:
        self._state = state

    async def insert(self, listing: Listing, db: Any) -> None:
        await asyncio.sleep(0)
        self._state.listings[listing.id] = copy.deepcopy(listing)

    async def get_by_id(self, listing_id: str, db: Any) -> Listing | None:
        await asyncio.sleep(0)
        stored = self._state.listings.get(listing_id)
        return copy.deepcopy(stored) if stored else None

    async def get_for_update(self, listing_id: str, db: Any) -> Listing | None:
        return await self.get_by_id(listing_id, db)

    async def update(self, listing: Listing, db: Any) -> None:
        await asyncio.sleep(0)
        stored = self._state.listings.get(listing.id)
        if stored is None or stored.version != listing.version:
            raise ConcurrencyConflictError(f"Listing {listing.id} was modified concurrently")
        listing.version += 1
        self._state.listings[listing.id] = copy.deepcopy(listing)

    async def append_transition(self, transition: ListingTransition, db: Any) -> None:
        transition.id = len(self._state.transitions) + 1
        self._state.transitions.append(copy.deepcopy(transition))

    async def list_transitions(self, listing_id: str, db: Any) -> list[ListingTransition]:
        return [copy.deepcopy(t) for t in self._state.transitions if t.listing_id == listing_id]

    async def list_due_auction_ids(self, now: datetime, limit: int, db: Any) -> list[str]:
        due = [
            listing for listing in self._state.listings.values()
            if listing.is_auction and listing.status == ListingStatus.ACTIVE
            and listing.auction_ends_at <= now
        ]
        due.sort(key=lambda listing: listing.auction_ends_at)
        return [listing.id for listing in due[:limit]]

    async def list_closing_soon(
        self, now: datetime, window_end: datetime, limit: int, db: Any
    ) -> list[Listing]:
        found = [
            copy.deepcopy(listing) for listing in self._state.listings.values()
            if listing.is_auction
            and listing.status == ListingStatus.ACTIVE
            and listing.closing_soon_notified_at is None
            and now < listing.auction_ends_at <= window_end
        ]
        return found[:limit]

    async def has_order(self, listing_id: str, db: Any) -> bool:
        return any(
            line.listing_id == listing_id
            for order in self._state.orders.values()
            for line in order.lines
        )


class FakeBidRepository:
    def __init__(self, state: MemoryState) -> None:
        self._state = state

    async def insert(self, bid: Bid, db: Any) -> None:
        await asyncio.sleep(0)
        self._state.bids[bid.id] = copy.deepcopy(bid)

    async def get_by_id(self, bid_id: str, db: Any) -> Bid | None:
        await asyncio.sleep(0)
        stored = self._state.bids.get(bid_id)
        return copy.deepcopy(stored) if stored else None

    async def get_for_update(self, bid_id: str, db: Any) -> Bid | None:
        return await self.get_by_id(bid_id, db)

    async def list_by_listing(self, listing_id: str, db: Any) -> list[Bid]:
        await asyncio.sleep(0)
        bids = [copy.deepcopy(b) for b in self._state.bids.values() if b.listing_id == listing_id]
        return sorted(bids, key=lambda b: b.sequence)

    async def update_status(self, bid: Bid, db: Any) -> None:
        self._state.bids[bid.id].status = bid.status

    async def mark_open_bids_lost(self, listing_id: str, db: Any) -> int:
        count = 0
        for bid in self._state.bids.values():
            if bid.listing_id == listing_id and bid.status in (BidStatus.ACTIVE, BidStatus.OUTBID):
                bid.status = BidStatus.LOST.value
                count += 1
        return count


class FakeReservationRepository:
    def __init__(self, state: MemoryState) -> None:
        self._state = state

    async def insert(self, reservation: Reservation, db: Any) -> None:
        await asyncio.sleep(0)
        self._state.reservations[reservation.id] = copy.deepcopy(reservation)

    async def get_by_id(self, reservation_id: str, db: Any) -> Reservation | None:
        await asyncio.sleep(0)
        stored = self._state.reservations.get(reservation_id)
        return copy.deepcopy(stored) if stored else None

    async def get_for_update(self, reservation_id: str, db: Any) -> Reservation | None:
        return await self.get_by_id(reservation_id, db)

    async def delete(self, reservation_id: str, db: Any) -> None:
        self._state.reservations.pop(reservation_id, None)

    async def sum_active(self, listing_id: str, now: datetime, db: Any) -> int:
        await asyncio.sleep(0)
        return sum(
            r.quantity for r in self._state.reservations.values()
            if r.listing_id == listing_id and not r.is_expired(now)
        )

    async def delete_expired_for_listing(self, listing_id: str, now: datetime, db: Any) -> int:
        expired = [
            r.id for r in self._state.reservations.values()
            if r.listing_id == listing_id and r.is_expired(now)
        ]
        for reservation_id in expired:
            del self._state.reservations[reservation_id]
        return len(expired)

    async def delete_expired(self, now: datetime, limit: int, db: Any) -> int:
        expired = [r.id for r in self._state.reservations.values() if r.is_expired(now)][:limit]
        for reservation_id in expired:
            del self._state.reservations[reservation_id]
        return len(expired)


class FakeCouponRepository:
    def __init__(self, state: MemoryState) -> None:
        self._state = state

    async def insert(self, coupon: Coupon, db: Any) -> None:
        await asyncio.sleep(0)
        if any(c.code == coupon.code for c in self._state.coupons.values()):
            raise _duplicate(f"duplicate coupon code {coupon.code}")
        self._state.coupons[coupon.id] = copy.deepcopy(coupon)

    async def get_by_code(self, code: str, db: Any) -> Coupon | None:
        await asyncio.sleep(0)
        for coupon in self._state.coupons.values():
            if coupon.code == code.strip().upper():
                return copy.deepcopy(coupon)
        return None

    async def get_by_code_for_update(self, code: str, db: Any) -> Coupon | None:
        return await self.get_by_code(code, db)

    async def try_increment_usage(self, coupon_id: str, db: Any) -> int | None:
        await asyncio.sleep(0)
        stored = self._state.coupons[coupon_id]
        if stored.usage_exhausted:
            return None
        stored.used_count += 1
        return stored.used_count

    async def count_redemptions(self, coupon_id: str, user_id: str, db: Any) -> int:
        return sum(
            1 for r in self._state.redemptions if r.coupon_id == coupon_id and r.user_id == user_id
        )

    async def insert_redemption(self, redemption: CouponRedemption, db: Any) -> None:
        redemption.id = len(self._state.redemptions) + 1
        self._state.redemptions.append(copy.deepcopy(redemption))


class FakeOrderRepository:
    def __init__(self, state: MemoryState) -> None:
        self._state = state

    async def insert(self, order: Order, db: Any) -> None:
        await asyncio.sleep(0)
        if order.source_bid_id is not None and await self.exists_for_bid(order.source_bid_id, db):
            raise _duplicate(f"duplicate source_bid_id {order.source_bid_id}")
        self._state.orders[order.id] = copy.deepcopy(order)

    async def get_by_id(self, order_id: str, db: Any) -> Order | None:
        await asyncio.sleep(0)
        stored = self._state.orders.get(order_id)
        return copy.deepcopy(stored) if stored else None

    async def get_for_update(self, order_id: str, db: Any) -> Order | None:
        return await self.get_by_id(order_id, db)

    async def exists_for_bid(self, bid_id: str, db: Any) -> bool:
        return any(o.source_bid_id == bid_id for o in self._state.orders.values())

    def _page(
        self, orders: list[Order], status: str | None, limit: int, cursor_id: str | None
    ) -> list[Order]:
        found = [
            o for o in orders
            if (status is None or o.status == status)
            and (cursor_id is None or int(o.id) < int(cursor_id))
        ]
        found.sort(key=lambda o: int(o.id), reverse=True)
        return [copy.deepcopy(o) for o in found[:limit]]

    async def list_by_buyer(
        self, buyer_id: str, status: str | None, limit: int, cursor_id: str | None, db: Any
    ) -> list[Order]:
        mine = [o for o in self._state.orders.values() if o.buyer_id == buyer_id]
        return self._page(mine, status, limit, cursor_id)

    async def list_by_seller(
        self, seller_id: str, status: str | None, limit: int, cursor_id: str | None, db: Any
    ) -> list[Order]:
        mine = [o for o in self._state.orders.values() if seller_id in o.seller_ids]
        return self._page(mine, status, limit, cursor_id)

    async def update(self, order: Order, db: Any) -> None:
        stored = self._state.orders[order.id]
        stored.status = order.status
        stored.refunded_amount = order.refunded_amount
        stored.updated_at = order.updated_at

    async def append_history(self, order_id: str, entry: StatusHistoryEntry, db: Any) -> None:
        self._state.orders[order_id].history.append(copy.deepcopy(entry))


class FakeEventRepository:
    def __init__(self, state: MemoryState) -> None:
        self._state = state

    async def append(self, event: DomainEvent, db: Any) -> None:
        self._state.events.append(copy.deepcopy(event))

    async def list_unpublished(self, limit: int, db: Any) -> list[DomainEvent]:
        pending = [e for e in self._state.events if e.published_at is None]
        pending.sort(key=lambda e: int(e.id))
        return [copy.deepcopy(e) for e in pending[:limit]]

    async def mark_published(self, event_ids: Any, published_at: datetime, db: Any) -> None:
        wanted = set(event_ids)
        for event in self._state.events:
            if event.id in wanted:
                event.published_at = published_at


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


def build_fake_container(state: MemoryState, clock: FrozenClock) -> ServiceContainer:
    locks = KeyedLockRegistry()
    events = FakeEventRepository(state)
    bid_repo = FakeBidRepository(state)
    listings = ListingService(FakeListingRepository(state), bid_repo, locks, clock)
    inventory = InventoryService(
        listings, FakeReservationRepository(state), events, locks, clock, default_ttl_seconds=900
    )
    coupons = CouponService(FakeCouponRepository(state), clock)
    order_repo = FakeOrderRepository(state)
    return ServiceContainer(
        locks=locks,
        listings=listings,
        bids=BidLedger(listings, bid_repo, events, locks, clock),
        inventory=inventory,
        coupons=coupons,
        settlement=SettlementService(
            listings,
            inventory,
            coupons,
            order_repo=order_repo,
            bid_repo=bid_repo,
            events=events,
            locks=locks,
            clock=clock,
            pricing=TEST_PRICING,
        ),
        orders=OrderService(order_repo, events, clock),
        outbox=events,  # type: ignore[arg-type]
        clock=clock,
    )


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
def state() -> MemoryState:
    return MemoryState()


@pytest.fixture
def db(state: MemoryState) -> FakeSession:
    return FakeSession(state)


@pytest.fixture
def services(state: MemoryState, clock: FrozenClock) -> ServiceContainer:
    return build_fake_container(state, clock)


@pytest.fixture
def seed_listing(state: MemoryState) -> Callable[..., Listing]:
    """Put a listing straight into the store (default: active fixed-price, qty 5, $25)."""

    def _seed(listing_id: str = "L-100", **kwargs: Any) -> Listing:
        fields: dict[str, Any] = dict(
            id=listing_id,
            seller_id="seller-1",
            title=f"Item {listing_id}",
            price=Money(2500),
            is_auction=False,
            status=ListingStatus.ACTIVE.value,
            total_quantity=5,
            category_id="cat-books",
            created_at=NOW - timedelta(days=1),
        )
        fields.update(kwargs)
        listing = Listing(**fields)
        state.listings[listing.id] = copy.deepcopy(listing)
        return listing

    return _seed


@pytest.fixture
def seed_auction(seed_listing: Callable[..., Listing]) -> Callable[..., Listing]:
    """Active auction, starting at $5.00, ending one hour after NOW."""

    def _seed(listing_id: str = "A-100", **kwargs: Any) -> Listing:
        fields: dict[str, Any] = dict(
            is_auction=True,
            total_quantity=1,
            price=Money(500),
            auction_ends_at=NOW + timedelta(hours=1),
        )
        fields.update(kwargs)
        return seed_listing(listing_id, **fields)

    return _seed


@pytest.fixture
def seed_coupon(state: MemoryState) -> Callable[..., Coupon]:
    """SAVE10-style coupon: 10% off, $20 minimum, valid for a week around NOW."""

    def _seed(code: str = "SAVE10", **kwargs: Any) -> Coupon:
        fields: dict[str, Any] = dict(
            id=f"C-{code}",
            code=code,
            discount_type="percentage",
            discount_value=10,
            starts_at=NOW - timedelta(days=3),
            ends_at=NOW + timedelta(days=4),
            seller_id="seller-1",
            min_purchase=Money(2000),
        )
        fields.update(kwargs)
        coupon = Coupon(**fields)
        state.coupons[coupon.id] = copy.deepcopy(coupon)
        return coupon

    return _seed
