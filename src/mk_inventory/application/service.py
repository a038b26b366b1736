"""InventoryService: reserve / commit / release listing stock.

Check-and-reserve is atomic per listing: the keyed lock serializes callers in
this process, the listing row lock (FOR UPDATE) serializes processes, and the
version-checked listing update turns any remaining race into a retryable
ConcurrencyConflictError. Invariant kept: sold + unexpired reserved <= total.
"""
import logging
from collections.abc import Callable
from datetime import datetime, timedelta

from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import settings
from src.mk_common.datetime_utils import utc_now
from src.mk_common.enums import EventType, ListingAction, ListingStatus
from src.mk_common.errors import (
    ForbiddenError,
    InsufficientStockError,
    InvalidQuantityError,
    ListingNotPurchasableError,
    ReservationExpiredError,
    ReservationNotFoundError,
)
from src.mk_common.id_generator import generate_id
from src.mk_common.locks import KeyedLockRegistry
from src.mk_events.domain.models import DomainEvent
from src.mk_events.domain.repository import EventRepositoryProtocol
from src.mk_events.infrastructure.outbox import OutboxRepository
from src.mk_inventory.domain.models import Reservation, StockLevel
from src.mk_inventory.domain.repository import ReservationRepositoryProtocol
from src.mk_inventory.infrastructure.persistence import ReservationRepository
from src.mk_listing.application.service import ListingService
from src.mk_listing.domain.models import Listing

logger = logging.getLogger(__name__)


class InventoryService:
    def __init__(
        self,
        listings: ListingService,
        repo: ReservationRepositoryProtocol | None = None,
        events: EventRepositoryProtocol | None = None,
        locks: KeyedLockRegistry | None = None,
        clock: Callable[[], datetime] = utc_now,
        default_ttl_seconds: int | None = None,
    ) -> None:
        self._listings = listings
        self._repo: ReservationRepositoryProtocol = repo or ReservationRepository()
        self._events: EventRepositoryProtocol = events or OutboxRepository()
        self._locks = locks if locks is not None else KeyedLockRegistry()
        self._clock = clock
        self._ttl = default_ttl_seconds or settings.RESERVATION_TTL_SECONDS

    @property
    def repo(self) -> ReservationRepositoryProtocol:
        return self._repo

    async def reserve(
        self,
        db: AsyncSession,
        listing_id: str,
        quantity: int,
        holder_id: str,
        ttl_seconds: int | None = None,
    ) -> Reservation:
        if quantity < 1:
            raise InvalidQuantityError(quantity)
        async with self._locks.hold(listing_id):
            async with db.begin_nested():
                listing = await self._listings.load_for_update(db, listing_id)
                if listing.is_auction:
                    raise ListingNotPurchasableError(listing_id, "auctions are sold by bidding")
                if listing.status != ListingStatus.ACTIVE:
                    raise ListingNotPurchasableError(listing_id, f"listing is {listing.status}")

                now = self._clock()
                purged = await self._repo.delete_expired_for_listing(listing_id, now, db)
                if purged:
                    logger.debug("Purged %d expired reservations on %s", purged, listing_id)
                reserved = await self._repo.sum_active(listing_id, now, db)
                available = listing.remaining_quantity - reserved
                if available < quantity:
                    logger.debug(
                        "Reserve of %d on %s rejected: %d available", quantity, listing_id, available
                    )
                    raise InsufficientStockError(quantity, max(available, 0))

                reservation = Reservation(
                    id=generate_id(),
                    listing_id=listing_id,
                    holder_id=holder_id,
                    quantity=quantity,
                    unit_price=listing.price,
                    shipping=listing.shipping,
                    seller_id=listing.seller_id,
                    title=listing.title,
                    category_id=listing.category_id,
                    expires_at=now + timedelta(seconds=ttl_seconds or self._ttl),
                    created_at=now,
                )
                await self._repo.insert(reservation, db)
                # Version bump makes a concurrent reserve in another process conflict.
                await self._listings.repo.update(listing, db)

        logger.info(
            "Reserved %d of listing %s for %s (reservation %s)",
            quantity, listing_id, holder_id, reservation.id,
        )
        return reservation

    async def commit(self, db: AsyncSession, reservation_id: str) -> Listing:
        reservation = await self._repo.get_by_id(reservation_id, db)
        if reservation is None:
            raise ReservationNotFoundError(reservation_id)
        async with self._locks.hold(reservation.listing_id):
            async with db.begin_nested():
                locked = await self._repo.get_for_update(reservation_id, db)
                if locked is None:
                    raise ReservationNotFoundError(reservation_id)
                return await self.commit_locked(db, locked)

    async def commit_locked(self, db: AsyncSession, reservation: Reservation) -> Listing:
        """Turn a reservation into a sale.

        The caller holds the listing's keyed lock and an open savepoint, and
        has row-locked the reservation.
        """
        now = self._clock()
        if reservation.is_expired(now):
            raise ReservationExpiredError(reservation.id)
        listing = await self._listings.load_for_update(db, reservation.listing_id)
        if listing.status != ListingStatus.ACTIVE:
            raise ListingNotPurchasableError(listing.id, f"listing is {listing.status}")

        listing.sold_quantity += reservation.quantity
        await self._repo.delete(reservation.id, db)
        if listing.remaining_quantity == 0:
            await self._listings.transition(
                db, listing, ListingAction.SELL_OUT, note=f"reservation {reservation.id}"
            )
            await self._events.append(
                DomainEvent(
                    event_type=EventType.LISTING_SOLD_OUT.value,
                    aggregate_id=listing.id,
                    payload={"listing_id": listing.id, "seller_id": listing.seller_id},
                    created_at=now,
                ),
                db,
            )
        else:
            await self._listings.repo.update(listing, db)
        logger.debug(
            "Committed reservation %s: listing %s sold %d/%d",
            reservation.id, listing.id, listing.sold_quantity, listing.total_quantity,
        )
        return listing

    async def release(
        self,
        db: AsyncSession,
        reservation_id: str,
        holder_id: str | None = None,
        is_admin: bool = False,
    ) -> Reservation:
        reservation = await self._repo.get_by_id(reservation_id, db)
        if reservation is None:
            raise ReservationNotFoundError(reservation_id)
        if holder_id is not None and not is_admin and reservation.holder_id != holder_id:
            raise ForbiddenError("Only the holder can release this reservation")
        async with self._locks.hold(reservation.listing_id):
            async with db.begin_nested():
                if await self._repo.get_for_update(reservation_id, db) is None:
                    raise ReservationNotFoundError(reservation_id)
                await self._repo.delete(reservation_id, db)
        logger.info("Released reservation %s on listing %s", reservation_id, reservation.listing_id)
        return reservation

    async def sweep_expired(self, db: AsyncSession, limit: int = 500) -> int:
        """Physically delete lapsed reservations (they stopped counting at expiry)."""
        removed = await self._repo.delete_expired(self._clock(), limit, db)
        if removed:
            logger.info("Swept %d expired reservations", removed)
        return removed

    async def availability(self, db: AsyncSession, listing_id: str) -> StockLevel:
        listing = await self._listings.get_listing(db, listing_id)
        reserved = await self._repo.sum_active(listing_id, self._clock(), db)
        return StockLevel(
            listing_id=listing_id,
            total=listing.total_quantity,
            sold=listing.sold_quantity,
            reserved=reserved,
        )
