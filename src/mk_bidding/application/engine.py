"""BidLedger: accepts, retracts and closes auction bids.

All mutations of one listing are serialized by the shared keyed lock; inside
it the listing row is taken FOR UPDATE and written back with a version check,
so a second process racing on the same listing fails with
ConcurrencyConflictError instead of producing two active-highest bids.
"""
import logging
from collections.abc import Callable
from datetime import datetime, timedelta

from sqlalchemy.ext.asyncio import AsyncSession

from src.mk_bidding.domain.ledger import (
    close_outcome,
    current_winner,
    reevaluate,
    validate_new_bid,
)
from src.mk_bidding.domain.models import AuctionCloseResult, Bid
from src.mk_bidding.domain.repository import BidRepositoryProtocol
from src.mk_bidding.infrastructure.persistence import BidRepository
from src.mk_common.datetime_utils import utc_now
from src.mk_common.enums import BidStatus, EventType, ListingAction, ListingStatus
from src.mk_common.errors import (
    AppError,
    AuctionNotEndedError,
    BidNotFoundError,
    BidNotRetractableError,
    ForbiddenError,
    ListingNotActiveError,
    ListingNotFoundError,
    NotAnAuctionError,
)
from src.mk_common.id_generator import generate_id
from src.mk_common.locks import KeyedLockRegistry
from src.mk_common.money import Money
from src.mk_events.domain.models import DomainEvent
from src.mk_events.domain.repository import EventRepositoryProtocol
from src.mk_events.infrastructure.outbox import OutboxRepository
from src.mk_listing.application.service import ListingService

logger = logging.getLogger(__name__)

_FINISHED = (ListingStatus.CLOSED, ListingStatus.SOLD, ListingStatus.CANCELLED)


class BidLedger:
    def __init__(
        self,
        listings: ListingService,
        bid_repo: BidRepositoryProtocol | None = None,
        events: EventRepositoryProtocol | None = None,
        locks: KeyedLockRegistry | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._listings = listings
        self._repo: BidRepositoryProtocol = bid_repo or BidRepository()
        self._events: EventRepositoryProtocol = events or OutboxRepository()
        self._locks = locks if locks is not None else KeyedLockRegistry()
        self._clock = clock

    @property
    def repo(self) -> BidRepositoryProtocol:
        return self._repo

    async def submit_bid(
        self, db: AsyncSession, listing_id: str, bidder_id: str, amount_cents: int
    ) -> Bid:
        async with self._locks.hold(listing_id):
            async with db.begin_nested():
                listing = await self._listings.load_for_update(db, listing_id)
                now = self._clock()
                amount = Money(amount_cents, listing.currency)
                bids = await self._repo.list_by_listing(listing_id, db)
                try:
                    validate_new_bid(listing, bidder_id, amount, bids, now)
                except AppError as exc:
                    logger.debug("Bid on %s rejected: %s", listing_id, exc)
                    raise

                listing.last_bid_sequence += 1
                bid = Bid(
                    id=generate_id(),
                    listing_id=listing_id,
                    bidder_id=bidder_id,
                    amount=amount,
                    sequence=listing.last_bid_sequence,
                    status=BidStatus.ACTIVE.value,
                    created_at=now,
                )
                await self._listings.repo.update(listing, db)
                await self._repo.insert(bid, db)

                changed = reevaluate([*bids, bid])
                for other in changed:
                    if other is bid:
                        continue
                    await self._repo.update_status(other, db)
                    if other.status == BidStatus.OUTBID:
                        await self._emit(db, EventType.BID_OUTBID, listing_id, {
                            "listing_id": listing_id,
                            "bid_id": other.id,
                            "bidder_id": other.bidder_id,
                            "new_highest_cents": amount.cents,
                        }, now)
                await self._emit(db, EventType.BID_PLACED, listing_id, {
                    "listing_id": listing_id,
                    "bid_id": bid.id,
                    "bidder_id": bidder_id,
                    "amount_cents": amount.cents,
                    "sequence": bid.sequence,
                }, now)

        logger.info(
            "Bid %s accepted on listing %s: %s (seq %d)",
            bid.id, listing_id, amount.display(), bid.sequence,
        )
        return bid

    async def retract_bid(self, db: AsyncSession, bid_id: str, bidder_id: str) -> Bid:
        bid = await self._repo.get_by_id(bid_id, db)
        if bid is None:
            raise BidNotFoundError(bid_id)
        if bid.bidder_id != bidder_id:
            raise ForbiddenError("Only the bidder can retract this bid")

        async with self._locks.hold(bid.listing_id):
            async with db.begin_nested():
                listing = await self._listings.load_for_update(db, bid.listing_id)
                now = self._clock()
                if listing.status != ListingStatus.ACTIVE or listing.auction_ended(now):
                    raise ListingNotActiveError(listing.id, "auction is no longer running")

                bids = await self._repo.list_by_listing(listing.id, db)
                target = next((b for b in bids if b.id == bid_id), None)
                if target is None:
                    raise BidNotFoundError(bid_id)
                if target.status not in (BidStatus.ACTIVE, BidStatus.OUTBID):
                    raise BidNotRetractableError(bid_id, target.status)

                target.status = BidStatus.CANCELLED.value
                await self._repo.update_status(target, db)
                for other in reevaluate(bids):
                    await self._repo.update_status(other, db)
                await self._listings.repo.update(listing, db)
                await self._emit(db, EventType.BID_RETRACTED, listing.id, {
                    "listing_id": listing.id,
                    "bid_id": bid_id,
                    "bidder_id": bidder_id,
                }, now)

        logger.info("Bid %s on listing %s retracted", bid_id, target.listing_id)
        return target

    async def close_auction(
        self, db: AsyncSession, listing_id: str, actor_id: str | None = None
    ) -> AuctionCloseResult:
        """Close an ended auction. Calling it again after the close is a no-op."""
        async with self._locks.hold(listing_id):
            async with db.begin_nested():
                listing = await self._listings.load_for_update(db, listing_id)
                if not listing.is_auction:
                    raise NotAnAuctionError(listing_id)
                bids = await self._repo.list_by_listing(listing_id, db)

                if listing.status in _FINISHED:
                    won = next((b for b in bids if b.status == BidStatus.WON), None)
                    return AuctionCloseResult(listing_id, listing.status, won, closed_now=False)

                now = self._clock()
                if listing.status == ListingStatus.ACTIVE and not listing.auction_due(now):
                    raise AuctionNotEndedError(listing_id)

                winner, changed = close_outcome(bids)
                for bid in changed:
                    await self._repo.update_status(bid, db)
                await self._listings.transition(db, listing, ListingAction.CLOSE, actor_id)
                if winner is None:
                    await self._listings.transition(
                        db, listing, ListingAction.CANCEL, actor_id, note="no bids"
                    )
                await self._emit(db, EventType.AUCTION_CLOSED, listing_id, {
                    "listing_id": listing_id,
                    "seller_id": listing.seller_id,
                    "winning_bid_id": winner.id if winner else None,
                    "winner_id": winner.bidder_id if winner else None,
                    "amount_cents": winner.amount.cents if winner else None,
                    "status": listing.status,
                }, now)

        if winner is None:
            logger.info("Auction %s closed without bids", listing_id)
        else:
            logger.info(
                "Auction %s closed: bid %s by %s wins at %s",
                listing_id, winner.id, winner.bidder_id, winner.amount.display(),
            )
        return AuctionCloseResult(listing_id, listing.status, winner, closed_now=True)

    async def close_if_due(self, db: AsyncSession, listing_id: str) -> bool:
        """Lazy-on-read close. Returns True if this call closed the auction."""
        listing = await self._listings.repo.get_by_id(listing_id, db)
        if listing is None or listing.status != ListingStatus.ACTIVE:
            return False
        if not listing.auction_due(self._clock()):
            return False
        result = await self.close_auction(db, listing_id)
        return result.closed_now

    async def notify_closing_soon(
        self, db: AsyncSession, window: timedelta, limit: int = 100
    ) -> int:
        """Emit AUCTION_CLOSING_SOON once per auction entering the final window."""
        now = self._clock()
        candidates = await self._listings.repo.list_closing_soon(now, now + window, limit, db)
        notified = 0
        for candidate in candidates:
            async with self._locks.hold(candidate.id):
                async with db.begin_nested():
                    listing = await self._listings.load_for_update(db, candidate.id)
                    if (
                        listing.status != ListingStatus.ACTIVE
                        or listing.closing_soon_notified_at is not None
                    ):
                        continue
                    bids = await self._repo.list_by_listing(listing.id, db)
                    listing.closing_soon_notified_at = now
                    await self._listings.repo.update(listing, db)
                    await self._emit(db, EventType.AUCTION_CLOSING_SOON, listing.id, {
                        "listing_id": listing.id,
                        "seller_id": listing.seller_id,
                        "auction_ends_at": listing.auction_ends_at.isoformat()
                        if listing.auction_ends_at else None,
                        "bidder_ids": sorted(
                            {b.bidder_id for b in bids if b.status != BidStatus.CANCELLED}
                        ),
                    }, now)
                    notified += 1
        return notified

    async def current_winner(self, db: AsyncSession, listing_id: str) -> Bid | None:
        bids = await self.list_bids(db, listing_id)
        return current_winner(bids)

    async def list_bids(self, db: AsyncSession, listing_id: str) -> list[Bid]:
        listing = await self._listings.repo.get_by_id(listing_id, db)
        if listing is None or listing.is_deleted:
            raise ListingNotFoundError(listing_id)
        if not listing.is_auction:
            raise NotAnAuctionError(listing_id)
        return await self._repo.list_by_listing(listing_id, db)

    async def _emit(
        self,
        db: AsyncSession,
        event_type: EventType,
        aggregate_id: str,
        payload: dict[str, object],
        now: datetime,
    ) -> None:
        await self._events.append(
            DomainEvent(
                event_type=event_type.value,
                aggregate_id=aggregate_id,
                payload=payload,
                created_at=now,
            ),
            db,
        )
