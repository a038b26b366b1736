"""ListingService: listing lifecycle operations.

Every mutation runs under the listing's keyed lock and inside a savepoint:
the row is re-read with FOR UPDATE, the state machine is applied, and the
version-checked update plus the audit row are written together. The router
owns the outer commit (see run_in_transaction).
"""

import logging
from collections.abc import Callable
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession

from src.mk_bidding.domain.repository import BidRepositoryProtocol
from src.mk_bidding.infrastructure.persistence import BidRepository
from src.mk_common.datetime_utils import ensure_utc, utc_now
from src.mk_common.enums import BidStatus, ListingAction, ListingStatus
from src.mk_common.errors import (
    ForbiddenError,
    InvalidListingError,
    InvalidListingTransitionError,
    ListingNotFoundError,
)
from src.mk_common.id_generator import generate_id
from src.mk_common.locks import KeyedLockRegistry
from src.mk_common.money import Money
from src.mk_listing.domain.models import Listing, ListingTransition
from src.mk_listing.domain.repository import ListingRepositoryProtocol
from src.mk_listing.domain.state_machine import apply_transition
from src.mk_listing.infrastructure.persistence import ListingRepository

logger = logging.getLogger(__name__)


def ensure_can_manage(listing: Listing, actor_id: str, is_admin: bool) -> None:
    if not is_admin and listing.seller_id != actor_id:
        raise ForbiddenError("Only the seller or an admin can manage this listing")


class ListingService:
    def __init__(
        self,
        repo: ListingRepositoryProtocol | None = None,
        bid_repo: BidRepositoryProtocol | None = None,
        locks: KeyedLockRegistry | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._repo: ListingRepositoryProtocol = repo or ListingRepository()
        self._bids: BidRepositoryProtocol = bid_repo or BidRepository()
        self._locks = locks if locks is not None else KeyedLockRegistry()
        self._clock = clock

    @property
    def repo(self) -> ListingRepositoryProtocol:
        return self._repo

    async def create_listing(
        self,
        db: AsyncSession,
        seller_id: str,
        title: str,
        price_cents: int,
        quantity: int,
        is_auction: bool = False,
        auction_ends_at: datetime | None = None,
        category_id: str | None = None,
        shipping_cents: int | None = None,
        currency: str = "USD",
    ) -> Listing:
        if not title.strip():
            raise InvalidListingError("title must not be empty")
        if price_cents <= 0:
            raise InvalidListingError("price must be greater than 0")
        if quantity < 1:
            raise InvalidListingError("quantity must be at least 1")
        if shipping_cents is not None and shipping_cents < 0:
            raise InvalidListingError("shipping cost must not be negative")
        if is_auction:
            if quantity != 1:
                raise InvalidListingError("auction listings have a quantity of exactly 1")
            if auction_ends_at is None:
                raise InvalidListingError("auction end time is required")
        elif auction_ends_at is not None:
            raise InvalidListingError("only auctions have an end time")

        now = self._clock()
        listing = Listing(
            id=generate_id(),
            seller_id=seller_id,
            title=title.strip(),
            category_id=category_id,
            price=Money(price_cents, currency),
            shipping=Money(shipping_cents, currency) if shipping_cents is not None else None,
            is_auction=is_auction,
            auction_ends_at=ensure_utc(auction_ends_at) if auction_ends_at else None,
            status=ListingStatus.DRAFT.value,
            total_quantity=quantity,
            created_at=now,
            updated_at=now,
        )
        await self._repo.insert(listing, db)
        logger.info("Listing %s created by seller %s (auction=%s)", listing.id, seller_id, is_auction)
        return listing

    async def get_listing(self, db: AsyncSession, listing_id: str) -> Listing:
        listing = await self._repo.get_by_id(listing_id, db)
        if listing is None or listing.is_deleted:
            raise ListingNotFoundError(listing_id)
        return listing

    async def load_for_update(self, db: AsyncSession, listing_id: str) -> Listing:
        """Row-lock the listing; callers must already hold its keyed lock."""
        listing = await self._repo.get_for_update(listing_id, db)
        if listing is None or listing.is_deleted:
            raise ListingNotFoundError(listing_id)
        return listing

    async def transition(
        self,
        db: AsyncSession,
        listing: Listing,
        action: ListingAction,
        actor_id: str | None = None,
        note: str | None = None,
    ) -> ListingTransition:
        """Apply one state-machine step and persist it with its audit row.

        The caller holds the listing lock and an open savepoint.
        """
        has_order = winner_pending = False
        if action is ListingAction.CANCEL and listing.status == ListingStatus.CLOSED:
            has_order = await self._repo.has_order(listing.id, db)
            bids = await self._bids.list_by_listing(listing.id, db)
            winner_pending = any(b.status == BidStatus.WON for b in bids)
        record = apply_transition(
            listing,
            action,
            self._clock(),
            actor_id=actor_id,
            note=note,
            has_order=has_order,
            winner_pending=winner_pending,
        )
        await self._repo.update(listing, db)
        await self._repo.append_transition(record, db)
        logger.info(
            "Listing %s: %s -> %s (%s)",
            listing.id, record.from_status, record.to_status, record.action,
        )
        return record

    async def activate_listing(
        self, db: AsyncSession, listing_id: str, actor_id: str, is_admin: bool = False
    ) -> Listing:
        async with self._locks.hold(listing_id):
            async with db.begin_nested():
                listing = await self.load_for_update(db, listing_id)
                ensure_can_manage(listing, actor_id, is_admin)
                await self.transition(db, listing, ListingAction.ACTIVATE, actor_id)
        return listing

    async def cancel_listing(
        self,
        db: AsyncSession,
        listing_id: str,
        actor_id: str,
        is_admin: bool = False,
        note: str | None = None,
    ) -> Listing:
        async with self._locks.hold(listing_id):
            async with db.begin_nested():
                listing = await self.load_for_update(db, listing_id)
                ensure_can_manage(listing, actor_id, is_admin)
                await self._cancel_locked(db, listing, actor_id, note)
        return listing

    async def cancel_defaulted_auction(
        self,
        db: AsyncSession,
        listing_id: str,
        actor_id: str,
        is_admin: bool = False,
        note: str | None = None,
    ) -> Listing:
        """closed -> cancelled after the winner failed to pay.

        Admin only. The won bid is demoted to lost so nothing is left to settle.
        """
        if not is_admin:
            raise ForbiddenError("Admin account required")
        async with self._locks.hold(listing_id):
            async with db.begin_nested():
                listing = await self.load_for_update(db, listing_id)
                if listing.status != ListingStatus.CLOSED:
                    raise InvalidListingTransitionError(
                        listing.id, listing.status, ListingAction.CANCEL.value,
                        "only a closed auction can record a defaulted winner",
                    )
                bids = await self._bids.list_by_listing(listing.id, db)
                defaulted = [b for b in bids if b.status == BidStatus.WON]
                for bid in defaulted:
                    bid.status = BidStatus.LOST.value
                    await self._bids.update_status(bid, db)
                await self.transition(
                    db, listing, ListingAction.CANCEL, actor_id, note or "winner defaulted"
                )
        logger.info(
            "Auction %s cancelled after winner default (%d bid(s) demoted)",
            listing_id, len(defaulted),
        )
        return listing

    async def delete_listing(
        self, db: AsyncSession, listing_id: str, actor_id: str, is_admin: bool = False
    ) -> Listing:
        """Soft delete. Draft and active listings are cancelled first."""
        async with self._locks.hold(listing_id):
            async with db.begin_nested():
                listing = await self.load_for_update(db, listing_id)
                ensure_can_manage(listing, actor_id, is_admin)
                if listing.status in (ListingStatus.DRAFT, ListingStatus.ACTIVE):
                    await self._cancel_locked(db, listing, actor_id, "deleted")
                listing.deleted_at = self._clock()
                await self._repo.update(listing, db)
        logger.info("Listing %s deleted by %s", listing_id, actor_id)
        return listing

    async def list_transitions(
        self, db: AsyncSession, listing_id: str, actor_id: str, is_admin: bool = False
    ) -> list[ListingTransition]:
        listing = await self._repo.get_by_id(listing_id, db)
        if listing is None:
            raise ListingNotFoundError(listing_id)
        ensure_can_manage(listing, actor_id, is_admin)
        return await self._repo.list_transitions(listing_id, db)

    async def _cancel_locked(
        self, db: AsyncSession, listing: Listing, actor_id: str | None, note: str | None
    ) -> None:
        await self.transition(db, listing, ListingAction.CANCEL, actor_id, note)
        if listing.is_auction:
            lost = await self._bids.mark_open_bids_lost(listing.id, db)
            if lost:
                logger.info("Listing %s cancelled with %d open bids marked lost", listing.id, lost)
