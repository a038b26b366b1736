"""Tests for ListingService over the in-memory repositories."""
from datetime import UTC, datetime, timedelta

import pytest

from src.mk_bidding.domain.models import Bid
from src.mk_common.errors import (
    BidNotWonError,
    ForbiddenError,
    InvalidListingError,
    InvalidListingTransitionError,
    ListingNotFoundError,
)
from src.mk_common.money import Money

NOW = datetime(2026, 3, 2, 12, 0, tzinfo=UTC)  # same instant as the clock fixture


class TestCreateListing:
    @pytest.mark.asyncio
    async def test_creates_draft(self, services, db, state) -> None:
        listing = await services.listings.create_listing(
            db, "seller-1", "  Vintage lamp ", 2500, quantity=3, shipping_cents=400
        )
        assert listing.status == "draft"
        assert listing.title == "Vintage lamp"
        assert listing.shipping == Money(400)
        assert state.listings[listing.id].total_quantity == 3

    @pytest.mark.asyncio
    async def test_creates_auction(self, services, db) -> None:
        ends = NOW + timedelta(days=7)
        listing = await services.listings.create_listing(
            db, "seller-1", "Camera", 500, quantity=1, is_auction=True, auction_ends_at=ends
        )
        assert listing.is_auction
        assert listing.auction_ends_at == ends

    @pytest.mark.parametrize(
        "kwargs",
        [
            dict(title=" ", price_cents=100, quantity=1),
            dict(title="x", price_cents=0, quantity=1),
            dict(title="x", price_cents=100, quantity=0),
            dict(title="x", price_cents=100, quantity=1, shipping_cents=-1),
            dict(title="x", price_cents=100, quantity=2, is_auction=True,
                 auction_ends_at=NOW + timedelta(days=1)),
            dict(title="x", price_cents=100, quantity=1, is_auction=True),
            dict(title="x", price_cents=100, quantity=1, auction_ends_at=NOW),
        ],
    )
    @pytest.mark.asyncio
    async def test_rejects_invalid_input(self, services, db, state, kwargs) -> None:
        with pytest.raises(InvalidListingError):
            await services.listings.create_listing(db, "seller-1", **kwargs)
        assert state.listings == {}


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_activate_records_transition(self, services, db, state, seed_listing) -> None:
        seed_listing("L-1", status="draft")
        listing = await services.listings.activate_listing(db, "L-1", "seller-1")
        assert listing.status == "active"
        assert state.listings["L-1"].version == 1
        [record] = state.transitions
        assert (record.from_status, record.to_status, record.actor_id) == (
            "draft", "active", "seller-1",
        )

    @pytest.mark.asyncio
    async def test_only_owner_or_admin_manages(self, services, db, state, seed_listing) -> None:
        seed_listing("L-1", status="draft")
        with pytest.raises(ForbiddenError):
            await services.listings.activate_listing(db, "L-1", "someone-else")
        assert state.listings["L-1"].status == "draft"
        listing = await services.listings.activate_listing(db, "L-1", "admin-1", is_admin=True)
        assert listing.status == "active"

    @pytest.mark.asyncio
    async def test_cancel_auction_marks_open_bids_lost(
        self, services, db, state, seed_auction
    ) -> None:
        seed_auction("A-1")
        for seq, (bidder, status) in enumerate([("b1", "outbid"), ("b2", "active")], start=1):
            state.bids[f"B-{seq}"] = Bid(
                id=f"B-{seq}", listing_id="A-1", bidder_id=bidder, amount=Money(500 + seq),
                sequence=seq, status=status, created_at=NOW,
            )
        listing = await services.listings.cancel_listing(db, "A-1", "seller-1", note="damaged")
        assert listing.status == "cancelled"
        assert {b.status for b in state.bids.values()} == {"lost"}
        assert state.transitions[-1].note == "damaged"

    @pytest.mark.asyncio
    async def test_cannot_cancel_sold_listing(self, services, db, seed_listing) -> None:
        seed_listing("L-1", status="sold", sold_quantity=5)
        with pytest.raises(InvalidListingTransitionError):
            await services.listings.cancel_listing(db, "L-1", "seller-1")

    @pytest.mark.asyncio
    async def test_delete_cancels_then_hides(self, services, db, state, seed_listing) -> None:
        seed_listing("L-1")
        await services.listings.delete_listing(db, "L-1", "seller-1")
        stored = state.listings["L-1"]
        assert stored.status == "cancelled"
        assert stored.deleted_at == NOW
        with pytest.raises(ListingNotFoundError):
            await services.listings.get_listing(db, "L-1")

    @pytest.mark.asyncio
    async def test_delete_sold_listing_keeps_status(self, services, db, state, seed_listing) -> None:
        seed_listing("L-1", status="sold", sold_quantity=5)
        await services.listings.delete_listing(db, "L-1", "seller-1")
        assert state.listings["L-1"].status == "sold"
        assert state.listings["L-1"].is_deleted

    @pytest.mark.asyncio
    async def test_get_missing_listing(self, services, db) -> None:
        with pytest.raises(ListingNotFoundError):
            await services.listings.get_listing(db, "nope")


class TestClosedAuctionCancel:
    @pytest.mark.asyncio
    async def test_seller_cannot_cancel_with_winner_pending(
        self, services, db, state, clock, seed_auction
    ) -> None:
        seed_auction("A-1")
        bid = await services.bids.submit_bid(db, "A-1", "alice", 1000)
        clock.advance(hours=2)
        await services.bids.close_auction(db, "A-1")

        with pytest.raises(InvalidListingTransitionError, match="winning bid has not defaulted"):
            await services.listings.cancel_listing(db, "A-1", "seller-1")

        assert state.listings["A-1"].status == "closed"
        order = await services.settlement.settle_from_auction_win(db, bid.id, "paypal")
        assert order.buyer_id == "alice"
        assert state.listings["A-1"].status == "sold"

    @pytest.mark.asyncio
    async def test_admin_records_winner_default(
        self, services, db, state, clock, seed_auction
    ) -> None:
        seed_auction("A-1")
        bid = await services.bids.submit_bid(db, "A-1", "alice", 1000)
        clock.advance(hours=2)
        await services.bids.close_auction(db, "A-1")

        listing = await services.listings.cancel_defaulted_auction(
            db, "A-1", "admin-1", is_admin=True
        )

        assert listing.status == "cancelled"
        assert state.bids[bid.id].status == "lost"
        assert state.transitions[-1].note == "winner defaulted"
        with pytest.raises(BidNotWonError):
            await services.settlement.settle_from_auction_win(db, bid.id, "paypal")

    @pytest.mark.asyncio
    async def test_winner_default_is_admin_only(
        self, services, db, clock, seed_auction
    ) -> None:
        seed_auction("A-1")
        await services.bids.submit_bid(db, "A-1", "alice", 1000)
        clock.advance(hours=2)
        await services.bids.close_auction(db, "A-1")
        with pytest.raises(ForbiddenError):
            await services.listings.cancel_defaulted_auction(db, "A-1", "seller-1")

    @pytest.mark.asyncio
    async def test_winner_default_needs_closed_auction(
        self, services, db, seed_auction
    ) -> None:
        seed_auction("A-1")
        with pytest.raises(InvalidListingTransitionError):
            await services.listings.cancel_defaulted_auction(
                db, "A-1", "admin-1", is_admin=True
            )


class TestTransitionLog:
    @pytest.mark.asyncio
    async def test_seller_reads_log(self, services, db, seed_listing) -> None:
        seed_listing("L-1", status="draft")
        await services.listings.activate_listing(db, "L-1", "seller-1")
        await services.listings.cancel_listing(db, "L-1", "seller-1")
        log = await services.listings.list_transitions(db, "L-1", "seller-1")
        assert [t.action for t in log] == ["activate", "cancel"]

    @pytest.mark.asyncio
    async def test_other_users_cannot_read_log(self, services, db, seed_listing) -> None:
        seed_listing("L-1")
        with pytest.raises(ForbiddenError):
            await services.listings.list_transitions(db, "L-1", "buyer-1")
