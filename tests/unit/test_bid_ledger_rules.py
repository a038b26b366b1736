"""Tests for the pure bid ledger rules: validation, winner, status projection."""
from datetime import UTC, datetime, timedelta

import pytest

from src.mk_bidding.domain.ledger import (
    close_outcome,
    current_winner,
    reevaluate,
    validate_new_bid,
)
from src.mk_bidding.domain.models import Bid
from src.mk_common.errors import (
    BidTooLowError,
    ListingNotActiveError,
    NotAnAuctionError,
    SelfBidError,
)
from src.mk_common.money import Money
from src.mk_listing.domain.models import Listing

NOW = datetime(2026, 3, 2, 12, 0, tzinfo=UTC)
ENDS = NOW + timedelta(hours=1)


def _make_auction(**kwargs) -> Listing:
    defaults = dict(
        id="A-1", seller_id="seller-1", title="Camera", price=Money(1000),
        is_auction=True, status="active", total_quantity=1, auction_ends_at=ENDS,
    )
    defaults.update(kwargs)
    return Listing(**defaults)


def _bid(seq: int, cents: int, bidder: str = "b1", status: str = "outbid") -> Bid:
    return Bid(
        id=f"B-{seq}", listing_id="A-1", bidder_id=bidder, amount=Money(cents),
        sequence=seq, status=status, created_at=NOW,
    )


class TestCurrentWinner:
    def test_highest_amount_wins(self) -> None:
        bids = [_bid(1, 1000), _bid(2, 1200), _bid(3, 1100)]
        assert current_winner(bids).id == "B-2"

    def test_tie_broken_by_later_sequence(self) -> None:
        bids = [_bid(1, 1200), _bid(2, 1200)]
        assert current_winner(bids).id == "B-2"

    def test_cancelled_bids_ignored(self) -> None:
        bids = [_bid(1, 1000), _bid(2, 1500, status="cancelled")]
        assert current_winner(bids).id == "B-1"

    def test_no_bids(self) -> None:
        assert current_winner([]) is None
        assert current_winner([_bid(1, 1000, status="cancelled")]) is None


class TestValidateNewBid:
    def test_first_bid_at_starting_price_accepted(self) -> None:
        validate_new_bid(_make_auction(), "b1", Money(1000), [], NOW)

    def test_first_bid_below_starting_price(self) -> None:
        with pytest.raises(BidTooLowError, match="starting price"):
            validate_new_bid(_make_auction(), "b1", Money(999), [], NOW)

    def test_must_exceed_highest(self) -> None:
        bids = [_bid(1, 1200, status="active")]
        with pytest.raises(BidTooLowError, match="exceed"):
            validate_new_bid(_make_auction(), "b2", Money(1200), bids, NOW)
        validate_new_bid(_make_auction(), "b2", Money(1201), bids, NOW)

    def test_retracted_high_bid_does_not_block(self) -> None:
        bids = [_bid(1, 1100), _bid(2, 5000, status="cancelled")]
        validate_new_bid(_make_auction(), "b3", Money(1200), bids, NOW)

    def test_fixed_price_listing(self) -> None:
        with pytest.raises(NotAnAuctionError):
            validate_new_bid(_make_auction(is_auction=False), "b1", Money(5000), [], NOW)

    @pytest.mark.parametrize("status", ["draft", "closed", "sold", "cancelled"])
    def test_listing_not_active(self, status: str) -> None:
        with pytest.raises(ListingNotActiveError):
            validate_new_bid(_make_auction(status=status), "b1", Money(5000), [], NOW)

    def test_bid_at_end_instant_accepted(self) -> None:
        validate_new_bid(_make_auction(), "b1", Money(1000), [], ENDS)

    def test_bid_after_end_rejected(self) -> None:
        with pytest.raises(ListingNotActiveError, match="ended"):
            validate_new_bid(_make_auction(), "b1", Money(1000), [], ENDS + timedelta(seconds=1))

    def test_seller_cannot_bid(self) -> None:
        with pytest.raises(SelfBidError):
            validate_new_bid(_make_auction(), "seller-1", Money(5000), [], NOW)

    def test_not_active_reported_before_self_bid(self) -> None:
        with pytest.raises(ListingNotActiveError):
            validate_new_bid(_make_auction(status="closed"), "seller-1", Money(1), [], NOW)


class TestStatusProjection:
    def test_reevaluate_moves_active_marker(self) -> None:
        old = _bid(1, 1000, status="active")
        new = _bid(2, 1200, bidder="b2", status="active")
        changed = reevaluate([old, new])
        assert old.status == "outbid"
        assert new.status == "active"
        assert changed == [old]

    def test_reevaluate_after_retraction_restores_previous(self) -> None:
        first = _bid(1, 1000)
        top = _bid(2, 1200, status="cancelled")
        changed = reevaluate([first, top])
        assert first.status == "active"
        assert changed == [first]

    def test_close_outcome(self) -> None:
        bids = [_bid(1, 1000), _bid(2, 1200, status="active"), _bid(3, 1500, status="cancelled")]
        winner, changed = close_outcome(bids)
        assert winner.id == "B-2"
        assert [b.status for b in bids] == ["lost", "won", "cancelled"]
        assert len(changed) == 2

    def test_close_outcome_without_bids(self) -> None:
        assert close_outcome([]) == (None, [])
