"""Bid ledger rules: pure functions over a listing's bids.

The winner is always derived, never stored: the highest (amount, sequence)
among non-cancelled bids. Statuses are projections of that query:

    active    the current winner while the auction runs
    outbid    a non-winning live bid
    won/lost  terminal, assigned once at close
    cancelled retracted by the bidder; never considered again
"""
from collections.abc import Iterable, Sequence
from datetime import datetime

from src.mk_bidding.domain.models import Bid
from src.mk_common.enums import BidStatus, ListingStatus
from src.mk_common.errors import (
    BidTooLowError,
    ListingNotActiveError,
    NotAnAuctionError,
    SelfBidError,
)
from src.mk_common.money import Money
from src.mk_listing.domain.models import Listing

_LIVE = (BidStatus.ACTIVE, BidStatus.OUTBID)


def current_winner(bids: Iterable[Bid]) -> Bid | None:
    candidates = [b for b in bids if b.status != BidStatus.CANCELLED]
    if not candidates:
        return None
    return max(candidates, key=lambda b: b.rank)


def validate_new_bid(
    listing: Listing, bidder_id: str, amount: Money, bids: Sequence[Bid], now: datetime
) -> None:
    if not listing.is_auction:
        raise NotAnAuctionError(listing.id)
    if listing.status != ListingStatus.ACTIVE:
        raise ListingNotActiveError(listing.id, f"listing is {listing.status}")
    if listing.auction_ended(now):
        raise ListingNotActiveError(listing.id, "auction has ended")
    if bidder_id == listing.seller_id:
        raise SelfBidError()

    highest = current_winner(bids)
    if highest is None:
        if amount < listing.price:
            raise BidTooLowError(amount.cents, None, starting=listing.price.cents)
    elif amount <= highest.amount:
        raise BidTooLowError(amount.cents, highest.amount.cents)


def reevaluate(bids: Sequence[Bid]) -> list[Bid]:
    """Project live statuses from the winner query. Returns the bids that changed."""
    winner = current_winner(bids)
    changed: list[Bid] = []
    for bid in bids:
        if bid.status not in _LIVE:
            continue
        target = BidStatus.ACTIVE if bid is winner else BidStatus.OUTBID
        if bid.status != target:
            bid.status = target.value
            changed.append(bid)
    return changed


def close_outcome(bids: Sequence[Bid]) -> tuple[Bid | None, list[Bid]]:
    """Final statuses at close: winner → won, every other live bid → lost."""
    winner = current_winner(bids)
    changed: list[Bid] = []
    for bid in bids:
        if bid is winner:
            if bid.status != BidStatus.WON:
                bid.status = BidStatus.WON.value
                changed.append(bid)
        elif bid.status in _LIVE:
            bid.status = BidStatus.LOST.value
            changed.append(bid)
    return winner, changed
