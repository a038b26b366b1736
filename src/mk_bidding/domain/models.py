"""Bid domain model: pure dataclass, no SQLAlchemy dependency."""
from dataclasses import dataclass
from datetime import datetime

from src.mk_common.money import Money


@dataclass
class Bid:
    id: str
    listing_id: str
    bidder_id: str
    amount: Money
    sequence: int  # per-listing, starts at 1, breaks amount ties
    status: str  # BidStatus value
    created_at: datetime
    updated_at: datetime | None = None

    @property
    def rank(self) -> tuple[int, int]:
        return (self.amount.cents, self.sequence)


@dataclass
class AuctionCloseResult:
    listing_id: str
    status: str  # listing status after the call
    winner: Bid | None
    closed_now: bool  # False when the auction had already been closed
