"""Listing domain models: pure dataclasses, no SQLAlchemy dependency."""
from dataclasses import dataclass
from datetime import datetime

from src.mk_common.money import Money


@dataclass
class Listing:
    id: str
    seller_id: str
    title: str
    price: Money  # starting price for auctions, unit price otherwise
    is_auction: bool
    status: str  # ListingStatus value
    total_quantity: int
    sold_quantity: int = 0
    category_id: str | None = None
    shipping: Money | None = None  # None -> pricing policy default
    auction_ends_at: datetime | None = None
    last_bid_sequence: int = 0
    version: int = 0
    closing_soon_notified_at: datetime | None = None
    deleted_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def currency(self) -> str:
        return self.price.currency

    @property
    def remaining_quantity(self) -> int:
        """Stock not yet sold (reservations are not subtracted here)."""
        return self.total_quantity - self.sold_quantity

    def auction_ended(self, now: datetime) -> bool:
        """Bidding window is over (bids at exactly auction_ends_at still count)."""
        return self.is_auction and self.auction_ends_at is not None and now > self.auction_ends_at

    def auction_due(self, now: datetime) -> bool:
        """The auction may be closed."""
        return self.is_auction and self.auction_ends_at is not None and now >= self.auction_ends_at

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None


@dataclass
class ListingTransition:
    """Append-only audit record of one state-machine step."""

    listing_id: str
    from_status: str
    to_status: str
    action: str
    created_at: datetime
    actor_id: str | None = None  # None = system (scheduler, settlement)
    note: str | None = None
    id: int | None = None  # BIGSERIAL, assigned on insert
