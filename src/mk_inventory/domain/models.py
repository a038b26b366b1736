"""Inventory domain models: pure dataclasses, no SQLAlchemy dependency."""
from dataclasses import dataclass
from datetime import datetime

from src.mk_common.money import Money


@dataclass
class Reservation:
    """A time-boxed hold on listing stock.

    The listing fields are snapshots taken at reserve time; checkout prices
    the order from them, not from the live listing.
    """

    id: str
    listing_id: str
    holder_id: str  # carts are per buyer, so this is the buyer id
    quantity: int
    unit_price: Money
    seller_id: str
    title: str
    expires_at: datetime
    created_at: datetime
    shipping: Money | None = None
    category_id: str | None = None

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at


@dataclass(frozen=True)
class StockLevel:
    listing_id: str
    total: int
    sold: int
    reserved: int  # unexpired reservations only

    @property
    def available(self) -> int:
        return max(self.total - self.sold - self.reserved, 0)
