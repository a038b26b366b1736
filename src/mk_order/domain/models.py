"""Order domain models: pure dataclasses, no SQLAlchemy dependency."""
from dataclasses import dataclass, field
from datetime import datetime

from src.mk_common.money import Money


@dataclass(frozen=True)
class ShippingAddress:
    full_name: str
    phone: str
    street: str
    city: str
    state: str
    zip_code: str
    country: str


@dataclass(frozen=True)
class CartItem:
    listing_id: str
    quantity: int
    reservation_id: str


@dataclass(frozen=True)
class OrderLine:
    """Immutable snapshot of what was bought and at what price."""

    listing_id: str
    seller_id: str
    title: str
    quantity: int
    unit_price: Money
    shipping: Money | None = None  # per item; None = policy default
    category_id: str | None = None

    @property
    def line_total(self) -> Money:
        return self.unit_price.times(self.quantity)


@dataclass(frozen=True)
class PriceBreakdown:
    subtotal: Money
    discount: Money
    tax: Money
    shipping: Money
    total: Money


@dataclass
class StatusHistoryEntry:
    status: str
    created_at: datetime
    note: str | None = None
    actor_id: str | None = None  # None = system


@dataclass
class Order:
    id: str
    order_number: str
    buyer_id: str
    lines: list[OrderLine]
    breakdown: PriceBreakdown
    status: str  # OrderStatus value
    payment_method: str  # PaymentMethod value
    created_at: datetime
    shipping_address: ShippingAddress | None = None
    coupon_id: str | None = None
    coupon_code: str | None = None
    source_bid_id: str | None = None
    refunded_amount: Money | None = None
    history: list[StatusHistoryEntry] = field(default_factory=list)
    updated_at: datetime | None = None

    @property
    def currency(self) -> str:
        return self.breakdown.total.currency

    @property
    def seller_ids(self) -> set[str]:
        return {line.seller_id for line in self.lines}
