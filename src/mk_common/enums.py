"""Global enums: must match DB CHECK constraints exactly (see alembic/versions)."""

from enum import Enum


class ListingStatus(str, Enum):
    DRAFT = "draft"
    ACTIVE = "active"
    CLOSED = "closed"
    SOLD = "sold"
    CANCELLED = "cancelled"


class ListingAction(str, Enum):
    """State-machine verbs; recorded in listing_transitions.action."""
    ACTIVATE = "activate"
    CLOSE = "close"
    SELL_OUT = "sell_out"
    SELL = "sell"
    CANCEL = "cancel"


class BidStatus(str, Enum):
    ACTIVE = "active"
    OUTBID = "outbid"
    WON = "won"
    LOST = "lost"
    CANCELLED = "cancelled"


class OrderStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    CONFIRMED = "confirmed"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"


class PaymentMethod(str, Enum):
    PAYPAL = "paypal"
    STRIPE = "stripe"
    COD = "cod"
    BANK_TRANSFER = "bank_transfer"


class DiscountType(str, Enum):
    PERCENTAGE = "percentage"
    FIXED = "fixed"


class UserRole(str, Enum):
    BUYER = "buyer"
    SELLER = "seller"
    ADMIN = "admin"


class EventType(str, Enum):
    BID_PLACED = "BID_PLACED"
    BID_OUTBID = "BID_OUTBID"
    BID_RETRACTED = "BID_RETRACTED"
    AUCTION_CLOSING_SOON = "AUCTION_CLOSING_SOON"
    AUCTION_CLOSED = "AUCTION_CLOSED"
    LISTING_SOLD_OUT = "LISTING_SOLD_OUT"
    ORDER_CREATED = "ORDER_CREATED"
    ORDER_STATUS_CHANGED = "ORDER_STATUS_CHANGED"
