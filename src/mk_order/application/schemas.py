"""Pydantic schemas for mk_order API requests/responses."""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

from src.mk_order.domain.models import (
    CartItem,
    Order,
    OrderLine,
    ShippingAddress,
    StatusHistoryEntry,
)

PaymentMethodLiteral = Literal["paypal", "stripe", "cod", "bank_transfer"]


class ShippingAddressIn(BaseModel):
    full_name: str = Field(..., min_length=1)
    phone: str = Field(..., min_length=1)
    street: str = Field(..., min_length=1)
    city: str = Field(..., min_length=1)
    state: str = Field(..., min_length=1)
    zip_code: str = Field(..., min_length=1)
    country: str = Field(..., min_length=1)

    def to_domain(self) -> ShippingAddress:
        return ShippingAddress(**self.model_dump())


class CartItemIn(BaseModel):
    listing_id: str
    quantity: int = Field(..., ge=1)
    reservation_id: str

    def to_domain(self) -> CartItem:
        return CartItem(
            listing_id=self.listing_id, quantity=self.quantity, reservation_id=self.reservation_id
        )


class CheckoutRequest(BaseModel):
    items: list[CartItemIn]
    shipping_address: ShippingAddressIn
    payment_method: PaymentMethodLiteral
    coupon_code: str | None = Field(None, max_length=50)


class SettleBidRequest(BaseModel):
    payment_method: PaymentMethodLiteral
    shipping_address: ShippingAddressIn | None = None


class UpdateStatusRequest(BaseModel):
    status: Literal["processing", "confirmed", "shipped", "delivered", "cancelled", "refunded"]
    note: str | None = Field(None, max_length=500)


class CancelOrderRequest(BaseModel):
    reason: str | None = Field(None, max_length=500)


class RefundOrderRequest(BaseModel):
    amount_cents: int | None = Field(None, gt=0, description="Defaults to the order total")
    note: str | None = Field(None, max_length=500)


class OrderLineOut(BaseModel):
    listing_id: str
    seller_id: str
    title: str
    category_id: str | None
    quantity: int
    unit_price_cents: int
    shipping_cents: int | None
    line_total_cents: int

    @classmethod
    def from_domain(cls, line: OrderLine) -> "OrderLineOut":
        return cls(
            listing_id=line.listing_id,
            seller_id=line.seller_id,
            title=line.title,
            category_id=line.category_id,
            quantity=line.quantity,
            unit_price_cents=line.unit_price.cents,
            shipping_cents=line.shipping.cents if line.shipping else None,
            line_total_cents=line.line_total.cents,
        )


class StatusHistoryOut(BaseModel):
    status: str
    note: str | None
    actor_id: str | None
    created_at: datetime

    @classmethod
    def from_domain(cls, entry: StatusHistoryEntry) -> "StatusHistoryOut":
        return cls(
            status=entry.status,
            note=entry.note,
            actor_id=entry.actor_id,
            created_at=entry.created_at,
        )


class OrderResponse(BaseModel):
    id: str
    order_number: str
    buyer_id: str
    status: str
    payment_method: str
    currency: str
    items: list[OrderLineOut]
    subtotal_cents: int
    discount_cents: int
    tax_cents: int
    shipping_cents: int
    total_cents: int
    total_display: str
    refunded_cents: int | None
    coupon_code: str | None
    source_bid_id: str | None
    shipping_address: ShippingAddressIn | None
    status_history: list[StatusHistoryOut]
    created_at: datetime
    updated_at: datetime | None

    @classmethod
    def from_domain(cls, order: Order) -> "OrderResponse":
        b = order.breakdown
        address = order.shipping_address
        return cls(
            id=order.id,
            order_number=order.order_number,
            buyer_id=order.buyer_id,
            status=order.status,
            payment_method=order.payment_method,
            currency=order.currency,
            items=[OrderLineOut.from_domain(line) for line in order.lines],
            subtotal_cents=b.subtotal.cents,
            discount_cents=b.discount.cents,
            tax_cents=b.tax.cents,
            shipping_cents=b.shipping.cents,
            total_cents=b.total.cents,
            total_display=b.total.display(),
            refunded_cents=order.refunded_amount.cents if order.refunded_amount else None,
            coupon_code=order.coupon_code,
            source_bid_id=order.source_bid_id,
            shipping_address=(
                ShippingAddressIn(
                    full_name=address.full_name,
                    phone=address.phone,
                    street=address.street,
                    city=address.city,
                    state=address.state,
                    zip_code=address.zip_code,
                    country=address.country,
                )
                if address
                else None
            ),
            status_history=[StatusHistoryOut.from_domain(h) for h in order.history],
            created_at=order.created_at,
            updated_at=order.updated_at,
        )


class OrderListResponse(BaseModel):
    items: list[OrderResponse]
    next_cursor: str | None
    has_more: bool
