"""Pydantic schemas for mk_listing API requests/responses."""

from datetime import datetime

from pydantic import BaseModel, Field

from src.mk_listing.domain.models import Listing, ListingTransition


class CreateListingRequest(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    price_cents: int = Field(..., gt=0, description="Unit price, or starting price for auctions")
    quantity: int = Field(1, ge=1)
    is_auction: bool = False
    auction_ends_at: datetime | None = None
    category_id: str | None = None
    shipping_cents: int | None = Field(None, ge=0, description="Per-item shipping; null = default")


class CancelListingRequest(BaseModel):
    note: str | None = Field(None, max_length=500)


class ListingResponse(BaseModel):
    id: str
    seller_id: str
    title: str
    category_id: str | None
    currency: str
    price_cents: int
    price_display: str
    shipping_cents: int | None
    is_auction: bool
    auction_ends_at: datetime | None
    status: str
    total_quantity: int
    sold_quantity: int
    created_at: datetime | None
    updated_at: datetime | None

    @classmethod
    def from_domain(cls, listing: Listing) -> "ListingResponse":
        return cls(
            id=listing.id,
            seller_id=listing.seller_id,
            title=listing.title,
            category_id=listing.category_id,
            currency=listing.currency,
            price_cents=listing.price.cents,
            price_display=listing.price.display(),
            shipping_cents=listing.shipping.cents if listing.shipping else None,
            is_auction=listing.is_auction,
            auction_ends_at=listing.auction_ends_at,
            status=listing.status,
            total_quantity=listing.total_quantity,
            sold_quantity=listing.sold_quantity,
            created_at=listing.created_at,
            updated_at=listing.updated_at,
        )


class TransitionResponse(BaseModel):
    id: int | None
    from_status: str
    to_status: str
    action: str
    actor_id: str | None
    note: str | None
    created_at: datetime

    @classmethod
    def from_domain(cls, t: ListingTransition) -> "TransitionResponse":
        return cls(
            id=t.id,
            from_status=t.from_status,
            to_status=t.to_status,
            action=t.action,
            actor_id=t.actor_id,
            note=t.note,
            created_at=t.created_at,
        )
