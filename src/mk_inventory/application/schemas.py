"""Pydantic schemas for mk_inventory API requests/responses."""

from datetime import datetime

from pydantic import BaseModel, Field

from src.mk_inventory.domain.models import Reservation, StockLevel


class ReserveRequest(BaseModel):
    listing_id: str
    quantity: int = Field(1, ge=1)
    ttl_seconds: int | None = Field(None, ge=30, le=86400)


class ReservationResponse(BaseModel):
    id: str
    listing_id: str
    holder_id: str
    quantity: int
    unit_price_cents: int
    currency: str
    expires_at: datetime
    created_at: datetime

    @classmethod
    def from_domain(cls, r: Reservation) -> "ReservationResponse":
        return cls(
            id=r.id,
            listing_id=r.listing_id,
            holder_id=r.holder_id,
            quantity=r.quantity,
            unit_price_cents=r.unit_price.cents,
            currency=r.unit_price.currency,
            expires_at=r.expires_at,
            created_at=r.created_at,
        )


class AvailabilityResponse(BaseModel):
    listing_id: str
    total: int
    sold: int
    reserved: int
    available: int

    @classmethod
    def from_domain(cls, s: StockLevel) -> "AvailabilityResponse":
        return cls(
            listing_id=s.listing_id,
            total=s.total,
            sold=s.sold,
            reserved=s.reserved,
            available=s.available,
        )
