"""Pydantic schemas for mk_bidding API requests/responses."""

from datetime import datetime

from pydantic import BaseModel, Field

from src.mk_bidding.domain.models import AuctionCloseResult, Bid


class SubmitBidRequest(BaseModel):
    amount_cents: int = Field(..., gt=0)


class BidResponse(BaseModel):
    id: str
    listing_id: str
    bidder_id: str
    amount_cents: int
    amount_display: str
    currency: str
    sequence: int
    status: str
    created_at: datetime

    @classmethod
    def from_domain(cls, bid: Bid) -> "BidResponse":
        return cls(
            id=bid.id,
            listing_id=bid.listing_id,
            bidder_id=bid.bidder_id,
            amount_cents=bid.amount.cents,
            amount_display=bid.amount.display(),
            currency=bid.amount.currency,
            sequence=bid.sequence,
            status=bid.status,
            created_at=bid.created_at,
        )


class WinnerResponse(BaseModel):
    listing_id: str
    winner: BidResponse | None


class CloseAuctionResponse(BaseModel):
    listing_id: str
    status: str
    closed_now: bool
    winner: BidResponse | None

    @classmethod
    def from_domain(cls, result: AuctionCloseResult) -> "CloseAuctionResponse":
        return cls(
            listing_id=result.listing_id,
            status=result.status,
            closed_now=result.closed_now,
            winner=BidResponse.from_domain(result.winner) if result.winner else None,
        )
