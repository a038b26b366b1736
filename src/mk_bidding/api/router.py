"""mk_bidding REST endpoints.

POST /listings/{listing_id}/bids         submit a bid
GET  /listings/{listing_id}/bids         bid history (sequence order)
GET  /listings/{listing_id}/winner       current highest non-cancelled bid
POST /listings/{listing_id}/close        close an ended auction (idempotent)
POST /bids/{bid_id}/retract              bidder withdraws a live bid

Read endpoints close a due auction before answering.
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.container import ServiceContainer, get_container
from src.mk_bidding.application.schemas import (
    BidResponse,
    CloseAuctionResponse,
    SubmitBidRequest,
    WinnerResponse,
)
from src.mk_bidding.domain.models import Bid
from src.mk_common.database import get_db_session
from src.mk_common.response import ApiResponse, success_response
from src.mk_common.transaction import run_in_transaction
from src.mk_gateway.auth.dependencies import CurrentUser, get_current_user

router = APIRouter(tags=["bids"])


@router.post("/listings/{listing_id}/bids", status_code=201)
async def submit_bid(
    listing_id: str,
    req: SubmitBidRequest,
    request: Request,
    current_user: Annotated[CurrentUser, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    container: Annotated[ServiceContainer, Depends(get_container)],
) -> ApiResponse:
    bid = await run_in_transaction(
        db, lambda: container.bids.submit_bid(db, listing_id, current_user.id, req.amount_cents)
    )
    return success_response(BidResponse.from_domain(bid).model_dump(), request)


@router.get("/listings/{listing_id}/bids")
async def list_bids(
    listing_id: str,
    request: Request,
    current_user: Annotated[CurrentUser, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    container: Annotated[ServiceContainer, Depends(get_container)],
) -> ApiResponse:
    async def _read() -> list[Bid]:
        await container.bids.close_if_due(db, listing_id)
        return await container.bids.list_bids(db, listing_id)

    bids = await run_in_transaction(db, _read)
    return success_response(
        {"items": [BidResponse.from_domain(b).model_dump() for b in bids]}, request
    )


@router.get("/listings/{listing_id}/winner")
async def get_winner(
    listing_id: str,
    request: Request,
    current_user: Annotated[CurrentUser, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    container: Annotated[ServiceContainer, Depends(get_container)],
) -> ApiResponse:
    async def _read() -> Bid | None:
        await container.bids.close_if_due(db, listing_id)
        return await container.bids.current_winner(db, listing_id)

    winner = await run_in_transaction(db, _read)
    data = WinnerResponse(
        listing_id=listing_id,
        winner=BidResponse.from_domain(winner) if winner else None,
    )
    return success_response(data.model_dump(), request)


@router.post("/listings/{listing_id}/close")
async def close_auction(
    listing_id: str,
    request: Request,
    current_user: Annotated[CurrentUser, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    container: Annotated[ServiceContainer, Depends(get_container)],
) -> ApiResponse:
    result = await run_in_transaction(
        db, lambda: container.bids.close_auction(db, listing_id, current_user.id)
    )
    return success_response(CloseAuctionResponse.from_domain(result).model_dump(), request)


@router.post("/bids/{bid_id}/retract")
async def retract_bid(
    bid_id: str,
    request: Request,
    current_user: Annotated[CurrentUser, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    container: Annotated[ServiceContainer, Depends(get_container)],
) -> ApiResponse:
    bid = await run_in_transaction(
        db, lambda: container.bids.retract_bid(db, bid_id, current_user.id)
    )
    return success_response(BidResponse.from_domain(bid).model_dump(), request)
