"""mk_listing REST endpoints.

POST   /listings                         create a draft listing (seller)
GET    /listings/{listing_id}            detail (closes a due auction first)
POST   /listings/{listing_id}/activate   draft → active
POST   /listings/{listing_id}/cancel     → cancelled
POST   /listings/{listing_id}/default-winner closed auction → cancelled (admin)
DELETE /listings/{listing_id}            soft delete
GET    /listings/{listing_id}/transitions audit log (seller/admin)
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import settings
from src.container import ServiceContainer, get_container
from src.mk_common.database import get_db_session
from src.mk_common.response import ApiResponse, success_response
from src.mk_common.transaction import run_in_transaction
from src.mk_gateway.auth.dependencies import (
    CurrentUser,
    get_current_user,
    require_admin,
    require_seller,
)
from src.mk_listing.application.schemas import (
    CancelListingRequest,
    CreateListingRequest,
    ListingResponse,
    TransitionResponse,
)
from src.mk_listing.domain.models import Listing

router = APIRouter(prefix="/listings", tags=["listings"])


@router.post("", status_code=201)
async def create_listing(
    req: CreateListingRequest,
    request: Request,
    current_user: Annotated[CurrentUser, Depends(require_seller)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    container: Annotated[ServiceContainer, Depends(get_container)],
) -> ApiResponse:
    listing = await run_in_transaction(
        db,
        lambda: container.listings.create_listing(
            db,
            seller_id=current_user.id,
            title=req.title,
            price_cents=req.price_cents,
            quantity=req.quantity,
            is_auction=req.is_auction,
            auction_ends_at=req.auction_ends_at,
            category_id=req.category_id,
            shipping_cents=req.shipping_cents,
            currency=settings.CURRENCY,
        ),
    )
    return success_response(ListingResponse.from_domain(listing).model_dump(), request)


@router.get("/{listing_id}")
async def get_listing(
    listing_id: str,
    request: Request,
    current_user: Annotated[CurrentUser, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    container: Annotated[ServiceContainer, Depends(get_container)],
) -> ApiResponse:
    async def _read() -> Listing:
        await container.bids.close_if_due(db, listing_id)
        return await container.listings.get_listing(db, listing_id)

    listing = await run_in_transaction(db, _read)
    return success_response(ListingResponse.from_domain(listing).model_dump(), request)


@router.post("/{listing_id}/activate")
async def activate_listing(
    listing_id: str,
    request: Request,
    current_user: Annotated[CurrentUser, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    container: Annotated[ServiceContainer, Depends(get_container)],
) -> ApiResponse:
    listing = await run_in_transaction(
        db,
        lambda: container.listings.activate_listing(
            db, listing_id, current_user.id, current_user.is_admin
        ),
    )
    return success_response(ListingResponse.from_domain(listing).model_dump(), request)


@router.post("/{listing_id}/cancel")
async def cancel_listing(
    listing_id: str,
    request: Request,
    current_user: Annotated[CurrentUser, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    container: Annotated[ServiceContainer, Depends(get_container)],
    req: CancelListingRequest | None = None,
) -> ApiResponse:
    note = req.note if req else None
    listing = await run_in_transaction(
        db,
        lambda: container.listings.cancel_listing(
            db, listing_id, current_user.id, current_user.is_admin, note
        ),
    )
    return success_response(ListingResponse.from_domain(listing).model_dump(), request)


@router.post("/{listing_id}/default-winner")
async def record_winner_default(
    listing_id: str,
    request: Request,
    current_user: Annotated[CurrentUser, Depends(require_admin)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    container: Annotated[ServiceContainer, Depends(get_container)],
    req: CancelListingRequest | None = None,
) -> ApiResponse:
    note = req.note if req else None
    listing = await run_in_transaction(
        db,
        lambda: container.listings.cancel_defaulted_auction(
            db, listing_id, current_user.id, current_user.is_admin, note
        ),
    )
    return success_response(ListingResponse.from_domain(listing).model_dump(), request)


@router.delete("/{listing_id}")
async def delete_listing(
    listing_id: str,
    request: Request,
    current_user: Annotated[CurrentUser, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    container: Annotated[ServiceContainer, Depends(get_container)],
) -> ApiResponse:
    listing = await run_in_transaction(
        db,
        lambda: container.listings.delete_listing(
            db, listing_id, current_user.id, current_user.is_admin
        ),
    )
    return success_response({"id": listing.id, "status": listing.status, "deleted": True}, request)


@router.get("/{listing_id}/transitions")
async def list_transitions(
    listing_id: str,
    request: Request,
    current_user: Annotated[CurrentUser, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    container: Annotated[ServiceContainer, Depends(get_container)],
) -> ApiResponse:
    transitions = await container.listings.list_transitions(
        db, listing_id, current_user.id, current_user.is_admin
    )
    return success_response(
        {"items": [TransitionResponse.from_domain(t).model_dump() for t in transitions]},
        request,
    )
