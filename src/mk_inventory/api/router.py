"""mk_inventory REST endpoints.

POST /reservations                       hold stock for the caller's cart
POST /reservations/{reservation_id}/release
GET  /listings/{listing_id}/availability total / sold / reserved / available
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.container import ServiceContainer, get_container
from src.mk_common.database import get_db_session
from src.mk_common.response import ApiResponse, success_response
from src.mk_common.transaction import run_in_transaction
from src.mk_gateway.auth.dependencies import CurrentUser, get_current_user
from src.mk_inventory.application.schemas import (
    AvailabilityResponse,
    ReservationResponse,
    ReserveRequest,
)

router = APIRouter(tags=["inventory"])


@router.post("/reservations", status_code=201)
async def reserve(
    req: ReserveRequest,
    request: Request,
    current_user: Annotated[CurrentUser, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    container: Annotated[ServiceContainer, Depends(get_container)],
) -> ApiResponse:
    reservation = await run_in_transaction(
        db,
        lambda: container.inventory.reserve(
            db, req.listing_id, req.quantity, current_user.id, req.ttl_seconds
        ),
    )
    return success_response(ReservationResponse.from_domain(reservation).model_dump(), request)


@router.post("/reservations/{reservation_id}/release")
async def release(
    reservation_id: str,
    request: Request,
    current_user: Annotated[CurrentUser, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    container: Annotated[ServiceContainer, Depends(get_container)],
) -> ApiResponse:
    reservation = await run_in_transaction(
        db,
        lambda: container.inventory.release(
            db, reservation_id, current_user.id, current_user.is_admin
        ),
    )
    return success_response({"id": reservation.id, "released": True}, request)


@router.get("/listings/{listing_id}/availability")
async def availability(
    listing_id: str,
    request: Request,
    current_user: Annotated[CurrentUser, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    container: Annotated[ServiceContainer, Depends(get_container)],
) -> ApiResponse:
    level = await container.inventory.availability(db, listing_id)
    return success_response(AvailabilityResponse.from_domain(level).model_dump(), request)
