"""mk_coupon REST endpoints.

POST /coupons                            create a coupon (seller)
GET  /coupons/{code}/preview             evaluate a coupon against a cart total
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import settings
from src.container import ServiceContainer, get_container
from src.mk_common.database import get_db_session
from src.mk_common.money import Money
from src.mk_common.response import ApiResponse, success_response
from src.mk_common.transaction import run_in_transaction
from src.mk_coupon.application.schemas import (
    CouponPreviewResponse,
    CouponResponse,
    CreateCouponRequest,
)
from src.mk_gateway.auth.dependencies import CurrentUser, get_current_user, require_seller

router = APIRouter(prefix="/coupons", tags=["coupons"])


@router.post("", status_code=201)
async def create_coupon(
    req: CreateCouponRequest,
    request: Request,
    current_user: Annotated[CurrentUser, Depends(require_seller)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    container: Annotated[ServiceContainer, Depends(get_container)],
) -> ApiResponse:
    coupon = await run_in_transaction(
        db,
        lambda: container.coupons.create_coupon(
            db,
            seller_id=current_user.id,
            code=req.code,
            discount_type=req.discount_type,
            discount_value=req.discount_value,
            starts_at=req.starts_at,
            ends_at=req.ends_at,
            description=req.description,
            max_discount_cents=req.max_discount_cents,
            min_purchase_cents=req.min_purchase_cents,
            usage_cap=req.usage_cap,
            per_user_limit=req.per_user_limit,
            applicable_product_ids=req.applicable_product_ids,
            applicable_category_ids=req.applicable_category_ids,
            currency=settings.CURRENCY,
        ),
    )
    return success_response(CouponResponse.from_domain(coupon).model_dump(), request)


@router.get("/{code}/preview")
async def preview_coupon(
    code: str,
    request: Request,
    current_user: Annotated[CurrentUser, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    container: Annotated[ServiceContainer, Depends(get_container)],
    cart_total_cents: int = Query(..., ge=0),
    product_ids: list[str] | None = Query(None),
    category_ids: list[str] | None = Query(None),
) -> ApiResponse:
    cart_total = Money(cart_total_cents, settings.CURRENCY)
    coupon, discount = await container.coupons.preview(
        db, code, cart_total, product_ids or [], category_ids or [], user_id=current_user.id
    )
    return success_response(
        CouponPreviewResponse.build(coupon, cart_total, discount).model_dump(), request
    )
