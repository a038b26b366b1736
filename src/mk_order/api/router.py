"""mk_order REST endpoints.

POST /checkout                           settle a cart of reservations into an order
POST /bids/{bid_id}/settle               settle a won auction into an order
GET  /orders                             caller's orders (buyer)
GET  /orders/seller                      orders containing the caller's listings
GET  /orders/{order_id}
POST /orders/{order_id}/status           seller/admin status update
POST /orders/{order_id}/cancel           buyer cancellation
POST /orders/{order_id}/refund           admin refund
"""

from typing import Annotated, Any

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.container import ServiceContainer, get_container
from src.mk_common.database import get_db_session
from src.mk_common.enums import OrderStatus
from src.mk_common.response import ApiResponse, success_response
from src.mk_common.transaction import run_in_transaction
from src.mk_gateway.auth.dependencies import CurrentUser, get_current_user
from src.mk_order.application.schemas import (
    CancelOrderRequest,
    CheckoutRequest,
    OrderListResponse,
    OrderResponse,
    RefundOrderRequest,
    SettleBidRequest,
    UpdateStatusRequest,
)
from src.mk_order.domain.models import Order

router = APIRouter(tags=["orders"])


def _list_response(orders: list[Order], next_cursor: str | None) -> dict[str, Any]:
    return OrderListResponse(
        items=[OrderResponse.from_domain(o) for o in orders],
        next_cursor=next_cursor,
        has_more=next_cursor is not None,
    ).model_dump()


@router.post("/checkout", status_code=201)
async def checkout(
    req: CheckoutRequest,
    request: Request,
    current_user: Annotated[CurrentUser, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    container: Annotated[ServiceContainer, Depends(get_container)],
) -> ApiResponse:
    order = await run_in_transaction(
        db,
        lambda: container.settlement.settle_from_checkout(
            db,
            buyer_id=current_user.id,
            cart_items=[item.to_domain() for item in req.items],
            shipping_address=req.shipping_address.to_domain(),
            payment_method=req.payment_method,
            coupon_code=req.coupon_code,
        ),
    )
    return success_response(OrderResponse.from_domain(order).model_dump(), request)


@router.post("/bids/{bid_id}/settle", status_code=201)
async def settle_bid(
    bid_id: str,
    req: SettleBidRequest,
    request: Request,
    current_user: Annotated[CurrentUser, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    container: Annotated[ServiceContainer, Depends(get_container)],
) -> ApiResponse:
    order = await run_in_transaction(
        db,
        lambda: container.settlement.settle_from_auction_win(
            db,
            bid_id,
            payment_method=req.payment_method,
            shipping_address=req.shipping_address.to_domain() if req.shipping_address else None,
            actor_id=current_user.id,
            is_admin=current_user.is_admin,
        ),
    )
    return success_response(OrderResponse.from_domain(order).model_dump(), request)


@router.get("/orders")
async def list_orders(
    request: Request,
    current_user: Annotated[CurrentUser, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    container: Annotated[ServiceContainer, Depends(get_container)],
    status: str | None = Query(None, description="Filter by order status"),
    limit: int = Query(20, ge=1, le=100, description="Items per page"),
    cursor: str | None = Query(None, description="Pagination cursor (order ID)"),
) -> ApiResponse:
    orders, next_cursor = await container.orders.list_orders(
        db, current_user.id, status, limit, cursor
    )
    return success_response(_list_response(orders, next_cursor), request)


@router.get("/orders/seller")
async def list_seller_orders(
    request: Request,
    current_user: Annotated[CurrentUser, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    container: Annotated[ServiceContainer, Depends(get_container)],
    status: str | None = Query(None, description="Filter by order status"),
    limit: int = Query(20, ge=1, le=100, description="Items per page"),
    cursor: str | None = Query(None, description="Pagination cursor (order ID)"),
) -> ApiResponse:
    orders, next_cursor = await container.orders.list_seller_orders(
        db, current_user.id, status, limit, cursor
    )
    return success_response(_list_response(orders, next_cursor), request)


@router.get("/orders/{order_id}")
async def get_order(
    order_id: str,
    request: Request,
    current_user: Annotated[CurrentUser, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    container: Annotated[ServiceContainer, Depends(get_container)],
) -> ApiResponse:
    order = await container.orders.get_order(
        db, order_id, current_user.id, current_user.is_admin
    )
    return success_response(OrderResponse.from_domain(order).model_dump(), request)


@router.post("/orders/{order_id}/status")
async def update_status(
    order_id: str,
    req: UpdateStatusRequest,
    request: Request,
    current_user: Annotated[CurrentUser, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    container: Annotated[ServiceContainer, Depends(get_container)],
) -> ApiResponse:
    order = await run_in_transaction(
        db,
        lambda: container.orders.update_status(
            db,
            order_id,
            OrderStatus(req.status),
            current_user.id,
            current_user.is_admin,
            req.note,
        ),
    )
    return success_response(OrderResponse.from_domain(order).model_dump(), request)


@router.post("/orders/{order_id}/cancel")
async def cancel_order(
    order_id: str,
    request: Request,
    current_user: Annotated[CurrentUser, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    container: Annotated[ServiceContainer, Depends(get_container)],
    req: CancelOrderRequest | None = None,
) -> ApiResponse:
    order = await run_in_transaction(
        db,
        lambda: container.orders.cancel_order(
            db, order_id, current_user.id, current_user.is_admin, req.reason if req else None
        ),
    )
    return success_response(OrderResponse.from_domain(order).model_dump(), request)


@router.post("/orders/{order_id}/refund")
async def refund_order(
    order_id: str,
    req: RefundOrderRequest,
    request: Request,
    current_user: Annotated[CurrentUser, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    container: Annotated[ServiceContainer, Depends(get_container)],
) -> ApiResponse:
    order = await run_in_transaction(
        db,
        lambda: container.orders.refund_order(
            db,
            order_id,
            current_user.id,
            current_user.is_admin,
            amount_cents=req.amount_cents,
            note=req.note,
        ),
    )
    return success_response(OrderResponse.from_domain(order).model_dump(), request)
