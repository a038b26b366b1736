# src/mk_order/infrastructure/persistence.py
"""OrderRepository: raw SQL persistence for orders, order_items and
order_status_history."""
import json
from collections import defaultdict
from typing import Any

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from src.mk_common.money import Money
from src.mk_order.domain.models import (
    Order,
    OrderLine,
    PriceBreakdown,
    ShippingAddress,
    StatusHistoryEntry,
)

# ---------------------------------------------------------------------------
# SQL statements
# ---------------------------------------------------------------------------

_SELECT_COLUMNS = """
    id, order_number, buyer_id, status, payment_method, currency,
    subtotal_cents, discount_cents, tax_cents, shipping_cents, total_cents,
    refunded_cents, coupon_id, coupon_code, source_bid_id, shipping_address,
    created_at, updated_at
"""

_INSERT_ORDER_SQL = text("""
    INSERT INTO orders (id, order_number, buyer_id, status, payment_method, currency,
        subtotal_cents, discount_cents, tax_cents, shipping_cents, total_cents,
        refunded_cents, coupon_id, coupon_code, source_bid_id, shipping_address,
        created_at, updated_at)
    VALUES (:id, :order_number, :buyer_id, :status, :payment_method, :currency,
        :subtotal_cents, :discount_cents, :tax_cents, :shipping_cents, :total_cents,
        NULL, :coupon_id, :coupon_code, :source_bid_id, CAST(:shipping_address AS JSONB),
        :created_at, :created_at)
""")

_INSERT_ITEM_SQL = text("""
    INSERT INTO order_items (order_id, listing_id, seller_id, title, category_id,
        quantity, unit_price_cents, shipping_cents)
    VALUES (:order_id, :listing_id, :seller_id, :title, :category_id,
        :quantity, :unit_price_cents, :shipping_cents)
""")

_INSERT_HISTORY_SQL = text("""
    INSERT INTO order_status_history (order_id, status, note, actor_id, created_at)
    VALUES (:order_id, :status, :note, :actor_id, :created_at)
""")

_GET_ORDER_SQL = text(f"SELECT {_SELECT_COLUMNS} FROM orders WHERE id = :id")

_GET_ORDER_FOR_UPDATE_SQL = text(f"SELECT {_SELECT_COLUMNS} FROM orders WHERE id = :id FOR UPDATE")

_EXISTS_FOR_BID_SQL = text("""
    SELECT EXISTS (SELECT 1 FROM orders WHERE source_bid_id = :bid_id) AS settled
""")

_LIST_BY_BUYER_SQL = text(f"""
    SELECT {_SELECT_COLUMNS}
    FROM orders
    WHERE buyer_id = :buyer_id
      AND (CAST(:status AS TEXT) IS NULL OR status = :status)
      AND (CAST(:cursor_id AS TEXT) IS NULL OR id < :cursor_id)
    ORDER BY id DESC
    LIMIT :limit
""")

_LIST_BY_SELLER_SQL = text(f"""
    SELECT {_SELECT_COLUMNS}
    FROM orders
    WHERE id IN (SELECT order_id FROM order_items WHERE seller_id = :seller_id)
      AND (CAST(:status AS TEXT) IS NULL OR status = :status)
      AND (CAST(:cursor_id AS TEXT) IS NULL OR id < :cursor_id)
    ORDER BY id DESC
    LIMIT :limit
""")

_ITEMS_FOR_ORDERS_SQL = text("""
    SELECT order_id, listing_id, seller_id, title, category_id,
           quantity, unit_price_cents, shipping_cents
    FROM order_items
    WHERE order_id = ANY(:order_ids)
    ORDER BY id ASC
""")

_HISTORY_FOR_ORDERS_SQL = text("""
    SELECT order_id, status, note, actor_id, created_at
    FROM order_status_history
    WHERE order_id = ANY(:order_ids)
    ORDER BY id ASC
""")

_UPDATE_ORDER_SQL = text("""
    UPDATE orders
    SET status = :status,
        refunded_cents = :refunded_cents,
        updated_at = :updated_at
    WHERE id = :id
""")


# ---------------------------------------------------------------------------
# Row mappers
# ---------------------------------------------------------------------------


def _address_to_json(address: ShippingAddress | None) -> str | None:
    if address is None:
        return None
    return json.dumps(
        {
            "full_name": address.full_name,
            "phone": address.phone,
            "street": address.street,
            "city": address.city,
            "state": address.state,
            "zip_code": address.zip_code,
            "country": address.country,
        }
    )


def _address_from_row(value: Any) -> ShippingAddress | None:
    if value is None:
        return None
    data = json.loads(value) if isinstance(value, str) else value
    return ShippingAddress(**data)


def _row_to_line(row: Any, currency: str) -> OrderLine:
    return OrderLine(
        listing_id=row.listing_id,
        seller_id=row.seller_id,
        title=row.title,
        category_id=row.category_id,
        quantity=row.quantity,
        unit_price=Money(row.unit_price_cents, currency),
        shipping=Money(row.shipping_cents, currency) if row.shipping_cents is not None else None,
    )


def _row_to_history(row: Any) -> StatusHistoryEntry:
    return StatusHistoryEntry(
        status=row.status,
        note=row.note,
        actor_id=row.actor_id,
        created_at=row.created_at,
    )


def _row_to_order(row: Any) -> Order:
    currency = row.currency
    return Order(
        id=row.id,
        order_number=row.order_number,
        buyer_id=row.buyer_id,
        lines=[],
        breakdown=PriceBreakdown(
            subtotal=Money(row.subtotal_cents, currency),
            discount=Money(row.discount_cents, currency),
            tax=Money(row.tax_cents, currency),
            shipping=Money(row.shipping_cents, currency),
            total=Money(row.total_cents, currency),
        ),
        status=row.status,
        payment_method=row.payment_method,
        shipping_address=_address_from_row(row.shipping_address),
        coupon_id=row.coupon_id,
        coupon_code=row.coupon_code,
        source_bid_id=row.source_bid_id,
        refunded_amount=(
            Money(row.refunded_cents, currency) if row.refunded_cents is not None else None
        ),
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class OrderRepository:
    """Concrete implementation of OrderRepositoryProtocol using raw SQL."""

    async def insert(self, order: Order, db: AsyncSession) -> None:
        b = order.breakdown
        await db.execute(
            _INSERT_ORDER_SQL,
            {
                "id": order.id,
                "order_number": order.order_number,
                "buyer_id": order.buyer_id,
                "status": order.status,
                "payment_method": order.payment_method,
                "currency": order.currency,
                "subtotal_cents": b.subtotal.cents,
                "discount_cents": b.discount.cents,
                "tax_cents": b.tax.cents,
                "shipping_cents": b.shipping.cents,
                "total_cents": b.total.cents,
                "coupon_id": order.coupon_id,
                "coupon_code": order.coupon_code,
                "source_bid_id": order.source_bid_id,
                "shipping_address": _address_to_json(order.shipping_address),
                "created_at": order.created_at,
            },
        )
        for line in order.lines:
            await db.execute(
                _INSERT_ITEM_SQL,
                {
                    "order_id": order.id,
                    "listing_id": line.listing_id,
                    "seller_id": line.seller_id,
                    "title": line.title,
                    "category_id": line.category_id,
                    "quantity": line.quantity,
                    "unit_price_cents": line.unit_price.cents,
                    "shipping_cents": line.shipping.cents if line.shipping else None,
                },
            )
        for entry in order.history:
            await self.append_history(order.id, entry, db)

    async def get_by_id(self, order_id: str, db: AsyncSession) -> Order | None:
        row = (await db.execute(_GET_ORDER_SQL, {"id": order_id})).fetchone()
        if row is None:
            return None
        return (await self._hydrate([_row_to_order(row)], db))[0]

    async def get_for_update(self, order_id: str, db: AsyncSession) -> Order | None:
        row = (await db.execute(_GET_ORDER_FOR_UPDATE_SQL, {"id": order_id})).fetchone()
        if row is None:
            return None
        return (await self._hydrate([_row_to_order(row)], db))[0]

    async def exists_for_bid(self, bid_id: str, db: AsyncSession) -> bool:
        result = await db.execute(_EXISTS_FOR_BID_SQL, {"bid_id": bid_id})
        return bool(result.scalar_one())

    async def list_by_buyer(
        self, buyer_id: str, status: str | None, limit: int, cursor_id: str | None, db: AsyncSession
    ) -> list[Order]:
        rows = (
            await db.execute(
                _LIST_BY_BUYER_SQL,
                {"buyer_id": buyer_id, "status": status, "cursor_id": cursor_id, "limit": limit},
            )
        ).fetchall()
        return await self._hydrate([_row_to_order(r) for r in rows], db)

    async def list_by_seller(
        self, seller_id: str, status: str | None, limit: int, cursor_id: str | None, db: AsyncSession
    ) -> list[Order]:
        rows = (
            await db.execute(
                _LIST_BY_SELLER_SQL,
                {"seller_id": seller_id, "status": status, "cursor_id": cursor_id, "limit": limit},
            )
        ).fetchall()
        return await self._hydrate([_row_to_order(r) for r in rows], db)

    async def update(self, order: Order, db: AsyncSession) -> None:
        await db.execute(
            _UPDATE_ORDER_SQL,
            {
                "id": order.id,
                "status": order.status,
                "refunded_cents": order.refunded_amount.cents if order.refunded_amount else None,
                "updated_at": order.updated_at,
            },
        )

    async def append_history(
        self, order_id: str, entry: StatusHistoryEntry, db: AsyncSession
    ) -> None:
        await db.execute(
            _INSERT_HISTORY_SQL,
            {
                "order_id": order_id,
                "status": entry.status,
                "note": entry.note,
                "actor_id": entry.actor_id,
                "created_at": entry.created_at,
            },
        )

    async def _hydrate(self, orders: list[Order], db: AsyncSession) -> list[Order]:
        """Attach lines and history with one query each."""
        if not orders:
            return orders
        ids = [o.id for o in orders]
        by_id = {o.id: o for o in orders}

        lines: dict[str, list[OrderLine]] = defaultdict(list)
        for row in (await db.execute(_ITEMS_FOR_ORDERS_SQL, {"order_ids": ids})).fetchall():
            lines[row.order_id].append(_row_to_line(row, by_id[row.order_id].currency))
        history: dict[str, list[StatusHistoryEntry]] = defaultdict(list)
        for row in (await db.execute(_HISTORY_FOR_ORDERS_SQL, {"order_ids": ids})).fetchall():
            history[row.order_id].append(_row_to_history(row))

        for order in orders:
            order.lines = lines[order.id]
            order.history = history[order.id]
        return orders
