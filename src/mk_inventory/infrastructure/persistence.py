# src/mk_inventory/infrastructure/persistence.py
"""ReservationRepository: raw SQL persistence implementation."""
from datetime import datetime
from typing import Any

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from src.mk_common.money import Money
from src.mk_inventory.domain.models import Reservation

_COLUMNS = """
    id, listing_id, holder_id, quantity, currency, unit_price_cents, shipping_cents,
    seller_id, title, category_id, expires_at, created_at
"""

_INSERT_SQL = text("""
    INSERT INTO reservations (id, listing_id, holder_id, quantity, currency,
        unit_price_cents, shipping_cents, seller_id, title, category_id,
        expires_at, created_at)
    VALUES (:id, :listing_id, :holder_id, :quantity, :currency,
        :unit_price_cents, :shipping_cents, :seller_id, :title, :category_id,
        :expires_at, :created_at)
""")

_GET_SQL = text(f"SELECT {_COLUMNS} FROM reservations WHERE id = :id")

_GET_FOR_UPDATE_SQL = text(f"SELECT {_COLUMNS} FROM reservations WHERE id = :id FOR UPDATE")

_DELETE_SQL = text("DELETE FROM reservations WHERE id = :id")

_SUM_ACTIVE_SQL = text("""
    SELECT COALESCE(SUM(quantity), 0) AS reserved
    FROM reservations
    WHERE listing_id = :listing_id AND expires_at > :now
""")

_DELETE_EXPIRED_FOR_LISTING_SQL = text("""
    DELETE FROM reservations
    WHERE listing_id = :listing_id AND expires_at <= :now
""")

# Batched so one sweep never holds a long lock on a large backlog.
_DELETE_EXPIRED_SQL = text("""
    DELETE FROM reservations
    WHERE id IN (
        SELECT id FROM reservations
        WHERE expires_at <= :now
        ORDER BY expires_at ASC
        LIMIT :limit
        FOR UPDATE SKIP LOCKED
    )
""")


def _row_to_reservation(row: Any) -> Reservation:
    return Reservation(
        id=row.id,
        listing_id=row.listing_id,
        holder_id=row.holder_id,
        quantity=row.quantity,
        unit_price=Money(row.unit_price_cents, row.currency),
        shipping=Money(row.shipping_cents, row.currency) if row.shipping_cents is not None else None,
        seller_id=row.seller_id,
        title=row.title,
        category_id=row.category_id,
        expires_at=row.expires_at,
        created_at=row.created_at,
    )


class ReservationRepository:
    """Concrete implementation of ReservationRepositoryProtocol using raw SQL."""

    async def insert(self, reservation: Reservation, db: AsyncSession) -> None:
        await db.execute(
            _INSERT_SQL,
            {
                "id": reservation.id,
                "listing_id": reservation.listing_id,
                "holder_id": reservation.holder_id,
                "quantity": reservation.quantity,
                "currency": reservation.unit_price.currency,
                "unit_price_cents": reservation.unit_price.cents,
                "shipping_cents": reservation.shipping.cents if reservation.shipping else None,
                "seller_id": reservation.seller_id,
                "title": reservation.title,
                "category_id": reservation.category_id,
                "expires_at": reservation.expires_at,
                "created_at": reservation.created_at,
            },
        )

    async def get_by_id(self, reservation_id: str, db: AsyncSession) -> Reservation | None:
        row = (await db.execute(_GET_SQL, {"id": reservation_id})).fetchone()
        return _row_to_reservation(row) if row else None

    async def get_for_update(
        self, reservation_id: str, db: AsyncSession
    ) -> Reservation | None:
        row = (await db.execute(_GET_FOR_UPDATE_SQL, {"id": reservation_id})).fetchone()
        return _row_to_reservation(row) if row else None

    async def delete(self, reservation_id: str, db: AsyncSession) -> None:
        await db.execute(_DELETE_SQL, {"id": reservation_id})

    async def sum_active(self, listing_id: str, now: datetime, db: AsyncSession) -> int:
        result = await db.execute(_SUM_ACTIVE_SQL, {"listing_id": listing_id, "now": now})
        return int(result.scalar_one())

    async def delete_expired_for_listing(
        self, listing_id: str, now: datetime, db: AsyncSession
    ) -> int:
        result = await db.execute(
            _DELETE_EXPIRED_FOR_LISTING_SQL, {"listing_id": listing_id, "now": now}
        )
        return int(result.rowcount or 0)  # type: ignore[attr-defined]

    async def delete_expired(self, now: datetime, limit: int, db: AsyncSession) -> int:
        result = await db.execute(_DELETE_EXPIRED_SQL, {"now": now, "limit": limit})
        return int(result.rowcount or 0)  # type: ignore[attr-defined]
