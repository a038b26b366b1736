# src/mk_listing/infrastructure/persistence.py
"""ListingRepository: raw SQL persistence implementation."""
from datetime import datetime
from typing import Any

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from src.mk_common.errors import ConcurrencyConflictError
from src.mk_common.money import Money
from src.mk_listing.domain.models import Listing, ListingTransition

# ---------------------------------------------------------------------------
# SQL statements
# ---------------------------------------------------------------------------

_COLUMNS = """
    id, seller_id, title, category_id, currency, price_cents, shipping_cents,
    is_auction, auction_ends_at, status, total_quantity, sold_quantity,
    last_bid_sequence, version, closing_soon_notified_at, deleted_at,
    created_at, updated_at
"""

_INSERT_LISTING_SQL = text("""
    INSERT INTO listings (id, seller_id, title, category_id, currency, price_cents,
        shipping_cents, is_auction, auction_ends_at, status, total_quantity,
        sold_quantity, last_bid_sequence, version, created_at, updated_at)
    VALUES (:id, :seller_id, :title, :category_id, :currency, :price_cents,
        :shipping_cents, :is_auction, :auction_ends_at, :status, :total_quantity,
        0, 0, 0, :created_at, :created_at)
""")

_GET_LISTING_SQL = text(f"SELECT {_COLUMNS} FROM listings WHERE id = :id")

_GET_LISTING_FOR_UPDATE_SQL = text(f"SELECT {_COLUMNS} FROM listings WHERE id = :id FOR UPDATE")

# Compare-and-swap on version: 0 rows means a concurrent writer won.
_UPDATE_LISTING_SQL = text("""
    UPDATE listings
    SET status = :status,
        sold_quantity = :sold_quantity,
        last_bid_sequence = :last_bid_sequence,
        closing_soon_notified_at = :closing_soon_notified_at,
        deleted_at = :deleted_at,
        version = version + 1,
        updated_at = NOW()
    WHERE id = :id AND version = :version
    RETURNING version
""")

_INSERT_TRANSITION_SQL = text("""
    INSERT INTO listing_transitions
        (listing_id, from_status, to_status, action, actor_id, note, created_at)
    VALUES (:listing_id, :from_status, :to_status, :action, :actor_id, :note, :created_at)
    RETURNING id
""")

_LIST_TRANSITIONS_SQL = text("""
    SELECT id, listing_id, from_status, to_status, action, actor_id, note, created_at
    FROM listing_transitions
    WHERE listing_id = :listing_id
    ORDER BY id ASC
""")

_HAS_ORDER_SQL = text("""
    SELECT EXISTS (SELECT 1 FROM order_items WHERE listing_id = :listing_id) AS has_order
""")

_LIST_DUE_AUCTIONS_SQL = text("""
    SELECT id FROM listings
    WHERE is_auction AND status = 'active' AND auction_ends_at <= :now
    ORDER BY auction_ends_at ASC
    LIMIT :limit
""")

_LIST_CLOSING_SOON_SQL = text(f"""
    SELECT {_COLUMNS} FROM listings
    WHERE is_auction AND status = 'active'
      AND closing_soon_notified_at IS NULL
      AND auction_ends_at > :now AND auction_ends_at <= :window_end
    ORDER BY auction_ends_at ASC
    LIMIT :limit
""")


# ---------------------------------------------------------------------------
# Row mappers
# ---------------------------------------------------------------------------


def _row_to_listing(row: Any) -> Listing:
    return Listing(
        id=row.id,
        seller_id=row.seller_id,
        title=row.title,
        category_id=row.category_id,
        price=Money(row.price_cents, row.currency),
        shipping=Money(row.shipping_cents, row.currency) if row.shipping_cents is not None else None,
        is_auction=row.is_auction,
        auction_ends_at=row.auction_ends_at,
        status=row.status,
        total_quantity=row.total_quantity,
        sold_quantity=row.sold_quantity,
        last_bid_sequence=row.last_bid_sequence,
        version=row.version,
        closing_soon_notified_at=row.closing_soon_notified_at,
        deleted_at=row.deleted_at,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _row_to_transition(row: Any) -> ListingTransition:
    return ListingTransition(
        id=row.id,
        listing_id=row.listing_id,
        from_status=row.from_status,
        to_status=row.to_status,
        action=row.action,
        actor_id=row.actor_id,
        note=row.note,
        created_at=row.created_at,
    )


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class ListingRepository:
    """Concrete implementation of ListingRepositoryProtocol using raw SQL."""

    async def insert(self, listing: Listing, db: AsyncSession) -> None:
        await db.execute(
            _INSERT_LISTING_SQL,
            {
                "id": listing.id,
                "seller_id": listing.seller_id,
                "title": listing.title,
                "category_id": listing.category_id,
                "currency": listing.currency,
                "price_cents": listing.price.cents,
                "shipping_cents": listing.shipping.cents if listing.shipping else None,
                "is_auction": listing.is_auction,
                "auction_ends_at": listing.auction_ends_at,
                "status": listing.status,
                "total_quantity": listing.total_quantity,
                "created_at": listing.created_at,
            },
        )

    async def get_by_id(self, listing_id: str, db: AsyncSession) -> Listing | None:
        row = (await db.execute(_GET_LISTING_SQL, {"id": listing_id})).fetchone()
        return _row_to_listing(row) if row else None

    async def get_for_update(self, listing_id: str, db: AsyncSession) -> Listing | None:
        row = (await db.execute(_GET_LISTING_FOR_UPDATE_SQL, {"id": listing_id})).fetchone()
        return _row_to_listing(row) if row else None

    async def update(self, listing: Listing, db: AsyncSession) -> None:
        result = await db.execute(
            _UPDATE_LISTING_SQL,
            {
                "id": listing.id,
                "version": listing.version,
                "status": listing.status,
                "sold_quantity": listing.sold_quantity,
                "last_bid_sequence": listing.last_bid_sequence,
                "closing_soon_notified_at": listing.closing_soon_notified_at,
                "deleted_at": listing.deleted_at,
            },
        )
        row = result.fetchone()
        if row is None:
            raise ConcurrencyConflictError(f"Listing {listing.id} was modified concurrently")
        listing.version = row.version

    async def append_transition(self, transition: ListingTransition, db: AsyncSession) -> None:
        result = await db.execute(
            _INSERT_TRANSITION_SQL,
            {
                "listing_id": transition.listing_id,
                "from_status": transition.from_status,
                "to_status": transition.to_status,
                "action": transition.action,
                "actor_id": transition.actor_id,
                "note": transition.note,
                "created_at": transition.created_at,
            },
        )
        transition.id = result.scalar_one()

    async def list_transitions(
        self, listing_id: str, db: AsyncSession
    ) -> list[ListingTransition]:
        rows = (await db.execute(_LIST_TRANSITIONS_SQL, {"listing_id": listing_id})).fetchall()
        return [_row_to_transition(r) for r in rows]

    async def list_due_auction_ids(
        self, now: datetime, limit: int, db: AsyncSession
    ) -> list[str]:
        rows = (await db.execute(_LIST_DUE_AUCTIONS_SQL, {"now": now, "limit": limit})).fetchall()
        return [r.id for r in rows]

    async def list_closing_soon(
        self, now: datetime, window_end: datetime, limit: int, db: AsyncSession
    ) -> list[Listing]:
        rows = (
            await db.execute(
                _LIST_CLOSING_SOON_SQL, {"now": now, "window_end": window_end, "limit": limit}
            )
        ).fetchall()
        return [_row_to_listing(r) for r in rows]

    async def has_order(self, listing_id: str, db: AsyncSession) -> bool:
        result = await db.execute(_HAS_ORDER_SQL, {"listing_id": listing_id})
        return bool(result.scalar_one())
