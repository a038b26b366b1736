# src/mk_bidding/infrastructure/persistence.py
"""BidRepository: raw SQL persistence implementation."""
from typing import Any

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from src.mk_bidding.domain.models import Bid
from src.mk_common.money import Money

_COLUMNS = "id, listing_id, bidder_id, amount_cents, currency, sequence, status, created_at, updated_at"

_INSERT_BID_SQL = text("""
    INSERT INTO bids (id, listing_id, bidder_id, amount_cents, currency, sequence,
                      status, created_at, updated_at)
    VALUES (:id, :listing_id, :bidder_id, :amount_cents, :currency, :sequence,
            :status, :created_at, :created_at)
""")

_GET_BID_SQL = text(f"SELECT {_COLUMNS} FROM bids WHERE id = :id")

_GET_BID_FOR_UPDATE_SQL = text(f"SELECT {_COLUMNS} FROM bids WHERE id = :id FOR UPDATE")

_LIST_BY_LISTING_SQL = text(f"""
    SELECT {_COLUMNS} FROM bids
    WHERE listing_id = :listing_id
    ORDER BY sequence ASC
""")

_UPDATE_STATUS_SQL = text("""
    UPDATE bids SET status = :status, updated_at = NOW()
    WHERE id = :id
""")

_MARK_OPEN_LOST_SQL = text("""
    UPDATE bids SET status = 'lost', updated_at = NOW()
    WHERE listing_id = :listing_id AND status IN ('active', 'outbid')
""")


def _row_to_bid(row: Any) -> Bid:
    return Bid(
        id=row.id,
        listing_id=row.listing_id,
        bidder_id=row.bidder_id,
        amount=Money(row.amount_cents, row.currency),
        sequence=row.sequence,
        status=row.status,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


class BidRepository:
    """Concrete implementation of BidRepositoryProtocol using raw SQL."""

    async def insert(self, bid: Bid, db: AsyncSession) -> None:
        await db.execute(
            _INSERT_BID_SQL,
            {
                "id": bid.id,
                "listing_id": bid.listing_id,
                "bidder_id": bid.bidder_id,
                "amount_cents": bid.amount.cents,
                "currency": bid.amount.currency,
                "sequence": bid.sequence,
                "status": bid.status,
                "created_at": bid.created_at,
            },
        )

    async def get_by_id(self, bid_id: str, db: AsyncSession) -> Bid | None:
        row = (await db.execute(_GET_BID_SQL, {"id": bid_id})).fetchone()
        return _row_to_bid(row) if row else None

    async def get_for_update(self, bid_id: str, db: AsyncSession) -> Bid | None:
        row = (await db.execute(_GET_BID_FOR_UPDATE_SQL, {"id": bid_id})).fetchone()
        return _row_to_bid(row) if row else None

    async def list_by_listing(self, listing_id: str, db: AsyncSession) -> list[Bid]:
        rows = (await db.execute(_LIST_BY_LISTING_SQL, {"listing_id": listing_id})).fetchall()
        return [_row_to_bid(r) for r in rows]

    async def update_status(self, bid: Bid, db: AsyncSession) -> None:
        await db.execute(_UPDATE_STATUS_SQL, {"id": bid.id, "status": bid.status})

    async def mark_open_bids_lost(self, listing_id: str, db: AsyncSession) -> int:
        result = await db.execute(_MARK_OPEN_LOST_SQL, {"listing_id": listing_id})
        return int(result.rowcount or 0)  # type: ignore[attr-defined]
