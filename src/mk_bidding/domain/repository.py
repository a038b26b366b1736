"""BidRepository Protocol: interface contract for persistence layer."""
from typing import Protocol

from sqlalchemy.ext.asyncio import AsyncSession

from src.mk_bidding.domain.models import Bid


class BidRepositoryProtocol(Protocol):
    async def insert(self, bid: Bid, db: AsyncSession) -> None: ...

    async def get_by_id(self, bid_id: str, db: AsyncSession) -> Bid | None: ...

    async def get_for_update(self, bid_id: str, db: AsyncSession) -> Bid | None: ...

    async def list_by_listing(self, listing_id: str, db: AsyncSession) -> list[Bid]:
        """All bids of a listing in sequence order."""
        ...

    async def update_status(self, bid: Bid, db: AsyncSession) -> None: ...

    async def mark_open_bids_lost(self, listing_id: str, db: AsyncSession) -> int: ...
