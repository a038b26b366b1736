# src/mk_listing/domain/repository.py
"""ListingRepository Protocol: interface contract for persistence layer.

`update` is a compare-and-swap on `listing.version`: it raises
ConcurrencyConflictError when another writer got there first, and bumps
`listing.version` on success.
"""
from datetime import datetime
from typing import Protocol

from sqlalchemy.ext.asyncio import AsyncSession

from src.mk_listing.domain.models import Listing, ListingTransition


class ListingRepositoryProtocol(Protocol):
    async def insert(self, listing: Listing, db: AsyncSession) -> None: ...

    async def get_by_id(self, listing_id: str, db: AsyncSession) -> Listing | None: ...

    async def get_for_update(self, listing_id: str, db: AsyncSession) -> Listing | None: ...

    async def update(self, listing: Listing, db: AsyncSession) -> None: ...

    async def append_transition(self, transition: ListingTransition, db: AsyncSession) -> None: ...

    async def list_transitions(
        self, listing_id: str, db: AsyncSession
    ) -> list[ListingTransition]: ...

    async def list_due_auction_ids(
        self, now: datetime, limit: int, db: AsyncSession
    ) -> list[str]: ...

    async def list_closing_soon(
        self, now: datetime, window_end: datetime, limit: int, db: AsyncSession
    ) -> list[Listing]: ...

    async def has_order(self, listing_id: str, db: AsyncSession) -> bool: ...
