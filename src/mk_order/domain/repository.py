"""OrderRepository Protocol: interface contract for persistence layer.

`insert` writes the order, its lines and its history in one go; a second
order for the same source bid violates the unique index and raises
sqlalchemy IntegrityError.
"""
from typing import Protocol

from sqlalchemy.ext.asyncio import AsyncSession

from src.mk_order.domain.models import Order, StatusHistoryEntry


class OrderRepositoryProtocol(Protocol):
    async def insert(self, order: Order, db: AsyncSession) -> None: ...

    async def get_by_id(self, order_id: str, db: AsyncSession) -> Order | None: ...

    async def get_for_update(self, order_id: str, db: AsyncSession) -> Order | None: ...

    async def exists_for_bid(self, bid_id: str, db: AsyncSession) -> bool: ...

    async def list_by_buyer(
        self, buyer_id: str, status: str | None, limit: int, cursor_id: str | None, db: AsyncSession
    ) -> list[Order]: ...

    async def list_by_seller(
        self, seller_id: str, status: str | None, limit: int, cursor_id: str | None, db: AsyncSession
    ) -> list[Order]: ...

    async def update(self, order: Order, db: AsyncSession) -> None:
        """Persist status, refunded amount and updated_at."""
        ...

    async def append_history(
        self, order_id: str, entry: StatusHistoryEntry, db: AsyncSession
    ) -> None: ...
