"""ReservationRepository Protocol: interface contract for persistence layer."""
from datetime import datetime
from typing import Protocol

from sqlalchemy.ext.asyncio import AsyncSession

from src.mk_inventory.domain.models import Reservation


class ReservationRepositoryProtocol(Protocol):
    async def insert(self, reservation: Reservation, db: AsyncSession) -> None: ...

    async def get_by_id(self, reservation_id: str, db: AsyncSession) -> Reservation | None: ...

    async def get_for_update(
        self, reservation_id: str, db: AsyncSession
    ) -> Reservation | None: ...

    async def delete(self, reservation_id: str, db: AsyncSession) -> None: ...

    async def sum_active(self, listing_id: str, now: datetime, db: AsyncSession) -> int:
        """Quantity held by unexpired reservations of a listing."""
        ...

    async def delete_expired_for_listing(
        self, listing_id: str, now: datetime, db: AsyncSession
    ) -> int: ...

    async def delete_expired(self, now: datetime, limit: int, db: AsyncSession) -> int: ...
