"""EventRepository Protocol: outbox writes share the caller's transaction."""
from collections.abc import Sequence
from datetime import datetime
from typing import Protocol

from sqlalchemy.ext.asyncio import AsyncSession

from src.mk_events.domain.models import DomainEvent


class EventRepositoryProtocol(Protocol):
    async def append(self, event: DomainEvent, db: AsyncSession) -> None: ...

    async def list_unpublished(self, limit: int, db: AsyncSession) -> list[DomainEvent]: ...

    async def mark_published(
        self, event_ids: Sequence[str], published_at: datetime, db: AsyncSession
    ) -> None: ...
