"""EventRelay: drains the outbox to Redis pub/sub.

Delivery is at-least-once: rows are marked published only after every publish
in the batch succeeded, so a crash mid-batch re-sends on the next run.
Subscribers de-duplicate on the event id.
"""
import json
import logging
from typing import Any, Protocol

from sqlalchemy.ext.asyncio import AsyncSession

from src.mk_common.datetime_utils import utc_now
from src.mk_events.domain.repository import EventRepositoryProtocol

logger = logging.getLogger(__name__)


class PublisherProtocol(Protocol):
    async def publish(self, channel: str, message: Any) -> Any: ...


class EventRelay:
    def __init__(
        self,
        repo: EventRepositoryProtocol,
        publisher: PublisherProtocol,
        channel: str,
        batch_size: int = 100,
    ) -> None:
        self._repo = repo
        self._publisher = publisher
        self._channel = channel
        self._batch_size = batch_size

    async def relay_once(self, db: AsyncSession) -> int:
        events = await self._repo.list_unpublished(self._batch_size, db)
        if not events:
            return 0
        for event in events:
            await self._publisher.publish(
                f"{self._channel}.{event.event_type}", json.dumps(event.to_message())
            )
        await self._repo.mark_published([e.id for e in events], utc_now(), db)
        logger.debug("Relayed %d domain events", len(events))
        return len(events)
