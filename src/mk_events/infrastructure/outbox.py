"""OutboxRepository: domain_events table, written inside the business transaction.

Relay reads with FOR UPDATE SKIP LOCKED so several workers can drain the outbox
without publishing the same row twice.
"""
import json
from collections.abc import Sequence
from datetime import datetime
from typing import Any

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from src.mk_events.domain.models import DomainEvent

_INSERT_EVENT_SQL = text("""
    INSERT INTO domain_events (id, event_type, aggregate_id, payload, created_at)
    VALUES (:id, :event_type, :aggregate_id, CAST(:payload AS JSONB), :created_at)
""")

_LIST_UNPUBLISHED_SQL = text("""
    SELECT id, event_type, aggregate_id, payload, created_at, published_at
    FROM domain_events
    WHERE published_at IS NULL
    ORDER BY id ASC
    LIMIT :limit
    FOR UPDATE SKIP LOCKED
""")

_MARK_PUBLISHED_SQL = text("""
    UPDATE domain_events SET published_at = :published_at
    WHERE id = ANY(:ids)
""")


def _row_to_event(row: Any) -> DomainEvent:
    payload = row.payload
    if isinstance(payload, str):
        payload = json.loads(payload)
    return DomainEvent(
        id=row.id,
        event_type=row.event_type,
        aggregate_id=row.aggregate_id,
        payload=payload,
        created_at=row.created_at,
        published_at=row.published_at,
    )


class OutboxRepository:
    async def append(self, event: DomainEvent, db: AsyncSession) -> None:
        await db.execute(
            _INSERT_EVENT_SQL,
            {
                "id": event.id,
                "event_type": event.event_type,
                "aggregate_id": event.aggregate_id,
                "payload": json.dumps(event.payload),
                "created_at": event.created_at,
            },
        )

    async def list_unpublished(self, limit: int, db: AsyncSession) -> list[DomainEvent]:
        rows = (await db.execute(_LIST_UNPUBLISHED_SQL, {"limit": limit})).fetchall()
        return [_row_to_event(r) for r in rows]

    async def mark_published(
        self, event_ids: Sequence[str], published_at: datetime, db: AsyncSession
    ) -> None:
        if not event_ids:
            return
        await db.execute(
            _MARK_PUBLISHED_SQL, {"ids": list(event_ids), "published_at": published_at}
        )
