"""EventRelay: outbox rows are published per type and marked only on success."""
import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from src.mk_events.application.relay import EventRelay
from src.mk_events.domain.models import DomainEvent


def _event(event_type: str, aggregate_id: str, created_at) -> DomainEvent:
    return DomainEvent(
        event_type=event_type,
        aggregate_id=aggregate_id,
        payload={"listing_id": aggregate_id},
        created_at=created_at,
    )


class TestRelayOnce:
    @pytest.mark.asyncio
    async def test_publishes_and_marks(self, services, db, state, clock) -> None:
        state.events.extend([
            _event("BID_PLACED", "A-1", clock.now),
            _event("AUCTION_CLOSED", "A-1", clock.now),
        ])
        publisher = MagicMock()
        publisher.publish = AsyncMock(return_value=1)
        relay = EventRelay(services.outbox, publisher, "marketplace.events")

        assert await relay.relay_once(db) == 2

        channels = [c.args[0] for c in publisher.publish.await_args_list]
        assert channels == ["marketplace.events.BID_PLACED", "marketplace.events.AUCTION_CLOSED"]
        message = json.loads(publisher.publish.await_args_list[0].args[1])
        assert message["type"] == "BID_PLACED"
        assert message["payload"] == {"listing_id": "A-1"}
        assert message["id"] == state.events[0].id
        assert all(e.published_at is not None for e in state.events)

    @pytest.mark.asyncio
    async def test_nothing_pending(self, services, db) -> None:
        publisher = MagicMock()
        publisher.publish = AsyncMock()
        relay = EventRelay(services.outbox, publisher, "marketplace.events")
        assert await relay.relay_once(db) == 0
        publisher.publish.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_publish_failure_leaves_rows_pending(self, services, db, state, clock) -> None:
        state.events.append(_event("BID_PLACED", "A-1", clock.now))
        publisher = MagicMock()
        publisher.publish = AsyncMock(side_effect=ConnectionError("redis down"))
        relay = EventRelay(services.outbox, publisher, "marketplace.events")

        with pytest.raises(ConnectionError):
            await relay.relay_once(db)
        assert state.events[0].published_at is None

    @pytest.mark.asyncio
    async def test_batch_size_respected(self, services, db, state, clock) -> None:
        state.events.extend(_event("BID_PLACED", f"A-{n}", clock.now) for n in range(5))
        publisher = MagicMock()
        publisher.publish = AsyncMock()
        relay = EventRelay(services.outbox, publisher, "marketplace.events", batch_size=2)
        assert await relay.relay_once(db) == 2
        assert sum(1 for e in state.events if e.published_at is None) == 3
